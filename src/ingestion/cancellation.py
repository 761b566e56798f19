"""
Cancellation Helpers

Blocking waits in the ingestion subsystem observe an ``asyncio.Event`` used
as a cancellation signal. ``wait_or_cancel`` races an awaitable against it.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from src.ingestion.errors import JobCancelledError

T = TypeVar("T")


def check_cancelled(cancel: Optional[asyncio.Event]) -> None:
    """Raise JobCancelledError if the signal is set"""
    if cancel is not None and cancel.is_set():
        raise JobCancelledError()


async def wait_or_cancel(
    awaitable: Awaitable[T],
    cancel: Optional[asyncio.Event],
    release: Optional[Callable[[T], Any]] = None,
) -> T:
    """
    Await ``awaitable`` unless ``cancel`` fires first.

    If the awaitable completes, its result is returned even when the signal
    fired at the same time, so a value obtained from a queue or a lock that
    was acquired is never dropped.

    Args:
        awaitable: The wait to race against the signal
        cancel: Cancellation signal, or None to simply await
        release: Called with the result when the awaitable finished but the
            calling task was cancelled before it could take the result,
            e.g. to release an acquired lock

    Raises:
        JobCancelledError: If the signal fired before the awaitable finished
    """
    if cancel is None:
        return await awaitable

    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise JobCancelledError()

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        if not work.done():
            work.cancel()
        elif release is not None and not work.cancelled() and work.exception() is None:
            release(work.result())
        raise
    finally:
        waiter.cancel()

    if work.done():
        return work.result()

    work.cancel()
    try:
        # may still complete if it finished before the cancel was delivered
        return await work
    except asyncio.CancelledError:
        raise JobCancelledError() from None
