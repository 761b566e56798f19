"""
CSV Sales Loader

Streams delimited sales files into the relational store:
- Chunked reading, the file is never held in memory as a whole
- Header synonyms and permissive field parsing (see ``row_parser``)
- Lines with surplus cells keep their leading fields; the rest is ignored
- First-seen-wins upserts for categories, products, customers and orders
- One order item per usable source line
- Batched commits through the record store gateway
- A run log row per invocation, closed out on every exit path

At most one run executes at a time per loader: ``load_file`` holds the
loader's ingestion lock for the whole run, because the dedup state loaded at
the start of a run is only valid while no other run is writing.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import pandas as pd
import structlog
from pydantic import BaseModel

from src.config import IngestionSettings, get_settings
from src.database.models import RunStatus
from src.ingestion.cancellation import check_cancelled, wait_or_cancel
from src.ingestion.errors import IngestionBusyError, JobCancelledError
from src.ingestion.metrics import INGESTION_ROWS, INGESTION_RUN_TIME, INGESTION_RUNS
from src.ingestion.record_store import PendingBatch, RecordStore, SqlAlchemyRecordStore
from src.ingestion.row_parser import ParsedRow, RowSkip, clean_text, parse_row, resolve_columns

logger = structlog.get_logger(__name__)

# Names of the surplus-cell columns added to every frame
OVERFLOW_PREFIX = "__overflow_"


class LoadResult(BaseModel):
    """Result of a load_file call"""
    file_path: str
    success: bool
    status: RunStatus
    orders_inserted: int = 0
    items_inserted: int = 0
    rows_skipped: int = 0
    rows_truncated: int = 0
    message: str
    run_log_id: Optional[int] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    load_duration_seconds: float = 0


@dataclass
class DedupState:
    """
    Natural keys known to exist, owned by a single run.

    Seeded from the store when the run starts and extended as the run
    creates rows; discarded when the run ends.
    """
    categories: Dict[str, int] = field(default_factory=dict)
    product_codes: Set[str] = field(default_factory=set)
    customer_codes: Set[str] = field(default_factory=set)
    order_codes: Set[str] = field(default_factory=set)

    @classmethod
    async def snapshot(cls, store: RecordStore) -> "DedupState":
        return cls(
            categories=await store.lookup_categories_by_name(),
            product_codes=await store.lookup_product_codes(),
            customer_codes=await store.lookup_customer_codes(),
            order_codes=await store.lookup_order_codes(),
        )


@dataclass
class RunProgress:
    """Counters for one run"""
    orders: int = 0
    items: int = 0
    skipped: int = 0
    truncated: int = 0
    committed_orders: int = 0
    committed_items: int = 0

    def summary(self) -> str:
        return f"Inserted orders: {self.orders}, items: {self.items}"

    def committed_summary(self) -> str:
        return f"committed orders: {self.committed_orders}, items: {self.committed_items}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CsvLoader:
    """
    Streaming CSV loader with run logging.

    Example:
        loader = CsvLoader(SqlAlchemyRecordStore(get_session_factory()))
        result = await loader.load_file("data/sales.csv")
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[IngestionSettings] = None,
        lock: Optional[asyncio.Lock] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ingestion
        self._lock = lock or asyncio.Lock()

    @property
    def is_busy(self) -> bool:
        """True while a run holds the ingestion lock"""
        return self._lock.locked()

    async def load_file(
        self,
        file_path: Union[str, Path],
        cancel: Optional[asyncio.Event] = None,
    ) -> LoadResult:
        """
        Load one delimited sales file.

        Args:
            file_path: Path of the file to load
            cancel: Signal that stops the run at the next row or wait

        Returns:
            LoadResult: success=False with a readable message on any
            run-level failure, cancellation or busy rejection
        """
        file_path = str(file_path)
        started_at = _utcnow()

        try:
            await self._acquire(cancel)
        except IngestionBusyError as e:
            logger.warning("Ingestion busy, rejecting load", path=file_path)
            INGESTION_RUNS.labels(status="busy").inc()
            return LoadResult(
                file_path=file_path,
                success=False,
                status=RunStatus.FAILED,
                message=str(e),
                started_at=started_at,
                completed_at=_utcnow(),
            )
        except JobCancelledError:
            logger.info("Load cancelled while waiting for ingestion lock", path=file_path)
            return LoadResult(
                file_path=file_path,
                success=False,
                status=RunStatus.CANCELLED,
                message="Cancelled before the run started",
                started_at=started_at,
                completed_at=_utcnow(),
            )

        try:
            return await self._run(file_path, cancel)
        finally:
            self._lock.release()

    async def _acquire(self, cancel: Optional[asyncio.Event]) -> None:
        if self._settings.busy_policy == "fail":
            if self._lock.locked():
                raise IngestionBusyError()
            # uncontended acquire completes without suspending
            await self._lock.acquire()
            return
        await wait_or_cancel(self._lock.acquire(), cancel, release=lambda _: self._lock.release())

    async def _run(self, file_path: str, cancel: Optional[asyncio.Event]) -> LoadResult:
        started_at = _utcnow()
        progress = RunProgress()

        try:
            run_log_id = await self._store.insert_run_log(
                started_at=started_at,
                status=RunStatus.RUNNING,
                message=f"Starting load of {file_path}",
            )
        except Exception as e:
            logger.error("Could not create run log", path=file_path, error=str(e))
            INGESTION_RUNS.labels(status=RunStatus.FAILED.value).inc()
            return LoadResult(
                file_path=file_path,
                success=False,
                status=RunStatus.FAILED,
                message=f"Could not create run log: {e}",
                started_at=started_at,
                completed_at=_utcnow(),
            )

        with structlog.contextvars.bound_contextvars(run_log_id=run_log_id, path=file_path):
            logger.info("Starting CSV load")

            try:
                state = await DedupState.snapshot(self._store)
                await self._stream_rows(file_path, state, progress, cancel)
            except JobCancelledError:
                status = RunStatus.CANCELLED
                message = f"Cancelled; {progress.committed_summary()}"
                logger.warning("CSV load cancelled", **vars(progress))
            except asyncio.CancelledError:
                # Task cancelled outright: close the log, then let it propagate
                await asyncio.shield(self._close_run_log(
                    run_log_id,
                    RunStatus.CANCELLED,
                    f"Cancelled; {progress.committed_summary()}",
                ))
                raise
            except Exception as e:
                status = RunStatus.FAILED
                message = f"{e} ({progress.committed_summary()})"
                logger.error("CSV load failed", error=str(e), error_type=type(e).__name__, **vars(progress))
            else:
                status = RunStatus.SUCCESS
                message = progress.summary()
                logger.info("CSV load completed", **vars(progress))

            completed_at = await self._close_run_log(run_log_id, status, message)

        duration = (completed_at - started_at).total_seconds()
        INGESTION_RUNS.labels(status=status.value).inc()
        INGESTION_RUN_TIME.observe(duration)

        succeeded = status == RunStatus.SUCCESS
        return LoadResult(
            file_path=file_path,
            success=succeeded,
            status=status,
            orders_inserted=progress.orders if succeeded else progress.committed_orders,
            items_inserted=progress.items if succeeded else progress.committed_items,
            rows_skipped=progress.skipped,
            rows_truncated=progress.truncated,
            message=message,
            run_log_id=run_log_id,
            started_at=started_at,
            completed_at=completed_at,
            load_duration_seconds=duration,
        )

    async def _close_run_log(self, run_log_id: int, status: RunStatus, message: str) -> datetime:
        finished_at = _utcnow()
        try:
            await self._store.update_run_log(
                run_log_id,
                status=status,
                message=message,
                finished_at=finished_at,
            )
        except Exception as e:
            logger.error("Could not close run log", run_log_id=run_log_id, status=status.value, error=str(e))
        return finished_at

    def _read_options(self) -> Dict[str, Any]:
        return dict(
            sep=self._settings.delimiter,
            encoding=self._settings.encoding,
            encoding_errors="replace",
            dtype=str,
            na_filter=False,
            skipinitialspace=True,
            skip_blank_lines=True,
        )

    def _open_reader(self, file_path: str) -> Tuple[Any, List[str]]:
        """
        Chunked reader over the data lines of ``file_path``.

        Frames carry the file's headers plus one overflow column per header,
        so a line with surplus cells (an unquoted delimiter, say) keeps its
        leading fields in place instead of being dropped or shifted.

        Returns:
            (reader, overflow column names)
        """
        options = self._read_options()
        headers = [str(h) for h in pd.read_csv(file_path, nrows=0, **options).columns]
        overflow = [f"{OVERFLOW_PREFIX}{i}" for i in range(len(headers))]
        width = len(headers) + len(overflow)

        def keep_leading_fields(fields: List[str]) -> List[str]:
            logger.warning("Line wider than the overflow columns", fields=len(fields), kept=width)
            return fields[:width]

        reader = pd.read_csv(
            file_path,
            engine="python",
            header=None,
            skiprows=1,
            names=headers + overflow,
            on_bad_lines=keep_leading_fields,
            chunksize=self._settings.chunk_size,
            **options,
        )
        return reader, overflow

    async def _stream_rows(
        self,
        file_path: str,
        state: DedupState,
        progress: RunProgress,
        cancel: Optional[asyncio.Event],
    ) -> None:
        batch = PendingBatch()
        line_number = 0

        try:
            reader, overflow = await asyncio.to_thread(self._open_reader, file_path)
        except pd.errors.EmptyDataError:
            logger.warning("Source file is empty")
            return

        with reader:
            columns = None
            while True:
                check_cancelled(cancel)
                chunk = await asyncio.to_thread(next, reader, None)
                if chunk is None:
                    break

                if columns is None:
                    headers = [h for h in chunk.columns if h not in overflow]
                    columns = resolve_columns(headers)
                    if "order_id" not in columns or "product_id" not in columns:
                        logger.warning("Order or product identifier column not found", headers=headers)

                for record in chunk.to_dict("records"):
                    check_cancelled(cancel)
                    line_number += 1

                    surplus = [clean_text(record.pop(name)) for name in overflow]
                    if any(surplus):
                        progress.truncated += 1
                        logger.warning(
                            "Line has more fields than the header, surplus cells ignored",
                            line=line_number,
                            surplus=sum(1 for cell in surplus if cell),
                        )

                    result = parse_row(record, columns, line_number)
                    if isinstance(result, RowSkip):
                        progress.skipped += 1
                        INGESTION_ROWS.labels(outcome="skipped").inc()
                        logger.warning("Skipping row", line=result.line_number, reason=result.reason)
                        continue

                    await self._apply_row(result, state, batch, progress)
                    INGESTION_ROWS.labels(outcome="inserted").inc()

                    if batch.size >= self._settings.batch_size:
                        await self._flush(batch, progress, cancel)

        await self._flush(batch, progress, cancel)

    async def _apply_row(
        self,
        row: ParsedRow,
        state: DedupState,
        batch: PendingBatch,
        progress: RunProgress,
    ) -> None:
        category_id = None
        if row.category:
            category_id = state.categories.get(row.category)
            if category_id is None:
                # Committed right away so later products can reference it
                category_id = await self._store.insert_category(row.category)
                state.categories[row.category] = category_id

        if row.product_code not in state.product_codes:
            batch.products.append({
                "code": row.product_code,
                "name": row.product_name,
                "category_id": category_id,
            })
            state.product_codes.add(row.product_code)

        if row.customer_code and row.customer_code not in state.customer_codes:
            batch.customers.append({
                "code": row.customer_code,
                "name": row.customer_name,
                "email": row.customer_email,
                "address": row.customer_address,
            })
            state.customer_codes.add(row.customer_code)

        if row.order_code not in state.order_codes:
            batch.orders.append({
                "code": row.order_code,
                "customer_code": row.customer_code,
                "date_of_sale": row.date_of_sale,
                "region": row.region,
                "shipping_cost": row.shipping_cost,
                "payment_method": row.payment_method,
            })
            state.order_codes.add(row.order_code)
            progress.orders += 1

        batch.items.append({
            "order_code": row.order_code,
            "product_code": row.product_code,
            "quantity": row.quantity,
            "unit_price": row.unit_price,
            "discount": row.discount,
        })
        progress.items += 1

    async def _flush(
        self,
        batch: PendingBatch,
        progress: RunProgress,
        cancel: Optional[asyncio.Event],
    ) -> None:
        if batch.is_empty:
            return
        check_cancelled(cancel)

        await self._store.insert_batch(batch)
        progress.committed_orders += len(batch.orders)
        progress.committed_items += len(batch.items)
        logger.info(
            "Saved batch",
            orders=progress.committed_orders,
            items=progress.committed_items,
        )
        batch.clear()


def create_csv_loader(
    store: Optional[RecordStore] = None,
    lock: Optional[asyncio.Lock] = None,
) -> CsvLoader:
    """Create a loader bound to the application database"""
    if store is None:
        from src.database.connection import get_session_factory
        store = SqlAlchemyRecordStore(get_session_factory())
    return CsvLoader(store, get_settings().ingestion, lock=lock)
