"""
Record Store Gateway

Persistence boundary for the ingestion pipeline. The loader only talks to
the abstract ``RecordStore``; ``SqlAlchemyRecordStore`` implements it on an
async SQLAlchemy session factory, using one short session per call so a
failed batch never poisons the session used to close out the run log.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional, Set

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database.models import Category, Customer, Order, OrderItem, Product, RunLog, RunStatus
from src.ingestion.errors import DuplicateKeyError, StoreError

logger = structlog.get_logger(__name__)


@dataclass
class PendingBatch:
    """New rows buffered between flushes, as column dicts"""
    products: List[Dict[str, Any]] = field(default_factory=list)
    customers: List[Dict[str, Any]] = field(default_factory=list)
    orders: List[Dict[str, Any]] = field(default_factory=list)
    items: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def size(self) -> int:
        """Pending orders plus items, the quantity batch sizing is based on"""
        return len(self.orders) + len(self.items)

    @property
    def is_empty(self) -> bool:
        return not (self.products or self.customers or self.orders or self.items)

    def clear(self) -> None:
        self.products.clear()
        self.customers.clear()
        self.orders.clear()
        self.items.clear()


class RecordStore(ABC):
    """Read/write contract the ingestion engine depends on"""

    @abstractmethod
    async def insert_run_log(self, started_at: datetime, status: RunStatus, message: str) -> int:
        """Persist a new run log row and return its id"""

    @abstractmethod
    async def update_run_log(self, run_log_id: int, **fields: Any) -> None:
        """Update columns of an existing run log row"""

    @abstractmethod
    async def lookup_categories_by_name(self) -> Dict[str, int]:
        pass

    @abstractmethod
    async def lookup_product_codes(self) -> Set[str]:
        pass

    @abstractmethod
    async def lookup_customer_codes(self) -> Set[str]:
        pass

    @abstractmethod
    async def lookup_order_codes(self) -> Set[str]:
        pass

    @abstractmethod
    async def insert_category(self, name: str) -> int:
        """Insert and commit a category, returning its id"""

    @abstractmethod
    async def insert_batch(self, batch: PendingBatch) -> None:
        """
        Persist all pending rows in one transaction.

        Raises:
            DuplicateKeyError: On a uniqueness violation
            StoreError: On any other store failure
        """


class SqlAlchemyRecordStore(RecordStore):
    """
    RecordStore backed by an async SQLAlchemy session factory.

    Example:
        store = SqlAlchemyRecordStore(get_session_factory())
        run_log_id = await store.insert_run_log(now, RunStatus.RUNNING, "Starting")
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateKeyError(f"Constraint violation: {e.orig}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError(f"Store failure: {e}") from e

    async def insert_run_log(self, started_at: datetime, status: RunStatus, message: str) -> int:
        async with self._session() as session:
            run_log = RunLog(started_at=started_at, status=status, message=message)
            session.add(run_log)
            await session.flush()
            return run_log.id

    async def update_run_log(self, run_log_id: int, **fields: Any) -> None:
        async with self._session() as session:
            await session.execute(
                update(RunLog).where(RunLog.id == run_log_id).values(**fields)
            )

    async def lookup_categories_by_name(self) -> Dict[str, int]:
        async with self._session() as session:
            result = await session.execute(select(Category.name, Category.id))
            return {name: category_id for name, category_id in result.all()}

    async def lookup_product_codes(self) -> Set[str]:
        async with self._session() as session:
            return set((await session.scalars(select(Product.code))).all())

    async def lookup_customer_codes(self) -> Set[str]:
        async with self._session() as session:
            return set((await session.scalars(select(Customer.code))).all())

    async def lookup_order_codes(self) -> Set[str]:
        async with self._session() as session:
            return set((await session.scalars(select(Order.code))).all())

    async def insert_category(self, name: str) -> int:
        async with self._session() as session:
            category = Category(name=name)
            session.add(category)
            await session.flush()
            logger.info("Category created", category=name, category_id=category.id)
            return category.id

    async def insert_batch(self, batch: PendingBatch) -> None:
        # Parents before children so FKs resolve inside the transaction
        async with self._session() as session:
            for model, rows in (
                (Product, batch.products),
                (Customer, batch.customers),
                (Order, batch.orders),
                (OrderItem, batch.items),
            ):
                if rows:
                    await session.execute(insert(model), rows)

    async def list_run_logs(self, limit: int = 20) -> List[RunLog]:
        """Most recent run logs, newest first"""
        async with self._session() as session:
            result = await session.scalars(
                select(RunLog).order_by(RunLog.id.desc()).limit(limit)
            )
            return list(result.all())

    async def get_run_log(self, run_log_id: int) -> Optional[RunLog]:
        async with self._session() as session:
            return await session.get(RunLog, run_log_id)
