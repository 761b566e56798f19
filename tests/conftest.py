"""
Test Suite Configuration
"""
import pytest
from pathlib import Path
from typing import AsyncGenerator, Callable

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from src.config import IngestionSettings
from src.database.models import Base
from src.ingestion.csv_loader import CsvLoader
from src.ingestion.record_store import SqlAlchemyRecordStore

SALES_HEADER = (
    "Order ID,Product ID,Customer ID,Product Name,Category,Region,Date of Sale,"
    "Quantity Sold,Unit Price,Discount,Shipping Cost,Payment Method,"
    "Customer Name,Customer Email,Customer Address"
)


@pytest.fixture
def ingestion_settings() -> IngestionSettings:
    """Small batches and chunks so tests cross flush boundaries"""
    return IngestionSettings(batch_size=4, chunk_size=3)


@pytest.fixture
async def test_engine(tmp_path: Path):
    """File-backed SQLite database per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'sales.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(session_factory) -> SqlAlchemyRecordStore:
    return SqlAlchemyRecordStore(session_factory)


@pytest.fixture
def loader(store, ingestion_settings) -> CsvLoader:
    return CsvLoader(store, ingestion_settings)


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """
    Write a sales file under tmp_path.

    Rows are appended below the standard header unless ``header`` is given.
    """
    def _write(rows, name: str = "sales.csv", header: str = SALES_HEADER) -> Path:
        path = tmp_path / name
        lines = [header] if header is not None else []
        lines.extend(rows)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_rows() -> list:
    """Three orders, four items, two customers, three products"""
    return [
        "1001,P1,C1,Widget,Tools,North,2025-01-05,2,9.99,0.1,5.00,Card,Ann Lee,ann@example.com,1 Main St",
        "1001,P2,C1,Gadget,Tools,North,2025-01-05,1,20.00,0,5.00,Card,Ann Lee,ann@example.com,1 Main St",
        "1002,P1,C2,Widget,Tools,South,2025-01-06,3,9.99,0,0,Cash,Bo Chan,bo@example.com,2 High St",
        "1003,P3,C2,Lamp,Home,South,2025-02-01,1,45.50,0.2,7.50,Cash,Bo Chan,bo@example.com,2 High St",
    ]
