"""
Database Models - Sales Schema

This module defines the relational models the ingestion pipeline writes and
the revenue reports read. The schema consists of:

Dimension Tables:
- Category: Product categories, created lazily during ingestion
- Product: Product catalog keyed by product code
- Customer: Customers keyed by customer code

Fact Tables:
- Order: One row per order code, carries shipping and payment metadata
- OrderItem: One row per ingested source line

Audit:
- RunLog: One row per ingestion attempt
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class RunStatus(str, Enum):
    """Ingestion run status enumeration"""
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class Category(Base):
    """
    Category Dimension Table

    Category names are unique; ids are referenced by products.
    """
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    products: Mapped[List["Product"]] = relationship(back_populates="category")

    __table_args__ = (
        Index("ix_categories_name", "name", unique=True),
    )


class Product(Base):
    """
    Product Dimension Table

    Keyed by the product code found in source files (e.g. "P123").
    """
    __tablename__ = "products"

    code: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(500))
    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id")
    )

    category: Mapped[Optional["Category"]] = relationship(back_populates="products")


class Customer(Base):
    """
    Customer Dimension Table

    Keyed by the customer code found in source files (e.g. "C456").
    """
    __tablename__ = "customers"

    code: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    email: Mapped[Optional[str]] = mapped_column(String(200))
    address: Mapped[Optional[str]] = mapped_column(String(500))

    orders: Mapped[List["Order"]] = relationship(back_populates="customer")


# =============================================================================
# FACT TABLES
# =============================================================================

class Order(Base):
    """
    Order Fact Table

    Grain: one row per order code. Shipping cost is charged once per order.
    """
    __tablename__ = "orders"

    code: Mapped[str] = mapped_column(String(100), primary_key=True)
    customer_code: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("customers.code")
    )
    date_of_sale: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    region: Mapped[Optional[str]] = mapped_column(String(100))
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))

    customer: Mapped[Optional["Customer"]] = relationship(back_populates="orders")
    items: Mapped[List["OrderItem"]] = relationship(back_populates="order")

    __table_args__ = (
        Index("ix_orders_date_of_sale", "date_of_sale"),
        Index("ix_orders_region", "region"),
    )


class OrderItem(Base):
    """
    Order Item Fact Table

    Line-item detail with grain at source-line level. Never deduplicated.
    """
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    order_code: Mapped[str] = mapped_column(
        String(100), ForeignKey("orders.code"), nullable=False
    )
    product_code: Mapped[str] = mapped_column(
        String(100), ForeignKey("products.code"), nullable=False
    )

    # Measures
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=0)  # fraction, e.g. 0.1

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order_code", "order_code"),
        Index("ix_order_items_product_code", "product_code"),
    )


# =============================================================================
# AUDIT
# =============================================================================

class RunLog(Base):
    """
    Ingestion Run Log

    Created when a run starts and closed out in place when it ends.
    """
    __tablename__ = "run_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[RunStatus] = mapped_column(
        SQLEnum(RunStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RunStatus.RUNNING,
    )
    message: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_run_logs_started_at", "started_at"),
    )
