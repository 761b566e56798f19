"""
Revenue Report Queries

Aggregations over ingested sales. Line revenue is
quantity * unit_price * (1 - discount); shipping is charged once per order
and added on top where a report includes it. All money stays Decimal.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import Category, Order, OrderItem, Product

CENTS = Decimal("0.01")

TREND_PERIODS = {
    "monthly": "month",
    "quarterly": "quarter",
    "yearly": "year",
}


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _line_revenue():
    return OrderItem.quantity * OrderItem.unit_price * (1 - OrderItem.discount)


def _in_period(start: datetime, end: datetime):
    return and_(Order.date_of_sale >= start, Order.date_of_sale <= end)


async def total_revenue(db: AsyncSession, start: datetime, end: datetime) -> Dict[str, Any]:
    """Item revenue, shipping and their total for sales in [start, end]"""
    item_revenue = await db.scalar(
        select(func.sum(_line_revenue()))
        .join(Order, OrderItem.order_code == Order.code)
        .where(_in_period(start, end))
    )
    shipping = await db.scalar(
        select(func.sum(Order.shipping_cost)).where(_in_period(start, end))
    )

    item_revenue, shipping = _money(item_revenue), _money(shipping)
    return {
        "start_date": start,
        "end_date": end,
        "item_revenue": item_revenue,
        "shipping": shipping,
        "total": item_revenue + shipping,
    }


async def revenue_by_product(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    top: int = 50,
) -> List[Dict[str, Any]]:
    """Top products by item revenue"""
    revenue = func.sum(_line_revenue()).label("revenue")
    result = await db.execute(
        select(OrderItem.product_code, revenue)
        .join(Order, OrderItem.order_code == Order.code)
        .where(_in_period(start, end))
        .group_by(OrderItem.product_code)
        .order_by(revenue.desc())
        .limit(top)
    )
    return [
        {"product_code": code, "revenue": _money(value)}
        for code, value in result.all()
    ]


async def revenue_by_category(db: AsyncSession, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    """Item revenue per category; products without one count as Uncategorized"""
    category_name = func.coalesce(Category.name, "Uncategorized").label("category")
    revenue = func.sum(_line_revenue()).label("revenue")
    result = await db.execute(
        select(category_name, revenue)
        .select_from(OrderItem)
        .join(Order, OrderItem.order_code == Order.code)
        .join(Product, OrderItem.product_code == Product.code)
        .outerjoin(Category, Product.category_id == Category.id)
        .where(_in_period(start, end))
        .group_by(category_name)
        .order_by(revenue.desc())
    )
    return [
        {"category": name, "revenue": _money(value)}
        for name, value in result.all()
    ]


async def revenue_by_region(db: AsyncSession, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    """Item revenue plus shipping per region, highest first"""
    items = await db.execute(
        select(Order.region, func.sum(_line_revenue()))
        .select_from(OrderItem)
        .join(Order, OrderItem.order_code == Order.code)
        .where(_in_period(start, end))
        .group_by(Order.region)
    )
    shipping = await db.execute(
        select(Order.region, func.sum(Order.shipping_cost))
        .where(_in_period(start, end))
        .group_by(Order.region)
    )

    totals: Dict[str, Decimal] = {}
    for rows in (items.all(), shipping.all()):
        for region, value in rows:
            key = region or "Unknown"
            totals[key] = totals.get(key, Decimal("0.00")) + _money(value)

    return sorted(
        ({"region": region, "revenue": value} for region, value in totals.items()),
        key=lambda row: row["revenue"],
        reverse=True,
    )


async def revenue_trends(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    period: str = "monthly",
) -> List[Dict[str, Any]]:
    """
    Revenue per calendar period.

    Uses PostgreSQL ``date_trunc``; unknown periods fall back to monthly.
    """
    trunc = TREND_PERIODS.get(period.lower(), "month")
    bucket = func.date_trunc(trunc, Order.date_of_sale).label("period")

    items = await db.execute(
        select(bucket, func.sum(_line_revenue()))
        .select_from(OrderItem)
        .join(Order, OrderItem.order_code == Order.code)
        .where(_in_period(start, end))
        .group_by(bucket)
    )
    shipping = await db.execute(
        select(bucket, func.sum(Order.shipping_cost))
        .where(_in_period(start, end))
        .group_by(bucket)
    )

    periods: Dict[datetime, Dict[str, Decimal]] = {}
    for bucket_start, value in items.all():
        periods.setdefault(bucket_start, {"item_revenue": Decimal("0.00"), "shipping": Decimal("0.00")})
        periods[bucket_start]["item_revenue"] = _money(value)
    for bucket_start, value in shipping.all():
        periods.setdefault(bucket_start, {"item_revenue": Decimal("0.00"), "shipping": Decimal("0.00")})
        periods[bucket_start]["shipping"] = _money(value)

    return [
        {
            "period": bucket_start,
            "item_revenue": values["item_revenue"],
            "shipping": values["shipping"],
            "total": values["item_revenue"] + values["shipping"],
        }
        for bucket_start, values in sorted(periods.items())
    ]
