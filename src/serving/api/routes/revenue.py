"""
Revenue API Endpoints

Revenue reports over a date range, cached in Redis.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.connection import get_db_dependency
from src.serving import revenue
from src.serving.cache import revenue_cache

router = APIRouter()


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class RevenueTotal(BaseModel):
    """Total revenue for a period"""
    start_date: datetime
    end_date: datetime
    item_revenue: Decimal
    shipping: Decimal
    total: Decimal


class ProductRevenue(BaseModel):
    product_code: str
    revenue: Decimal


class CategoryRevenue(BaseModel):
    category: str
    revenue: Decimal


class RegionRevenue(BaseModel):
    region: str
    revenue: Decimal


class RevenueTrendPoint(BaseModel):
    """Revenue for one calendar period"""
    period: datetime
    item_revenue: Decimal
    shipping: Decimal
    total: Decimal


# =============================================================================
# HELPERS
# =============================================================================

def _date_range(start_date: Optional[date], end_date: Optional[date]):
    """Whole days in UTC; open ends fall back to the epoch and today"""
    start = datetime.combine(start_date or date(1970, 1, 1), time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_date or datetime.now(timezone.utc).date(), time.max, tzinfo=timezone.utc)
    return start, end


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/total", response_model=RevenueTotal)
async def get_total_revenue(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> RevenueTotal:
    """Item revenue after discount plus shipping for the period"""
    if start_date and end_date and start_date >= end_date:
        raise HTTPException(status_code=400, detail="start_date must be before end_date.")

    start, end = _date_range(start_date, end_date)
    report = await revenue_cache.get_or_set(
        revenue_cache.key("total", start, end),
        lambda: revenue.total_revenue(db, start, end),
    )
    return RevenueTotal(**report)


@router.get("/by-product", response_model=List[ProductRevenue])
async def get_revenue_by_product(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    top: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[ProductRevenue]:
    """Top products by item revenue"""
    start, end = _date_range(start_date, end_date)
    rows = await revenue_cache.get_or_set(
        revenue_cache.key("by-product", start, end, top),
        lambda: revenue.revenue_by_product(db, start, end, top=top),
    )
    return [ProductRevenue(**row) for row in rows]


@router.get("/by-category", response_model=List[CategoryRevenue])
async def get_revenue_by_category(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> List[CategoryRevenue]:
    start, end = _date_range(start_date, end_date)
    rows = await revenue_cache.get_or_set(
        revenue_cache.key("by-category", start, end),
        lambda: revenue.revenue_by_category(db, start, end),
    )
    return [CategoryRevenue(**row) for row in rows]


@router.get("/by-region", response_model=List[RegionRevenue])
async def get_revenue_by_region(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> List[RegionRevenue]:
    """Item revenue plus shipping per region"""
    start, end = _date_range(start_date, end_date)
    rows = await revenue_cache.get_or_set(
        revenue_cache.key("by-region", start, end),
        lambda: revenue.revenue_by_region(db, start, end),
    )
    return [RegionRevenue(**row) for row in rows]


@router.get("/trends", response_model=List[RevenueTrendPoint])
async def get_revenue_trends(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    period: str = Query("monthly", pattern="^(monthly|quarterly|yearly)$"),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[RevenueTrendPoint]:
    """
    Revenue per month, quarter or year.

    Requires PostgreSQL.
    """
    start, end = _date_range(start_date, end_date)
    rows = await revenue_cache.get_or_set(
        revenue_cache.key("trends", start, end, period),
        lambda: revenue.revenue_trends(db, start, end, period=period),
    )
    return [RevenueTrendPoint(**row) for row in rows]
