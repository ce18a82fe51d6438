"""
Analytics API Endpoints

Admin-only dashboard reads over the pre-aggregated tables.
"""

from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from order_analytics.aggregation.ledger import EventLedger
from order_analytics.serving import queries
from order_analytics.serving.api.dependencies import ApiError, get_session, require_admin, utc_now
from order_analytics.serving.schemas import (
    Conversion,
    Envelope,
    HourlyPoint,
    LedgerEntry,
    OrdersSeries,
    Overview,
    ProductSummary,
    RevenueSeries,
)

router = APIRouter(dependencies=[Depends(require_admin)])
logger = structlog.get_logger(__name__)

DEFAULT_RANGE_DAYS = 30
MAX_TOP_PRODUCTS = 50


def ok(data) -> dict:
    return {"success": True, "data": data, "error": None, "timestamp": utc_now()}


def _resolve_range(period: str, start: Optional[date], end: Optional[date]):
    if period not in queries.PERIODS:
        raise ApiError(400, "Invalid period. Must be daily, weekly, or monthly.")
    end = end or utc_now().date()
    start = start or end - timedelta(days=DEFAULT_RANGE_DAYS)
    return start, end


@router.get("/overview", response_model=Envelope[Overview])
async def get_overview(session: AsyncSession = Depends(get_session)):
    """Dashboard summary"""
    return ok(await queries.get_overview(session, utc_now().date()))


@router.get("/revenue", response_model=Envelope[RevenueSeries])
async def get_revenue(
    period: str = Query(default="daily"),
    start: Optional[date] = Query(default=None, alias="from"),
    end: Optional[date] = Query(default=None, alias="to"),
    session: AsyncSession = Depends(get_session),
):
    """Revenue time series"""
    start, end = _resolve_range(period, start, end)
    series = await queries.get_revenue_series(session, period, start, end)
    logger.debug("Revenue series computed", period=period, start=str(start), end=str(end), points=len(series))
    return ok(RevenueSeries(period=period, series=series))


@router.get("/orders", response_model=Envelope[OrdersSeries])
async def get_orders(
    period: str = Query(default="daily"),
    start: Optional[date] = Query(default=None, alias="from"),
    end: Optional[date] = Query(default=None, alias="to"),
    session: AsyncSession = Depends(get_session),
):
    """Order count time series by status"""
    start, end = _resolve_range(period, start, end)
    return ok(OrdersSeries(period=period, series=await queries.get_orders_series(session, period, start, end)))


@router.get("/products/top", response_model=Envelope[List[ProductSummary]])
async def get_top_products(
    limit: Optional[str] = Query(default=None),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    session: AsyncSession = Depends(get_session),
):
    """Top products by revenue or quantity"""
    try:
        size = int(limit) if limit else 10
    except ValueError:
        size = 10
    size = min(max(size, 1), MAX_TOP_PRODUCTS)
    sort_key = "quantity" if sort_by == "quantity" else "revenue"
    return ok(await queries.get_top_products(session, size, sort_key))


@router.get("/conversion", response_model=Envelope[Conversion])
async def get_conversion(session: AsyncSession = Depends(get_session)):
    """Conversion funnel"""
    return ok(await queries.get_conversion(session))


@router.get("/hourly", response_model=Envelope[List[HourlyPoint]])
async def get_hourly(
    hours: int = Query(default=24, ge=1, le=24 * 31),
    session: AsyncSession = Depends(get_session),
):
    """Hourly orders and revenue for the last ``hours`` hours"""
    since = utc_now().replace(minute=0, second=0, microsecond=0) - timedelta(hours=hours - 1)
    return ok(await queries.get_hourly_series(session, since))


@router.get("/events", response_model=Envelope[List[LedgerEntry]])
async def list_events(
    limit: int = Query(default=50, ge=1, le=500),
    event_type: Optional[str] = Query(default=None, alias="type"),
    session: AsyncSession = Depends(get_session),
):
    """Most recent ledger entries, for replay and debugging"""
    rows = await EventLedger().list_events(session, limit=limit, event_type=event_type)
    return ok([LedgerEntry.model_validate(row, from_attributes=True) for row in rows])
