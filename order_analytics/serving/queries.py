"""
Read Model Queries

Read-only access to the aggregate tables for the dashboard API. Nothing here
recomputes metrics from the ledger: every figure is a lookup or a sum over
pre-aggregated rows.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_analytics.aggregation.events import ZERO
from order_analytics.database.models import DailyMetrics, HourlyOrderCount, ProductMetrics
from order_analytics.serving.schemas import (
    Conversion,
    ConversionRates,
    HourlyPoint,
    OrdersByStatus,
    OrdersPoint,
    Overview,
    ProductSummary,
    RevenuePoint,
)

PERIODS = ("daily", "weekly", "monthly")
SORT_COLUMNS = {
    "revenue": ProductMetrics.total_revenue,
    "quantity": ProductMetrics.total_quantity_sold,
}

CENT = Decimal("0.01")


# =============================================================================
# FORMATTING
# =============================================================================

def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def format_money(value) -> str:
    """Two-decimal string, half-up rounded"""
    return str(to_money(value).quantize(CENT, rounding=ROUND_HALF_UP))


def percent(part: int, whole: int) -> float:
    """Percentage with one decimal place; 0 when there is nothing to divide by"""
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 1)


def bucket_start(day: date, period: str) -> date:
    """First day of the daily, weekly (ISO, Monday) or monthly bucket containing ``day``"""
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    if period == "monthly":
        return day.replace(day=1)
    return day


def _sum(column):
    return func.coalesce(func.sum(column), 0)


# =============================================================================
# QUERIES
# =============================================================================

async def get_overview(session: AsyncSession, today: date) -> Overview:
    """Lifetime totals plus today's row"""
    totals = (
        await session.execute(
            select(
                _sum(DailyMetrics.orders_created).label("total_orders"),
                _sum(DailyMetrics.orders_confirmed).label("orders_confirmed"),
                _sum(DailyMetrics.orders_cancelled).label("orders_cancelled"),
                _sum(DailyMetrics.orders_shipped).label("orders_shipped"),
                _sum(DailyMetrics.revenue_confirmed).label("total_revenue"),
                _sum(DailyMetrics.payment_success_count).label("payment_success"),
                _sum(DailyMetrics.payment_failure_count).label("payment_failure"),
            )
        )
    ).one()

    today_row = (
        await session.execute(
            select(DailyMetrics.orders_created, DailyMetrics.revenue_confirmed)
            .where(DailyMetrics.metric_date == today)
        )
    ).one_or_none()

    total_orders = int(totals.total_orders)
    confirmed = int(totals.orders_confirmed)
    cancelled = int(totals.orders_cancelled)
    shipped = int(totals.orders_shipped)
    total_revenue = to_money(totals.total_revenue)
    payment_success = int(totals.payment_success)
    payment_total = payment_success + int(totals.payment_failure)

    average = total_revenue / total_orders if total_orders > 0 else ZERO

    return Overview(
        total_orders=total_orders,
        total_revenue=format_money(total_revenue),
        average_order_value=format_money(average),
        payment_success_rate=percent(payment_success, payment_total),
        orders_by_status=OrdersByStatus(
            created=total_orders - confirmed - cancelled,
            confirmed=confirmed - shipped,
            shipped=shipped,
            cancelled=cancelled,
        ),
        today_orders=int(today_row.orders_created) if today_row else 0,
        today_revenue=format_money(today_row.revenue_confirmed if today_row else None),
    )


async def _daily_rows(session: AsyncSession, start: date, end: date) -> List[DailyMetrics]:
    result = await session.execute(
        select(DailyMetrics)
        .where(DailyMetrics.metric_date >= start, DailyMetrics.metric_date <= end)
        .order_by(DailyMetrics.metric_date)
    )
    return list(result.scalars().all())


def _bucketed(rows: List[DailyMetrics], period: str, fields: List[str]) -> Dict[date, Dict[str, object]]:
    buckets: Dict[date, Dict[str, object]] = OrderedDict()
    for row in rows:
        totals = buckets.setdefault(bucket_start(row.metric_date, period), {name: 0 for name in fields})
        for name in fields:
            totals[name] = totals[name] + (getattr(row, name) or 0)
    return buckets


async def get_revenue_series(session: AsyncSession, period: str, start: date, end: date) -> List[RevenuePoint]:
    """Confirmed revenue and confirmed order count per bucket"""
    rows = await _daily_rows(session, start, end)
    buckets = _bucketed(rows, period, ["revenue_confirmed", "orders_confirmed"])
    return [
        RevenuePoint(
            date=bucket,
            revenue=format_money(totals["revenue_confirmed"]),
            orders=int(totals["orders_confirmed"]),
        )
        for bucket, totals in buckets.items()
    ]


async def get_orders_series(session: AsyncSession, period: str, start: date, end: date) -> List[OrdersPoint]:
    """Order counts by lifecycle stage per bucket"""
    fields = ["orders_created", "orders_confirmed", "orders_cancelled", "orders_shipped"]
    rows = await _daily_rows(session, start, end)
    return [
        OrdersPoint(
            date=bucket,
            created=totals["orders_created"],
            confirmed=totals["orders_confirmed"],
            cancelled=totals["orders_cancelled"],
            shipped=totals["orders_shipped"],
        )
        for bucket, totals in _bucketed(rows, period, fields).items()
    ]


async def get_top_products(session: AsyncSession, limit: int, sort_by: str = "revenue") -> List[ProductSummary]:
    """Best sellers by revenue (default) or quantity"""
    column = SORT_COLUMNS.get(sort_by, ProductMetrics.total_revenue)
    result = await session.execute(
        select(ProductMetrics)
        .order_by(column.desc(), ProductMetrics.product_id)
        .limit(limit)
    )
    return [
        ProductSummary(
            product_id=row.product_id,
            total_quantity_sold=row.total_quantity_sold,
            total_revenue=format_money(row.total_revenue),
            order_count=row.order_count,
            last_ordered_at=row.last_ordered_at,
        )
        for row in result.scalars().all()
    ]


async def get_conversion(session: AsyncSession) -> Conversion:
    row = (
        await session.execute(
            select(
                _sum(DailyMetrics.orders_created).label("created"),
                _sum(DailyMetrics.orders_confirmed).label("confirmed"),
                _sum(DailyMetrics.orders_shipped).label("shipped"),
                _sum(DailyMetrics.orders_cancelled).label("cancelled"),
            )
        )
    ).one()

    created, confirmed = int(row.created), int(row.confirmed)
    shipped, cancelled = int(row.shipped), int(row.cancelled)

    return Conversion(
        created=created,
        confirmed=confirmed,
        shipped=shipped,
        cancelled=cancelled,
        conversion_rates=ConversionRates(
            created_to_confirmed=percent(confirmed, created),
            confirmed_to_shipped=percent(shipped, confirmed),
            overall_completion_rate=percent(shipped, created),
        ),
    )


async def get_hourly_series(
    session: AsyncSession,
    since: datetime,
    until: Optional[datetime] = None,
) -> List[HourlyPoint]:
    query = select(HourlyOrderCount).where(HourlyOrderCount.hour_bucket >= since)
    if until is not None:
        query = query.where(HourlyOrderCount.hour_bucket <= until)
    result = await session.execute(query.order_by(HourlyOrderCount.hour_bucket))
    return [
        HourlyPoint(hour=row.hour_bucket, orders=row.order_count, revenue=format_money(row.revenue))
        for row in result.scalars().all()
    ]
