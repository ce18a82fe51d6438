"""
Aggregate Store

Increment-merge operations over the three read model tables. Each upsert
is a single ``INSERT ... ON CONFLICT (key) DO UPDATE SET col = col +
excluded.col`` statement evaluated by the database, so concurrent writers to
the same key never lose an update.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from order_analytics.aggregation.dialects import dialect_insert
from order_analytics.aggregation.events import ZERO
from order_analytics.database.models import DailyMetrics, HourlyOrderCount, ProductMetrics


# =============================================================================
# INCREMENTS
# =============================================================================

@dataclass(frozen=True)
class DailyIncrements:
    """Additive deltas for one ``daily_metrics`` row; omitted fields add zero"""
    orders_created: int = 0
    orders_confirmed: int = 0
    orders_cancelled: int = 0
    orders_shipped: int = 0
    revenue_confirmed: Decimal = ZERO
    revenue_cancelled: Decimal = ZERO
    payment_success_count: int = 0
    payment_failure_count: int = 0


@dataclass(frozen=True)
class HourlyIncrements:
    order_count: int = 0
    revenue: Decimal = ZERO


@dataclass(frozen=True)
class ProductIncrements:
    """
    Deltas for one ``product_metrics`` row.

    ``last_ordered_at`` is not a delta: it replaces the stored value.
    """
    last_ordered_at: datetime
    total_quantity_sold: int = 0
    total_revenue: Decimal = ZERO
    order_count: int = 1


# =============================================================================
# STORE
# =============================================================================

class AggregateStore:
    """
    Increment-merge writer for the aggregate tables.

    Stateless: every call runs on the caller's session so that all the
    upserts of one event share its unit of work.
    """

    async def upsert_daily(self, session: AsyncSession, day: date, increments: DailyIncrements) -> None:
        await self._merge(
            session,
            DailyMetrics.__table__,
            key={"date": day},
            additive=asdict(increments),
        )

    async def upsert_hourly(self, session: AsyncSession, bucket: datetime, increments: HourlyIncrements) -> None:
        await self._merge(
            session,
            HourlyOrderCount.__table__,
            key={"hour_bucket": bucket},
            additive=asdict(increments),
        )

    async def upsert_product(self, session: AsyncSession, product_id: int, increments: ProductIncrements) -> None:
        additive = asdict(increments)
        overwrite = {"last_ordered_at": additive.pop("last_ordered_at")}
        await self._merge(
            session,
            ProductMetrics.__table__,
            key={"product_id": product_id},
            additive=additive,
            overwrite=overwrite,
        )

    async def _merge(
        self,
        session: AsyncSession,
        table,
        key: Dict[str, Any],
        additive: Dict[str, Any],
        overwrite: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Insert the row with the increments as initial values, or add them to the existing row."""
        overwrite = overwrite or {}
        stmt = dialect_insert(session)(table).values(**key, **additive, **overwrite)

        set_ = {name: table.c[name] + stmt.excluded[name] for name in additive}
        set_.update({name: stmt.excluded[name] for name in overwrite})

        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=set_)
        await session.execute(stmt)
