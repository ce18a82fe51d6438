"""
Aggregation Engine

Applies one validated event to the read model:

1. Record it in the event ledger (the idempotency gate).
2. If it is new, translate it into counter increments on the daily, hourly
   and per-product aggregates.

Both steps share a single unit of work, so an event is either fully applied
and ledgered, or not visible at all. Time buckets come from the processing
instant, not from timestamps inside the payload.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from order_analytics.aggregation.events import EventType, OrderEvent
from order_analytics.aggregation.ledger import EventLedger
from order_analytics.aggregation.store import (
    AggregateStore,
    DailyIncrements,
    HourlyIncrements,
    ProductIncrements,
)
from order_analytics.database.connection import Database

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def day_key(now: datetime) -> date:
    return now.date()


def hour_bucket(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of ``process_event``: ``applied`` is False for duplicates"""
    applied: bool
    event_id: Optional[int] = None


Handler = Callable[[AsyncSession, OrderEvent, datetime], Awaitable[None]]


class AggregationEngine:
    """
    Event-to-aggregate translator guarded by the event ledger.

    Safe to call concurrently: the ledger insert and every aggregate upsert
    are atomic statements, and each call gets its own session.

    Example:
        engine = AggregationEngine(database)
        result = await engine.process_event(event, correlation_id)
    """

    def __init__(
        self,
        database: Database,
        ledger: Optional[EventLedger] = None,
        store: Optional[AggregateStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._database = database
        self._ledger = ledger or EventLedger()
        self._store = store or AggregateStore()
        self._clock = clock

        self._handlers: Dict[EventType, Handler] = {
            EventType.ORDER_CREATED: self._apply_order_created,
            EventType.ORDER_CONFIRMED: self._apply_order_confirmed,
            EventType.ORDER_CANCELLED: self._apply_order_cancelled,
            EventType.ORDER_SHIPPED: self._apply_order_shipped,
            EventType.PAYMENT_AUTHORIZED: self._apply_payment_authorized,
            EventType.PAYMENT_FAILED: self._apply_payment_failed,
        }
        unhandled = set(EventType) - set(self._handlers)
        if unhandled:
            raise TypeError(f"No aggregation handler for {sorted(k.value for k in unhandled)}")

    async def process_event(self, event: OrderEvent, correlation_id: Optional[str] = None) -> ProcessResult:
        """
        Ledger and aggregate one event inside a single transaction.

        Args:
            event: Validated event envelope
            correlation_id: Tracing token; falls back to the one in the event

        Returns:
            ProcessResult with ``applied=False`` when the event was already ledgered

        Raises:
            SQLAlchemyError: Storage failure; nothing from this event was kept
        """
        correlation_id = correlation_id or event.correlation_id
        now = self._clock()
        log = logger.bind(
            correlation_id=correlation_id,
            order_id=event.order_id,
            event_type=event.type,
        )

        async with self._database.session() as session:
            event_id = await self._ledger.try_record(
                session,
                event_type=event.type,
                order_id=event.order_id,
                user_id=event.user_id,
                correlation_id=correlation_id,
                payload=event.data,
                received_at=now,
            )
            if event_id is None:
                log.info("Duplicate event skipped")
                return ProcessResult(applied=False)

            kind = event.kind
            if kind is None:
                log.warning("Unknown event type, logged but not aggregated")
            else:
                log.info("Processing event", ledger_id=event_id)
                await self._handlers[kind](session, event, now)

        log.info("Event processed successfully", ledger_id=event_id)
        return ProcessResult(applied=True, event_id=event_id)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _apply_order_created(self, session: AsyncSession, event: OrderEvent, now: datetime) -> None:
        await self._store.upsert_daily(session, day_key(now), DailyIncrements(orders_created=1))
        await self._store.upsert_hourly(session, hour_bucket(now), HourlyIncrements(order_count=1))

    async def _apply_order_confirmed(self, session: AsyncSession, event: OrderEvent, now: datetime) -> None:
        amount = event.total_amount
        await self._store.upsert_daily(
            session,
            day_key(now),
            DailyIncrements(orders_confirmed=1, revenue_confirmed=amount),
        )
        await self._store.upsert_hourly(session, hour_bucket(now), HourlyIncrements(revenue=amount))

        for item in event.items:
            if item.product_id is None:
                logger.warning(
                    "Line item without productId skipped",
                    order_id=event.order_id,
                    quantity=item.quantity,
                )
                continue
            await self._store.upsert_product(
                session,
                item.product_id,
                ProductIncrements(
                    total_quantity_sold=item.quantity,
                    total_revenue=item.revenue,
                    last_ordered_at=now,
                ),
            )

    async def _apply_order_cancelled(self, session: AsyncSession, event: OrderEvent, now: datetime) -> None:
        await self._store.upsert_daily(
            session,
            day_key(now),
            DailyIncrements(orders_cancelled=1, revenue_cancelled=event.total_amount),
        )

    async def _apply_order_shipped(self, session: AsyncSession, event: OrderEvent, now: datetime) -> None:
        await self._store.upsert_daily(session, day_key(now), DailyIncrements(orders_shipped=1))

    async def _apply_payment_authorized(self, session: AsyncSession, event: OrderEvent, now: datetime) -> None:
        await self._store.upsert_daily(session, day_key(now), DailyIncrements(payment_success_count=1))

    async def _apply_payment_failed(self, session: AsyncSession, event: OrderEvent, now: datetime) -> None:
        await self._store.upsert_daily(session, day_key(now), DailyIncrements(payment_failure_count=1))
