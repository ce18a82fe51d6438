"""
Unit tests for the aggregation engine, event ledger and aggregate store
"""
import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from order_analytics.aggregation import AggregateStore, AggregationEngine, EventType, OrderEvent
from order_analytics.aggregation.engine import day_key, hour_bucket
from order_analytics.database.connection import Database

from conftest import FIXED_NOW, FrozenClock, ReadModel, make_settings

TODAY = FIXED_NOW.date()
THIS_HOUR = FIXED_NOW.replace(minute=0, second=0, microsecond=0)


def event(event_type: str, order_id: int, data=None, **extra) -> OrderEvent:
    payload = {"type": event_type, "orderId": order_id, "userId": 7, "data": data}
    payload.update(extra)
    return OrderEvent.model_validate(payload)


class FailingStore(AggregateStore):
    """Store whose hourly upsert always fails"""

    async def upsert_hourly(self, session, bucket, increments):
        raise OperationalError("UPDATE hourly_order_counts", {}, Exception("disk I/O error"))


class TestBuckets:

    def test_day_key_uses_utc_date(self):
        assert day_key(datetime(2026, 2, 1, 23, 59, tzinfo=timezone.utc)) == date(2026, 2, 1)

    def test_hour_bucket_truncates(self):
        assert hour_bucket(FIXED_NOW) == datetime(2026, 2, 1, 14, 0, tzinfo=timezone.utc)


class TestOrderCreated:

    async def test_counts_order_in_daily_and_hourly(self, engine, read_model):
        result = await engine.process_event(event("order.created", 1, {"totalAmount": 99.99}))

        assert result.applied is True
        assert result.event_id is not None

        daily = await read_model.daily(TODAY)
        assert daily.orders_created == 1
        assert daily.revenue_confirmed == Decimal("0")

        hourly = await read_model.hourly(THIS_HOUR)
        assert hourly.order_count == 1
        assert hourly.revenue == Decimal("0")

        assert await read_model.ledger_count() == 1


class TestOrderConfirmed:

    async def test_revenue_and_products(self, engine, read_model, confirmed_event_payload):
        result = await engine.process_event(OrderEvent.model_validate(confirmed_event_payload))
        assert result.applied is True

        daily = await read_model.daily(TODAY)
        assert daily.orders_confirmed == 1
        assert daily.revenue_confirmed == Decimal("74.98")

        hourly = await read_model.hourly(THIS_HOUR)
        assert hourly.order_count == 0
        assert hourly.revenue == Decimal("74.98")

        first = await read_model.product(1)
        assert first.total_quantity_sold == 2
        assert first.total_revenue == Decimal("59.98")
        assert first.order_count == 1
        assert first.last_ordered_at is not None

        third = await read_model.product(3)
        assert third.total_quantity_sold == 1
        assert third.total_revenue == Decimal("15.00")

    async def test_missing_amounts_default_to_zero(self, engine, read_model):
        await engine.process_event(
            event("order.confirmed", 5, {"items": [{"productId": 9}]})
        )

        daily = await read_model.daily(TODAY)
        assert daily.orders_confirmed == 1
        assert daily.revenue_confirmed == Decimal("0")

        product = await read_model.product(9)
        assert product.total_quantity_sold == 0
        assert product.total_revenue == Decimal("0")
        assert product.order_count == 1

    async def test_without_items_touches_no_products(self, engine, read_model):
        await engine.process_event(event("order.confirmed", 6, {"totalAmount": "12.50"}))

        snapshot = await read_model.snapshot()
        assert snapshot["products"] == []
        assert (await read_model.daily(TODAY)).revenue_confirmed == Decimal("12.50")

    async def test_item_without_product_id_is_skipped(self, engine, read_model):
        await engine.process_event(
            event(
                "order.confirmed",
                7,
                {"totalAmount": 20, "items": [{"quantity": 1, "price": 5}, {"productId": 4, "quantity": 1, "price": 15}]},
            )
        )

        snapshot = await read_model.snapshot()
        assert [row[0] for row in snapshot["products"]] == [4]

    async def test_product_accumulates_across_orders(self, engine, clock, read_model):
        await engine.process_event(
            event("order.confirmed", 10, {"items": [{"productId": 1, "quantity": 2, "price": 10}]})
        )
        clock.now = FIXED_NOW + timedelta(hours=3)
        await engine.process_event(
            event("order.confirmed", 11, {"items": [{"productId": 1, "quantity": 1, "price": 10}]})
        )

        product = await read_model.product(1)
        assert product.total_quantity_sold == 3
        assert product.total_revenue == Decimal("30.00")
        assert product.order_count == 2
        assert product.last_ordered_at.replace(tzinfo=None) == (FIXED_NOW + timedelta(hours=3)).replace(tzinfo=None)


    async def test_sub_cent_revenue_is_not_rounded_on_write(self, engine, read_model):
        for order_id in (20, 21):
            await engine.process_event(
                event(
                    "order.confirmed",
                    order_id,
                    {"totalAmount": "0.333", "items": [{"productId": 8, "quantity": 1, "price": "0.333"}]},
                )
            )

        product = await read_model.product(8)
        assert product.total_revenue == Decimal("0.666")
        assert (await read_model.daily(TODAY)).revenue_confirmed == Decimal("0.666")
        assert (await read_model.hourly(THIS_HOUR)).revenue == Decimal("0.666")


class TestOtherKinds:

    async def test_cancelled(self, engine, read_model):
        await engine.process_event(event("order.cancelled", 3, {"totalAmount": 5}))

        daily = await read_model.daily(TODAY)
        assert daily.orders_cancelled == 1
        assert daily.revenue_cancelled == Decimal("5.00")
        assert await read_model.hourly(THIS_HOUR) is None

    async def test_shipped(self, engine, read_model):
        await engine.process_event(event("order.shipped", 3))
        assert (await read_model.daily(TODAY)).orders_shipped == 1

    async def test_payment_counters(self, engine, read_model):
        await engine.process_event(event("payment.authorized", 3, {"amount": 10}))
        await engine.process_event(event("payment.failed", 4, {"reason": "card_declined"}))

        daily = await read_model.daily(TODAY)
        assert daily.payment_success_count == 1
        assert daily.payment_failure_count == 1

    async def test_unknown_type_is_ledgered_only(self, engine, read_model):
        result = await engine.process_event(event("promo.applied", 1, {"code": "X"}))

        assert result.applied is True
        assert await read_model.ledger_count() == 1
        assert await read_model.snapshot() == {"daily": [], "hourly": [], "products": []}

    @pytest.mark.parametrize("kind", list(EventType))
    async def test_every_known_kind_is_applied(self, engine, read_model, kind):
        result = await engine.process_event(event(kind.value, 1, {"totalAmount": 1}))

        assert result.applied is True
        assert await read_model.daily(TODAY) is not None


class TestIdempotency:

    async def test_replay_is_skipped(self, engine, read_model, confirmed_event_payload):
        confirmed = OrderEvent.model_validate(confirmed_event_payload)
        await engine.process_event(confirmed)
        before = await read_model.snapshot()

        result = await engine.process_event(confirmed)

        assert result.applied is False
        assert result.event_id is None
        assert await read_model.snapshot() == before
        assert await read_model.ledger_count() == 1

    async def test_duplicate_key_ignores_payload_differences(self, engine, read_model):
        await engine.process_event(event("order.cancelled", 1, {"totalAmount": 5}))
        result = await engine.process_event(event("order.cancelled", 1, {"totalAmount": 500}))

        assert result.applied is False
        assert (await read_model.daily(TODAY)).revenue_cancelled == Decimal("5.00")

    async def test_same_order_different_types_both_apply(self, engine, read_model):
        first = await engine.process_event(event("order.created", 1))
        second = await engine.process_event(event("order.shipped", 1))

        assert first.applied and second.applied
        assert await read_model.ledger_count() == 2

    async def test_concurrent_copies_have_one_winner(self, engine, read_model):
        created = event("order.created", 1)

        results = await asyncio.gather(*(engine.process_event(created) for _ in range(5)))

        winners = [result for result in results if result.applied]
        assert len(winners) == 1
        assert winners[0].event_id is not None
        assert all(result.event_id is None for result in results if not result.applied)
        assert (await read_model.daily(TODAY)).orders_created == 1
        assert (await read_model.hourly(THIS_HOUR)).order_count == 1
        assert await read_model.ledger_count() == 1

    async def test_concurrent_distinct_events_all_counted(self, engine, read_model):
        results = await asyncio.gather(
            *(engine.process_event(event("order.created", order_id)) for order_id in range(1, 6))
        )

        assert all(result.applied for result in results)
        assert (await read_model.daily(TODAY)).orders_created == 5
        assert (await read_model.hourly(THIS_HOUR)).order_count == 5


class TestAtomicity:

    async def test_failure_leaves_nothing_behind(self, database, clock, read_model):
        failing = AggregationEngine(database, store=FailingStore(), clock=clock)

        with pytest.raises(OperationalError):
            await failing.process_event(event("order.created", 1))

        assert await read_model.ledger_count() == 0
        assert await read_model.daily(TODAY) is None

    async def test_failed_event_can_be_reprocessed(self, database, engine, clock, read_model):
        failing = AggregationEngine(database, store=FailingStore(), clock=clock)
        created = event("order.created", 1)

        with pytest.raises(OperationalError):
            await failing.process_event(created)

        result = await engine.process_event(created)
        assert result.applied is True
        assert (await read_model.daily(TODAY)).orders_created == 1


class TestBucketing:

    async def test_processing_time_decides_buckets(self, engine, clock, read_model):
        await engine.process_event(event("order.created", 1))
        clock.now = FIXED_NOW + timedelta(days=1)
        await engine.process_event(event("order.created", 2))

        assert (await read_model.daily(TODAY)).orders_created == 1
        assert (await read_model.daily(TODAY + timedelta(days=1))).orders_created == 1
        assert len((await read_model.snapshot())["hourly"]) == 2

    async def test_payload_timestamps_are_ignored(self, engine, read_model):
        await engine.process_event(event("order.created", 1, {"createdAt": "2020-01-01T00:00:00Z"}))

        assert (await read_model.daily(TODAY)).orders_created == 1
        assert await read_model.daily(date(2020, 1, 1)) is None


class TestAdditivity:

    async def test_order_of_arrival_does_not_matter(self, tmp_path):
        events = [
            event("order.created", 1),
            event("order.confirmed", 1, {"totalAmount": 30, "items": [{"productId": 2, "quantity": 3, "price": 10}]}),
            event("order.cancelled", 2, {"totalAmount": 8}),
        ]

        snapshots = []
        for name, ordered in (("forward", events), ("backward", list(reversed(events)))):
            database = Database(make_settings(tmp_path / f"{name}.db").database)
            await database.connect()
            try:
                engine = AggregationEngine(database, clock=FrozenClock(FIXED_NOW))
                for item in ordered:
                    await engine.process_event(item)
                snapshots.append(await ReadModel(database).snapshot())
            finally:
                await database.close()

        assert snapshots[0] == snapshots[1]


class TestCorrelation:

    async def test_explicit_correlation_id_is_ledgered(self, engine, database):
        from order_analytics.aggregation.ledger import EventLedger

        await engine.process_event(event("order.created", 1, correlationId="from-payload"), "from-header")

        async with database.session() as session:
            [entry] = await EventLedger().list_events(session)
        assert entry.correlation_id == "from-header"

    async def test_falls_back_to_event_correlation_id(self, engine, database):
        from order_analytics.aggregation.ledger import EventLedger

        await engine.process_event(event("order.created", 1, correlationId="from-payload"))

        async with database.session() as session:
            [entry] = await EventLedger().list_events(session)
        assert entry.correlation_id == "from-payload"
        assert entry.event_type == "order.created"
        assert entry.user_id == 7


class TestLedgerListing:

    async def test_newest_first_and_filtered(self, engine, database):
        from order_analytics.aggregation.ledger import EventLedger

        await engine.process_event(event("order.created", 1))
        await engine.process_event(event("order.created", 2))
        await engine.process_event(event("order.shipped", 1))

        async with database.session() as session:
            everything = await EventLedger().list_events(session)
            created = await EventLedger().list_events(session, event_type="order.created", limit=1)

        assert [row.event_type for row in everything] == ["order.shipped", "order.created", "order.created"]
        assert [(row.event_type, row.order_id) for row in created] == [("order.created", 2)]
