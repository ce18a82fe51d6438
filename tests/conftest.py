"""
Test Suite Configuration
"""
from datetime import date, datetime, timezone
from typing import Optional

import pytest
from sqlalchemy import select

from order_analytics.aggregation.engine import AggregationEngine
from order_analytics.aggregation.ledger import EventLedger
from order_analytics.config.settings import DatabaseSettings, KafkaSettings, Settings
from order_analytics.database.connection import Database
from order_analytics.database.models import DailyMetrics, HourlyOrderCount, ProductMetrics

FIXED_NOW = datetime(2026, 2, 1, 14, 37, 12, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock whose time tests move by hand"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class ReadModel:
    """Small helper for asserting on committed aggregate state"""

    def __init__(self, database: Database):
        self.database = database

    async def daily(self, day: date) -> Optional[DailyMetrics]:
        async with self.database.session() as session:
            result = await session.execute(select(DailyMetrics).where(DailyMetrics.metric_date == day))
            return result.scalar_one_or_none()

    async def hourly(self, bucket: datetime) -> Optional[HourlyOrderCount]:
        async with self.database.session() as session:
            result = await session.execute(
                select(HourlyOrderCount).where(HourlyOrderCount.hour_bucket == bucket)
            )
            return result.scalar_one_or_none()

    async def product(self, product_id: int) -> Optional[ProductMetrics]:
        async with self.database.session() as session:
            result = await session.execute(
                select(ProductMetrics).where(ProductMetrics.product_id == product_id)
            )
            return result.scalar_one_or_none()

    async def ledger_count(self) -> int:
        async with self.database.session() as session:
            return await EventLedger().count(session)

    async def snapshot(self) -> dict:
        """Every aggregate row as plain tuples, keyed by table"""
        async with self.database.session() as session:
            daily = (await session.execute(select(DailyMetrics).order_by(DailyMetrics.metric_date))).scalars().all()
            hourly = (await session.execute(select(HourlyOrderCount).order_by(HourlyOrderCount.hour_bucket))).scalars().all()
            products = (await session.execute(select(ProductMetrics).order_by(ProductMetrics.product_id))).scalars().all()

        return {
            "daily": [
                (
                    row.metric_date,
                    row.orders_created,
                    row.orders_confirmed,
                    row.orders_cancelled,
                    row.orders_shipped,
                    row.revenue_confirmed,
                    row.revenue_cancelled,
                    row.payment_success_count,
                    row.payment_failure_count,
                )
                for row in daily
            ],
            "hourly": [(row.hour_bucket, row.order_count, row.revenue) for row in hourly],
            "products": [
                (row.product_id, row.total_quantity_sold, row.total_revenue, row.order_count, row.last_ordered_at)
                for row in products
            ],
        }


def make_settings(db_path) -> Settings:
    return Settings(
        app_env="testing",
        debug=True,
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{db_path}"),
        kafka=KafkaSettings(enabled=False),
    )


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database"""
    return make_settings(tmp_path / "analytics.db")


@pytest.fixture
async def database(test_settings):
    """Connected database with the schema created"""
    db = Database(test_settings.database)
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def engine(database, clock) -> AggregationEngine:
    return AggregationEngine(database, clock=clock)


@pytest.fixture
def read_model(database) -> ReadModel:
    return ReadModel(database)


@pytest.fixture
def confirmed_event_payload() -> dict:
    """Order confirmation with two line items"""
    return {
        "type": "order.confirmed",
        "orderId": 2,
        "userId": 7,
        "data": {
            "totalAmount": 74.98,
            "items": [
                {"productId": 1, "quantity": 2, "price": 29.99},
                {"productId": 3, "quantity": 1, "price": 15.00},
            ],
        },
    }
