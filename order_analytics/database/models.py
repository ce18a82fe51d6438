"""
Database Models - Read Model Tables

This module defines the write-side ledger and the pre-aggregated read model
tables maintained by the aggregation engine:

Ledger:
- EventLog: Deduplicated record of every accepted event (replay source of truth)

Aggregates:
- DailyMetrics: Per-day order and payment counters with revenue totals
- HourlyOrderCount: Per-hour order counts and revenue for charts
- ProductMetrics: Per-product quantity, revenue and order counters

The tables are independent: aggregates are derived from the ledger by the
write protocol, not relational children of it, so there are no foreign keys.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# Money columns: fixed-point, never float. Six decimal places so sub-cent
# line revenue accumulates unrounded; cents are applied when formatting.
Money = Numeric(18, 6)


# =============================================================================
# EVENT LEDGER
# =============================================================================

class EventLog(Base):
    """
    Event Ledger Table

    One row per accepted (event_type, order_id) pair. Rows are inserted once
    and never updated or deleted.
    """
    __tablename__ = "events_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    correlation_id: Mapped[Optional[str]] = mapped_column(Text)
    data: Mapped[Optional[dict]] = mapped_column(JSON().with_variant(JSONB(), "postgresql"))
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("event_type", "order_id", name="uq_events_log_dedup"),
        Index("ix_events_log_received", "received_at"),
    )


# =============================================================================
# ANALYTICS AGGREGATES
# =============================================================================

class DailyMetrics(Base):
    """
    Daily Metrics Aggregate Table

    Pre-computed daily order and payment metrics for fast dashboard queries.
    Updated incrementally at event-consumption time.
    """
    __tablename__ = "daily_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    # Order lifecycle counters
    orders_created: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    orders_confirmed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    orders_cancelled: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    orders_shipped: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    # Revenue
    revenue_confirmed: Mapped[Decimal] = mapped_column(Money, default=0, server_default="0")
    revenue_cancelled: Mapped[Decimal] = mapped_column(Money, default=0, server_default="0")

    # Payment outcomes
    payment_success_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    payment_failure_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    __table_args__ = (
        UniqueConstraint("date", name="uq_daily_metrics_date"),
    )


class HourlyOrderCount(Base):
    """
    Hourly Order Aggregate Table

    Hourly time series for charts, keyed by the processing hour.
    """
    __tablename__ = "hourly_order_counts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hour_bucket: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    order_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    revenue: Mapped[Decimal] = mapped_column(Money, default=0, server_default="0")

    __table_args__ = (
        UniqueConstraint("hour_bucket", name="uq_hourly_order_counts_bucket"),
    )


class ProductMetrics(Base):
    """
    Product Performance Aggregate Table

    Lifetime per-product sales counters. ``last_ordered_at`` is overwritten on
    every update; the numeric columns are additive.
    """
    __tablename__ = "product_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    total_quantity_sold: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    total_revenue: Mapped[Decimal] = mapped_column(Money, default=0, server_default="0")
    order_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    last_ordered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("product_id", name="uq_product_metrics_product"),
        Index("ix_product_metrics_revenue", "total_revenue"),
    )
