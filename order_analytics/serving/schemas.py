"""
API Response Models

Field names are snake_case in Python and camelCase on the wire. Money is
rendered as a two-decimal string; rounding happens here and nowhere else.
"""

from datetime import date, datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for response payloads"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(ApiModel, Generic[T]):
    """Standard response wrapper"""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    timestamp: datetime


class OrdersByStatus(ApiModel):
    created: int
    confirmed: int
    shipped: int
    cancelled: int


class Overview(ApiModel):
    """Dashboard summary"""
    total_orders: int
    total_revenue: str
    average_order_value: str
    payment_success_rate: float
    orders_by_status: OrdersByStatus
    today_orders: int
    today_revenue: str


class RevenuePoint(ApiModel):
    date: date
    revenue: str
    orders: int


class OrdersPoint(ApiModel):
    date: date
    created: int
    confirmed: int
    cancelled: int
    shipped: int


class RevenueSeries(ApiModel):
    period: str
    series: List[RevenuePoint]


class OrdersSeries(ApiModel):
    period: str
    series: List[OrdersPoint]


class ProductSummary(ApiModel):
    product_id: int
    total_quantity_sold: int
    total_revenue: str
    order_count: int
    last_ordered_at: Optional[datetime]


class ConversionRates(ApiModel):
    created_to_confirmed: float
    confirmed_to_shipped: float
    overall_completion_rate: float


class Conversion(ApiModel):
    """Order funnel"""
    created: int
    confirmed: int
    shipped: int
    cancelled: int
    conversion_rates: ConversionRates


class HourlyPoint(ApiModel):
    hour: datetime
    orders: int
    revenue: str


class LedgerEntry(ApiModel):
    """Event ledger row, for replay and debugging"""
    id: int
    event_type: str
    order_id: int
    user_id: Optional[int]
    correlation_id: Optional[str]
    data: Optional[Dict[str, Any]]
    received_at: datetime
