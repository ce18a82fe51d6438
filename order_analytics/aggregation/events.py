"""
Event Models

Typed view of the order and payment events consumed from the stream, plus
the lenient numeric coercion used when reading amounts out of payloads.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


ZERO = Decimal("0")


class EventType(str, Enum):
    """Event kinds the aggregation engine knows how to apply"""
    ORDER_CREATED = "order.created"
    ORDER_CONFIRMED = "order.confirmed"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_SHIPPED = "order.shipped"
    PAYMENT_AUTHORIZED = "payment.authorized"
    PAYMENT_FAILED = "payment.failed"

    @classmethod
    def parse(cls, value: str) -> Optional["EventType"]:
        """Return the matching kind, or None for a type this service does not aggregate."""
        try:
            return cls(value)
        except ValueError:
            return None


class OrderEvent(BaseModel):
    """
    Validated event envelope.

    ``type`` stays a plain string so that unrecognized kinds can still be
    ledgered; ``kind`` resolves it against ``EventType``.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(..., min_length=1)
    order_id: int = Field(..., alias="orderId")
    user_id: Optional[int] = Field(default=None, alias="userId")
    data: Optional[Dict[str, Any]] = None
    correlation_id: Optional[str] = Field(default=None, alias="correlationId")

    @property
    def kind(self) -> Optional[EventType]:
        return EventType.parse(self.type)

    @property
    def total_amount(self) -> Decimal:
        return to_decimal((self.data or {}).get("totalAmount"))

    @property
    def items(self) -> List["LineItem"]:
        raw_items = (self.data or {}).get("items")
        if not isinstance(raw_items, list):
            return []
        return [LineItem.from_payload(item) for item in raw_items if isinstance(item, dict)]


@dataclass(frozen=True)
class LineItem:
    """One order line as read from an ``order.confirmed`` payload"""
    product_id: Optional[int]
    quantity: int = 0
    price: Decimal = ZERO

    @classmethod
    def from_payload(cls, item: Dict[str, Any]) -> "LineItem":
        return cls(
            product_id=to_int(item.get("productId"), default=None),
            quantity=to_int(item.get("quantity")),
            price=to_decimal(item.get("price")),
        )

    @property
    def revenue(self) -> Decimal:
        return self.price * self.quantity


# =============================================================================
# NUMERIC COERCION
# =============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert a payload number to Decimal.

    Floats go through ``str`` so that 29.99 stays 29.99. Missing, boolean,
    non-numeric and non-finite values become zero.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            return ZERO
    else:
        return ZERO
    if not result.is_finite():
        return ZERO
    return result


def to_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Convert a payload count or identifier to int, falling back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return default
    if not number.is_finite() or number != number.to_integral_value():
        return default
    return int(number)
