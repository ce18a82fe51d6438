"""
Aggregation Module
"""
from .engine import AggregationEngine, ProcessResult
from .events import EventType, LineItem, OrderEvent
from .ledger import EventLedger
from .store import AggregateStore, DailyIncrements, HourlyIncrements, ProductIncrements

__all__ = [
    "AggregationEngine",
    "ProcessResult",
    "EventType",
    "LineItem",
    "OrderEvent",
    "EventLedger",
    "AggregateStore",
    "DailyIncrements",
    "HourlyIncrements",
    "ProductIncrements",
]
