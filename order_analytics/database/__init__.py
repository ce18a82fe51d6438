"""
Database Module
"""
from .connection import Database
from .models import Base, DailyMetrics, EventLog, HourlyOrderCount, ProductMetrics

__all__ = [
    "Database",
    "Base",
    "EventLog",
    "DailyMetrics",
    "HourlyOrderCount",
    "ProductMetrics",
]
