"""
Order Analytics Service

Consumes order and payment events and maintains pre-aggregated daily,
hourly and per-product metrics for dashboard queries.
"""

__version__ = "1.0.0"
