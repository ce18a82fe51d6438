"""
Order Analytics API
"""
from .dependencies import ApiError
from .middleware import RequestLoggingMiddleware

__all__ = ["ApiError", "RequestLoggingMiddleware"]
