"""
Shared route dependencies and API errors.
"""

from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from order_analytics.config.settings import Settings
from order_analytics.database.connection import Database


class ApiError(Exception):
    """Error rendered as a failed response envelope"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_settings_dependency(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for read sessions.

    Example:
        @router.get("/items")
        async def get_items(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with get_database(request).session() as session:
        yield session


async def require_admin(
    request: Request,
    x_user_role: Optional[str] = Header(default=None),
) -> None:
    """Reject callers whose ``x-user-role`` header is not the admin role"""
    if x_user_role != get_settings_dependency(request).security.admin_role:
        raise ApiError(403, "Admin access required")
