"""
Event Ledger

Durable, deduplicated record of every accepted event. The only write is an
insert-if-absent on ``(event_type, order_id)``; a conflicting insert is a
normal duplicate outcome, reported as ``None`` rather than raised.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_analytics.aggregation.dialects import dialect_insert
from order_analytics.database.models import EventLog

logger = structlog.get_logger(__name__)


class EventLedger:
    """Insert-only repository over the ``events_log`` table"""

    table = EventLog.__table__

    async def try_record(
        self,
        session: AsyncSession,
        event_type: str,
        order_id: int,
        user_id: Optional[int],
        correlation_id: Optional[str],
        payload: Optional[Dict[str, Any]],
        received_at: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Record an event unless its (event_type, order_id) pair is already known.

        Runs as one ``INSERT ... ON CONFLICT DO NOTHING RETURNING id`` so that
        concurrent callers racing on the same event see exactly one winner.

        Returns:
            The new ledger row id, or None if the event already exists
        """
        values = {
            "event_type": event_type,
            "order_id": order_id,
            "user_id": user_id,
            "correlation_id": correlation_id,
            "data": payload,
        }
        if received_at is not None:
            values["received_at"] = received_at

        stmt = (
            dialect_insert(session)(self.table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["event_type", "order_id"])
            .returning(self.table.c.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def count(self, session: AsyncSession) -> int:
        result = await session.execute(select(func.count()).select_from(self.table))
        return result.scalar_one()

    async def list_events(
        self,
        session: AsyncSession,
        limit: int = 50,
        event_type: Optional[str] = None,
    ) -> List[EventLog]:
        """Newest ledger rows first, optionally filtered by event type (replay tooling)."""
        query = select(EventLog).order_by(EventLog.id.desc()).limit(limit)
        if event_type:
            query = query.where(EventLog.event_type == event_type)
        result = await session.execute(query)
        return list(result.scalars().all())
