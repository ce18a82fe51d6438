"""
Dialect-specific INSERT constructs.

``ON CONFLICT`` clauses live on the dialect insert classes, so the ledger and
the aggregate store pick PostgreSQL or SQLite from the session's bind.
"""

from typing import Callable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: AsyncSession) -> Callable:
    """Return the ``insert`` factory supporting upserts for the session's database."""
    name = session.get_bind().dialect.name
    try:
        return _INSERTS[name]
    except KeyError:
        raise NotImplementedError(f"Upserts are not supported on dialect {name!r}") from None
