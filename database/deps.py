"""FastAPI dependencies exposing request-scoped DB sessions.

Mutating endpoints (rating submission, menu publishing, directory changes)
take `get_db_write`; dashboards and listings take `get_db_read` so they can
be routed to a replica. Tests override both with an in-memory database.
"""

from .database import get_read_session, get_write_session


def get_db_write():
    """Yield a write-capable DB session."""
    yield from get_write_session()


def get_db_read():
    """Yield a read-only DB session."""
    yield from get_read_session()
