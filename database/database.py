"""Database helpers: engines, session factories and DB initialization.

Provides read/write session factories with bounded connection timeouts and
an `init_db` helper that creates the schema.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from core.config import (
    WRITE_DATABASE_URL,
    READ_DATABASE_URL,
    DB_CONNECT_TIMEOUT,
    DB_IDLE_TIMEOUT,
    DB_POOL_TIMEOUT,
)
from core.logger import get_logger
from .models import Base

logger = get_logger("database")


def make_engine(url: str) -> Engine:
    """Create an engine whose connect and idle times are bounded.

    SQLite takes its lock timeout through ``timeout``; server databases get a
    ``connect_timeout`` and a pool that recycles connections idle longer than
    ``DB_IDLE_TIMEOUT`` seconds.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": DB_CONNECT_TIMEOUT},
        )
    return create_engine(
        url,
        connect_args={"connect_timeout": DB_CONNECT_TIMEOUT},
        pool_pre_ping=True,
        pool_recycle=DB_IDLE_TIMEOUT,
        pool_timeout=DB_POOL_TIMEOUT,
    )


# Engines
write_engine = make_engine(WRITE_DATABASE_URL)
read_engine = make_engine(READ_DATABASE_URL)

# Session factories
WriteSessionLocal = sessionmaker(bind=write_engine)
ReadSessionLocal = sessionmaker(bind=read_engine)


def init_db(engine: Engine = None):
    """Create all tables defined on the ORM models."""
    Base.metadata.create_all(bind=engine or write_engine)
    logger.info("Database schema ready")


# Convenience generators for dependency injection
def get_write_session():
    """Yield a write-enabled SQLAlchemy session for the request scope.

    Use this generator as a FastAPI dependency to ensure the session is
    properly closed after the request completes.
    """
    db = WriteSessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_read_session():
    """Yield a read-only SQLAlchemy session for the request scope.

    Used for read endpoints where routing reads to a replica may be desired.
    """
    db = ReadSessionLocal()
    try:
        yield db
    finally:
        db.close()
