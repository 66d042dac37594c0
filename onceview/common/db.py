"""Database bootstrap helpers shared by all onceview services."""

from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import JSON, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from onceview.common.config import settings
from onceview.common.errors import StoreUnavailable
from onceview.common.logging import logger


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from SQLite."""

    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def build_engine(dsn: str):
    """Create an engine for `dsn`.

    SQLite (local development and tests) gets `BEGIN IMMEDIATE` transactions and
    a busy timeout so concurrent writers queue up instead of failing with
    `database is locked`. PostgreSQL relies on row locks taken by the services.
    """

    if not dsn.startswith("sqlite"):
        return create_engine(dsn, pool_pre_ping=True)

    engine = create_engine(dsn, connect_args={"check_same_thread": False, "timeout": 30})

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _record):
        # Hand transaction control to SQLAlchemy so BEGIN can be issued below.
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_session_factory(engine):
    # `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


# Single SQLAlchemy engine per process.
engine = build_engine(settings.database_dsn)
SessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


@contextmanager
def unit_of_work(session_factory, operation: str):
    """Yield a session; database failures surface as `StoreUnavailable`.

    Anything not committed inside the block is rolled back when the session
    closes, so a failed operation leaves no partial writes behind.
    """

    try:
        with session_factory() as db:
            yield db
    except SQLAlchemyError as exc:
        logger.error("store failure operation=%s error=%s", operation, exc)
        raise StoreUnavailable(operation, exc.__class__.__name__) from exc
