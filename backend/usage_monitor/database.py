"""Database engines, session factories and schema management."""

import logging
from pathlib import Path
from typing import Optional

from fastapi import Request
from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class AggregateBase(DeclarativeBase):
    """Base class for tables owned by the monitor (the embedded aggregate store)."""
    pass


class SourceBase(DeclarativeBase):
    """Base class for the gateway tables. Read-only except for the circuit breaker."""
    pass


def _connect_args(url: str, timeout: Optional[float]) -> dict:
    if timeout is None:
        return {}
    backend = make_url(url).get_backend_name()
    if backend == "mysql":
        return {"connect_timeout": max(1, int(timeout))}
    if backend == "postgresql":
        return {"timeout": timeout}
    if backend == "sqlite":
        return {"timeout": timeout}
    return {}


def create_engine(url: str, timeout: Optional[float] = None) -> AsyncEngine:
    """Create an async engine, preparing the data directory for file-backed SQLite."""
    parsed = make_url(url)
    kwargs = {"echo": False, "connect_args": _connect_args(url, timeout)}

    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    else:
        kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)

    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def _default_sql(column, dialect) -> str:
    default = column.server_default
    if default is None:
        return ""
    arg = default.arg
    if isinstance(arg, str):
        return f" DEFAULT '{arg}'"
    return f" DEFAULT {arg.compile(dialect=dialect)}"


def _add_missing_columns(conn: Connection) -> None:
    """Add columns declared on the models but missing from older databases."""
    inspector = inspect(conn)
    for table in AggregateBase.metadata.sorted_tables:
        existing = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in existing:
                continue
            ddl_type = column.type.compile(dialect=conn.dialect)
            conn.execute(text(
                f"ALTER TABLE {table.name} ADD COLUMN {column.name} {ddl_type}"
                f"{_default_sql(column, conn.dialect)}"
            ))
            logger.info(f"Migrated {table.name}: added column {column.name}")


def _normalize_trigger_times(conn: Connection) -> None:
    """Convert millisecond ``alerts.last_triggered`` values from older databases to seconds."""
    from .models.alert import MILLISECONDS_CUTOFF

    result = conn.execute(
        text("UPDATE alerts SET last_triggered = last_triggered / 1000 WHERE last_triggered > :cutoff"),
        {"cutoff": MILLISECONDS_CUTOFF},
    )
    if result.rowcount:
        logger.info(f"Migrated alerts: converted {result.rowcount} last_triggered values to seconds")


async def init_aggregate_schema(engine: AsyncEngine) -> None:
    """Create the aggregate tables and bring older schemas up to date."""
    from . import models  # noqa: F401  (registers the tables on AggregateBase)

    async with engine.begin() as conn:
        await conn.run_sync(AggregateBase.metadata.create_all)
        await conn.run_sync(_add_missing_columns)
        await conn.run_sync(_normalize_trigger_times)


async def get_aggregate_db(request: Request) -> AsyncSession:
    """Dependency that provides an aggregate store session."""
    async with request.app.state.aggregate_sessions() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_source_db(request: Request) -> AsyncSession:
    """Dependency that provides a read session on the gateway store."""
    async with request.app.state.source_sessions() as session:
        try:
            yield session
        finally:
            await session.close()
