"""Database engines and sessions.

- Scan workers (pipeline, Celery, Alembic) use a sync Session.
- FastAPI read handlers use AsyncSession.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from .config import settings

logger = logging.getLogger(__name__)


def _is_sqlite(url: URL) -> bool:
    return url.drivername.startswith("sqlite")


def _pool_kwargs() -> dict:
    return {
        "pool_size": max(1, settings.db_pool_size),
        "max_overflow": max(0, settings.db_max_overflow),
        "pool_timeout": max(1, settings.db_pool_timeout_s),
        "pool_recycle": max(0, settings.db_pool_recycle_s),
    }


raw_url: URL = make_url(settings.database_url)
# PgBouncer-style transaction pooling cannot keep prepared statements across transactions.
is_transaction_pooler: bool = settings.db_transaction_pooler

# ----------------------------
# Sync engine/session (pipeline, workers)
# ----------------------------

if _is_sqlite(raw_url):
    sync_engine = create_engine(
        raw_url,
        connect_args={
            "check_same_thread": False,
            "timeout": max(0.0, settings.sqlite_busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        """WAL for concurrent readers, busy_timeout instead of immediate lock errors, FK enforcement."""
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute(f"PRAGMA busy_timeout={int(settings.sqlite_busy_timeout_ms)};")
            cursor.execute("PRAGMA foreign_keys=ON;")
        except Exception as e:
            logger.warning(f"SQLite pragmas not applied: {e}")
        finally:
            cursor.close()
else:
    sync_url = raw_url
    if sync_url.drivername == "postgresql":
        sync_url = sync_url.set(drivername="postgresql+psycopg")
    sync_connect_args: dict = {}
    if is_transaction_pooler:
        sync_connect_args = {"prepare_threshold": None}
    sync_engine = create_engine(
        sync_url,
        connect_args=sync_connect_args,
        pool_pre_ping=True,
        **_pool_kwargs(),
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

# ----------------------------
# Async engine/session (API reads)
# ----------------------------

async_connect_args: dict = {}
async_url = raw_url
if _is_sqlite(async_url):
    if async_url.drivername == "sqlite":
        async_url = async_url.set(drivername="sqlite+aiosqlite")
else:
    if async_url.drivername == "postgresql":
        async_url = async_url.set(drivername="postgresql+asyncpg")
    if is_transaction_pooler:
        async_connect_args["statement_cache_size"] = 0

async_engine_kwargs: dict = {
    "pool_pre_ping": True,
    "connect_args": async_connect_args,
}
if not _is_sqlite(async_url):
    async_engine_kwargs.update(_pool_kwargs())

async_engine = create_async_engine(async_url, **async_engine_kwargs)
AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False, autoflush=False)


def init_db():
    """Create tables on SQLite only; Postgres schema is managed via Alembic."""
    if not _is_sqlite(raw_url):
        return
    from .models import Base
    Base.metadata.create_all(bind=sync_engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an AsyncSession."""
    async with AsyncSessionLocal() as session:
        yield session


def get_sync_db() -> Generator:
    """Dependency that yields a sync DB session (scan endpoint / workers)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
