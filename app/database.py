"""
Database engine for the issued-license store

One async SQLite engine per process, created by init_db() at startup and
disposed by close_db() at shutdown. Only the SQL license store talks to it.
"""
import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.models import Base

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def database_url(database_path: str) -> str:
    """aiosqlite URL for a file path (':memory:' gives a private in-memory database)"""
    return f"sqlite+aiosqlite:///{database_path}"


def _apply_pragmas(dbapi_conn, _) -> None:
    """Journal mode and page cache for every new connection"""
    cursor = dbapi_conn.cursor()
    cursor.execute(f"PRAGMA journal_mode = {settings.sqlite_journal_mode}")
    cursor.execute(f"PRAGMA cache_size = -{settings.sqlite_cache_size_kb}")
    cursor.close()


async def init_db(database_path: str | None = None) -> None:
    """Create the engine and the issued_licenses table if missing"""
    global _engine, _sessions

    if _engine is not None:
        await close_db()

    database_path = database_path or settings.database_path
    logger.info(f"Opening license database at {database_path}")

    _engine = create_async_engine(
        database_url(database_path),
        pool_pre_ping=True,
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    event.listen(_engine.sync_engine, "connect", _apply_pragmas)

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _sessions = async_sessionmaker(_engine, expire_on_commit=False, autoflush=False)
    logger.info("License database ready")


async def close_db() -> None:
    """Dispose the engine; safe to call when init_db() never ran"""
    global _engine, _sessions
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessions = None
    logger.info("License database closed")


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session wrapped in a transaction (commit on success, rollback on error)"""
    if _sessions is None:
        raise RuntimeError("Database not initialized. Call init_db() during startup.")

    async with _sessions() as session:
        async with session.begin():
            yield session
