"""
Database Connection Module
Handles the async SQLAlchemy engine, the session factory and the
transaction wrapper every engine uses for its writes.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from functools import lru_cache
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dineai.core.config import get_settings
from dineai.core.exceptions import TransientStoreConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRY_WAIT = 1.0  # seconds

SessionFactory = async_sessionmaker[AsyncSession]


# Base class for all our models
class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_engine_from_url(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite uses
    SQLAlchemy's default pool for aiosqlite.
    """
    settings = get_settings()
    kwargs = {"echo": echo}
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


@lru_cache()
def get_engine() -> AsyncEngine:
    settings = get_settings()
    return create_engine_from_url(settings.database_url, echo=settings.database_echo)


@lru_cache()
def get_session_maker() -> SessionFactory:
    """Session factory - creates new database sessions."""
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,  # Objects remain accessible after commit
    )


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with get_session_maker()() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Models must be imported so their tables are registered on Base.metadata
    from dineai import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")


async def run_in_transaction(
    session_factory: SessionFactory,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_retries: Optional[int] = None,
    backoff: Optional[float] = None,
    label: str = "transaction",
) -> T:
    """
    Run ``work`` inside a single store transaction.

    The transaction commits when ``work`` returns and rolls back when it
    raises. Store-level conflicts (lock timeouts, serialization failures,
    deadlocks) surface as OperationalError and are retried with exponential
    backoff; once the attempts are exhausted TransientStoreConflict is
    raised. Business errors raised by ``work`` propagate on the first attempt.

    ``work`` may run more than once, so it must not keep state between
    attempts outside the session.
    """
    settings = get_settings()
    attempts = max_retries or settings.transaction_max_retries
    delay = settings.transaction_retry_backoff if backoff is None else backoff

    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as session:
                async with session.begin():
                    return await work(session)
        except OperationalError as e:
            if attempt >= attempts:
                logger.error(f"{label}: giving up after {attempt} attempts ({e.orig})")
                raise TransientStoreConflict(attempts) from e
            wait = min(delay * (2 ** (attempt - 1)), MAX_RETRY_WAIT) + random.uniform(0, delay)
            logger.warning(
                f"{label}: store conflict on attempt {attempt}/{attempts}, "
                f"retrying in {wait:.3f}s ({e.orig})"
            )
            await asyncio.sleep(wait)

    raise TransientStoreConflict(attempts)
