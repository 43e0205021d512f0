"""
Tests for the Celery maintenance tasks, run eagerly without a broker.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dineai.core.config import get_settings
from dineai.database import create_engine_from_url, init_db, utcnow
from dineai.models import ConversationSession
from dineai.services.conversations import ConversationQuotaTracker
from dineai.tasks import cleanup_old_conversations, health_check


async def _seed(url, ages_in_days):
    engine = create_engine_from_url(url)
    try:
        await init_db(engine)
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        tracker = ConversationQuotaTracker(factory, get_settings())
        for age in ages_in_days:
            session = await tracker.start_session("R1", "u1")
            async with factory() as db:
                async with db.begin():
                    await db.execute(
                        update(ConversationSession)
                        .where(ConversationSession.id == session["session_id"])
                        .values(started_at=utcnow() - timedelta(days=age))
                    )
    finally:
        await engine.dispose()


def test_cleanup_task_uses_configured_database(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    asyncio.run(_seed(url, ages_in_days=[0, 3, 20]))

    result = cleanup_old_conversations.apply(kwargs={"days_to_keep": 7}).get()

    assert result["deleted"] == 1
    assert "processing_time_seconds" in result


def test_cleanup_task_default_retention(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("CONVERSATION_RETENTION_DAYS", "2")
    get_settings.cache_clear()
    asyncio.run(_seed(url, ages_in_days=[0, 3, 20]))

    result = cleanup_old_conversations.apply().get()

    assert result["deleted"] == 2


def test_health_check_task():
    assert health_check.apply().get()["status"] == "healthy"
