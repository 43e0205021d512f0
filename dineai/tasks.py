"""
Celery Tasks
Background maintenance: conversation retention and a worker health probe.
The engines never schedule work themselves; everything periodic lives here.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dineai.celery_worker import celery_app
from dineai.core.config import get_settings
from dineai.database import create_engine_from_url
from dineai.services.conversations import ConversationQuotaTracker

logger = logging.getLogger(__name__)


async def _cleanup(restaurant_id: Optional[str], days_to_keep: Optional[int]) -> dict:
    # Each task run owns its event loop, so it also owns its engine
    settings = get_settings()
    engine = create_engine_from_url(settings.database_url)
    try:
        tracker = ConversationQuotaTracker(
            async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False),
            settings,
        )
        return await tracker.cleanup_old_conversations(restaurant_id, days_to_keep)
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def cleanup_old_conversations(
    self,
    restaurant_id: Optional[str] = None,
    days_to_keep: Optional[int] = None,
) -> dict:
    """
    Delete conversation sessions older than the retention window.

    Args:
        restaurant_id: Limit to one restaurant (all restaurants when omitted)
        days_to_keep: Override CONVERSATION_RETENTION_DAYS

    Returns:
        dict: {"deleted": n, "task_id": ..., "processing_time_seconds": ...}
    """
    task_id = self.request.id
    start_time = time.time()
    logger.info(f"Task {task_id}: cleaning conversations (restaurant={restaurant_id or 'all'})")

    result = asyncio.run(_cleanup(restaurant_id, days_to_keep))

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed
    logger.info(f"Task {task_id}: deleted {result['deleted']} sessions in {elapsed}s")
    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
