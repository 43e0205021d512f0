"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend, plus the
beat schedule for conversation retention.
"""

from celery import Celery
from celery.schedules import crontab

from dineai.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'dineai_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['dineai.tasks']
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone=settings.restaurant_timezone,
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    # Result settings
    result_expires=3600,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    broker_connection_retry_on_startup=True,

    beat_schedule={
        'cleanup-old-conversations': {
            'task': 'dineai.tasks.cleanup_old_conversations',
            'schedule': crontab(hour=3, minute=30),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
