"""
Celery Worker Configuration
Redis-backed worker for push delivery.

Used when NOTIFICATION_DISPATCH_MODE=celery so push delivery runs outside the
API process entirely. Start with:

    celery -A app.celery_worker worker -Q notifications --loglevel=info
"""

from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    'table_service_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks'],
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Push delivery gets its own queue so a backlog never blocks other work
    task_routes={'app.tasks.deliver_push_notification': {'queue': 'notifications'}},

    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # A push that has not gone out within this window is stale for staff
    task_time_limit=60,
    result_expires=3600,

    # Delivery is attempted at most once; a lost worker does not redeliver
    task_acks_late=False,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
