"""
Celery Tasks
Background push delivery for table alerts.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional

from app.celery_worker import celery_app
from app.services.notifications import get_push_service
from app.services.notifications.base import PushPayload
from app.services.notifications.dispatcher import deliver

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=0, ignore_result=False)
def deliver_push_notification(
    self,
    topic: str,
    payload: dict,
    sms_to: Optional[str] = None,
    sms_message: Optional[str] = None,
) -> dict:
    """
    Deliver one push payload to a restaurant topic.

    Runs exactly once; a failed delivery is reported in the result and
    logged, never retried.

    Args:
        topic: FCM topic of the restaurant's staff devices
        payload: PushPayload.to_dict() output
        sms_to: Optional escalation phone number
        sms_message: Optional escalation text

    Returns:
        dict: Result of the delivery
    """
    task_id = self.request.id
    start_time = time.time()

    result = asyncio.run(
        deliver(get_push_service(), topic, PushPayload.from_dict(payload), sms_to, sms_message)
    )

    elapsed = round(time.time() - start_time, 3)
    if result.success:
        logger.info(f"Task {task_id}: push '{payload.get('tag')}' delivered in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: push '{payload.get('tag')}' failed - {result.error_message}")

    return {
        'success': result.success,
        'message_id': result.message_id,
        'error_message': result.error_message,
        'provider': result.provider,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


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
