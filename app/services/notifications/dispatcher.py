"""
Notification Dispatcher

Two-phase push protocol for table alerts:

    1. dispatch   - notify_new_alert / notify_resolved build a payload and
                    hand it off (asyncio task or Celery worker). The caller
                    never waits for delivery.
    2. callback   - devices report back independently, either through
                    /notifications/delivered (confirm_delivery) or through
                    /notifications/action (AcknowledgmentHandler).

Dispatch faults are logged and dropped; there is no retry.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import DispatchMode, Settings
from app.models import Alert, AlertPriority, NotificationDelivery, utcnow
from app.services.notifications.base import (
    BasePushService,
    NotificationResult,
    PushAction,
    PushPayload,
)

logger = logging.getLogger(__name__)

ALERT_TITLES = {
    "service_water": "Water Refill",
    "service_bill": "Bill Requested",
    "service_waiter": "Waiter Requested",
    "service_assistance": "Assistance Needed",
    "service_cleaning": "Cleaning Needed",
    "long_wait": "Long Wait",
    "extended_stay": "Extended Stay",
    "scan_anomaly": "Unusual Scan Activity",
    "system": "System Alert",
}

ACKNOWLEDGE_ACTION = "acknowledge"
VIEW_ACTION = "view"
RESOLVED_TAG = "resolved-confirmation"

_TOPIC_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_.~%]")


async def deliver(
    service: BasePushService,
    topic: str,
    payload: PushPayload,
    sms_to: Optional[str] = None,
    sms_message: Optional[str] = None,
) -> NotificationResult:
    """
    Send one payload (and optional SMS escalation). Never raises.

    Shared by the in-process path and the Celery task.
    """
    try:
        result = await service.send_push(topic, payload)
        if not result.success:
            logger.warning(f"Push to {topic} failed: {result.error_message}")

        if sms_to and sms_message:
            sms_result = await service.send_sms(sms_to, sms_message)
            if not sms_result.success:
                logger.warning(f"SMS escalation to {sms_to} failed: {sms_result.error_message}")

        return result

    except Exception as e:
        logger.exception(f"Push delivery to {topic} raised: {e}")
        return NotificationResult(success=False, error_message=str(e), provider=service.provider_name)


class NotificationDispatcher:
    """Builds alert payloads and ships them without blocking the caller."""

    def __init__(self, push_service: BasePushService, settings: Settings):
        self.push_service = push_service
        self.mode = settings.notification_dispatch_mode
        self.topic_prefix = settings.push_topic_prefix
        self.control_center_path = settings.control_center_path
        self.staff_alert_phone = settings.staff_alert_phone
        self._pending: set[asyncio.Task] = set()

    # =========================================================================
    # PAYLOADS
    # =========================================================================

    def topic_for(self, restaurant_id: str) -> str:
        return _TOPIC_UNSAFE.sub("_", f"{self.topic_prefix}-{restaurant_id}")

    def alert_url(self, alert: Alert) -> str:
        query = urlencode({"restaurant": alert.restaurant_id, "table": alert.table_number})
        return f"{self.control_center_path}?{query}"

    def build_alert_payload(self, alert: Alert) -> PushPayload:
        label = ALERT_TITLES.get(alert.alert_type.value, "Service Request")
        if alert.priority in (AlertPriority.HIGH, AlertPriority.CRITICAL):
            label = f"URGENT: {label}"

        return PushPayload(
            title=f"Table {alert.table_number} - {label}",
            body=alert.message or "A customer needs assistance",
            tag=f"table-alert-{alert.id}",
            data={
                "tableNumber": alert.table_number,
                "alertId": alert.id,
                "type": alert.alert_type.value,
                "url": self.alert_url(alert),
            },
            actions=[
                PushAction(action=ACKNOWLEDGE_ACTION, title="Mark Resolved"),
                PushAction(action=VIEW_ACTION, title="View Table"),
            ],
        )

    def build_resolved_payload(self, alert: Alert, resolved_by: Optional[str]) -> PushPayload:
        body = f"Table {alert.table_number} request marked as resolved"
        if resolved_by:
            body += f" ({resolved_by})"

        return PushPayload(
            title="Alert Resolved",
            body=body,
            tag=RESOLVED_TAG,
            data={
                "tableNumber": alert.table_number,
                "alertId": alert.id,
                "type": alert.alert_type.value,
                "url": self.alert_url(alert),
            },
        )

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def notify_new_alert(self, alert: Alert) -> None:
        """Ship the push for a newly created alert. Returns immediately."""
        payload = self.build_alert_payload(alert)

        sms_message = None
        if alert.priority == AlertPriority.CRITICAL and self.staff_alert_phone:
            sms_message = f"{payload.title}: {payload.body}"

        self._schedule(self.topic_for(alert.restaurant_id), payload, sms_message)

    def notify_resolved(self, alert: Alert, resolved_by: Optional[str] = None) -> None:
        """Best-effort confirmation back to the acknowledging surface."""
        payload = self.build_resolved_payload(alert, resolved_by)
        self._schedule(self.topic_for(alert.restaurant_id), payload)

    def _schedule(self, topic: str, payload: PushPayload, sms_message: Optional[str] = None) -> None:
        sms_to = self.staff_alert_phone if sms_message else None
        try:
            if self.mode == DispatchMode.CELERY:
                from app.tasks import deliver_push_notification

                deliver_push_notification.delay(topic, payload.to_dict(), sms_to, sms_message)
                logger.debug(f"Queued push '{payload.tag}' for {topic}")
            else:
                task = asyncio.get_running_loop().create_task(
                    deliver(self.push_service, topic, payload, sms_to, sms_message)
                )
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
        except Exception as e:
            logger.exception(f"Could not dispatch push '{payload.tag}' to {topic}: {e}")

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-process dispatches still in flight."""
        if not self._pending:
            return
        logger.info(f"Draining {len(self._pending)} pending notification(s)")
        done, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} notification(s) still pending after {timeout}s")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # DELIVERY CONFIRMATION
    # =========================================================================

    async def confirm_delivery(
        self,
        db: AsyncSession,
        alert_id: int,
        delivered_at: Optional[datetime] = None,
    ) -> bool:
        """
        Record that a device received the push for ``alert_id``.

        Observational only: the alert is not touched. Failures are logged
        and reported as False.
        """
        try:
            db.add(
                NotificationDelivery(
                    alert_id=alert_id,
                    delivered_at=delivered_at or utcnow(),
                    recorded_at=utcnow(),
                )
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(f"Could not record delivery of alert #{alert_id}: {e}")
            return False

        logger.debug(f"Delivery of alert #{alert_id} confirmed")
        return True
