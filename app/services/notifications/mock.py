"""
Mock Push Service

Simulates push and SMS delivery for development and tests.
Nothing leaves the process; messages are logged and kept in ``sent``.
"""

import asyncio
import logging
import random
import uuid

from app.services.notifications.base import (
    BasePushService,
    NotificationResult,
    PushPayload,
)

logger = logging.getLogger(__name__)


class MockPushService(BasePushService):
    """Mock push service for development."""

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.sent: list[tuple[str, PushPayload]] = []
        self.sms: list[tuple[str, str]] = []
        logger.info(f"MockPushService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_push(self, topic: str, payload: PushPayload) -> NotificationResult:
        """Simulate a topic push."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock push failed (simulated) to {topic}")
            return NotificationResult(
                success=False,
                error_message="Simulated push failure",
                provider="mock"
            )

        self.sent.append((topic, payload))
        message_id = f"push_mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"Mock push sent to {topic}: {payload.title} (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        """Simulate sending SMS."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock SMS failed (simulated) to {to_phone}")
            return NotificationResult(
                success=False,
                error_message="Simulated SMS failure",
                provider="mock"
            )

        self.sms.append((to_phone, message))
        message_id = f"sms_mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"Mock SMS sent to {to_phone}: {message[:50]}... (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
