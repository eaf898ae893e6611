"""
Push Service Factory

Returns Mock or Real push service based on ENV_MODE.
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.notifications.base import (
    BasePushService,
    NotificationResult,
    PushAction,
    PushPayload,
)
from app.services.notifications.mock import MockPushService

logger = logging.getLogger(__name__)


@lru_cache()
def get_push_service() -> BasePushService:
    """Get the configured push service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Push Service: Using MockPushService (development mode)")
        return MockPushService(failure_rate=0.05, min_latency=0.1, max_latency=0.3)
    else:
        # Imported lazily so development installs do not need the SDK credentials
        from app.services.notifications.real import RealPushService

        logger.info(f"Push Service: Using RealPushService ({settings.env_mode.value} mode)")
        return RealPushService()


def reset_push_service() -> None:
    """Clear the cached service instance."""
    get_push_service.cache_clear()


__all__ = [
    "get_push_service",
    "reset_push_service",
    "BasePushService",
    "MockPushService",
    "NotificationResult",
    "PushAction",
    "PushPayload",
]
