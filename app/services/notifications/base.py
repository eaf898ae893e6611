"""
Push Service Abstract Base Class

Defines the interface for delivering staff notifications.
Supports both Mock (development) and Real (production) implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class PushAction:
    """A button shown on the notification."""
    action: str
    title: str


@dataclass
class PushPayload:
    """
    Message shipped to the staff devices' background messaging agent.

    ``data`` always carries tableNumber, alertId, type and url so the
    device can call back into /notifications/action and
    /notifications/delivered.
    """
    title: str
    body: str
    tag: str
    data: dict[str, Any] = field(default_factory=dict)
    actions: list[PushAction] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict) -> "PushPayload":
        return cls(
            title=raw["title"],
            body=raw["body"],
            tag=raw["tag"],
            data=dict(raw.get("data") or {}),
            actions=[PushAction(**a) for a in raw.get("actions") or []],
        )


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


class BasePushService(ABC):
    """Abstract base class for push delivery services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_push(self, topic: str, payload: PushPayload) -> NotificationResult:
        """Send a push notification to every device subscribed to ``topic``."""
        pass

    @abstractmethod
    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
