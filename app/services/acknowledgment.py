"""
Acknowledgment Handler

Processes a staff action on an alert, whether it came from the resolve
endpoint or from a button on a pushed notification.

    acknowledge  -> AlertLedger.resolve, then a resolved confirmation push
    anything else -> no state change; tell the device which surface to show
"""

import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.alerts import AlertLedger, ResolveOutcome
from app.services.notifications.dispatcher import ACKNOWLEDGE_ACTION, NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class AcknowledgmentContext:
    """What triggered the acknowledgment and where it came from."""
    alert_id: Optional[int]
    action: Optional[str] = ACKNOWLEDGE_ACTION
    resolved_by: Optional[str] = None
    restaurant_id: Optional[str] = None
    table_number: Optional[int] = None
    open_surfaces: list[str] = field(default_factory=list)


@dataclass
class AcknowledgmentOutcome:
    """
    Result handed back to the caller.

    ``action`` is "resolved" for acknowledgments, otherwise "focus" (bring
    ``url`` to the foreground) or "open" (open ``url`` in a new window).
    """
    action: str
    resolve_outcome: Optional[ResolveOutcome] = None
    url: Optional[str] = None


class AcknowledgmentHandler:
    def __init__(
        self,
        ledger: AlertLedger,
        dispatcher: NotificationDispatcher,
        control_center_path: str,
    ):
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.control_center_path = control_center_path

    async def handle(self, db: AsyncSession, context: AcknowledgmentContext) -> AcknowledgmentOutcome:
        if context.action == ACKNOWLEDGE_ACTION:
            return await self._acknowledge(db, context)
        return self._present(context)

    async def _acknowledge(self, db: AsyncSession, context: AcknowledgmentContext) -> AcknowledgmentOutcome:
        if context.alert_id is None:
            return AcknowledgmentOutcome(action="resolved", resolve_outcome=ResolveOutcome.NOT_FOUND)

        outcome = await self.ledger.resolve(db, context.alert_id, context.resolved_by)

        if outcome != ResolveOutcome.NOT_FOUND:
            try:
                alert = await self.ledger.get(db, context.alert_id)
                if alert is not None:
                    self.dispatcher.notify_resolved(alert, context.resolved_by)
            except Exception:
                logger.exception(f"Resolved confirmation for alert #{context.alert_id} failed")

        return AcknowledgmentOutcome(action="resolved", resolve_outcome=outcome)

    def _present(self, context: AcknowledgmentContext) -> AcknowledgmentOutcome:
        try:
            for url in context.open_surfaces:
                if self.control_center_path in url:
                    return AcknowledgmentOutcome(action="focus", url=url)
        except TypeError:
            logger.warning("Unreadable open surface list, opening a new window")

        return AcknowledgmentOutcome(action="open", url=self.fresh_surface_url(context))

    def fresh_surface_url(self, context: AcknowledgmentContext) -> str:
        params = {"mobile": "true"}
        if context.restaurant_id:
            params["restaurant"] = context.restaurant_id
        if context.table_number is not None:
            params["table"] = context.table_number
        return f"{self.control_center_path}?{urlencode(params)}"
