"""
Tests for the acknowledgment handler.
"""
import pytest

from app.models import AlertType
from app.services.acknowledgment import AcknowledgmentContext, AcknowledgmentHandler
from app.services.alerts import ResolveOutcome
from app.services.notifications.dispatcher import RESOLVED_TAG

CONTROL_CENTER = "/table-control-center.html"


@pytest.fixture
def handler(ledger, dispatcher) -> AcknowledgmentHandler:
    return AcknowledgmentHandler(ledger, dispatcher, CONTROL_CENTER)


class TestAcknowledge:
    """Tests for the acknowledge action."""

    async def test_acknowledge_resolves_and_confirms(self, session, handler, ledger, dispatcher, push_service, clock):
        """Should resolve the alert and push a resolved confirmation."""
        alert = await ledger.create(session, "rest1", 5, AlertType.SERVICE_WATER, "Water refill")

        outcome = await handler.handle(
            session, AcknowledgmentContext(alert_id=alert.id, resolved_by="mobile-notification")
        )
        await dispatcher.drain(1.0)

        assert outcome.action == "resolved"
        assert outcome.resolve_outcome == ResolveOutcome.RESOLVED
        stored = await ledger.get(session, alert.id)
        assert stored.resolved is True
        assert stored.resolved_by == "mobile-notification"
        assert [p.tag for _, p in push_service.sent] == [RESOLVED_TAG]

    async def test_second_acknowledgment_still_confirms(self, session, handler, ledger, dispatcher, push_service, clock):
        """Should report ALREADY_RESOLVED and still confirm to the late device."""
        alert = await ledger.create(session, "rest1", 5, AlertType.SERVICE_BILL, "Bill requested")

        await handler.handle(session, AcknowledgmentContext(alert_id=alert.id, resolved_by="device-a"))
        outcome = await handler.handle(session, AcknowledgmentContext(alert_id=alert.id, resolved_by="device-b"))
        await dispatcher.drain(1.0)

        assert outcome.resolve_outcome == ResolveOutcome.ALREADY_RESOLVED
        assert len(push_service.sent) == 2
        assert (await ledger.get(session, alert.id)).resolved_by == "device-a"

    async def test_unknown_alert_is_silent(self, session, handler, dispatcher, push_service):
        """Should report NOT_FOUND without pushing anything."""
        outcome = await handler.handle(session, AcknowledgmentContext(alert_id=999))
        await dispatcher.drain(1.0)

        assert outcome.resolve_outcome == ResolveOutcome.NOT_FOUND
        assert push_service.sent == []

    async def test_missing_alert_id(self, session, handler, push_service):
        """Should treat a missing alert id as not found."""
        outcome = await handler.handle(session, AcknowledgmentContext(alert_id=None))

        assert outcome.resolve_outcome == ResolveOutcome.NOT_FOUND
        assert push_service.sent == []


class TestPresentSurface:
    """Tests for non-acknowledge actions."""

    async def test_focuses_open_control_center(self, session, handler, ledger, clock):
        """Should focus an already-open control center window."""
        alert = await ledger.create(session, "rest1", 5, AlertType.SERVICE_WAITER, "Waiter requested")
        surfaces = [
            "https://staff.example.org/orders.html",
            "https://staff.example.org/table-control-center.html?restaurant=rest1",
        ]

        outcome = await handler.handle(
            session, AcknowledgmentContext(alert_id=alert.id, action="view", open_surfaces=surfaces)
        )

        assert outcome.action == "focus"
        assert outcome.url == surfaces[1]
        assert (await ledger.get(session, alert.id)).resolved is False

    async def test_opens_new_surface_when_none_open(self, session, handler):
        """Should open a mobile control center for the alert's table."""
        outcome = await handler.handle(
            session,
            AcknowledgmentContext(alert_id=3, action="view", restaurant_id="rest1", table_number=5),
        )

        assert outcome.action == "open"
        assert outcome.url == f"{CONTROL_CENTER}?mobile=true&restaurant=rest1&table=5"
        assert outcome.resolve_outcome is None

    async def test_plain_click_without_action(self, session, handler):
        """Should treat a click on the notification body like view."""
        outcome = await handler.handle(session, AcknowledgmentContext(alert_id=3, action=None))

        assert outcome.action == "open"
        assert outcome.url == f"{CONTROL_CENTER}?mobile=true"
