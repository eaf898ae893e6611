"""
                        Services Module

Business logic behind the HTTP layer. Each service receives its
collaborators explicitly and takes the database session per call.

Services:
    - tables: table occupancy upsert and listing
    - scans: append-only QR scan log
    - alerts: alert open/resolved lifecycle
    - acknowledgment: staff actions on alerts
    - notifications: push payloads, dispatch and delivery receipts
"""

from app.services.acknowledgment import AcknowledgmentHandler
from app.services.alerts import AlertLedger, ResolveOutcome
from app.services.scans import ScanRecorder
from app.services.tables import TableStateStore

__all__ = [
    "AcknowledgmentHandler",
    "AlertLedger",
    "ResolveOutcome",
    "ScanRecorder",
    "TableStateStore",
]
