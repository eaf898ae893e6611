"""
SQLAlchemy Database Models

Restaurants, per-table occupancy, QR scan events, table alerts and
notification delivery confirmations.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class TableStatus(str, enum.Enum):
    """
    Occupancy states of a table.

    Ordered loosely by convention (available -> occupied -> cleaning ->
    available); by default any state may follow any other.
    """
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"
    NEEDS_ATTENTION = "needs_attention"
    CLOSED = "closed"


class ScanType(str, enum.Enum):
    """Which QR code the customer scanned."""
    MENU = "menu"
    REVIEW = "review"
    WIFI = "wifi"
    SURVEY = "survey"
    CONTACT = "contact"


class AlertType(str, enum.Enum):
    """Staff-service requests plus system-detected conditions."""
    # Raised by customers
    SERVICE_WATER = "service_water"
    SERVICE_BILL = "service_bill"
    SERVICE_WAITER = "service_waiter"
    SERVICE_ASSISTANCE = "service_assistance"
    SERVICE_CLEANING = "service_cleaning"
    # Raised by monitoring
    LONG_WAIT = "long_wait"
    EXTENDED_STAY = "extended_stay"
    SCAN_ANOMALY = "scan_anomaly"
    SYSTEM = "system"


class AlertPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Restaurant(Base):
    """
    Tenant record. Created lazily the first time a scan, alert or status
    update mentions the restaurant; never deleted by this service.
    """
    __tablename__ = "restaurants"

    id = Column(String(100), primary_key=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<Restaurant {self.id} - {self.name}>"


class TableState(Base):
    """
    Current occupancy of one table. Exactly one row per
    (restaurant_id, table_number), maintained by atomic upsert.
    """
    __tablename__ = "table_status"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_table_status_restaurant_table"),
        CheckConstraint("table_number > 0", name="ck_table_status_table_number_positive"),
        CheckConstraint("party_size >= 0", name="ck_table_status_party_size_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(String(100), nullable=False, index=True)
    table_number = Column(Integer, nullable=False)

    status = Column(
        Enum(TableStatus, values_callable=_enum_values, native_enum=False, length=32),
        default=TableStatus.AVAILABLE,
        nullable=False,
    )
    party_size = Column(Integer, nullable=False, default=0)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    seated_at = Column(DateTime(timezone=True), nullable=True)
    last_activity = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    estimated_duration = Column(Integer, nullable=False, default=60)  # minutes

    def __repr__(self):
        return f"<TableState {self.restaurant_id}#{self.table_number} - {self.status.value}>"


class Scan(Base):
    """Append-only QR scan event. Rows are never updated or deleted."""
    __tablename__ = "qr_scans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(String(100), nullable=False, index=True)
    scan_type = Column(
        Enum(ScanType, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
    )
    table_number = Column(Integer, nullable=True)

    # Client metadata
    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(64), nullable=True)
    referrer = Column(String(500), nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Scan #{self.id} - {self.restaurant_id} - {self.scan_type.value}>"


class Alert(Base):
    """
    Actionable notice for staff. Lifecycle is open -> resolved, one way;
    resolved_at is written once, by the update that flips ``resolved``.
    """
    __tablename__ = "table_alerts"
    __table_args__ = (
        Index("ix_table_alerts_open", "restaurant_id", "resolved", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(String(100), nullable=False)
    table_number = Column(Integer, nullable=False)

    alert_type = Column(
        Enum(AlertType, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
    )
    message = Column(Text, nullable=False, default="")
    priority = Column(
        Enum(AlertPriority, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=AlertPriority.MEDIUM,
    )

    # =========================================================================
    # RESOLUTION
    # =========================================================================
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        state = "resolved" if self.resolved else "open"
        return f"<Alert #{self.id} - table {self.table_number} - {self.alert_type.value} - {state}>"


class NotificationDelivery(Base):
    """
    A device's report that a pushed alert reached it. Observational only;
    has no bearing on the alert's state.
    """
    __tablename__ = "notification_deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(Integer, nullable=False, index=True)
    delivered_at = Column(DateTime(timezone=True), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<NotificationDelivery alert #{self.alert_id} at {self.delivered_at}>"
