"""
Pydantic Schemas for Request/Response Validation

Every request body has an explicit schema; unknown fields are rejected at
the boundary. Field names follow the wire format each client already uses:
snake_case for the dashboard endpoints, camelCase for the customer page and
the staff devices' background agent.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models import AlertPriority, AlertType, ScanType, TableStatus


# =============================================================================
# ENUMS
# =============================================================================

class ServiceType(str, Enum):
    """What a customer can ask for from the table page."""
    WATER = "water"
    BILL = "bill"
    WAITER = "waiter"
    ASSISTANCE = "assistance"
    CLEANING = "cleaning"

    @property
    def alert_type(self) -> AlertType:
        return AlertType(f"service_{self.value}")


SERVICE_MESSAGES = {
    ServiceType.WATER: "Water refill",
    ServiceType.BILL: "Bill requested",
    ServiceType.WAITER: "Waiter requested",
    ServiceType.ASSISTANCE: "Customer needs assistance",
    ServiceType.CLEANING: "Table needs cleaning",
}


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class AlertCreate(StrictModel):
    """Request schema for creating an alert from the dashboard."""
    table_number: int = Field(..., ge=1, examples=[5])
    alert_type: AlertType = Field(..., examples=["service_water"])
    message: str = Field(..., min_length=1, max_length=500, examples=["Water refill"])
    priority: AlertPriority = Field(default=AlertPriority.MEDIUM, examples=["medium"])


class AlertResolveRequest(StrictModel):
    """Optional body for resolving an alert."""
    resolved_by: Optional[str] = Field(None, max_length=100, alias="resolvedBy")
    # Client clocks are not trusted; the server stamps resolved_at itself
    resolved_at: Optional[datetime] = Field(None, alias="resolvedAt")


class TableStatusUpdate(StrictModel):
    """Request schema for setting a table's status."""
    status: TableStatus = Field(..., examples=["occupied"])
    party_size: Optional[int] = Field(None, ge=0, le=100, examples=[4])


class ServiceRequestCreate(StrictModel):
    """Service request sent by the customer table page."""
    restaurant_id: str = Field(..., min_length=1, max_length=100, alias="restaurantId")
    table_number: int = Field(..., ge=1, alias="tableNumber")
    service_type: ServiceType = Field(..., alias="serviceType")
    urgent: bool = False

    @property
    def priority(self) -> AlertPriority:
        return AlertPriority.HIGH if self.urgent else AlertPriority.MEDIUM


class DeliveryConfirmation(StrictModel):
    """A staff device reporting that a push arrived."""
    alert_id: int = Field(..., alias="alertId")
    delivered_at: Optional[datetime] = Field(None, alias="deliveredAt")


class NotificationActionRequest(StrictModel):
    """A staff device reporting which notification button was pressed."""
    alert_id: Optional[int] = Field(None, alias="alertId")
    action: Optional[str] = Field(None, max_length=50)
    resolved_by: Optional[str] = Field(None, max_length=100, alias="resolvedBy")
    restaurant_id: Optional[str] = Field(None, max_length=100, alias="restaurantId")
    table_number: Optional[int] = Field(None, ge=1, alias="tableNumber")
    open_surfaces: List[str] = Field(default_factory=list, alias="openSurfaces")


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class AlertResponse(BaseModel):
    """Response schema for a single alert."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    restaurant_id: str
    table_number: int
    alert_type: AlertType
    message: str
    priority: AlertPriority
    resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class TableStateResponse(BaseModel):
    """Response schema for a table's occupancy."""
    model_config = ConfigDict(from_attributes=True)

    restaurant_id: str
    table_number: int
    status: TableStatus
    party_size: int
    seated_at: Optional[datetime] = None
    last_activity: datetime
    estimated_duration: int


class SuccessResponse(BaseModel):
    success: bool = True


class AlertCreateResponse(BaseModel):
    """Response after creating an alert."""
    id: int
    success: bool = True


class ServiceRequestResponse(BaseModel):
    """Response after a customer service request."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    alert_id: int = Field(..., serialization_alias="alertId")


class NotificationActionResponse(BaseModel):
    """What the staff device should do after a notification click."""
    success: bool = True
    action: str
    url: Optional[str] = None
    outcome: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    push_service: str
    pending_notifications: int
    timestamp: datetime


__all__ = [
    "ScanType",
    "ServiceType",
    "SERVICE_MESSAGES",
    "AlertCreate",
    "AlertResolveRequest",
    "TableStatusUpdate",
    "ServiceRequestCreate",
    "DeliveryConfirmation",
    "NotificationActionRequest",
    "AlertResponse",
    "TableStateResponse",
    "SuccessResponse",
    "AlertCreateResponse",
    "ServiceRequestResponse",
    "NotificationActionResponse",
    "ErrorResponse",
    "HealthResponse",
]
