"""
FastAPI Application Entry Point

QR table service: scan tracking, table occupancy, staff alerts and
push-notification acknowledgment.

Endpoints:
    - GET  /track/{restaurant_id}/{scan_type}: Record a QR scan and redirect
    - GET  /tables/{restaurant_id}/alerts: Open alerts
    - POST /tables/{restaurant_id}/alerts: Create alert
    - PUT  /tables/{restaurant_id}/alerts/{alert_id}/resolve: Resolve alert
    - GET  /tables/{restaurant_id}/status: Table occupancy
    - PUT  /tables/{restaurant_id}/{table_number}/status: Set table status
    - POST /service/request: Customer service request
    - POST /notifications/delivered: Push delivery confirmation
    - POST /notifications/action: Notification button callback
    - GET  /health: System health check

None of these endpoints authenticate the caller; access control belongs to
the gateway in front of this service.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings, setup_logging
from app.core.exceptions import InvalidTransitionError, StorageError
from app.database import Database, get_db
from app.models import ScanType
from app.schemas import (
    SERVICE_MESSAGES,
    AlertCreate,
    AlertCreateResponse,
    AlertResolveRequest,
    AlertResponse,
    DeliveryConfirmation,
    ErrorResponse,
    HealthResponse,
    NotificationActionRequest,
    NotificationActionResponse,
    ServiceRequestCreate,
    ServiceRequestResponse,
    SuccessResponse,
    TableStateResponse,
    TableStatusUpdate,
)
from app.services.acknowledgment import AcknowledgmentContext, AcknowledgmentHandler
from app.services.alerts import AlertLedger
from app.services.notifications import BasePushService, get_push_service
from app.services.notifications.dispatcher import ACKNOWLEDGE_ACTION, NotificationDispatcher
from app.services.scans import ClientMeta, ScanRecorder
from app.services.tables import TableStateStore

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

RestaurantId = Annotated[str, Path(min_length=1, max_length=100)]


# =============================================================================
# SERVICE WIRING
# =============================================================================

def install_services(
    app: FastAPI,
    database: Database,
    push_service: BasePushService,
    config: Settings,
) -> None:
    """
    Build the service graph and attach it to ``app.state``.

    Each component receives its collaborators explicitly; routes reach them
    through the request's app.
    """
    tables = TableStateStore(
        strict=config.strict_table_transitions,
        default_estimated_duration=config.default_estimated_duration,
    )
    ledger = AlertLedger()
    dispatcher = NotificationDispatcher(push_service, config)

    app.state.database = database
    app.state.tables = tables
    app.state.scans = ScanRecorder(tables)
    app.state.ledger = ledger
    app.state.dispatcher = dispatcher
    app.state.acknowledgments = AcknowledgmentHandler(ledger, dispatcher, config.control_center_path)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Dispatch: {settings.notification_dispatch_mode.value}")
    logger.info("=" * 60)

    database = Database.from_settings(settings)
    await database.connect()
    logger.info("✅ Database initialized")

    push_service = get_push_service()
    logger.info(f"✅ Push Service: {push_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    install_services(app, database, push_service, settings)
    logger.info("✅ Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await app.state.dispatcher.drain(settings.shutdown_drain_seconds)
    await database.disconnect()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "QR-driven table management: scan tracking, table occupancy, "
        "staff alerts and push-notification acknowledgment."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def client_meta(request: Request) -> ClientMeta:
    """Scan metadata from the request headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return ClientMeta(
        user_agent=request.headers.get("user-agent"),
        ip_address=ip_address,
        referrer=request.headers.get("referer"),
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
        "control_center": settings.control_center_url,
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Verify the database and push service are reachable."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    dispatcher: NotificationDispatcher = request.app.state.dispatcher
    push_status = "healthy" if await dispatcher.push_service.health_check() else "unhealthy"

    overall = "operational" if db_status == push_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        push_service=push_status,
        pending_notifications=dispatcher.pending_count,
        timestamp=datetime.now(),
    )


# =============================================================================
# SCAN TRACKING
# =============================================================================

@app.get(
    "/track/{restaurant_id}/{scan_type}",
    tags=["Scans"],
    summary="Record QR Scan",
    status_code=status.HTTP_307_TEMPORARY_REDIRECT,
)
async def track_scan(
    request: Request,
    restaurant_id: RestaurantId,
    scan_type: ScanType,
    table: Optional[int] = Query(None, ge=1),
    redirect: Optional[str] = Query(None, max_length=2000),
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """
    Record a scan, mark the table occupied on menu scans, then send the
    customer on to the destination page.
    """
    target = redirect or settings.scan_redirect_url
    if not target.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="redirect must be an http(s) URL")

    recorder: ScanRecorder = request.app.state.scans
    await recorder.record(db, restaurant_id, scan_type, table, client_meta(request))

    return RedirectResponse(url=target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


# =============================================================================
# TABLE ALERTS
# =============================================================================

@app.get(
    "/tables/{restaurant_id}/alerts",
    response_model=list[AlertResponse],
    tags=["Alerts"],
)
async def list_alerts(
    request: Request,
    restaurant_id: RestaurantId,
    db: AsyncSession = Depends(get_db),
) -> list[AlertResponse]:
    """Open alerts, newest first."""
    ledger: AlertLedger = request.app.state.ledger
    alerts = await ledger.list_open(db, restaurant_id)
    return [AlertResponse.model_validate(a) for a in alerts]


@app.post(
    "/tables/{restaurant_id}/alerts",
    response_model=AlertCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={500: {"model": ErrorResponse}},
    tags=["Alerts"],
)
async def create_alert(
    request: Request,
    restaurant_id: RestaurantId,
    payload: AlertCreate,
    db: AsyncSession = Depends(get_db),
) -> AlertCreateResponse:
    """Create an alert and push it to staff devices without waiting on delivery."""
    ledger: AlertLedger = request.app.state.ledger
    alert = await ledger.create(
        db,
        restaurant_id,
        payload.table_number,
        payload.alert_type,
        payload.message,
        payload.priority,
    )
    request.app.state.dispatcher.notify_new_alert(alert)
    return AlertCreateResponse(id=alert.id, success=True)


@app.put(
    "/tables/{restaurant_id}/alerts/{alert_id}/resolve",
    response_model=SuccessResponse,
    tags=["Alerts"],
)
async def resolve_alert(
    request: Request,
    restaurant_id: RestaurantId,
    alert_id: int,
    payload: Optional[AlertResolveRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    """Resolve an alert. Repeated or unknown ids succeed without changes."""
    handler: AcknowledgmentHandler = request.app.state.acknowledgments
    await handler.handle(
        db,
        AcknowledgmentContext(
            alert_id=alert_id,
            action=ACKNOWLEDGE_ACTION,
            resolved_by=(payload.resolved_by if payload else None) or "dashboard",
            restaurant_id=restaurant_id,
        ),
    )
    return SuccessResponse(success=True)


# =============================================================================
# TABLE STATUS
# =============================================================================

@app.get(
    "/tables/{restaurant_id}/status",
    response_model=list[TableStateResponse],
    tags=["Tables"],
)
async def list_table_status(
    request: Request,
    restaurant_id: RestaurantId,
    db: AsyncSession = Depends(get_db),
) -> list[TableStateResponse]:
    """All tables of the restaurant ordered by number."""
    tables: TableStateStore = request.app.state.tables
    rows = await tables.list(db, restaurant_id)
    return [TableStateResponse.model_validate(r) for r in rows]


@app.put(
    "/tables/{restaurant_id}/{table_number}/status",
    response_model=SuccessResponse,
    responses={409: {"model": ErrorResponse}},
    tags=["Tables"],
)
async def update_table_status(
    request: Request,
    restaurant_id: RestaurantId,
    table_number: Annotated[int, Path(ge=1)],
    payload: TableStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    tables: TableStateStore = request.app.state.tables
    await tables.transition(db, restaurant_id, table_number, payload.status, payload.party_size)
    return SuccessResponse(success=True)


# =============================================================================
# CUSTOMER SERVICE REQUESTS
# =============================================================================

@app.post(
    "/service/request",
    response_model=ServiceRequestResponse,
    tags=["Service"],
    summary="Customer Service Request",
)
async def service_request(
    request: Request,
    payload: ServiceRequestCreate,
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestResponse:
    """Turn a table-page button press into a service alert."""
    logger.info(
        f"Service request: {payload.restaurant_id} table {payload.table_number}"
        f" {payload.service_type.value}{' (urgent)' if payload.urgent else ''}"
    )

    ledger: AlertLedger = request.app.state.ledger
    alert = await ledger.create(
        db,
        payload.restaurant_id,
        payload.table_number,
        payload.service_type.alert_type,
        SERVICE_MESSAGES[payload.service_type],
        payload.priority,
    )
    request.app.state.dispatcher.notify_new_alert(alert)
    return ServiceRequestResponse(success=True, alert_id=alert.id)


# =============================================================================
# NOTIFICATION CALLBACKS
# =============================================================================

@app.post(
    "/notifications/delivered",
    response_model=SuccessResponse,
    tags=["Notifications"],
)
async def notification_delivered(
    request: Request,
    payload: DeliveryConfirmation,
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    """Device-side delivery receipt. Recording failures are not reported as errors."""
    dispatcher: NotificationDispatcher = request.app.state.dispatcher
    await dispatcher.confirm_delivery(db, payload.alert_id, payload.delivered_at)
    return SuccessResponse(success=True)


@app.post(
    "/notifications/action",
    response_model=NotificationActionResponse,
    tags=["Notifications"],
)
async def notification_action(
    request: Request,
    payload: NotificationActionRequest,
    db: AsyncSession = Depends(get_db),
) -> NotificationActionResponse:
    """
    A button on a pushed notification was pressed.

    ``acknowledge`` resolves the alert; anything else returns the surface
    the device should focus or open.
    """
    handler: AcknowledgmentHandler = request.app.state.acknowledgments
    outcome = await handler.handle(
        db,
        AcknowledgmentContext(
            alert_id=payload.alert_id,
            action=payload.action,
            resolved_by=payload.resolved_by or "mobile-notification",
            restaurant_id=payload.restaurant_id,
            table_number=payload.table_number,
            open_surfaces=payload.open_surfaces,
        ),
    )
    return NotificationActionResponse(
        success=True,
        action=outcome.action,
        url=outcome.url,
        outcome=outcome.resolve_outcome.value if outcome.resolve_outcome else None,
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Persistence failures: generic 500, no internals unless debugging."""
    logger.error(f"Storage error on {request.method} {request.url.path}: {exc.operation}")

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Storage Unavailable",
            detail=str(exc.original) if settings.debug else "The request could not be completed",
        ).model_dump(),
    )


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content=ErrorResponse(error="Invalid Transition", detail=str(exc)).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
