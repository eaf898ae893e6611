"""
Alert Ledger

Open/resolved lifecycle of table alerts.

    open ──resolve──▶ resolved   (terminal)

Resolution is one conditional UPDATE ... WHERE resolved = false. When two
staff devices acknowledge the same alert at once, exactly one update matches;
the other sees zero rows affected and reports ALREADY_RESOLVED, leaving the
first resolution timestamp in place.
"""

import enum
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.models import Alert, AlertPriority, AlertType, utcnow
from app.services.restaurants import ensure_restaurant

logger = logging.getLogger(__name__)


class ResolveOutcome(str, enum.Enum):
    """Result of a resolve call. Every value is a success for the caller."""
    RESOLVED = "resolved"
    ALREADY_RESOLVED = "already_resolved"
    NOT_FOUND = "not_found"


class AlertLedger:
    """Create, resolve and list table alerts."""

    async def create(
        self,
        db: AsyncSession,
        restaurant_id: str,
        table_number: int,
        alert_type: AlertType,
        message: str,
        priority: AlertPriority = AlertPriority.MEDIUM,
    ) -> Alert:
        """
        Insert a new open alert.

        Identical alerts for the same table are not merged; each call
        creates its own row.
        """
        try:
            await ensure_restaurant(db, restaurant_id)
            alert = Alert(
                restaurant_id=restaurant_id,
                table_number=table_number,
                alert_type=AlertType(alert_type),
                message=message,
                priority=AlertPriority(priority),
                resolved=False,
                created_at=utcnow(),
            )
            db.add(alert)
            await db.commit()
            await db.refresh(alert)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Alert creation failed for {restaurant_id}#{table_number}: {e}")
            raise StorageError("alert creation", e) from e

        logger.info(
            f"Alert #{alert.id} created: {restaurant_id} table {table_number}"
            f" {alert.alert_type.value} ({alert.priority.value})"
        )
        return alert

    async def resolve(
        self,
        db: AsyncSession,
        alert_id: int,
        resolved_by: Optional[str] = None,
    ) -> ResolveOutcome:
        """Mark an alert resolved unless it already is."""
        try:
            result = await db.execute(
                update(Alert)
                .where(Alert.id == alert_id, Alert.resolved.is_(False))
                .values(resolved=True, resolved_at=utcnow(), resolved_by=resolved_by)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

            if result.rowcount == 1:
                logger.info(f"Alert #{alert_id} resolved by {resolved_by or 'unknown'}")
                return ResolveOutcome.RESOLVED

            exists = await db.execute(select(Alert.id).where(Alert.id == alert_id))
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Alert resolve failed for #{alert_id}: {e}")
            raise StorageError("alert resolve", e) from e

        if exists.scalar_one_or_none() is None:
            logger.info(f"Resolve for unknown alert #{alert_id} ignored")
            return ResolveOutcome.NOT_FOUND

        logger.info(f"Alert #{alert_id} was already resolved")
        return ResolveOutcome.ALREADY_RESOLVED

    async def get(self, db: AsyncSession, alert_id: int) -> Optional[Alert]:
        try:
            result = await db.execute(
                select(Alert)
                .where(Alert.id == alert_id)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise StorageError("alert lookup", e) from e
        return result.scalar_one_or_none()

    async def list_open(
        self,
        db: AsyncSession,
        restaurant_id: str,
        limit: int = 50,
    ) -> list[Alert]:
        """Unresolved alerts for a restaurant, newest first."""
        try:
            result = await db.execute(
                select(Alert)
                .where(Alert.restaurant_id == restaurant_id, Alert.resolved.is_(False))
                .order_by(Alert.created_at.desc(), Alert.id.desc())
                .limit(limit)
            )
        except SQLAlchemyError as e:
            logger.error(f"Alert listing failed for {restaurant_id}: {e}")
            raise StorageError("alert listing", e) from e
        return list(result.scalars().all())
