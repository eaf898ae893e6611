"""
Table State Store

Per-table occupancy tracking. Every write is a single
INSERT ... ON CONFLICT (restaurant_id, table_number) DO UPDATE, so concurrent
transitions for the same table never produce a second row and never lose an
update to a read-then-write gap.

Status transitions are permissive by default: any status may follow any
other. Setting STRICT_TABLE_TRANSITIONS enables the ALLOWED_TRANSITIONS map,
enforced in the upsert's DO UPDATE ... WHERE clause.
"""

import logging
from typing import Optional

from sqlalchemy import and_, case, null, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransitionError, StorageError
from app.database import insert_for
from app.models import TableState, TableStatus, utcnow
from app.services.restaurants import ensure_restaurant

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[TableStatus, set[TableStatus]] = {
    TableStatus.AVAILABLE: {
        TableStatus.OCCUPIED,
        TableStatus.RESERVED,
        TableStatus.CLEANING,
        TableStatus.NEEDS_ATTENTION,
        TableStatus.CLOSED,
    },
    TableStatus.RESERVED: {TableStatus.OCCUPIED, TableStatus.AVAILABLE, TableStatus.CLOSED},
    TableStatus.OCCUPIED: {TableStatus.NEEDS_ATTENTION, TableStatus.CLEANING, TableStatus.AVAILABLE},
    TableStatus.NEEDS_ATTENTION: {TableStatus.OCCUPIED, TableStatus.CLEANING, TableStatus.AVAILABLE},
    TableStatus.CLEANING: {TableStatus.AVAILABLE, TableStatus.CLOSED},
    TableStatus.CLOSED: {TableStatus.AVAILABLE},
}


def allowed_sources(new_status: TableStatus) -> set[TableStatus]:
    """Statuses a table may be in for ``new_status`` to be accepted."""
    sources = {status for status, targets in ALLOWED_TRANSITIONS.items() if new_status in targets}
    sources.add(new_status)
    return sources


class TableStateStore:
    """Idempotent, upsert-based table status writes."""

    def __init__(self, strict: bool = False, default_estimated_duration: int = 60):
        self.strict = strict
        self.default_estimated_duration = default_estimated_duration

    async def transition(
        self,
        db: AsyncSession,
        restaurant_id: str,
        table_number: int,
        new_status: TableStatus,
        party_size: Optional[int] = None,
    ) -> TableState:
        """
        Set a table's status, creating the row on first use.

        - Entering ``occupied`` starts the seating clock unless the table is
          already occupied, in which case the original seated_at is kept.
        - Any other status clears the seating clock.
        - ``party_size`` is only written when given.
        - ``last_activity`` is refreshed on every call.

        Raises:
            InvalidTransitionError: strict mode rejected the change
            StorageError: the database write failed
        """
        new_status = TableStatus(new_status)
        try:
            await ensure_restaurant(db, restaurant_id)

            now = utcnow()
            stmt = insert_for(db, TableState).values(
                restaurant_id=restaurant_id,
                table_number=table_number,
                status=new_status,
                party_size=party_size if party_size is not None else 0,
                seated_at=now if new_status == TableStatus.OCCUPIED else None,
                last_activity=now,
                estimated_duration=self.default_estimated_duration,
            )

            current = TableState.__table__.c
            if new_status == TableStatus.OCCUPIED:
                seated_at = case(
                    (
                        and_(
                            current.status == TableStatus.OCCUPIED,
                            current.seated_at.is_not(None),
                        ),
                        current.seated_at,
                    ),
                    else_=stmt.excluded.seated_at,
                )
            else:
                seated_at = null()

            values = {
                "status": stmt.excluded.status,
                "seated_at": seated_at,
                "last_activity": stmt.excluded.last_activity,
            }
            if party_size is not None:
                values["party_size"] = stmt.excluded.party_size

            # The rule is checked against the row as the upsert sees it
            allowed = None
            if self.strict:
                allowed = current.status.in_(sorted(allowed_sources(new_status)))

            stmt = stmt.on_conflict_do_update(
                index_elements=["restaurant_id", "table_number"],
                set_=values,
                where=allowed,
            )
            result = await db.execute(stmt)

            if result.rowcount == 0:
                blocked = await self._current_status(db, restaurant_id, table_number)
                raise InvalidTransitionError(
                    blocked.value if blocked else "unknown", new_status.value
                )

            await db.commit()

            result = await db.execute(
                select(TableState)
                .where(
                    TableState.restaurant_id == restaurant_id,
                    TableState.table_number == table_number,
                )
                .execution_options(populate_existing=True)
            )
            table = result.scalar_one()

        except InvalidTransitionError as e:
            await db.rollback()
            logger.warning(f"Table {restaurant_id}#{table_number}: {e}")
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Table transition failed for {restaurant_id}#{table_number}: {e}")
            raise StorageError("table transition", e) from e

        logger.info(
            f"Table {restaurant_id}#{table_number} -> {new_status.value}"
            f" (party={table.party_size})"
        )
        return table

    async def _current_status(
        self,
        db: AsyncSession,
        restaurant_id: str,
        table_number: int,
    ) -> Optional[TableStatus]:
        result = await db.execute(
            select(TableState.status).where(
                TableState.restaurant_id == restaurant_id,
                TableState.table_number == table_number,
            )
        )
        return result.scalar_one_or_none()

    async def list(self, db: AsyncSession, restaurant_id: str) -> list[TableState]:
        """All tables of a restaurant, ordered by table number."""
        try:
            result = await db.execute(
                select(TableState)
                .where(TableState.restaurant_id == restaurant_id)
                .order_by(TableState.table_number.asc())
            )
        except SQLAlchemyError as e:
            logger.error(f"Table listing failed for {restaurant_id}: {e}")
            raise StorageError("table listing", e) from e
        return list(result.scalars().all())
