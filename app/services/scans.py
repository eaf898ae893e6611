"""
Scan Recorder

Persists QR scan events. A menu scan at a table also marks the table
occupied; that second write is best-effort and never undoes the scan.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.models import Scan, ScanType, TableStatus, utcnow
from app.services.restaurants import ensure_restaurant
from app.services.tables import TableStateStore

logger = logging.getLogger(__name__)


def _clip(value: Optional[str], length: int = 500) -> Optional[str]:
    return value[:length] if value else None


@dataclass
class ClientMeta:
    """Request metadata captured with each scan."""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None


class ScanRecorder:
    """Append-only scan log with the menu-scan occupancy side effect."""

    def __init__(self, tables: TableStateStore):
        self.tables = tables

    async def record(
        self,
        db: AsyncSession,
        restaurant_id: str,
        scan_type: ScanType,
        table_number: Optional[int] = None,
        meta: Optional[ClientMeta] = None,
    ) -> int:
        """
        Record one scan and return its id.

        Raises:
            StorageError: the scan could not be written
        """
        scan_type = ScanType(scan_type)
        meta = meta or ClientMeta()

        try:
            await ensure_restaurant(db, restaurant_id)
            scan = Scan(
                restaurant_id=restaurant_id,
                scan_type=scan_type,
                table_number=table_number,
                user_agent=_clip(meta.user_agent),
                ip_address=meta.ip_address,
                referrer=_clip(meta.referrer),
                timestamp=utcnow(),
            )
            db.add(scan)
            await db.commit()
            scan_id = scan.id
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Scan insert failed for {restaurant_id}/{scan_type.value}: {e}")
            raise StorageError("scan insert", e) from e

        logger.info(
            f"Scan #{scan_id}: {restaurant_id} {scan_type.value}"
            + (f" table {table_number}" if table_number is not None else "")
        )

        if scan_type == ScanType.MENU and table_number is not None:
            await self._mark_occupied(db, restaurant_id, table_number)

        return scan_id

    async def _mark_occupied(self, db: AsyncSession, restaurant_id: str, table_number: int) -> None:
        # A menu scan is evidence of occupancy; the scan itself is already committed.
        try:
            await self.tables.transition(db, restaurant_id, table_number, TableStatus.OCCUPIED)
        except Exception:
            logger.exception(
                f"Occupancy update after menu scan failed for {restaurant_id}#{table_number}"
            )
