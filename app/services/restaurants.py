"""Lazy tenant creation shared by the scan, table and alert services."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import insert_for
from app.models import Restaurant


async def ensure_restaurant(
    db: AsyncSession,
    restaurant_id: str,
    name: Optional[str] = None,
) -> None:
    """
    Insert the restaurant if it does not exist yet.

    An existing row is left untouched, so a display name set at
    registration is never overwritten. Does not commit.
    """
    stmt = (
        insert_for(db, Restaurant)
        .values(id=restaurant_id, name=name or restaurant_id)
        .on_conflict_do_nothing(index_elements=["id"])
    )
    await db.execute(stmt)
