"""
Tests for the table state store.
"""
import pytest
from sqlalchemy import func, select

from app.core.exceptions import InvalidTransitionError
from app.models import Restaurant, TableState, TableStatus
from app.services.tables import TableStateStore, allowed_sources


def naive(dt):
    return dt.replace(tzinfo=None) if dt is not None else None


async def row_count(session, restaurant_id, table_number):
    result = await session.execute(
        select(func.count(TableState.id)).where(
            TableState.restaurant_id == restaurant_id,
            TableState.table_number == table_number,
        )
    )
    return result.scalar_one()


class TestTransitionUpsert:
    """Tests for TableStateStore.transition."""

    async def test_first_transition_creates_row(self, session, tables, clock):
        """Should create the row with the requested status and defaults."""
        table = await tables.transition(session, "rest1", 5, TableStatus.AVAILABLE)

        assert table.status == TableStatus.AVAILABLE
        assert table.party_size == 0
        assert table.seated_at is None
        assert table.estimated_duration == 60
        assert naive(table.last_activity) == naive(clock.now)

    async def test_repeated_transitions_keep_one_row(self, session, tables, clock):
        """Should never create a second row for the same table."""
        for status in (TableStatus.OCCUPIED, TableStatus.CLEANING, TableStatus.AVAILABLE, TableStatus.OCCUPIED):
            clock.advance(minutes=1)
            await tables.transition(session, "rest1", 7, status)

        assert await row_count(session, "rest1", 7) == 1

    async def test_same_table_number_in_other_restaurant_is_separate(self, session, tables, clock):
        """Should scope table rows by restaurant."""
        await tables.transition(session, "rest1", 1, TableStatus.OCCUPIED)
        await tables.transition(session, "rest2", 1, TableStatus.RESERVED)

        assert await row_count(session, "rest1", 1) == 1
        assert await row_count(session, "rest2", 1) == 1

    async def test_reaffirming_occupancy_keeps_seating_clock(self, session, tables, clock):
        """Should keep seated_at and update party size on a second occupied transition."""
        first = await tables.transition(session, "rest1", 5, TableStatus.OCCUPIED, party_size=2)
        seated_at = naive(first.seated_at)

        clock.advance(minutes=20)
        second = await tables.transition(session, "rest1", 5, TableStatus.OCCUPIED, party_size=4)

        assert await row_count(session, "rest1", 5) == 1
        assert naive(second.seated_at) == seated_at
        assert second.party_size == 4
        assert naive(second.last_activity) == naive(clock.now)

    async def test_leaving_occupied_resets_seating_clock(self, session, tables, clock):
        """Should start a new seating clock after an intervening non-occupied state."""
        await tables.transition(session, "rest1", 5, TableStatus.OCCUPIED)

        clock.advance(minutes=45)
        cleared = await tables.transition(session, "rest1", 5, TableStatus.CLEANING)
        assert cleared.seated_at is None

        clock.advance(minutes=10)
        reseated = await tables.transition(session, "rest1", 5, TableStatus.OCCUPIED)
        assert naive(reseated.seated_at) == naive(clock.now)

    async def test_party_size_preserved_when_omitted(self, session, tables, clock):
        """Should not reset party size when the caller does not send one."""
        await tables.transition(session, "rest1", 2, TableStatus.OCCUPIED, party_size=3)
        table = await tables.transition(session, "rest1", 2, TableStatus.NEEDS_ATTENTION)

        assert table.party_size == 3

    async def test_last_activity_refreshed_without_status_change(self, session, tables, clock):
        """Should refresh last_activity even when the status is unchanged."""
        first = await tables.transition(session, "rest1", 9, TableStatus.AVAILABLE)
        first_activity = naive(first.last_activity)

        clock.advance(seconds=30)
        second = await tables.transition(session, "rest1", 9, TableStatus.AVAILABLE)

        assert naive(second.last_activity) > first_activity

    async def test_any_status_may_follow_any_other(self, session, tables, clock):
        """Should accept transitions outside the conventional order by default."""
        await tables.transition(session, "rest1", 3, TableStatus.CLOSED)
        table = await tables.transition(session, "rest1", 3, TableStatus.OCCUPIED)

        assert table.status == TableStatus.OCCUPIED

    async def test_restaurant_created_lazily(self, session, tables, clock):
        """Should create the restaurant on first use without duplicating it."""
        await tables.transition(session, "bistro", 1, TableStatus.OCCUPIED)
        await tables.transition(session, "bistro", 2, TableStatus.OCCUPIED)

        result = await session.execute(select(Restaurant).where(Restaurant.id == "bistro"))
        restaurants = result.scalars().all()
        assert len(restaurants) == 1
        assert restaurants[0].name == "bistro"


class TestStrictTransitions:
    """Tests for the optional transition map."""

    async def test_strict_mode_rejects_unlisted_transition(self, session, clock):
        """Should raise when strict mode forbids the change."""
        strict = TableStateStore(strict=True)
        await strict.transition(session, "rest1", 4, TableStatus.CLOSED)

        with pytest.raises(InvalidTransitionError):
            await strict.transition(session, "rest1", 4, TableStatus.OCCUPIED)

        rows = await strict.list(session, "rest1")
        assert rows[0].status == TableStatus.CLOSED

    async def test_strict_mode_allows_listed_transition(self, session, clock):
        """Should accept conventional transitions and re-affirmations."""
        strict = TableStateStore(strict=True)
        await strict.transition(session, "rest1", 4, TableStatus.AVAILABLE)
        await strict.transition(session, "rest1", 4, TableStatus.OCCUPIED)
        table = await strict.transition(session, "rest1", 4, TableStatus.OCCUPIED)

        assert table.status == TableStatus.OCCUPIED

    async def test_rejected_write_leaves_row_untouched(self, session, clock):
        """Should report the stored status and keep the row as it was."""
        strict = TableStateStore(strict=True)
        await strict.transition(session, "rest1", 6, TableStatus.AVAILABLE)
        closed = await strict.transition(session, "rest1", 6, TableStatus.CLOSED, party_size=0)
        closed_activity = naive(closed.last_activity)

        clock.advance(minutes=5)
        with pytest.raises(InvalidTransitionError) as exc_info:
            await strict.transition(session, "rest1", 6, TableStatus.OCCUPIED, party_size=3)

        assert exc_info.value.current == "closed"
        assert exc_info.value.requested == "occupied"
        rows = await strict.list(session, "rest1")
        assert rows[0].status == TableStatus.CLOSED
        assert rows[0].party_size == 0
        assert rows[0].seated_at is None
        assert naive(rows[0].last_activity) == closed_activity
        assert await row_count(session, "rest1", 6) == 1

    def test_allowed_sources(self):
        """Should list every status that may lead to the target, including itself."""
        assert allowed_sources(TableStatus.CLOSED) == {
            TableStatus.AVAILABLE,
            TableStatus.RESERVED,
            TableStatus.CLEANING,
            TableStatus.CLOSED,
        }
        assert TableStatus.CLOSED not in allowed_sources(TableStatus.OCCUPIED)


class TestListTables:
    """Tests for TableStateStore.list."""

    async def test_ordered_by_table_number(self, session, tables, clock):
        """Should return tables in ascending table number order."""
        for number in (12, 3, 7):
            await tables.transition(session, "rest1", number, TableStatus.AVAILABLE)
        await tables.transition(session, "other", 1, TableStatus.AVAILABLE)

        rows = await tables.list(session, "rest1")

        assert [r.table_number for r in rows] == [3, 7, 12]

    async def test_empty_restaurant(self, session, tables):
        """Should return an empty list for an unknown restaurant."""
        assert await tables.list(session, "nobody") == []
