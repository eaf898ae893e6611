"""
Tests for the scan recorder.
"""
import pytest
from sqlalchemy import func, select

from app.core.exceptions import StorageError
from app.models import Restaurant, Scan, ScanType, TableStatus
from app.services.restaurants import ensure_restaurant
from app.services.scans import ClientMeta, ScanRecorder


class FailingTableStore:
    """Table store whose writes always fail."""

    def __init__(self):
        self.calls = 0

    async def transition(self, db, restaurant_id, table_number, new_status, party_size=None):
        self.calls += 1
        raise StorageError("table transition")


class RecordingTableStore:
    def __init__(self):
        self.calls = []

    async def transition(self, db, restaurant_id, table_number, new_status, party_size=None):
        self.calls.append((restaurant_id, table_number, new_status))


class TestRecordScan:
    """Tests for ScanRecorder.record."""

    async def test_menu_scan_marks_table_occupied(self, session, tables, clock):
        """Should record the scan and mark the scanned table occupied."""
        recorder = ScanRecorder(tables)

        scan_id = await recorder.record(session, "rest1", ScanType.MENU, table_number=3)

        assert scan_id > 0
        rows = await tables.list(session, "rest1")
        assert len(rows) == 1
        assert rows[0].table_number == 3
        assert rows[0].status == TableStatus.OCCUPIED
        assert rows[0].seated_at is not None

    async def test_scan_survives_failed_occupancy_update(self, session):
        """Should keep the scan and return its id when the table update fails."""
        failing = FailingTableStore()
        recorder = ScanRecorder(failing)

        scan_id = await recorder.record(session, "rest1", ScanType.MENU, table_number=3)

        assert failing.calls == 1
        stored = await session.get(Scan, scan_id)
        assert stored is not None
        assert stored.table_number == 3

    @pytest.mark.parametrize("scan_type", [ScanType.REVIEW, ScanType.WIFI, ScanType.SURVEY, ScanType.CONTACT])
    async def test_non_menu_scans_leave_tables_alone(self, session, scan_type):
        """Should only touch table state for menu scans."""
        store = RecordingTableStore()
        recorder = ScanRecorder(store)

        await recorder.record(session, "rest1", scan_type, table_number=3)

        assert store.calls == []

    async def test_menu_scan_without_table(self, session):
        """Should not touch table state when no table number is given."""
        store = RecordingTableStore()
        recorder = ScanRecorder(store)

        await recorder.record(session, "rest1", ScanType.MENU)

        assert store.calls == []

    async def test_scans_are_appended(self, session, tables, clock):
        """Should add one row per scan, never updating earlier ones."""
        recorder = ScanRecorder(tables)

        ids = [await recorder.record(session, "rest1", ScanType.MENU, table_number=3) for _ in range(3)]

        assert len(set(ids)) == 3
        result = await session.execute(select(func.count(Scan.id)))
        assert result.scalar_one() == 3

    async def test_client_metadata_stored(self, session, tables):
        """Should keep request metadata and clip long values."""
        recorder = ScanRecorder(tables)
        meta = ClientMeta(user_agent="x" * 800, ip_address="10.0.0.7", referrer="https://example.org/menu")

        scan_id = await recorder.record(session, "rest1", ScanType.REVIEW, meta=meta)

        stored = await session.get(Scan, scan_id)
        assert len(stored.user_agent) == 500
        assert stored.ip_address == "10.0.0.7"
        assert stored.referrer == "https://example.org/menu"
        assert stored.scan_type == ScanType.REVIEW


class TestLazyRestaurant:
    """Tests for ensure_restaurant."""

    async def test_existing_name_not_overwritten(self, session, tables):
        """Should leave an existing restaurant untouched."""
        await ensure_restaurant(session, "bistro", name="Le Bistro")
        await session.commit()

        await ScanRecorder(tables).record(session, "bistro", ScanType.WIFI)

        restaurant = await session.get(Restaurant, "bistro")
        assert restaurant.name == "Le Bistro"
