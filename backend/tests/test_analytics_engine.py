"""
Analytics Engine Tests

Verify:
- Locked-time totals come from replayed history, across windows
- History before the window start still counts for the in-window part
- Only the user's active relationships are included
- Dashboard and admin counts
- The engine never writes
"""
from datetime import timedelta

import pytest

from locktime.models.lock_history import LockHistoryEntry
from locktime.models.relationship import RelationshipStatus
from locktime.services.analytics_engine import AnalyticsEngine
from locktime.services.lock_service import LockService
from locktime.services.task_service import TaskService

DAY = 86400
HOUR = 3600


@pytest.fixture
def lock_service(db):
    return LockService(db)


@pytest.fixture
def engine(db):
    return AnalyticsEngine(db)


class TestLockedTimeTotals:
    """Trailing-window totals."""

    def test_running_lock_counts_until_now(self, engine, lock_service, pairing, keyholder, sub, t0):
        lock_service.create_lock(pairing.id, keyholder.id, "Run", 10 * DAY, now=t0)
        totals = engine.locked_time_totals(sub.id, now=t0 + timedelta(hours=5))

        assert [t.window_days for t in totals] == [7, 30]
        assert all(t.total_seconds == 5 * HOUR for t in totals)
        # Keyholder sees the same pairing
        assert engine.locked_time_totals(keyholder.id, now=t0 + timedelta(hours=5))[0].total_seconds == 5 * HOUR

    def test_lock_older_than_short_window(self, engine, lock_service, pairing, keyholder, sub, t0):
        lock_service.create_lock(pairing.id, keyholder.id, "Long", 60 * DAY, now=t0)
        now = t0 + timedelta(days=10)
        totals = {t.window_days: t.total_seconds for t in engine.locked_time_totals(sub.id, now=now)}
        assert totals[7] == 7 * DAY
        assert totals[30] == 10 * DAY

    def test_paused_time_excluded(self, engine, lock_service, pairing, keyholder, sub, t0):
        lock = lock_service.create_lock(pairing.id, keyholder.id, "Pause", 10 * DAY, now=t0)
        lock_service.pause(lock.id, keyholder.id, now=t0 + timedelta(hours=2))
        lock_service.resume(lock.id, keyholder.id, now=t0 + timedelta(hours=10))
        lock_service.complete(lock.id, keyholder.id, now=t0 + timedelta(hours=11))

        totals = engine.locked_time_totals(sub.id, windows_days=[1], now=t0 + timedelta(hours=20))
        assert totals[0].total_seconds == 3 * HOUR
        assert totals[0].display == "0 d 3 h"

    def test_future_history_ignored(self, engine, lock_service, pairing, keyholder, sub, t0):
        lock_service.create_lock(pairing.id, keyholder.id, "Later", DAY, now=t0 + timedelta(days=2))
        assert engine.locked_time_totals(sub.id, now=t0)[0].total_seconds == 0

    def test_ended_relationship_excluded(self, db, engine, lock_service, pairing, keyholder, sub, t0):
        lock_service.create_lock(pairing.id, keyholder.id, "Gone", DAY, now=t0)
        pairing.status = RelationshipStatus.ENDED
        db.commit()
        assert engine.locked_time_totals(sub.id, now=t0 + timedelta(hours=1))[0].total_seconds == 0

    def test_user_without_relationships(self, engine, outsider, t0):
        assert all(t.total_seconds == 0 for t in engine.locked_time_totals(outsider.id, now=t0))

    def test_single_lock_total(self, engine, lock_service, pairing, keyholder, t0):
        lock = lock_service.create_lock(pairing.id, keyholder.id, "One", DAY, now=t0)
        lock_service.pause(lock.id, keyholder.id, now=t0 + timedelta(hours=4))
        assert engine.lock_locked_seconds(lock.id, now=t0 + timedelta(hours=9)) == 4 * HOUR


class TestDashboardAndAdmin:
    """Dashboard summary and admin statistics."""

    def test_dashboard_summary(self, db, engine, lock_service, pairing, keyholder, sub, t0):
        for i in range(4):
            lock_service.create_lock(pairing.id, keyholder.id, f"L{i}", DAY, now=t0 + timedelta(minutes=i))
        TaskService(db).create_task(pairing.id, keyholder.id, "Check in", now=t0)

        summary = engine.dashboard_summary(sub.id, now=t0 + timedelta(hours=1))

        assert [r.name for r in summary.recent_locks] == ["L3", "L2", "L1"]
        assert summary.task_counts["pending"] == 1
        assert summary.total_for(7) is not None
        assert summary.total_for(99) is None

    def test_admin_stats(self, db, engine, lock_service, pairing, keyholder, sub, outsider, t0):
        lock = lock_service.create_lock(pairing.id, keyholder.id, "A", DAY, now=t0)
        lock_service.create_lock(pairing.id, keyholder.id, "B", DAY, now=t0)
        lock_service.pause(lock.id, keyholder.id, now=t0)
        TaskService(db).create_task(pairing.id, keyholder.id, "Check in", now=t0)

        stats = engine.admin_stats()

        assert stats.users_total == 3
        assert stats.users_active == 3
        assert stats.relationships_total == 1
        assert stats.relationships_active == 1
        assert stats.locks_total == 2
        assert stats.locks_active == 1
        assert stats.tasks_total == 1
        assert stats.tasks_pending == 1
        # Two lock creations and one task assignment
        assert stats.notifications_total == 3

    def test_engine_is_read_only(self, db, engine, lock_service, pairing, keyholder, sub, t0):
        lock_service.create_lock(pairing.id, keyholder.id, "A", DAY, now=t0)
        history_before = db.query(LockHistoryEntry).count()

        engine.dashboard_summary(sub.id, now=t0 + timedelta(hours=1))
        engine.admin_stats()

        assert db.query(LockHistoryEntry).count() == history_before
        assert not db.new and not db.dirty and not db.deleted
