"""
User directory tests.

Partner search, admin listings and account status moderation.
"""
from uuid import uuid4

import pytest

from locktime.models.lock import LockStatus
from locktime.models.relationship import RelationshipStatus
from locktime.models.user import User, UserRole, UserStatus
from locktime.services.analytics_engine import AnalyticsEngine
from locktime.services.lock_service import LockService
from locktime.services.relationship_service import RelationshipService
from locktime.services.user_service import UserService
from locktime.utils.invariants import NotFoundError, PermissionDeniedError


@pytest.fixture
def users(db):
    return UserService(db)


@pytest.fixture
def directory(db, keyholder, sub):
    """A few extra users to search through."""
    extra = [
        User(email="anna@example.com", display_name="Anna", country="Poland", role=UserRole.SUB),
        User(email="bob@example.com", display_name="Bob", country="Portugal", role=UserRole.SUB),
        User(email="kasia@example.com", display_name="Kasia", country="Poland", role=UserRole.KEYHOLDER),
    ]
    db.add_all(extra)
    db.commit()
    return {user.display_name: user for user in extra}


class TestSearchUsers:
    """Finding a partner to send a request to."""

    def test_keyholder_finds_subs_by_country(self, users, directory, keyholder):
        found = users.search_users(keyholder.id, "pol")
        assert [u.display_name for u in found] == ["Anna"]

    def test_sub_finds_keyholders_by_name(self, users, directory, sub):
        found = users.search_users(sub.id, "KAS")
        assert [u.display_name for u in found] == ["Kasia"]

    def test_search_skips_same_role(self, users, directory, sub):
        found = users.search_users(sub.id, "an")
        assert [u.display_name for u in found] == ["Kasia"]

    def test_short_query_returns_nothing(self, users, directory, keyholder):
        assert users.search_users(keyholder.id, "P") == []
        assert users.search_users(keyholder.id, "  ") == []

    def test_limit(self, users, directory, keyholder):
        assert len(users.search_users(keyholder.id, "po", limit=1)) == 1
        assert len(users.search_users(keyholder.id, "po")) == 2


class TestUserStatus:
    """Admin moderation of accounts."""

    def test_admin_suspends_user(self, db, users, admin, sub, t0):
        updated = users.set_user_status(admin.id, sub.id, UserStatus.SUSPENDED, now=t0)
        assert updated.status == UserStatus.SUSPENDED
        assert updated.is_active is False
        assert updated.updated_at == t0

        stats = AnalyticsEngine(db).admin_stats()
        assert stats.users_total == 2
        assert stats.users_active == 1

    def test_status_accepts_plain_value(self, users, admin, sub, t0):
        assert users.set_user_status(admin.id, sub.id, "banned", now=t0).status == UserStatus.BANNED

    def test_non_admin_cannot_change_status(self, users, keyholder, sub, t0):
        with pytest.raises(PermissionDeniedError):
            users.set_user_status(keyholder.id, sub.id, UserStatus.BANNED, now=t0)

    def test_unknown_user(self, users, admin, t0):
        with pytest.raises(NotFoundError):
            users.get_user(uuid4())

    def test_new_users_are_active(self, keyholder):
        assert keyholder.status == UserStatus.ACTIVE
        assert keyholder.is_active


class TestAdminListings:
    """Platform-wide views for administrators."""

    def test_list_users_filters(self, users, admin, keyholder, sub, t0):
        users.set_user_status(admin.id, sub.id, UserStatus.BANNED, now=t0)
        assert {u.id for u in users.list_users(admin.id)} == {admin.id, keyholder.id, sub.id}
        assert [u.id for u in users.list_users(admin.id, role=UserRole.SUB)] == [sub.id]
        assert [u.id for u in users.list_users(admin.id, status=UserStatus.BANNED)] == [sub.id]
        assert [u.id for u in users.list_users(admin.id, query="kh@")] == [keyholder.id]

    def test_list_users_requires_admin(self, users, keyholder):
        with pytest.raises(PermissionDeniedError):
            users.list_users(keyholder.id)

    def test_list_all_locks(self, db, admin, keyholder, pairing, t0):
        service = LockService(db)
        first = service.create_lock(pairing.id, keyholder.id, "First", 3600, now=t0)
        second = service.create_lock(pairing.id, keyholder.id, "Second", 3600, now=t0.replace(hour=13))
        service.complete(first.id, keyholder.id, now=t0.replace(hour=14))

        assert [lock.id for lock in service.list_all_locks(admin.id)] == [second.id, first.id]
        assert [lock.id for lock in service.list_all_locks(admin.id, status=LockStatus.COMPLETED)] == [first.id]
        with pytest.raises(PermissionDeniedError):
            service.list_all_locks(keyholder.id)

    def test_list_all_relationships(self, db, admin, keyholder, sub, pairing, t0):
        service = RelationshipService(db)
        assert [r.id for r in service.list_all(admin.id)] == [pairing.id]
        assert service.list_all(admin.id, status=RelationshipStatus.PENDING) == []
        with pytest.raises(PermissionDeniedError):
            service.list_all(sub.id)
