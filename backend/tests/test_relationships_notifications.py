"""
Relationship lifecycle and notification tests.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from locktime.models.notification import Notification
from locktime.models.relationship import RelationshipStatus
from locktime.models.user import UserStatus
from locktime.services.lock_service import LockService
from locktime.services.notification_service import NotificationService
from locktime.services.relationship_service import RelationshipService
from locktime.utils.invariants import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


@pytest.fixture
def relationships(db):
    return RelationshipService(db)


@pytest.fixture
def notifications(db):
    return NotificationService(db)


class TestRelationshipLifecycle:
    """pending -> active <-> paused -> ended"""

    def test_invite_and_accept(self, db, relationships, keyholder, sub, t0):
        invitation = relationships.invite(keyholder.id, sub.id, now=t0)
        assert invitation.status == RelationshipStatus.PENDING
        assert db.query(Notification).filter(Notification.user_id == sub.id).count() == 1

        accepted = relationships.accept(invitation.id, sub.id, now=t0 + timedelta(hours=1))
        assert accepted.status == RelationshipStatus.ACTIVE
        assert accepted.started_at == t0 + timedelta(hours=1)
        assert relationships.get_active_for_sub(sub.id).id == invitation.id
        assert db.query(Notification).filter(Notification.user_id == keyholder.id).count() == 1

    def test_reject_ends_invitation(self, relationships, keyholder, sub, t0):
        invitation = relationships.invite(keyholder.id, sub.id, now=t0)
        rejected = relationships.reject(invitation.id, sub.id, now=t0)
        assert rejected.status == RelationshipStatus.ENDED
        assert rejected.ended_at == t0

    def test_keyholder_cannot_accept_own_invitation(self, relationships, keyholder, sub, t0):
        invitation = relationships.invite(keyholder.id, sub.id, now=t0)
        with pytest.raises(PermissionDeniedError):
            relationships.accept(invitation.id, keyholder.id, now=t0)

    def test_roles_enforced_on_invite(self, relationships, keyholder, sub, outsider, t0):
        with pytest.raises(ValidationError):
            relationships.invite(keyholder.id, outsider.id, now=t0)
        with pytest.raises(ValidationError):
            relationships.invite(sub.id, sub.id, now=t0)

    def test_sub_can_send_request(self, db, relationships, keyholder, sub, t0):
        request = relationships.invite(sub.id, keyholder.id, now=t0)
        assert request.keyholder_id == keyholder.id
        assert request.sub_id == sub.id
        assert request.initiated_by == sub.id
        assert request.recipient_id() == keyholder.id

        inbox = db.query(Notification).filter(Notification.user_id == keyholder.id).all()
        assert [n.type for n in inbox] == [NotificationService.RELATIONSHIP_REQUESTED]
        assert inbox[0].message == "Sub sent you a relationship request"

    def test_keyholder_answers_sub_request(self, relationships, keyholder, sub, t0):
        request = relationships.invite(sub.id, keyholder.id, now=t0)
        with pytest.raises(PermissionDeniedError):
            relationships.accept(request.id, sub.id, now=t0)

        accepted = relationships.accept(request.id, keyholder.id, now=t0)
        assert accepted.status == RelationshipStatus.ACTIVE

    def test_keyholder_rejects_sub_request(self, relationships, keyholder, sub, t0):
        request = relationships.invite(sub.id, keyholder.id, now=t0)
        rejected = relationships.reject(request.id, keyholder.id, now=t0)
        assert rejected.status == RelationshipStatus.ENDED

    def test_outsider_cannot_answer(self, relationships, keyholder, sub, outsider, t0):
        request = relationships.invite(sub.id, keyholder.id, now=t0)
        with pytest.raises(PermissionDeniedError):
            relationships.accept(request.id, outsider.id, now=t0)

    def test_inactive_account_cannot_be_invited(self, db, relationships, keyholder, sub, t0):
        sub.status = UserStatus.SUSPENDED
        db.commit()
        with pytest.raises(ValidationError):
            relationships.invite(keyholder.id, sub.id, now=t0)

    def test_duplicate_open_pairing_rejected(self, relationships, pairing, keyholder, sub, t0):
        with pytest.raises(ValidationError):
            relationships.invite(keyholder.id, sub.id, now=t0)
        with pytest.raises(ValidationError):
            relationships.invite(sub.id, keyholder.id, now=t0)

    def test_pause_resume_end(self, db, relationships, pairing, keyholder, sub, t0):
        assert relationships.pause(pairing.id, sub.id, now=t0).status == RelationshipStatus.PAUSED
        assert relationships.resume(pairing.id, keyholder.id, now=t0).status == RelationshipStatus.ACTIVE
        ended = relationships.end(pairing.id, keyholder.id, now=t0 + timedelta(days=1))
        assert ended.status == RelationshipStatus.ENDED
        assert ended.ended_at == t0 + timedelta(days=1)

        with pytest.raises(InvalidTransitionError):
            relationships.resume(pairing.id, keyholder.id, now=t0)

        assert [n.type for n in db.query(Notification).filter(Notification.user_id == keyholder.id)] == [
            NotificationService.RELATIONSHIP_PAUSED
        ]
        sub_types = {n.type for n in db.query(Notification).filter(Notification.user_id == sub.id)}
        assert sub_types == {NotificationService.RELATIONSHIP_RESUMED, NotificationService.RELATIONSHIP_ENDED}

    def test_outsider_cannot_end(self, relationships, pairing, outsider, t0):
        with pytest.raises(PermissionDeniedError):
            relationships.end(pairing.id, outsider.id, now=t0)

    def test_list_for_user(self, relationships, pairing, keyholder, sub):
        assert [r.id for r in relationships.list_for_user(sub.id)] == [pairing.id]
        assert relationships.list_for_user(keyholder.id, status=RelationshipStatus.ENDED) == []

    def test_unknown_relationship(self, relationships, keyholder, t0):
        with pytest.raises(NotFoundError):
            relationships.pause(uuid4(), keyholder.id, now=t0)


class TestNotifications:
    """Notification inbox operations."""

    @pytest.fixture
    def inbox(self, db, pairing, keyholder, sub, t0):
        """Three lock notifications for the sub."""
        service = LockService(db)
        lock = service.create_lock(pairing.id, keyholder.id, "Inbox", 86400, now=t0)
        service.adjust_time(lock.id, keyholder.id, 3600, "add", now=t0 + timedelta(minutes=1))
        service.complete(lock.id, keyholder.id, now=t0 + timedelta(minutes=2))
        return lock

    def test_lock_events_reach_sub(self, notifications, inbox, sub):
        recent = notifications.list_recent(sub.id, limit=10)
        assert [n.type for n in recent] == [
            NotificationService.LOCK_STATUS_CHANGED,
            NotificationService.LOCK_TIME_CHANGED,
            NotificationService.LOCK_CREATED,
        ]
        assert recent[1].message == 'Time on lock "Inbox" was increased by 1h'

    def test_pause_and_resume_do_not_notify(self, db, notifications, pairing, keyholder, sub, t0):
        service = LockService(db)
        lock = service.create_lock(pairing.id, keyholder.id, "Quiet", 86400, now=t0)
        service.pause(lock.id, keyholder.id, now=t0)
        service.resume(lock.id, keyholder.id, now=t0)
        assert notifications.unread_count(sub.id) == 1

    def test_mark_read(self, notifications, inbox, sub, t0):
        newest = notifications.list_recent(sub.id, limit=1)[0]
        marked = notifications.mark_read(newest.id, sub.id, now=t0)
        assert marked.is_read
        assert marked.read_at == t0
        assert notifications.unread_count(sub.id) == 2

    def test_mark_all_read(self, notifications, inbox, sub, t0):
        assert notifications.mark_all_read(sub.id, now=t0) == 3
        assert notifications.unread_count(sub.id) == 0
        assert notifications.mark_all_read(sub.id, now=t0) == 0

    def test_cannot_touch_other_users_notification(self, notifications, inbox, sub, keyholder):
        newest = notifications.list_recent(sub.id, limit=1)[0]
        with pytest.raises(PermissionDeniedError):
            notifications.mark_read(newest.id, keyholder.id)
        with pytest.raises(PermissionDeniedError):
            notifications.delete(newest.id, keyholder.id)

    def test_delete(self, notifications, inbox, sub):
        newest = notifications.list_recent(sub.id, limit=1)[0]
        notifications.delete(newest.id, sub.id)
        assert len(notifications.list_recent(sub.id, limit=10)) == 2

    def test_list_recent_default_limit(self, notifications, inbox, sub):
        assert len(notifications.list_recent(sub.id)) == 3
