"""Status state machine: allowed transitions and the conditional write path."""
from datetime import timedelta

import pytest

from app.core.errors import Conflict, NotFound
from app.models.chat import ChatRoom
from app.models.meetup import Meetup, MeetupStatus
from app.services.meetup_status import (
    apply_status_transition,
    check_status_transition,
    request_status_transition,
    sync_status,
)
from tests.conftest import NOW


class TestCheckStatusTransition:

    @pytest.mark.parametrize(
        "current, target",
        [("ACTIVE", "CHAT_OPEN"), ("ACTIVE", "EXPIRED"), ("CHAT_OPEN", "EXPIRED")],
    )
    def test_allowed(self, current, target):
        assert check_status_transition(current, target) is None

    @pytest.mark.parametrize(
        "current, target",
        [("CHAT_OPEN", "ACTIVE"), ("EXPIRED", "ACTIVE"), ("EXPIRED", "CHAT_OPEN")],
    )
    def test_rejected(self, current, target):
        error = check_status_transition(current, target)
        assert error is not None
        assert current in error


class TestApplyStatusTransition:

    def test_open_creates_chat_room(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=3))
        assert apply_status_transition(db, meetup_id, MeetupStatus.ACTIVE, MeetupStatus.CHAT_OPEN, NOW)
        db.commit()

        meetup = db.get(Meetup, meetup_id)
        assert meetup.status == "CHAT_OPEN"
        assert meetup.chat_opened_at == NOW
        room = db.get(ChatRoom, meetup_id)
        assert room is not None
        assert room.opened_at == NOW

    def test_stale_expected_status_is_a_noop(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=3), status=MeetupStatus.CHAT_OPEN)
        assert not apply_status_transition(db, meetup_id, MeetupStatus.ACTIVE, MeetupStatus.CHAT_OPEN, NOW)
        assert db.get(ChatRoom, meetup_id) is None

    def test_second_writer_loses(self, session_factory, meetup_factory):
        meetup_id = meetup_factory(NOW - timedelta(minutes=6), status=MeetupStatus.CHAT_OPEN)
        results = []
        for _ in range(2):
            with session_factory() as session:
                results.append(
                    apply_status_transition(session, meetup_id, MeetupStatus.CHAT_OPEN, MeetupStatus.EXPIRED, NOW)
                )
                session.commit()
        assert results == [True, False]

    def test_expire_releases_creator_claim(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW - timedelta(minutes=6), creator_id="alice", claim=True)
        apply_status_transition(db, meetup_id, MeetupStatus.ACTIVE, MeetupStatus.EXPIRED, NOW)
        db.commit()
        assert db.get(Meetup, meetup_id).active_creator_id is None

    def test_illegal_transition_raises(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW, status=MeetupStatus.EXPIRED)
        with pytest.raises(Conflict):
            apply_status_transition(db, meetup_id, MeetupStatus.EXPIRED, MeetupStatus.CHAT_OPEN, NOW)

    def test_same_status_is_a_noop(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW)
        assert not apply_status_transition(db, meetup_id, MeetupStatus.ACTIVE, MeetupStatus.ACTIVE, NOW)


class TestSyncStatus:

    def test_never_downgrades(self, db, meetup_factory):
        # clock skew: stored CHAT_OPEN while the window says ACTIVE
        meetup_id = meetup_factory(NOW + timedelta(minutes=30), status=MeetupStatus.CHAT_OPEN)
        meetup = db.get(Meetup, meetup_id)
        assert sync_status(db, meetup, NOW) == (False, MeetupStatus.CHAT_OPEN)
        assert meetup.status == "CHAT_OPEN"

    def test_catches_up(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=1))
        meetup = db.get(Meetup, meetup_id)
        assert sync_status(db, meetup, NOW) == (True, MeetupStatus.CHAT_OPEN)


class TestRequestStatusTransition:

    def test_guard_checked_at_server_time(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=20))
        with pytest.raises(Conflict):
            request_status_transition(db, meetup_id, MeetupStatus.ACTIVE, MeetupStatus.CHAT_OPEN, NOW)

    def test_lost_race_reports_current_status(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW - timedelta(minutes=10), status=MeetupStatus.EXPIRED)
        applied, status = request_status_transition(
            db, meetup_id, MeetupStatus.CHAT_OPEN, MeetupStatus.EXPIRED, NOW
        )
        assert applied is False
        assert status == MeetupStatus.EXPIRED

    def test_missing_meetup(self, db):
        with pytest.raises(NotFound):
            request_status_transition(db, 999, MeetupStatus.ACTIVE, MeetupStatus.EXPIRED, NOW)
