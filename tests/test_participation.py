"""Participation toggle: set semantics and the API wrapper."""
from datetime import timedelta

import pytest

from app.core.errors import NotFound
from app.crud.participation_crud import count_participants, is_participant, toggle_participation
from tests.conftest import NOW, caller


class TestToggleParticipation:

    def test_join_then_leave(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(hours=1))
        assert toggle_participation(db, meetup_id, "bob") == (True, 2)
        assert is_participant(db, meetup_id, "bob")
        assert toggle_participation(db, meetup_id, "bob") == (False, 1)
        assert not is_participant(db, meetup_id, "bob")

    def test_double_toggle_restores_set(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(hours=1), participants=["x", "y"])
        before = count_participants(db, meetup_id)
        for _ in range(2):
            toggle_participation(db, meetup_id, "z")
        assert count_participants(db, meetup_id) == before

    def test_creator_can_leave(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(hours=1), creator_id="alice")
        assert toggle_participation(db, meetup_id, "alice") == (False, 0)

    def test_missing_meetup(self, db):
        with pytest.raises(NotFound):
            toggle_participation(db, 404, "bob")


class TestParticipationApi:

    def test_toggle_endpoint(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(hours=1))
        resp = client.post(f"/meetups/{meetup_id}/participation", headers=caller("bob"))
        assert resp.status_code == 200
        assert resp.json() == {"meetup_id": meetup_id, "participating": True, "participant_count": 2}

        detail = client.get(f"/meetups/{meetup_id}").json()
        assert detail["participant_ids"] == ["bob", "creator"]

    def test_unknown_meetup_is_404(self, client):
        resp = client.post("/meetups/999/participation", headers=caller("bob"))
        assert resp.status_code == 404
