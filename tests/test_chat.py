"""Chat messages: window gating, membership, ordering, status catch-up."""
from datetime import timedelta

from app.models.meetup import MeetupStatus
from tests.conftest import NOW, caller


def _post(client, meetup_id, author, text="hello"):
    return client.post(f"/meetups/{meetup_id}/messages", json={"text": text}, headers=caller(author))


class TestPostMessage:

    def test_post_in_open_window(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=2), status=MeetupStatus.CHAT_OPEN, participants=["bob"])
        resp = _post(client, meetup_id, "bob", "on my way")
        assert resp.status_code == 200
        data = resp.json()
        assert data["author_id"] == "bob"
        assert data["text"] == "on my way"
        assert data["meetup_id"] == meetup_id

    def test_first_message_opens_chat_when_reconciler_is_late(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=2))
        assert _post(client, meetup_id, "creator").status_code == 200
        assert client.get(f"/meetups/{meetup_id}").json()["status"] == "CHAT_OPEN"

    def test_rejected_before_window(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=20))
        assert _post(client, meetup_id, "creator").status_code == 409

    def test_rejected_after_window(self, client, clock, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=2), status=MeetupStatus.CHAT_OPEN)
        clock.advance(minutes=8)
        assert _post(client, meetup_id, "creator").status_code == 409

    def test_rejected_when_expired(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW, status=MeetupStatus.EXPIRED)
        assert _post(client, meetup_id, "creator").status_code == 409

    def test_non_participant_is_403(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW, status=MeetupStatus.CHAT_OPEN)
        assert _post(client, meetup_id, "stranger").status_code == 403

    def test_unknown_meetup_is_404(self, client):
        assert _post(client, 12345, "creator").status_code == 404

    def test_empty_text_is_422(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW, status=MeetupStatus.CHAT_OPEN)
        assert _post(client, meetup_id, "creator", "").status_code == 422


class TestListMessages:

    def test_ordered_by_server_timestamp(self, client, clock, meetup_factory):
        meetup_id = meetup_factory(NOW + timedelta(minutes=1), status=MeetupStatus.CHAT_OPEN, participants=["bob"])
        _post(client, meetup_id, "creator", "first")
        clock.advance(seconds=30)
        second = _post(client, meetup_id, "bob", "second").json()
        clock.advance(seconds=30)
        _post(client, meetup_id, "creator", "third")

        texts = [m["text"] for m in client.get(f"/meetups/{meetup_id}/messages").json()]
        assert texts == ["first", "second", "third"]

        tail = client.get(f"/meetups/{meetup_id}/messages", params={"after_id": second["id"]}).json()
        assert [m["text"] for m in tail] == ["third"]

    def test_unknown_meetup_is_404(self, client):
        assert client.get("/meetups/777/messages").status_code == 404


class TestReportMessage:

    def test_three_reports_remove_message(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW, status=MeetupStatus.CHAT_OPEN)
        message_id = _post(client, meetup_id, "creator", "spam").json()["id"]
        body = {"content_type": "message", "content_id": message_id, "parent_id": meetup_id}
        for reporter in ("r1", "r2", "r3"):
            resp = client.post("/reports", json=body, headers=caller(reporter))
        assert resp.json()["deleted"] is True
        assert client.get(f"/meetups/{meetup_id}/messages").json() == []
