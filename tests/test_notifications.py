"""Chat-open fan-out: token lookup, multicast, invalid-token pruning, gateway wire format."""
import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from app.core.errors import Internal, PermissionDenied
from app.crud.token_crud import get_tokens, upsert_token
from app.integrations.push_gateway import MULTICAST_PATH, PushGateway
from app.models.participant_token import ParticipantToken
from app.services.notification_fanout import notify_chat_open
from tests.conftest import NOW, caller


def _register(db, tokens):
    for participant_id, token in tokens.items():
        upsert_token(db, participant_id, token, NOW)
    db.commit()


class TestNotifyChatOpen:

    def test_sends_one_multicast_to_participants_with_tokens(self, db, meetup_factory, fake_gateway):
        meetup_id = meetup_factory(NOW + timedelta(minutes=3), participants=["p1", "p2", "p3"])
        _register(db, {"p1": "tok-1", "p2": "tok-2", "outsider": "tok-x"})

        result = asyncio.run(notify_chat_open(db, meetup_id, "p1", fake_gateway))

        assert (result.success_count, result.failure_count) == (2, 0)
        assert len(fake_gateway.calls) == 1
        call = fake_gateway.calls[0]
        assert sorted(call["tokens"]) == ["tok-1", "tok-2"]
        assert call["data"] == {"meetup_id": str(meetup_id), "type": "chat_open"}

    def test_prunes_permanently_invalid_tokens(self, db, meetup_factory, fake_gateway):
        meetup_id = meetup_factory(NOW, participants=["p1", "p2", "p3"])
        _register(db, {"p1": "tok-1", "p2": "tok-2", "p3": "tok-3"})
        fake_gateway.failures = {
            "tok-2": "messaging/registration-token-not-registered",
            "tok-3": "messaging/server-unavailable",
        }

        result = asyncio.run(notify_chat_open(db, meetup_id, "p1", fake_gateway))

        assert (result.success_count, result.failure_count) == (1, 2)
        assert get_tokens(db, ["p1", "p2", "p3"]) == {"p1": "tok-1", "p3": "tok-3"}

    def test_no_tokens_sends_nothing(self, db, meetup_factory, fake_gateway):
        meetup_id = meetup_factory(NOW, participants=["p1"])
        result = asyncio.run(notify_chat_open(db, meetup_id, "p1", fake_gateway))
        assert (result.success_count, result.failure_count) == (0, 0)
        assert fake_gateway.calls == []

    def test_only_participants_may_trigger(self, db, meetup_factory, fake_gateway):
        meetup_id = meetup_factory(NOW)
        with pytest.raises(PermissionDenied):
            asyncio.run(notify_chat_open(db, meetup_id, "stranger", fake_gateway))

    def test_gateway_failure_is_internal(self, db, meetup_factory, fake_gateway):
        meetup_id = meetup_factory(NOW, participants=["p1"])
        _register(db, {"p1": "tok-1"})
        fake_gateway.raise_error = httpx.ConnectError("refused")
        with pytest.raises(Internal):
            asyncio.run(notify_chat_open(db, meetup_id, "p1", fake_gateway))


class TestPushGateway:

    def test_wire_format(self):
        seen = {}

        def _handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "responses": [
                        {"success": True},
                        {"success": False, "error": {"code": "messaging/invalid-registration-token"}},
                    ]
                },
            )

        gateway = PushGateway("http://push.test/", api_key="secret", transport=httpx.MockTransport(_handler))
        response = asyncio.run(gateway.send_multicast(["a", "b"], {"title": "t"}, {"type": "chat_open"}))

        assert seen["path"] == MULTICAST_PATH
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["tokens"] == ["a", "b"]
        assert response.success_count == 1
        assert [r.token_invalid for r in response.results] == [False, True]

    def test_http_error_raises(self):
        gateway = PushGateway("http://push.test", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        with pytest.raises(RuntimeError):
            asyncio.run(gateway.send_multicast(["a"], {}, {}))

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>bad gateway</html>"),
            httpx.Response(200, json=[{"success": True}]),
            httpx.Response(200, json={"responses": ["ok"]}),
        ],
    )
    def test_malformed_body_raises(self, response):
        gateway = PushGateway("http://push.test", transport=httpx.MockTransport(lambda r: response))
        with pytest.raises(RuntimeError):
            asyncio.run(gateway.send_multicast(["a"], {}, {}))

    def test_malformed_body_surfaces_as_internal(self, db, meetup_factory):
        meetup_id = meetup_factory(NOW, participants=["p1"])
        _register(db, {"p1": "tok-1"})
        gateway = PushGateway(
            "http://push.test",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>bad gateway</html>")),
        )
        with pytest.raises(Internal):
            asyncio.run(notify_chat_open(db, meetup_id, "p1", gateway))
        assert get_tokens(db, ["p1"]) == {"p1": "tok-1"}


class TestTokenApi:

    def test_register_replace_and_remove(self, client, session_factory):
        assert client.put("/participants/me/token", json={"token": "old"}, headers=caller("p1")).status_code == 200
        client.put("/participants/me/token", json={"token": "new"}, headers=caller("p1"))
        with session_factory() as session:
            assert session.get(ParticipantToken, "p1").token == "new"

        resp = client.delete("/participants/me/token", headers=caller("p1"))
        assert resp.json() == {"participant_id": "p1", "registered": False}
        with session_factory() as session:
            assert session.get(ParticipantToken, "p1") is None

    def test_notify_endpoint(self, client, meetup_factory, fake_gateway):
        meetup_id = meetup_factory(NOW, participants=["p1"])
        client.put("/participants/me/token", json={"token": "tok-1"}, headers=caller("p1"))

        resp = client.post(f"/meetups/{meetup_id}/notify-open", headers=caller("p1"))

        assert resp.status_code == 200
        assert resp.json() == {"success_count": 1, "failure_count": 0}
        assert fake_gateway.calls[0]["tokens"] == ["tok-1"]

    def test_notify_endpoint_rejects_outsiders(self, client, meetup_factory):
        meetup_id = meetup_factory(NOW)
        assert client.post(f"/meetups/{meetup_id}/notify-open", headers=caller("x")).status_code == 403
