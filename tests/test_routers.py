"""
Tests for the HTTP and WebSocket routes.
The chat service is overridden with one backed by the in-memory database.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from devnextdoor.main import app
from devnextdoor.repositories.message_repository import MessageRepository
from devnextdoor.utils.dependencies import get_chat_service


@pytest.fixture
def client(service):
    app.dependency_overrides[get_chat_service] = lambda: service
    # no context manager: the lifespan would connect to a real MongoDB
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

def test_start_chat_and_list(client):
    resp = client.post("/conversations", json={"username": "alice", "other_user": "bob"})
    assert resp.status_code == 200
    assert resp.json()["id"] == "alice_bob"
    assert resp.json()["last_message_text"] == ""

    resp = client.get("/conversations", params={"username": "bob"})
    assert resp.status_code == 200
    [item] = resp.json()
    assert item["other_user"] == "alice"
    assert item["preview"] == "No messages yet"


def test_start_chat_with_yourself_is_rejected(client):
    resp = client.post("/conversations", json={"username": "alice", "other_user": "alice"})
    assert resp.status_code == 400


def test_list_requires_username(client):
    assert client.get("/conversations").status_code == 422


def test_exists(client):
    resp = client.get("/conversations/exists", params={"user_a": "bob", "user_b": "alice"})
    assert resp.json() == {"exists": False, "conversation_id": "alice_bob"}

    client.post("/conversations", json={"username": "alice", "other_user": "bob"})
    resp = client.get("/conversations/exists", params={"user_a": "bob", "user_b": "alice"})
    assert resp.json() == {"exists": True, "conversation_id": "alice_bob"}


def test_rename(client):
    client.post("/conversations", json={"username": "alice", "other_user": "bob"})
    resp = client.post("/conversations/rename", json={"old_username": "alice", "new_username": "alicia"})
    assert resp.status_code == 200
    assert resp.json() == {"modified": 1}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def test_history_and_mark_read_over_websocket(client):
    with client.websocket_connect("/messages/ws/chat/alice") as ws:
        ws.send_json({"type": "open", "to": "bob"})
        assert ws.receive_json() == {"type": "messages", "items": []}
        opened = ws.receive_json()
        assert opened["type"] == "opened"
        assert opened["conversation"]["id"] == "alice_bob"

        ws.send_json({"type": "send", "content": "hello"})
        update = ws.receive_json()
        assert update["type"] == "messages"
        assert [m["content"] for m in update["items"]] == ["hello"]
        result = ws.receive_json()
        assert result["type"] == "send_result"
        assert result["success"] is True
        assert result["error"] is None

        ws.send_json({"type": "send", "content": "hello"})
        throttled = ws.receive_json()
        assert throttled["type"] == "send_result"
        assert throttled["error"] == "duplicate_message"
        assert throttled["user_visible"] is False

        ws.send_json({"type": "close"})
        assert ws.receive_json() == {"type": "closed"}

    resp = client.get("/messages/alice_bob")
    assert resp.status_code == 200
    [message] = resp.json()["items"]
    assert message["sender_id"] == "alice"
    assert message["read"] is False

    resp = client.post("/messages/mark_read", json={"conversation_id": "alice_bob", "username": "bob"})
    assert resp.json() == {"updated": 1}
    assert client.get("/messages/alice_bob").json()["items"][0]["read"] is True


def test_websocket_reports_bad_frames(client):
    with client.websocket_connect("/messages/ws/chat/alice") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["detail"] == "Invalid JSON"

        ws.send_json({"type": "dance"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "send", "content": "hello"})
        result = ws.receive_json()
        assert result["error"] == "not_initialized"
        assert result["user_visible"] is True

        ws.send_json({"type": "open"})
        assert ws.receive_json()["type"] == "error"


def test_conversation_list_socket_pushes_updates(client):
    with client.websocket_connect("/conversations/ws/bob") as ws:
        assert ws.receive_json() == {"type": "conversations", "items": []}

        client.post("/conversations", json={"username": "alice", "other_user": "bob"})
        update = ws.receive_json()
        assert update["type"] == "conversations"
        assert [c["other_user"] for c in update["items"]] == ["alice"]


def test_store_failure_maps_to_bad_gateway(client):
    failing = AsyncMock(side_effect=PyMongoError("unreachable"))
    with patch.object(MessageRepository, "list_for_conversation", new=failing):
        resp = client.get("/messages/alice_bob")
    assert resp.status_code == 502
    assert resp.json()["detail"]["error"] == "store_error"


def test_chat_socket_rejects_malformed_frames_and_stays_open(client):
    with client.websocket_connect("/messages/ws/chat/alice") as ws:
        ws.send_json({"type": "open", "to": "bob"})
        assert ws.receive_json()["type"] == "messages"
        assert ws.receive_json()["type"] == "opened"

        ws.send_json({"type": "send", "content": 123})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["fields"] == ["content"]

        ws.send_json(["send", "hello"])
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "open", "to": 42})
        assert ws.receive_json()["fields"] == ["to"]

        ws.send_json({"type": "send", "content": "still here"})
        assert ws.receive_json()["type"] == "messages"
        assert ws.receive_json()["success"] is True


def test_chat_socket_rejects_chat_with_yourself(client):
    with client.websocket_connect("/messages/ws/chat/alice") as ws:
        ws.send_json({"type": "open", "to": "alice"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["detail"] == "Cannot chat with yourself."

    resp = client.get("/conversations/exists", params={"user_a": "alice", "user_b": "alice"})
    assert resp.json()["exists"] is False
