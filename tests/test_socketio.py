"""
Socket.IO tests for Let's Vibe
Uses the Flask-SocketIO test client, no running server needed
"""

import json

import pytest

from conftest import song_descriptor
from letsvibe.websockets import handlers


def events_named(received, name):
    return [event["args"][0] for event in received if event["name"] == name]


@pytest.fixture
def sio(app):
    client = handlers.socketio.test_client(app)
    yield client
    if client.is_connected():
        client.disconnect()


@pytest.fixture
def session_id(client):
    response = client.post("/sessions", json={"name": "Party"})
    return json.loads(response.data)["id"]


class TestSocketIORealtime:
    def test_client_can_connect(self, sio):
        assert sio.is_connected()
        assert events_named(sio.get_received(), "connected")

    def test_join_session_receives_current_queue(self, sio, client, session_id):
        client.post(f"/queue/{session_id}", json={"song": song_descriptor("a"), "voterId": "u1"})
        sio.get_received()

        sio.emit("join_session", {"sessionId": session_id})

        updates = events_named(sio.get_received(), "queue_updated")
        assert len(updates) == 1
        assert updates[0]["sessionId"] == session_id
        assert [entry["songId"] for entry in updates[0]["queue"]] == ["a"]

    def test_queue_changes_are_broadcast_to_the_room(self, sio, client, session_id):
        sio.emit("join_session", {"sessionId": session_id})
        sio.get_received()

        client.post(f"/queue/{session_id}", json={"song": song_descriptor("a"), "voterId": "u1"})

        updates = events_named(sio.get_received(), "queue_updated")
        assert len(updates) == 1
        assert updates[0]["queue"][0]["votes"] == 1

    def test_other_sessions_are_not_notified(self, sio, client, session_id):
        other = json.loads(client.post("/sessions", json={"name": "Other"}).data)["id"]
        sio.emit("join_session", {"sessionId": other})
        sio.get_received()

        client.post(f"/queue/{session_id}", json={"song": song_descriptor("a")})

        assert events_named(sio.get_received(), "queue_updated") == []

    def test_playback_updates_are_broadcast(self, sio, client, session_id):
        sio.emit("join_session", {"sessionId": session_id})
        sio.get_received()

        client.put(f"/playback/{session_id}", json={"isPlaying": True})

        updates = events_named(sio.get_received(), "playback_updated")
        assert updates and updates[0]["isPlaying"] is True

    def test_leave_session_stops_updates(self, sio, client, session_id):
        sio.emit("join_session", {"sessionId": session_id})
        sio.emit("leave_session", {"sessionId": session_id})
        sio.get_received()

        client.post(f"/queue/{session_id}", json={"song": song_descriptor("a")})

        assert events_named(sio.get_received(), "queue_updated") == []

    def test_join_unknown_session(self, sio):
        sio.get_received()
        sio.emit("join_session", {"sessionId": 999})
        errors = events_named(sio.get_received(), "error")
        assert errors == [{"message": "Session not found"}]

    def test_join_without_session_id(self, sio):
        sio.get_received()
        sio.emit("join_session", {})
        assert events_named(sio.get_received(), "error") == [{"message": "sessionId is required"}]


def test_broadcast_without_socketio_is_a_no_op(monkeypatch):
    monkeypatch.setattr(handlers, "socketio", None)
    handlers.broadcast("queue_updated", 1, {"sessionId": 1, "queue": []})
