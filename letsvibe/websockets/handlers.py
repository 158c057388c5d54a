"""
Socket.IO event handlers for Let's Vibe.
Pushes queue and playback changes to everyone in a session's room.
"""

import logging
from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room
from letsvibe.models import get_db
from letsvibe.services import queue_service, session_service


logger = logging.getLogger(__name__)

# SocketIO instance is created by the app factory
socketio = None


def session_room(session_id):
    return f"session:{session_id}"


def init_socketio(app):
    """Initialize Socket.IO with the Flask app"""
    global socketio
    socketio = SocketIO(
        app,
        cors_allowed_origins=app.config.get("SOCKETIO_CORS_ORIGINS", "*"),
        ping_timeout=120,
        ping_interval=30,
        manage_session=False,
        logger=False,
        engineio_logger=False,
        async_mode="threading",
    )
    app.socketio = socketio

    register_handlers()
    return socketio


def _session_id_from(data):
    try:
        return int((data or {}).get("sessionId"))
    except (TypeError, ValueError):
        return None


def register_handlers():
    """Register all Socket.IO event handlers"""

    @socketio.on("connect")
    def handle_connect(auth=None):
        logger.debug("Client connected (sid: %s)", request.sid)
        emit("connected", {"message": "Connected successfully"})

    @socketio.on("disconnect")
    def handle_disconnect(reason=None):
        logger.debug("Client disconnected (sid: %s, reason: %s)", request.sid, reason)

    @socketio.on("join_session")
    def handle_join_session(data):
        """Subscribe to a session and receive its current queue"""
        session_id = _session_id_from(data)
        if session_id is None:
            emit("error", {"message": "sessionId is required"})
            return

        with get_db() as db:
            if session_service.get_session(db, session_id) is None:
                emit("error", {"message": "Session not found"})
                return
            payload = queue_payload(db, session_id)

        join_room(session_room(session_id))
        emit("queue_updated", payload)

    @socketio.on("leave_session")
    def handle_leave_session(data):
        session_id = _session_id_from(data)
        if session_id is not None:
            leave_room(session_room(session_id))

    @socketio.on_error_default
    def default_error_handler(e):
        logger.error("Socket.IO error on %s: %s", request.event, e)
        emit("error", {"message": "Request failed"})


def broadcast(event, session_id, payload):
    """Emit to a session's room; no-op before Socket.IO is initialized"""
    if socketio is None:
        return
    socketio.emit(event, payload, to=session_room(session_id))


def queue_payload(db, session_id):
    return {
        "sessionId": session_id,
        "queue": [item.to_dict() for item in queue_service.list_queue(db, session_id)],
    }


def broadcast_queue(payload):
    broadcast("queue_updated", payload["sessionId"], payload)


def broadcast_playback(state):
    broadcast("playback_updated", state["sessionId"], state)
