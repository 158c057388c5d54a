"""
Listening session routes for Let's Vibe.
Handles creating, reading, updating and ending sessions.
"""

import logging
from flask import Blueprint, request, jsonify
from letsvibe.errors import ValidationError
from letsvibe.models import get_db
from letsvibe.playback import registry
from letsvibe.services import session_service


logger = logging.getLogger(__name__)

session_bp = Blueprint('sessions', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@session_bp.route("", methods=["POST"])
def create_session():
    data = _json_body()
    with get_db() as db:
        listening_session = session_service.create_session(db, data)
        return jsonify(listening_session.to_dict()), 201


@session_bp.route("")
def list_active_sessions():
    with get_db() as db:
        return jsonify([s.to_dict() for s in session_service.list_active_sessions(db)])


@session_bp.route("/<int:session_id>")
def get_session(session_id):
    with get_db() as db:
        return jsonify(session_service.require_session(db, session_id).to_dict())


@session_bp.route("/<int:session_id>", methods=["PUT"])
def update_session(session_id):
    data = _json_body()
    with get_db() as db:
        listening_session = session_service.update_session(db, session_id, data)
        return jsonify(listening_session.to_dict())


@session_bp.route("/<int:session_id>", methods=["DELETE"])
def deactivate_session(session_id):
    """End a session; its playback loop stops with it"""
    with get_db() as db:
        listening_session = session_service.deactivate_session(db, session_id)
        payload = listening_session.to_dict()
    registry.stop_for(session_id)
    logger.info("Session %s ended", session_id)
    return jsonify(payload)
