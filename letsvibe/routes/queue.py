"""
Queue routes for Let's Vibe.
Handles adding songs, voting, and reading the ranked queue.
"""

from flask import Blueprint, request, jsonify
from letsvibe.errors import NotFoundError
from letsvibe.models import get_db
from letsvibe.services import queue_service, session_service
from letsvibe.utils.identity import supplied_user_id
from letsvibe.websockets.handlers import broadcast_queue, queue_payload


queue_bp = Blueprint('queue', __name__)


def _voter_id(data):
    """Explicit voterId in the body wins over the X-User-Id header"""
    return data.get("voterId") or supplied_user_id()


@queue_bp.route("/<int:session_id>")
def list_queue(session_id):
    include_played = request.args.get("includePlayedSongs", "false").lower() == "true"
    with get_db() as db:
        items = queue_service.list_queue(db, session_id, include_played=include_played)
        return jsonify([item.to_dict() for item in items])


@queue_bp.route("/<int:session_id>", methods=["POST"])
def add_to_queue(session_id):
    data = request.get_json(silent=True) or {}
    with queue_service.locked_db(session_id) as db:
        item = queue_service.add_to_queue(db, session_id, data.get("song"), _voter_id(data))
        payload = item.to_dict()
        snapshot = queue_payload(db, session_id)
    broadcast_queue(snapshot)
    return jsonify(payload), 201


@queue_bp.route("/<int:session_id>/items/<int:item_id>/upvote", methods=["POST"])
def upvote(session_id, item_id):
    data = request.get_json(silent=True) or {}
    with queue_service.locked_db(session_id) as db:
        item = queue_service.upvote(db, item_id, data.get("voterId"), session_id=session_id)
        payload = item.to_dict()
        snapshot = queue_payload(db, session_id)
    broadcast_queue(snapshot)
    return jsonify(payload)


@queue_bp.route("/<int:session_id>/items/<int:item_id>/downvote", methods=["POST"])
def downvote(session_id, item_id):
    data = request.get_json(silent=True) or {}
    with queue_service.locked_db(session_id) as db:
        item = queue_service.remove_vote(db, item_id, data.get("voterId"), session_id=session_id)
        payload = item.to_dict()
        snapshot = queue_payload(db, session_id)
    broadcast_queue(snapshot)
    return jsonify(payload)


@queue_bp.route("/<int:session_id>/items/<int:item_id>/played", methods=["PUT"])
def mark_played(session_id, item_id):
    with queue_service.locked_db(session_id) as db:
        item = queue_service.mark_played(db, item_id, session_id=session_id)
        payload = item.to_dict()
        snapshot = queue_payload(db, session_id)
    broadcast_queue(snapshot)
    return jsonify(payload)


@queue_bp.route("/<int:session_id>/next")
def next_song(session_id):
    with get_db() as db:
        session_service.require_session(db, session_id)
        item = queue_service.next_song(db, session_id)
        if item is None:
            raise NotFoundError("No songs in queue")
        return jsonify(item.to_dict())


@queue_bp.route("/<int:session_id>/items/<int:item_id>", methods=["DELETE"])
def remove_from_queue(session_id, item_id):
    with queue_service.locked_db(session_id) as db:
        payload = queue_service.remove_from_queue(db, item_id, session_id=session_id)
        snapshot = queue_payload(db, session_id)
    broadcast_queue(snapshot)
    return jsonify(payload)
