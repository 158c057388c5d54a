"""
Playback routes for Let's Vibe.
Handles persisted playback state, Spotify playback control and devices.
"""

import logging
from flask import Blueprint, current_app, request, jsonify
from letsvibe.errors import NotFoundError, ValidationError
from letsvibe.models import get_db
from letsvibe.playback import build_reconciler, player_for_session, registry
from letsvibe.services import playback_service, queue_service, session_service, song_service
from letsvibe.websockets.handlers import broadcast_playback


logger = logging.getLogger(__name__)

playback_bp = Blueprint('playback', __name__)


def _number(data, key):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    return value


def _session_player(session_id, require_device=False):
    """Player and bound device for a session; 401 when it holds no token"""
    with get_db() as db:
        listening_session = session_service.require_session(db, session_id)
        player = player_for_session(listening_session, oauth=getattr(current_app, "oauth", None))
        device_id = listening_session.device_id
    if require_device and not device_id:
        raise ValidationError("No playback device selected for this session")
    return player, device_id


def _save_state(session_id, data):
    with get_db() as db:
        state = playback_service.update_playback_state(db, session_id, data)
        payload = state.to_dict()
    broadcast_playback(payload)
    return payload


def _snapshot_json(snapshot):
    return {
        "trackId": snapshot.track_id,
        "trackUri": snapshot.track_uri,
        "trackName": snapshot.track_name,
        "durationMs": snapshot.duration_ms,
        "progressMs": snapshot.progress_ms,
        "isPlaying": snapshot.is_playing,
        "volumePercent": snapshot.volume_percent,
        "deviceId": snapshot.device_id,
    }


@playback_bp.route("/<int:session_id>")
def get_playback_state(session_id):
    with get_db() as db:
        state = playback_service.get_playback_state(db, session_id)
        if state is None:
            raise NotFoundError("Playback state not found")
        return jsonify(state.to_dict())


@playback_bp.route("/<int:session_id>", methods=["PUT"])
def update_playback_state(session_id):
    data = request.get_json(silent=True) or {}
    with get_db() as db:
        session_service.require_session(db, session_id)
        state = playback_service.update_playback_state(db, session_id, data)
        payload = state.to_dict()
    broadcast_playback(payload)
    return jsonify(payload)


@playback_bp.route("/<int:session_id>/devices")
def get_devices(session_id):
    player, _ = _session_player(session_id)
    return jsonify({"devices": player.get_devices()})


@playback_bp.route("/<int:session_id>/play", methods=["POST"])
def play(session_id):
    """
    Start a song on the session's device and hand playback over to the
    reconciliation loop. Without a song or URI the top of the queue plays.
    """
    data = request.get_json(silent=True) or {}
    position_ms = _number(data, "positionMs") if "positionMs" in data else 0
    player, device_id = _session_player(session_id, require_device=True)

    with get_db() as db:
        if data.get("songId"):
            song = song_service.get_song(db, data["songId"])
            if song is None:
                raise NotFoundError("Song not found")
            song_id, uri, duration_ms = song.id, song.uri, song.duration_ms
        elif data.get("uri"):
            # the loop learns the song from the player's next snapshot
            song_id, uri, duration_ms = None, data["uri"], 0
        else:
            item = queue_service.next_song(db, session_id)
            if item is None:
                raise NotFoundError("No songs in queue")
            song_id, uri, duration_ms = item.song_id, item.song.uri, item.song.duration_ms

    player.play_track(device_id, uri, position_ms)

    with get_db() as db:
        if song_id:
            session_service.set_current_song(db, session_id, song_id)

    config = current_app.config
    reconciler = registry.start_for(
        session_id,
        lambda: build_reconciler(session_id, player, config, device_id=device_id, on_change=broadcast_playback),
    )
    reconciler.begin(song_id, uri, duration_ms, int(position_ms))
    logger.info("Session %s: playing %s on %s", session_id, uri, device_id)

    _save_state(session_id, {"isPlaying": True, "progress": position_ms})
    return jsonify(reconciler.state())


@playback_bp.route("/<int:session_id>/pause", methods=["POST"])
def pause(session_id):
    player, device_id = _session_player(session_id)
    player.pause(device_id)

    update = {"isPlaying": False}
    reconciler = registry.get(session_id)
    if reconciler is not None:
        update["progress"] = reconciler.progress_ms
    registry.stop_for(session_id)
    return jsonify(_save_state(session_id, update))


@playback_bp.route("/<int:session_id>/next", methods=["POST"])
def skip_next(session_id):
    player, device_id = _session_player(session_id)
    player.skip_next(device_id)
    return jsonify({"status": "success"})


@playback_bp.route("/<int:session_id>/previous", methods=["POST"])
def skip_previous(session_id):
    player, device_id = _session_player(session_id)
    player.skip_previous(device_id)
    return jsonify({"status": "success"})


@playback_bp.route("/<int:session_id>/seek", methods=["PUT"])
def seek(session_id):
    data = request.get_json(silent=True) or {}
    position_ms = max(0, int(_number(data, "positionMs")))
    player, device_id = _session_player(session_id)
    player.seek(position_ms, device_id)
    return jsonify(_save_state(session_id, {"progress": position_ms}))


@playback_bp.route("/<int:session_id>/volume", methods=["PUT"])
def set_volume(session_id):
    data = request.get_json(silent=True) or {}
    volume = max(0, min(100, int(round(_number(data, "volume")))))
    player, device_id = _session_player(session_id)
    player.set_volume(volume, device_id)
    return jsonify(_save_state(session_id, {"volume": volume}))


@playback_bp.route("/<int:session_id>/live")
def live_snapshot(session_id):
    """What the player reports right now; 204 when nothing is loaded"""
    player, _ = _session_player(session_id)
    snapshot = player.get_snapshot()
    if snapshot is None:
        return "", 204
    return jsonify(_snapshot_json(snapshot))
