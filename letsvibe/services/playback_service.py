"""
Persisted playback state, one row per session.
"""

from letsvibe.errors import ValidationError
from letsvibe.models import PlaybackState
from letsvibe.models.playback_models import DEFAULT_VOLUME


def get_playback_state(db, session_id):
    return db.query(PlaybackState).filter_by(session_id=session_id).first()


def _clean_update(data):
    cleaned = {}
    if "isPlaying" in data:
        if not isinstance(data["isPlaying"], bool):
            raise ValidationError("isPlaying must be a boolean")
        cleaned["is_playing"] = data["isPlaying"]
    for key, column, low, high in (("progress", "progress", 0, None), ("volume", "volume", 0, 100)):
        if key not in data:
            continue
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{key} must be a number")
        value = max(low, int(value))
        if high is not None:
            value = min(high, value)
        cleaned[column] = value
    return cleaned


def update_playback_state(db, session_id, data):
    """Create or update the playback state for a session"""
    cleaned = _clean_update(data or {})
    state = get_playback_state(db, session_id)
    if state is None:
        state = PlaybackState(
            session_id=session_id,
            is_playing=cleaned.get("is_playing", False),
            progress=cleaned.get("progress", 0),
            volume=cleaned.get("volume", DEFAULT_VOLUME),
        )
        db.add(state)
    else:
        for column, value in cleaned.items():
            setattr(state, column, value)
    db.flush()
    return state
