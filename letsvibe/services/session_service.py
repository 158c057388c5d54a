"""
Session registry: one row per party.
"""

import logging
from letsvibe.errors import NotFoundError, ValidationError
from letsvibe.models import ListeningSession


logger = logging.getLogger(__name__)

# request keys -> column names
UPDATABLE_FIELDS = {
    "name": "name",
    "hostId": "host_id",
    "deviceId": "device_id",
    "accessToken": "access_token",
    "refreshToken": "refresh_token",
    "isActive": "is_active",
    "currentSongId": "current_song_id",
}


def _validate_name(name):
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Session name is required")
    return name.strip()


def create_session(db, data):
    data = data or {}
    session = ListeningSession(
        name=_validate_name(data.get("name")),
        host_id=data.get("hostId"),
        device_id=data.get("deviceId"),
        access_token=data.get("accessToken"),
        refresh_token=data.get("refreshToken"),
        is_active=True,
    )
    db.add(session)
    db.flush()
    logger.info("Created session %s (%s)", session.id, session.name)
    return session


def get_session(db, session_id):
    return db.get(ListeningSession, session_id)


def require_session(db, session_id):
    session = get_session(db, session_id)
    if session is None:
        raise NotFoundError("Session not found")
    return session


def update_session(db, session_id, data):
    """Merge the supplied fields into the session"""
    session = require_session(db, session_id)
    data = data or {}
    if "name" in data:
        data = dict(data, name=_validate_name(data["name"]))
    if "isActive" in data and not isinstance(data["isActive"], bool):
        raise ValidationError("isActive must be a boolean")

    for key, column in UPDATABLE_FIELDS.items():
        if key in data:
            setattr(session, column, data[key])
    db.flush()
    if "currentSongId" in data:
        db.expire(session, ["current_song"])
    return session


def list_active_sessions(db):
    return (
        db.query(ListeningSession)
        .filter(ListeningSession.is_active.is_(True))
        .order_by(ListeningSession.id)
        .all()
    )


def deactivate_session(db, session_id):
    session = require_session(db, session_id)
    if session.is_active:
        session.is_active = False
        db.flush()
        logger.info("Deactivated session %s", session_id)
    return session


def set_current_song(db, session_id, song_id):
    session = require_session(db, session_id)
    session.current_song_id = song_id
    db.flush()
    # reload the relationship from the new foreign key
    db.expire(session, ["current_song"])
    return session


def store_credentials(db, session_id, access_token, refresh_token=None, expires_at=None):
    """Save refreshed provider tokens on the session"""
    session = require_session(db, session_id)
    session.access_token = access_token
    if refresh_token:
        session.refresh_token = refresh_token
    if expires_at:
        session.token_expires_at = int(expires_at)
    db.flush()
    return session
