"""
Builds Spotify players and reconciliation loops for stored sessions.
"""

import logging

from letsvibe.api.spotify import SpotifyCredentials, SpotifyPlayer
from letsvibe.errors import UpstreamAuthError
from letsvibe.models import get_db
from letsvibe.services import session_service
from .reconciler import PlaybackReconciler


logger = logging.getLogger(__name__)


def player_for_session(session, oauth=None):
    """
    Player using the tokens stored on ``session``; refreshed tokens are
    written back to the session row.
    """
    if not session.access_token:
        raise UpstreamAuthError("Session has no Spotify access token")

    session_id = session.id

    def save_tokens(credentials):
        with get_db() as db:
            session_service.store_credentials(
                db,
                session_id,
                credentials.access_token,
                credentials.refresh_token,
                credentials.expires_at,
            )
        logger.info("Stored refreshed Spotify tokens for session %s", session_id)

    credentials = SpotifyCredentials(
        session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.token_expires_at,
        on_refresh=save_tokens,
    )
    return SpotifyPlayer(credentials, oauth=oauth)


def build_reconciler(session_id, player, config, device_id=None, on_change=None):
    return PlaybackReconciler(
        session_id,
        player,
        device_id=device_id,
        interval=config.get("RECONCILE_INTERVAL", 1.0),
        verify_every=config.get("VERIFY_EVERY_TICKS", 3),
        retries=config.get("TRANSITION_RETRIES", 3),
        retry_delay=config.get("TRANSITION_RETRY_DELAY", 1.0),
        on_change=on_change,
    )
