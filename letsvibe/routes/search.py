"""
Music search routes for Let's Vibe.
Searches the Spotify catalog, with or without a signed-in user.
"""

import logging
from flask import Blueprint, current_app, request, jsonify, session
from letsvibe.api.spotify import SpotifyCredentials, SpotifyPlayer, client_credentials_token, format_duration
from letsvibe.errors import ValidationError
from letsvibe.models import get_db
from letsvibe.playback import player_for_session
from letsvibe.services import session_service
from letsvibe.utils.config import cache


logger = logging.getLogger(__name__)

search_bp = Blueprint('search', __name__)

MAX_SEARCH_LIMIT = 50


def _search_player(session_id):
    """Prefer the party host's tokens, then the caller's, then app-only credentials"""
    oauth = getattr(current_app, "oauth", None)
    if session_id is not None:
        with get_db() as db:
            listening_session = session_service.get_session(db, session_id)
            if listening_session is not None and listening_session.access_token:
                return player_for_session(listening_session, oauth=oauth)

    token_info = session.get("spotify_token")
    if token_info and token_info.get("access_token"):
        return SpotifyPlayer(
            SpotifyCredentials(token_info["access_token"], refresh_token=token_info.get("refresh_token")),
            oauth=oauth,
        )

    return SpotifyPlayer(SpotifyCredentials(client_credentials_token(current_app.config)))


@search_bp.route("/tracks")
def search_tracks():
    """Search for tracks using Spotify API"""
    query = request.args.get("q", "").strip()
    limit = request.args.get("limit", 10, type=int) or 10
    session_id = request.args.get("sessionId", type=int)

    if not query:
        raise ValidationError("Search query is required")
    limit = max(1, min(limit, MAX_SEARCH_LIMIT))

    cache_key = f"search:{query.lower()}:{limit}"
    cached = cache.get(cache_key)
    if cached is not None:
        return jsonify(cached)

    songs = _search_player(session_id).search_catalog(query, limit=limit)
    for song in songs:
        song["durationText"] = format_duration(song["durationMs"])

    results = {"tracks": songs}
    cache.set(cache_key, results, timeout=current_app.config.get("SEARCH_CACHE_TIMEOUT", 300))
    logger.info("Search '%s' returned %d tracks", query, len(songs))
    return jsonify(results)
