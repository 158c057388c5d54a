"""
Spotify authentication routes for Let's Vibe.
Handles the OAuth login flow and token refresh for the host.
"""

import logging
from urllib.parse import urlencode
from flask import Blueprint, current_app, session, request, redirect, jsonify
from letsvibe.api.spotify import exchange_code, refresh_credentials
from letsvibe.errors import LetsVibeError, ValidationError
from letsvibe.models import get_db
from letsvibe.services import session_service


logger = logging.getLogger(__name__)

spotify_auth_bp = Blueprint('spotify_auth', __name__)


def _frontend_redirect(**params):
    return redirect(f"{current_app.config['FRONTEND_URL']}?{urlencode(params)}")


@spotify_auth_bp.route("/login")
def login():
    """Redirect to Spotify; ?sessionId= binds the resulting tokens to that session"""
    session_id = request.args.get("sessionId", type=int)
    if session_id is not None:
        session["pending_session_id"] = session_id
    else:
        session.pop("pending_session_id", None)
    return redirect(current_app.oauth.get_authorize_url())


@spotify_auth_bp.route("/callback")
def callback():
    if request.args.get("error"):
        logger.warning("Spotify authorization denied: %s", request.args["error"])
        return _frontend_redirect(error="access_denied")

    code = request.args.get("code")
    if not code:
        return _frontend_redirect(error="missing_code")

    try:
        token_info = exchange_code(current_app.oauth, code)
    except LetsVibeError as e:
        logger.error("Error exchanging code for tokens: %s", e)
        return _frontend_redirect(error="token_exchange_failed")

    session["spotify_token"] = token_info

    pending_session_id = session.pop("pending_session_id", None)
    if pending_session_id is not None:
        with get_db() as db:
            if session_service.get_session(db, pending_session_id) is not None:
                session_service.store_credentials(
                    db,
                    pending_session_id,
                    token_info["access_token"],
                    token_info.get("refresh_token"),
                    token_info.get("expires_at"),
                )
                logger.info("Bound Spotify tokens to session %s", pending_session_id)

    params = {"access_token": token_info["access_token"]}
    if token_info.get("refresh_token"):
        params["refresh_token"] = token_info["refresh_token"]
    params["expires_in"] = token_info.get("expires_in", 3600)
    return _frontend_redirect(**params)


@spotify_auth_bp.route("/tokens")
def get_tokens():
    token_info = session.get("spotify_token")
    if not token_info or not token_info.get("access_token"):
        return jsonify({"error": "No tokens in session", "code": "AUTH_FAILED"}), 401
    return jsonify({
        "access_token": token_info["access_token"],
        "refresh_token": token_info.get("refresh_token"),
    })


@spotify_auth_bp.route("/refresh", methods=["POST"])
def refresh():
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token")
    if not refresh_token:
        raise ValidationError("Refresh token is required")

    token_info = refresh_credentials(current_app.oauth, refresh_token)

    stored = dict(session.get("spotify_token") or {})
    stored["access_token"] = token_info["access_token"]
    if token_info.get("refresh_token"):
        stored["refresh_token"] = token_info["refresh_token"]
    session["spotify_token"] = stored

    return jsonify({
        "access_token": token_info["access_token"],
        "refresh_token": token_info.get("refresh_token"),
    })
