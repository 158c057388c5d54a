"""
Spotify integration for Let's Vibe.
Handles authentication, catalog search, and playback control.
"""

import logging
import time
from collections import namedtuple

import requests
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOAuth, SpotifyOauthError

from letsvibe.errors import PlaybackControlError, UpstreamAuthError, UpstreamUnavailableError
from letsvibe.services.song_service import song_from_track


logger = logging.getLogger(__name__)

SPOTIFY_API_BASE = "https://api.spotify.com/v1"
SPOTIFY_SCOPES = "user-read-private user-read-email user-read-playback-state user-modify-playback-state streaming"
DEFAULT_TIMEOUT = (3, 6)

PlaybackSnapshot = namedtuple(
    "PlaybackSnapshot",
    [
        "track_id",
        "track_uri",
        "track_name",
        "duration_ms",
        "progress_ms",
        "is_playing",
        "volume_percent",
        "device_id",
        "track",
    ],
)


class SpotifyCredentials:
    """
    Access and refresh tokens for one Spotify account.

    ``on_refresh`` is called with the credentials after every refresh so the
    owner can persist the new tokens.
    """

    def __init__(self, access_token, refresh_token=None, expires_at=None, on_refresh=None):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = expires_at
        self.on_refresh = on_refresh

    def update(self, token_info):
        self.access_token = token_info["access_token"]
        if token_info.get("refresh_token"):
            self.refresh_token = token_info["refresh_token"]
        if token_info.get("expires_at"):
            self.expires_at = token_info["expires_at"]
        elif token_info.get("expires_in"):
            self.expires_at = int(time.time()) + int(token_info["expires_in"])
        if self.on_refresh:
            self.on_refresh(self)

    def to_dict(self):
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }


def create_oauth(config):
    """Build the OAuth helper from app config; tokens are never cached on disk"""
    return SpotifyOAuth(
        client_id=config.get("SPOTIFY_CLIENT_ID"),
        client_secret=config.get("SPOTIFY_CLIENT_SECRET"),
        redirect_uri=config.get("SPOTIFY_REDIRECT_URI"),
        scope=SPOTIFY_SCOPES,
        show_dialog=True,
        open_browser=False,
        cache_handler=MemoryCacheHandler(),
        requests_timeout=10,
    )


def exchange_code(oauth, code):
    """Exchange an authorization code for a token dict"""
    try:
        token_info = oauth.get_access_token(code, as_dict=True, check_cache=False)
    except SpotifyOauthError as e:
        raise UpstreamAuthError(f"Token exchange failed: {e}")
    except requests.RequestException as e:
        raise UpstreamUnavailableError(f"Token exchange failed: {e}")
    if not token_info or not token_info.get("access_token"):
        raise UpstreamAuthError("Token exchange returned no access token")
    return token_info


def refresh_credentials(oauth, refresh_token):
    """Trade a refresh token for a new token dict"""
    if not refresh_token:
        raise UpstreamAuthError("No refresh token available")
    try:
        token_info = oauth.refresh_access_token(refresh_token)
    except SpotifyOauthError as e:
        raise UpstreamAuthError(f"Token refresh failed: {e}")
    except requests.RequestException as e:
        raise UpstreamUnavailableError(f"Token refresh failed: {e}")
    if not token_info or not token_info.get("access_token"):
        raise UpstreamAuthError("Token refresh returned no access token")
    return token_info


def client_credentials_token(config):
    """App-only token for catalog search when no user is signed in"""
    if not config.get("SPOTIFY_CLIENT_ID") or not config.get("SPOTIFY_CLIENT_SECRET"):
        raise UpstreamAuthError("Spotify credentials not configured")
    manager = SpotifyClientCredentials(
        client_id=config["SPOTIFY_CLIENT_ID"],
        client_secret=config["SPOTIFY_CLIENT_SECRET"],
        cache_handler=MemoryCacheHandler(),
    )
    try:
        return manager.get_access_token(as_dict=False)
    except SpotifyOauthError as e:
        raise UpstreamAuthError(f"Failed to authenticate with Spotify: {e}")
    except requests.RequestException as e:
        raise UpstreamUnavailableError(f"Failed to authenticate with Spotify: {e}")


def snapshot_from_playback(data):
    """Normalize a /me/player payload; None when nothing is loaded"""
    if not data:
        return None
    track = data.get("item") or {}
    device = data.get("device") or {}
    return PlaybackSnapshot(
        track_id=track.get("id"),
        track_uri=track.get("uri"),
        track_name=track.get("name"),
        duration_ms=track.get("duration_ms") or 0,
        progress_ms=data.get("progress_ms") or 0,
        is_playing=bool(data.get("is_playing")),
        volume_percent=device.get("volume_percent"),
        device_id=device.get("id"),
        track=track or None,
    )


class SpotifyPlayer:
    """
    Playback control for one account.

    A 401 triggers a single token refresh and retry; if Spotify still refuses
    the call a PlaybackControlError is raised.
    """

    def __init__(self, credentials, oauth=None, timeout=DEFAULT_TIMEOUT, http=None):
        self.credentials = credentials
        self.oauth = oauth
        self.timeout = timeout
        self.http = http or requests.Session()

    def _send(self, method, endpoint, params=None, data=None):
        url = f"{SPOTIFY_API_BASE}/{endpoint.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.credentials.access_token}",
            "Content-Type": "application/json",
        }
        try:
            return self.http.request(
                method,
                url,
                headers=headers,
                params=params,
                json=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Spotify %s %s failed: %s", method, endpoint, e)
            raise UpstreamUnavailableError(f"Spotify is unreachable: {e}")

    def _refresh(self):
        if self.oauth is None:
            raise PlaybackControlError("Spotify credentials expired")
        logger.info("Spotify access token rejected, refreshing")
        try:
            token_info = refresh_credentials(self.oauth, self.credentials.refresh_token)
        except UpstreamAuthError as e:
            logger.error("Spotify token refresh failed: %s", e.message)
            raise PlaybackControlError(e.message)
        self.credentials.update(token_info)

    def request(self, method, endpoint, params=None, data=None):
        if not self.credentials or not self.credentials.access_token:
            raise UpstreamAuthError("Not authenticated with Spotify")

        response = self._send(method, endpoint, params, data)
        if response.status_code == 401:
            self._refresh()
            response = self._send(method, endpoint, params, data)
            if response.status_code == 401:
                raise PlaybackControlError("Spotify rejected the refreshed credentials")

        status = response.status_code
        if status in (200, 201, 202, 204):
            if status == 204 or not response.content:
                return None
            return response.json()
        if status in (403, 404) and endpoint.startswith("me/player"):
            # 404 NO_ACTIVE_DEVICE / 403 premium or restriction
            raise PlaybackControlError(f"Spotify refused {endpoint} ({status})")
        if status == 429 or status >= 500:
            raise UpstreamUnavailableError(f"Spotify API unavailable ({status})")
        logger.error("Spotify %s %s failed: %s - %s", method, endpoint, status, response.text)
        raise UpstreamUnavailableError(f"Spotify API error ({status})", code="UPSTREAM_REJECTED")

    def get_snapshot(self):
        return snapshot_from_playback(self.request("GET", "me/player"))

    def get_devices(self):
        data = self.request("GET", "me/player/devices") or {}
        return data.get("devices", [])

    def play(self, device_id=None, uris=None, position_ms=None):
        body = {}
        if uris:
            body["uris"] = list(uris)
        if position_ms is not None:
            body["position_ms"] = int(position_ms)
        params = {"device_id": device_id} if device_id else None
        self.request("PUT", "me/player/play", params=params, data=body)

    def play_track(self, device_id, uri, offset_ms=None):
        logger.info("Playing %s on device %s", uri, device_id)
        self.play(device_id, [uri], offset_ms)

    def pause(self, device_id=None):
        params = {"device_id": device_id} if device_id else None
        self.request("PUT", "me/player/pause", params=params)

    def skip_next(self, device_id=None):
        params = {"device_id": device_id} if device_id else None
        self.request("POST", "me/player/next", params=params)

    def skip_previous(self, device_id=None):
        params = {"device_id": device_id} if device_id else None
        self.request("POST", "me/player/previous", params=params)

    def seek(self, position_ms, device_id=None):
        params = {"position_ms": max(0, int(position_ms))}
        if device_id:
            params["device_id"] = device_id
        self.request("PUT", "me/player/seek", params=params)

    def set_volume(self, volume_percent, device_id=None):
        params = {"volume_percent": max(0, min(100, int(round(volume_percent))))}
        if device_id:
            params["device_id"] = device_id
        self.request("PUT", "me/player/volume", params=params)

    def search_catalog(self, query, limit=10):
        """Search tracks and return them as song descriptors"""
        data = self.request(
            "GET",
            "search",
            params={"q": query, "type": "track", "limit": max(1, min(50, int(limit)))},
        ) or {}
        tracks = (data.get("tracks") or {}).get("items") or []
        return [song_from_track(track) for track in tracks if track and track.get("uri")]


def format_duration(duration_ms):
    """Format duration from milliseconds to MM:SS format"""
    if not duration_ms:
        return "0:00"

    total_seconds = duration_ms // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    return f"{minutes}:{seconds:02d}"
