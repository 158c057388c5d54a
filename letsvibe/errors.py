"""
Error types for Let's Vibe.

Every error carries the HTTP status it maps to and a short machine-readable
code; the app renders them as ``{"error": message, "code": code}``.
"""


ACTIVE_DEVICE_HINT = "Please ensure you have an active Spotify device."


class LetsVibeError(Exception):
    status = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message=None, code=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(LetsVibeError):
    status = 400
    code = "VALIDATION_ERROR"


class InvalidSongDataError(ValidationError):
    code = "INVALID_SONG"

    def __init__(self, message="Invalid song data", code=None):
        super().__init__(message, code)


class NotFoundError(LetsVibeError):
    status = 404
    code = "NOT_FOUND"


class UpstreamAuthError(LetsVibeError):
    """The music provider rejected our credentials"""
    status = 401
    code = "AUTH_FAILED"


class PlaybackControlError(UpstreamAuthError):
    """Credentials were refreshed and the provider still refused the call"""
    status = 502
    code = "PLAYBACK_FAILED"

    def __init__(self, message=None, code=None):
        if message:
            message = f"{message}. {ACTIVE_DEVICE_HINT}"
        else:
            message = f"Playback control failed. {ACTIVE_DEVICE_HINT}"
        super().__init__(message, code)


class UpstreamUnavailableError(LetsVibeError):
    status = 502
    code = "UPSTREAM_UNAVAILABLE"
