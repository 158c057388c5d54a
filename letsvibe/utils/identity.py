"""
Anonymous user identification for Let's Vibe.

Every browser keeps an opaque voter token. Requests carry it in the
``X-User-Id`` header; when it is missing or malformed a new one is generated
and echoed back so the client can persist it.
"""

import re
import uuid
from flask import g, request


USER_ID_HEADER = "X-User-Id"

_USER_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def generate_user_id():
    """Generate a unique user ID for an anonymous user"""
    return str(uuid.uuid4())


def is_valid_user_id(user_id):
    """Validate that a user ID is a UUID string"""
    return bool(user_id) and bool(_USER_ID_PATTERN.match(user_id))


def identify_request():
    user_id = request.headers.get(USER_ID_HEADER)
    if is_valid_user_id(user_id):
        g.user_id = user_id
        g.user_id_generated = False
    else:
        g.user_id = generate_user_id()
        g.user_id_generated = True


def echo_user_id(response):
    if g.get("user_id_generated"):
        response.headers[USER_ID_HEADER] = g.user_id
    exposed = response.headers.get("Access-Control-Expose-Headers")
    if not exposed:
        response.headers["Access-Control-Expose-Headers"] = USER_ID_HEADER
    elif USER_ID_HEADER not in exposed:
        response.headers["Access-Control-Expose-Headers"] = f"{exposed}, {USER_ID_HEADER}"
    return response


def supplied_user_id():
    """The caller's own id, or None when this request had to be given a fresh one"""
    if g.get("user_id_generated"):
        return None
    return g.get("user_id")


def init_app(app):
    app.before_request(identify_request)
    app.after_request(echo_user_id)
