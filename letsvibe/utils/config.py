"""
Configuration module for Let's Vibe.
Handles app configuration, session storage, and cache initialization.
"""

import logging
import os
import tempfile
from datetime import timedelta
from urllib.parse import urlparse

import redis
from dotenv import load_dotenv
from flask_caching import Cache
from flask_session import Session


logger = logging.getLogger(__name__)

cache = Cache()


def _env_float(name, default):
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def load_settings():
    """Read settings from the environment (and .env when present)"""
    load_dotenv()
    return {
        "SECRET_KEY": os.getenv("SECRET_KEY", "change-me-in-production"),
        "DATABASE_URL": os.getenv("DATABASE_URL", "sqlite:///letsvibe.db"),
        "REDIS_URL": os.getenv("REDIS_URL"),
        "SPOTIFY_CLIENT_ID": os.getenv("SPOTIFY_CLIENT_ID"),
        "SPOTIFY_CLIENT_SECRET": os.getenv("SPOTIFY_CLIENT_SECRET"),
        "SPOTIFY_REDIRECT_URI": os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:8888/spotify/callback"),
        "FRONTEND_URL": os.getenv("FRONTEND_URL", "http://localhost:5173"),
        "RECONCILE_INTERVAL": _env_float("RECONCILE_INTERVAL", 1.0),
        "VERIFY_EVERY_TICKS": _env_int("VERIFY_EVERY_TICKS", 3),
        "TRANSITION_RETRIES": _env_int("TRANSITION_RETRIES", 3),
        "TRANSITION_RETRY_DELAY": _env_float("TRANSITION_RETRY_DELAY", 1.0),
        "SEARCH_CACHE_TIMEOUT": _env_int("SEARCH_CACHE_TIMEOUT", 300),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        "PRODUCTION": os.getenv("FLASK_ENV") == "production",
    }


def get_redis_url(redis_url):
    """Get Redis URL with proper SSL configuration for Heroku"""
    if redis_url and redis_url.startswith("rediss://") and "ssl_cert_reqs" not in redis_url:
        return redis_url + "?ssl_cert_reqs=none"
    return redis_url


def create_redis_client(redis_url):
    """Create a Redis client, or None when Redis is not configured or unreachable"""
    if not redis_url:
        return None
    try:
        parsed = urlparse(redis_url)
        client = redis.Redis(
            host=parsed.hostname,
            port=parsed.port or 6379,
            password=parsed.password,
            ssl=parsed.scheme == "rediss",
            ssl_cert_reqs=None,
            socket_connect_timeout=3,
            socket_timeout=3,
        )
        client.ping()
        logger.info("Redis connected at %s:%s", parsed.hostname, parsed.port or 6379)
        return client
    except redis.RedisError as e:
        logger.warning("Redis connection failed (%s), using local fallbacks", e)
        return None


def configure_session_storage(app, redis_client):
    """Configure server-side session storage, preferring Redis"""
    app.config.setdefault("SESSION_PERMANENT", True)
    app.config.setdefault("SESSION_USE_SIGNER", True)
    app.config.setdefault("SESSION_KEY_PREFIX", "letsvibe:")
    app.config.setdefault("PERMANENT_SESSION_LIFETIME", timedelta(hours=24))
    app.config.setdefault("SESSION_COOKIE_HTTPONLY", True)
    app.config.setdefault("SESSION_COOKIE_SAMESITE", "Lax")
    app.config.setdefault("SESSION_COOKIE_SECURE", bool(app.config.get("PRODUCTION")))

    if app.config.get("SESSION_TYPE"):
        return

    if redis_client is not None:
        app.config["SESSION_TYPE"] = "redis"
        app.config["SESSION_REDIS"] = redis_client
        logger.info("Using Redis for session storage")
    else:
        app.config["SESSION_TYPE"] = "filesystem"
        app.config.setdefault("SESSION_FILE_DIR", os.path.join(tempfile.gettempdir(), "letsvibe_sessions"))
        logger.info("Using filesystem for session storage")


def configure_cache(app, redis_client):
    if app.config.get("CACHE_TYPE"):
        pass
    elif redis_client is not None:
        app.config["CACHE_TYPE"] = "RedisCache"
        app.config["CACHE_REDIS_URL"] = get_redis_url(app.config["REDIS_URL"])
    else:
        app.config["CACHE_TYPE"] = "SimpleCache"
    app.config.setdefault("CACHE_DEFAULT_TIMEOUT", app.config["SEARCH_CACHE_TIMEOUT"])
    cache.init_app(app)
    logger.info("Cache initialized (%s)", app.config["CACHE_TYPE"])
    return cache


def init_app(app, overrides=None):
    """Initialize Flask app with configuration and return cache instance"""
    app.config.update(load_settings())
    if overrides:
        app.config.update(overrides)

    redis_client = None
    if not app.config.get("TESTING"):
        redis_client = create_redis_client(app.config.get("REDIS_URL"))

    configure_session_storage(app, redis_client)
    Session(app)

    app.cache = configure_cache(app, redis_client)
    return app.cache
