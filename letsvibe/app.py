"""
Application factory for Let's Vibe.
Wires configuration, database, routes, error handlers and Socket.IO together.
"""

import atexit
import logging
from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from letsvibe.api.spotify import create_oauth
from letsvibe.errors import LetsVibeError
from letsvibe.models import configure_database, init_db
from letsvibe.playback import registry
from letsvibe.utils import config, identity
from letsvibe.websockets.handlers import init_socketio


logger = logging.getLogger(__name__)


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def register_blueprints(app):
    from letsvibe.routes.session import session_bp
    from letsvibe.routes.queue import queue_bp
    from letsvibe.routes.playback import playback_bp
    from letsvibe.routes.spotify_auth import spotify_auth_bp
    from letsvibe.routes.search import search_bp

    app.register_blueprint(session_bp, url_prefix="/sessions")
    app.register_blueprint(queue_bp, url_prefix="/queue")
    app.register_blueprint(playback_bp, url_prefix="/playback")
    app.register_blueprint(spotify_auth_bp, url_prefix="/spotify")
    app.register_blueprint(search_bp, url_prefix="/search")


def register_error_handlers(app):
    @app.errorhandler(LetsVibeError)
    def handle_app_error(e):
        if e.status >= 500:
            logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        logger.exception("Database error")
        return jsonify({"error": "Database error", "code": "DATABASE_ERROR"}), 500

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"error": "Not found", "code": "NOT_FOUND"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"}), 405


def create_app(overrides=None):
    """Build the Flask app; ``overrides`` replace settings read from the environment"""
    app = Flask(__name__)
    config.init_app(app, overrides)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    configure_database(app.config["DATABASE_URL"])
    init_db()

    identity.init_app(app)
    app.oauth = create_oauth(app.config)

    register_blueprints(app)
    register_error_handlers(app)

    @app.route("/health")
    def health():
        return jsonify(status="ok")

    init_socketio(app)
    atexit.register(registry.stop_all)

    logger.info("Let's Vibe app created")
    return app
