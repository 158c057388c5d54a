"""
Database configuration and session management for Let's Vibe.
"""

import logging
import os
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///letsvibe.db"

SessionLocal = sessionmaker(autocommit=False, autoflush=False)
Base = declarative_base()
engine = None


def normalize_database_url(database_url):
    """Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.x"""
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url or DEFAULT_DATABASE_URL


def _enable_sqlite_savepoints(sqlite_engine):
    """pysqlite manages BEGIN itself and breaks SAVEPOINT; let SQLAlchemy emit it"""

    @event.listens_for(sqlite_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def configure_database(database_url=None):
    """Create the engine for the given URL and bind the session factory to it"""
    global engine

    database_url = normalize_database_url(database_url or os.getenv("DATABASE_URL"))
    options = {"echo": False}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url == "sqlite://":
            # one shared connection, otherwise every session sees an empty database
            options["poolclass"] = StaticPool
    else:
        options.update(pool_size=10, max_overflow=20, pool_pre_ping=True, pool_recycle=300)

    if engine is not None:
        engine.dispose()
    engine = create_engine(database_url, **options)
    if database_url.startswith("sqlite"):
        _enable_sqlite_savepoints(engine)
    SessionLocal.configure(bind=engine)
    logger.info("Database configured (%s)", engine.url.render_as_string(hide_password=True))
    return engine


def init_db():
    """Initialize database tables"""
    if engine is None:
        configure_database()
    # model modules register their tables on Base when imported
    from letsvibe.models import song_models, session_models, queue_models, playback_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")


def drop_db():
    Base.metadata.drop_all(bind=engine)


@contextmanager
def get_db():
    """Context manager for database sessions with automatic commit/rollback"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
