import pytest

from letsvibe.app import create_app
from letsvibe.models import SessionLocal, drop_db
from letsvibe.playback import registry


TEST_SETTINGS = {
    "TESTING": True,
    "DATABASE_URL": "sqlite://",
    "SECRET_KEY": "test-secret",
    "CACHE_TYPE": "SimpleCache",
    "SPOTIFY_CLIENT_ID": "test-client-id",
    "SPOTIFY_CLIENT_SECRET": "test-client-secret",
    "SPOTIFY_REDIRECT_URI": "http://localhost:8888/spotify/callback",
    "FRONTEND_URL": "http://localhost:5173/spotify-test",
    "RECONCILE_INTERVAL": 0.01,
    "TRANSITION_RETRY_DELAY": 0,
}


def song_descriptor(song_id, duration_ms=180000, **extra):
    """Song descriptor as the frontend sends it"""
    song = {
        "id": song_id,
        "title": f"Song {song_id}",
        "artist": "Test Artist",
        "albumArt": f"https://img.example/{song_id}.jpg",
        "uri": f"spotify:track:{song_id}",
        "durationMs": duration_ms,
    }
    song.update(extra)
    return song


@pytest.fixture
def app(tmp_path):
    """App wired to a fresh in-memory database"""
    settings = dict(
        TEST_SETTINGS,
        SESSION_TYPE="filesystem",
        SESSION_FILE_DIR=str(tmp_path / "sessions"),
    )
    app = create_app(settings)
    yield app
    registry.stop_all()
    drop_db()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def db(app):
    """Plain SQLAlchemy session for service-level tests"""
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()
