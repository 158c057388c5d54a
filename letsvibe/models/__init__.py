"""
Database models for Let's Vibe
"""

from .database_config import Base, SessionLocal, configure_database, init_db, drop_db, get_db
from .song_models import Song
from .session_models import ListeningSession
from .queue_models import QueueItem, QueueVote
from .playback_models import PlaybackState

__all__ = [
    'Base', 'SessionLocal', 'configure_database', 'init_db', 'drop_db', 'get_db',
    'Song', 'ListeningSession', 'QueueItem', 'QueueVote', 'PlaybackState',
]
