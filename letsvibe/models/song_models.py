"""
Song catalog model for Let's Vibe.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime
from .database_config import Base


class Song(Base):
    __tablename__ = "songs"

    # Spotify track ID
    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    artist = Column(String, nullable=False, default="")
    album_art = Column(String, nullable=True)
    uri = Column(String, nullable=False)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "albumArt": self.album_art,
            "uri": self.uri,
            "durationMs": self.duration_ms,
        }

    def __repr__(self):
        return f"<Song {self.title} ({self.id})>"
