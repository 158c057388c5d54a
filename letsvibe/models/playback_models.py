"""
Music playback state models for Let's Vibe.
"""

from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer
from .database_config import Base


DEFAULT_VOLUME = 100


class PlaybackState(Base):
    __tablename__ = "playback_states"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("listening_sessions.id"), nullable=False, unique=True)
    is_playing = Column(Boolean, nullable=False, default=False)
    progress = Column(Integer, nullable=False, default=0)  # milliseconds
    volume = Column(Integer, nullable=False, default=DEFAULT_VOLUME)  # 0-100
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "isPlaying": self.is_playing,
            "progress": self.progress,
            "volume": self.volume,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<PlaybackState session={self.session_id} ({'playing' if self.is_playing else 'paused'})>"
