"""
Listening session model for Let's Vibe.
"""

from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from .database_config import Base


def _isoformat(value):
    return value.isoformat() if value else None


class ListeningSession(Base):
    __tablename__ = "listening_sessions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    host_id = Column(String, nullable=True)
    device_id = Column(String, nullable=True)
    access_token = Column(String, nullable=True)
    refresh_token = Column(String, nullable=True)
    token_expires_at = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    current_song_id = Column(String, ForeignKey("songs.id"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    current_song = relationship("Song", lazy="joined")

    def to_dict(self):
        # tokens stay server-side
        return {
            "id": self.id,
            "name": self.name,
            "hostId": self.host_id,
            "deviceId": self.device_id,
            "hasAccessToken": bool(self.access_token),
            "isActive": self.is_active,
            "currentSongId": self.current_song_id,
            "currentSong": self.current_song.to_dict() if self.current_song else None,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<ListeningSession {self.name} ({'active' if self.is_active else 'inactive'})>"
