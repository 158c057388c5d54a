"""
Music queue and voting models for Let's Vibe.
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from .database_config import Base


class QueueItem(Base):
    __tablename__ = "queue_items"
    __table_args__ = (
        # at most one unplayed entry per (session, song)
        Index(
            "uq_queue_items_unplayed_song",
            "session_id",
            "song_id",
            unique=True,
            sqlite_where=text("played = 0"),
            postgresql_where=text("NOT played"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("listening_sessions.id"), nullable=False, index=True)
    song_id = Column(String, ForeignKey("songs.id"), nullable=False)
    votes = Column(Integer, nullable=False, default=0)
    played = Column(Boolean, nullable=False, default=False)
    added_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    song = relationship("Song", lazy="joined")
    voters = relationship(
        "QueueVote",
        back_populates="queue_item",
        cascade="all, delete-orphan",
        order_by="QueueVote.id",
        lazy="selectin",
    )

    @property
    def voter_ids(self):
        return [vote.voter_id for vote in self.voters]

    def to_dict(self):
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "songId": self.song_id,
            "votes": self.votes,
            "voterIds": self.voter_ids,
            "played": self.played,
            "addedAt": self.added_at.isoformat() if self.added_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "song": self.song.to_dict() if self.song else None,
        }

    def __repr__(self):
        return f"<QueueItem {self.song_id} votes={self.votes}{' played' if self.played else ''}>"


class QueueVote(Base):
    __tablename__ = "queue_votes"
    __table_args__ = (
        UniqueConstraint("queue_item_id", "voter_id", name="uq_queue_votes_item_voter"),
    )

    id = Column(Integer, primary_key=True, index=True)
    queue_item_id = Column(Integer, ForeignKey("queue_items.id", ondelete="CASCADE"), nullable=False, index=True)
    voter_id = Column(String, nullable=False)
    timestamp = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    queue_item = relationship("QueueItem", back_populates="voters")

    def __repr__(self):
        return f"<QueueVote {self.voter_id} for item {self.queue_item_id}>"
