"""
Vote-ranked song queue.

Each unplayed entry carries a vote count and the set of voters behind it; the
count is always recomputed from the voter rows so the two never drift apart.
Entries are ranked by votes, highest first, with ties broken by insertion
order (oldest first).
"""

import logging
from contextlib import contextmanager
from sqlalchemy.exc import IntegrityError
from letsvibe.errors import NotFoundError, ValidationError
from letsvibe.models import QueueItem, QueueVote, get_db
from letsvibe.services import session_service, song_service
from letsvibe.utils.locks import session_locks


logger = logging.getLogger(__name__)


@contextmanager
def locked_db(session_id):
    """Database session whose commit happens while the session's queue lock is held"""
    with session_locks.hold(session_id):
        with get_db() as db:
            yield db


def _ranked(query):
    return query.order_by(QueueItem.votes.desc(), QueueItem.id.asc())


def get_item(db, item_id):
    return db.get(QueueItem, item_id)


def require_item(db, item_id, session_id=None):
    item = get_item(db, item_id)
    if item is None or (session_id is not None and item.session_id != session_id):
        raise NotFoundError("Queue item not found")
    return item


def find_unplayed(db, session_id, song_id):
    return (
        db.query(QueueItem)
        .filter_by(session_id=session_id, song_id=song_id, played=False)
        .first()
    )


def _sync_vote_count(item):
    item.votes = len(item.voters)


def add_to_queue(db, session_id, descriptor, voter_id=None):
    """
    Queue a song for a session. Resubmitting a song that is already queued and
    unplayed counts as a vote from ``voter_id`` instead of a second entry.
    """
    song_service.validate_song_descriptor(descriptor)
    session_service.require_session(db, session_id)
    song = song_service.resolve_song(db, descriptor)

    existing = find_unplayed(db, session_id, song.id)
    if existing is None:
        item = QueueItem(session_id=session_id, song=song, votes=0, played=False)
        if voter_id:
            item.voters.append(QueueVote(voter_id=voter_id))
        _sync_vote_count(item)
        try:
            with db.begin_nested():
                db.add(item)
        except IntegrityError:
            # another writer queued the same song first
            logger.info("Song %s already queued in session %s, counting as a vote", song.id, session_id)
            existing = find_unplayed(db, session_id, song.id)
            if existing is None:
                raise
        else:
            logger.info("Queued %s in session %s (item %s)", song.id, session_id, item.id)
            return item

    if voter_id and voter_id not in existing.voter_ids:
        return upvote(db, existing.id, voter_id)
    return existing


def list_queue(db, session_id, include_played=False):
    query = db.query(QueueItem).filter(QueueItem.session_id == session_id)
    if not include_played:
        query = query.filter(QueueItem.played.is_(False))
    return _ranked(query).all()


def upvote(db, item_id, voter_id, session_id=None):
    """Add one vote from ``voter_id``; voting twice is a no-op"""
    if not voter_id:
        raise ValidationError("Voter ID is required")
    item = require_item(db, item_id, session_id)

    if item.played or voter_id in item.voter_ids:
        return item

    try:
        with db.begin_nested():
            item.voters.append(QueueVote(voter_id=voter_id))
            _sync_vote_count(item)
    except IntegrityError:
        logger.info("Duplicate vote from %s on item %s ignored", voter_id, item_id)
        db.refresh(item)
        # the other writer's vote row is there; bring the count in line with it
        _sync_vote_count(item)
        db.flush()
    return item


def remove_vote(db, item_id, voter_id, session_id=None):
    """Withdraw the vote from ``voter_id``; a voter who never voted is a no-op"""
    if not voter_id:
        raise ValidationError("Voter ID is required")
    item = require_item(db, item_id, session_id)

    if item.played:
        return item
    vote = next((vote for vote in item.voters if vote.voter_id == voter_id), None)
    if vote is None:
        return item

    item.voters.remove(vote)
    _sync_vote_count(item)
    db.flush()
    return item


def mark_played(db, item_id, session_id=None):
    item = require_item(db, item_id, session_id)
    if not item.played:
        item.played = True
        db.flush()
        logger.info("Marked item %s (%s) as played", item.id, item.song_id)
    return item


def next_song(db, session_id, exclude_song_id=None):
    """Highest-voted unplayed entry, or None when nothing is left"""
    query = db.query(QueueItem).filter(
        QueueItem.session_id == session_id,
        QueueItem.played.is_(False),
    )
    if exclude_song_id:
        query = query.filter(QueueItem.song_id != exclude_song_id)
    return _ranked(query).first()


def remove_from_queue(db, item_id, session_id=None):
    """Delete an entry; returns its last state as a dict"""
    item = require_item(db, item_id, session_id)
    snapshot = item.to_dict()
    db.delete(item)
    db.flush()
    logger.info("Removed item %s from session %s", item_id, snapshot["sessionId"])
    return snapshot
