"""
Tests for the vote-ranked queue
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import song_descriptor
from letsvibe.errors import InvalidSongDataError, NotFoundError, ValidationError
from letsvibe.models import QueueItem, QueueVote, Song
from letsvibe.services import queue_service, session_service


@pytest.fixture
def party(db):
    session = session_service.create_session(db, {"name": "Party"})
    db.commit()
    return session.id


def add_with_votes(db, session_id, song_id, voters):
    item = queue_service.add_to_queue(db, session_id, song_descriptor(song_id), voters[0] if voters else None)
    for voter in voters[1:]:
        queue_service.upvote(db, item.id, voter)
    return item


class TestAddToQueue:
    """Adding songs and resubmitting them"""

    def test_add_with_voter_starts_at_one_vote(self, db, party):
        item = queue_service.add_to_queue(db, party, song_descriptor("t1"), "u1")
        assert item.votes == 1
        assert item.voter_ids == ["u1"]
        assert item.played is False
        assert item.song.uri == "spotify:track:t1"

    def test_add_without_voter_starts_at_zero_votes(self, db, party):
        item = queue_service.add_to_queue(db, party, song_descriptor("t1"))
        assert item.votes == 0
        assert item.voter_ids == []

    def test_resubmitting_a_song_counts_as_a_vote(self, db, party):
        first = queue_service.add_to_queue(db, party, song_descriptor("songA"), "voterX")
        second = queue_service.add_to_queue(db, party, song_descriptor("songA"), "voterY")

        assert second.id == first.id
        entries = [i for i in queue_service.list_queue(db, party) if i.song_id == "songA"]
        assert len(entries) == 1
        assert entries[0].votes == 2
        assert set(entries[0].voter_ids) == {"voterX", "voterY"}

    def test_resubmitting_by_same_voter_is_unchanged(self, db, party):
        queue_service.add_to_queue(db, party, song_descriptor("songA"), "voterX")
        item = queue_service.add_to_queue(db, party, song_descriptor("songA"), "voterX")
        assert item.votes == 1
        assert item.voter_ids == ["voterX"]

    def test_resubmitting_without_voter_is_unchanged(self, db, party):
        queue_service.add_to_queue(db, party, song_descriptor("songA"), "voterX")
        item = queue_service.add_to_queue(db, party, song_descriptor("songA"))
        assert item.votes == 1

    def test_played_song_can_be_queued_again(self, db, party):
        first = queue_service.add_to_queue(db, party, song_descriptor("songA"), "u1")
        queue_service.mark_played(db, first.id)

        second = queue_service.add_to_queue(db, party, song_descriptor("songA"), "u1")
        assert second.id != first.id
        assert second.votes == 1
        assert len(queue_service.list_queue(db, party, include_played=True)) == 2

    def test_invalid_song_is_rejected_before_any_write(self, db, party):
        with pytest.raises(InvalidSongDataError):
            queue_service.add_to_queue(db, party, {"title": "No id"}, "u1")
        with pytest.raises(InvalidSongDataError):
            queue_service.add_to_queue(db, party, {"id": "t1"}, "u1")

        assert db.query(Song).count() == 0
        assert db.query(QueueItem).count() == 0

    def test_unknown_session_is_not_found(self, db):
        with pytest.raises(NotFoundError):
            queue_service.add_to_queue(db, 999, song_descriptor("t1"), "u1")

    def test_duplicate_unplayed_entry_is_rejected_by_the_database(self, db, party):
        queue_service.add_to_queue(db, party, song_descriptor("songA"), "u1")
        db.add(QueueItem(session_id=party, song_id="songA", votes=0, played=False))
        with pytest.raises(IntegrityError):
            db.flush()

    def test_concurrent_add_of_same_song_becomes_a_vote(self, db, party):
        # another writer queued songA between our lookup and our insert
        first = queue_service.add_to_queue(db, party, song_descriptor("songA"), "u1")

        with patch.object(queue_service, "find_unplayed", side_effect=[None, first]) as mock_find:
            item = queue_service.add_to_queue(db, party, song_descriptor("songA"), "u2")

        assert mock_find.call_count == 2
        assert item.id == first.id
        assert item.votes == 2
        assert set(item.voter_ids) == {"u1", "u2"}
        assert db.query(QueueItem).filter_by(session_id=party, song_id="songA").count() == 1
        assert db.query(QueueVote).filter_by(queue_item_id=first.id).count() == 2


class TestVoting:
    """Vote count always matches the voter set"""

    def test_party_scenario(self, db, party):
        item = queue_service.add_to_queue(
            db, party, {"id": "t1", "uri": "spotify:track:t1", "durationMs": 200000}, "u1"
        )
        item = queue_service.upvote(db, item.id, "u2")
        db.commit()

        data = item.to_dict()
        assert data["votes"] == 2
        assert data["voterIds"] == ["u1", "u2"]
        assert data["played"] is False

    def test_upvote_twice_is_idempotent(self, db, party):
        item = add_with_votes(db, party, "t1", ["u1", "u2"])
        again = queue_service.upvote(db, item.id, "u2")
        assert again.votes == 2
        assert again.voter_ids == ["u1", "u2"]
        assert db.query(QueueVote).filter_by(queue_item_id=item.id).count() == 2

    def test_concurrent_duplicate_vote_is_counted_once(self, db, party):
        item = add_with_votes(db, party, "t1", ["u1"])
        # another writer stored u2's vote after we loaded the item
        db.execute(QueueVote.__table__.insert().values(queue_item_id=item.id, voter_id="u2"))

        item = queue_service.upvote(db, item.id, "u2")

        assert item.votes == 2
        assert sorted(item.voter_ids) == ["u1", "u2"]
        assert db.query(QueueVote).filter_by(queue_item_id=item.id).count() == 2
        db.commit()
        assert db.get(QueueItem, item.id).votes == 2

    def test_remove_vote_by_non_voter_is_idempotent(self, db, party):
        item = add_with_votes(db, party, "t1", ["u1"])
        same = queue_service.remove_vote(db, item.id, "stranger")
        assert same.votes == 1
        assert same.voter_ids == ["u1"]

    def test_remove_vote_never_goes_negative(self, db, party):
        item = add_with_votes(db, party, "t1", ["u1"])
        queue_service.remove_vote(db, item.id, "u1")
        item = queue_service.remove_vote(db, item.id, "u1")
        assert item.votes == 0
        assert item.voter_ids == []

    def test_count_matches_voters_after_every_mutation(self, db, party):
        item = queue_service.add_to_queue(db, party, song_descriptor("t1"))
        steps = [
            ("up", "a"), ("up", "b"), ("up", "a"), ("down", "c"), ("down", "a"),
            ("up", "c"), ("down", "b"), ("down", "b"), ("up", "a"), ("down", "c"),
        ]
        for action, voter in steps:
            if action == "up":
                item = queue_service.upvote(db, item.id, voter)
            else:
                item = queue_service.remove_vote(db, item.id, voter)
            db.flush()
            assert item.votes == len(item.voters)
            stored = db.query(QueueVote).filter_by(queue_item_id=item.id).count()
            assert stored == item.votes
        assert sorted(item.voter_ids) == ["a"]

    def test_missing_voter_is_rejected(self, db, party):
        item = add_with_votes(db, party, "t1", ["u1"])
        with pytest.raises(ValidationError):
            queue_service.upvote(db, item.id, None)
        with pytest.raises(ValidationError):
            queue_service.remove_vote(db, item.id, "")
        assert item.votes == 1

    def test_unknown_item_is_not_found(self, db, party):
        with pytest.raises(NotFoundError):
            queue_service.upvote(db, 12345, "u1")
        with pytest.raises(NotFoundError):
            queue_service.remove_vote(db, 12345, "u1")

    def test_item_from_another_session_is_not_found(self, db, party):
        other = session_service.create_session(db, {"name": "Other"})
        item = add_with_votes(db, party, "t1", ["u1"])
        with pytest.raises(NotFoundError):
            queue_service.upvote(db, item.id, "u2", session_id=other.id)

    def test_votes_on_played_entry_are_ignored(self, db, party):
        item = add_with_votes(db, party, "t1", ["u1"])
        queue_service.mark_played(db, item.id)
        assert queue_service.upvote(db, item.id, "u2").votes == 1
        assert queue_service.remove_vote(db, item.id, "u1").votes == 1


class TestRanking:
    """Ordering, played filtering and next-song selection"""

    def test_list_orders_by_votes_descending(self, db, party):
        add_with_votes(db, party, "low", ["a"])
        add_with_votes(db, party, "high", ["a", "b", "c"])
        add_with_votes(db, party, "mid", ["a", "b"])

        assert [i.song_id for i in queue_service.list_queue(db, party)] == ["high", "mid", "low"]

    def test_ties_keep_insertion_order(self, db, party):
        for song_id in ("first", "second", "third"):
            add_with_votes(db, party, song_id, ["a"])
        assert [i.song_id for i in queue_service.list_queue(db, party)] == ["first", "second", "third"]

    def test_played_entries_are_hidden_by_default(self, db, party):
        a = add_with_votes(db, party, "a", ["u1", "u2"])
        add_with_votes(db, party, "b", ["u1"])
        queue_service.mark_played(db, a.id)

        assert [i.song_id for i in queue_service.list_queue(db, party)] == ["b"]
        with_played = queue_service.list_queue(db, party, include_played=True)
        assert {i.song_id for i in with_played} == {"a", "b"}
        assert queue_service.next_song(db, party).song_id == "b"

    def test_next_song_is_none_when_queue_is_empty(self, db, party):
        assert queue_service.next_song(db, party) is None

    def test_next_song_is_none_when_everything_played(self, db, party):
        item = add_with_votes(db, party, "a", ["u1"])
        queue_service.mark_played(db, item.id)
        assert queue_service.next_song(db, party) is None

    def test_next_song_returns_highest_votes(self, db, party):
        add_with_votes(db, party, "a", ["u1"])
        add_with_votes(db, party, "b", ["u1", "u2"])
        assert queue_service.next_song(db, party).song_id == "b"

    def test_next_song_can_skip_the_current_song(self, db, party):
        add_with_votes(db, party, "a", ["u1", "u2"])
        add_with_votes(db, party, "b", ["u1"])
        assert queue_service.next_song(db, party, exclude_song_id="a").song_id == "b"

    def test_queues_are_scoped_per_session(self, db, party):
        other = session_service.create_session(db, {"name": "Other"})
        add_with_votes(db, party, "a", ["u1"])
        add_with_votes(db, other.id, "b", ["u1"])
        assert [i.song_id for i in queue_service.list_queue(db, party)] == ["a"]
        assert [i.song_id for i in queue_service.list_queue(db, other.id)] == ["b"]


class TestRemoveFromQueue:
    def test_remove_returns_last_state(self, db, party):
        item = add_with_votes(db, party, "a", ["u1", "u2"])
        snapshot = queue_service.remove_from_queue(db, item.id)

        assert snapshot["songId"] == "a"
        assert snapshot["votes"] == 2
        assert queue_service.get_item(db, item.id) is None
        assert db.query(QueueVote).count() == 0

    def test_remove_unknown_item_is_not_found(self, db, party):
        with pytest.raises(NotFoundError):
            queue_service.remove_from_queue(db, 404)

    def test_mark_played_is_terminal(self, db, party):
        item = add_with_votes(db, party, "a", ["u1"])
        queue_service.mark_played(db, item.id)
        assert queue_service.mark_played(db, item.id).played is True
