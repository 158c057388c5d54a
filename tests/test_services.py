"""
Tests for the song catalog, session registry and playback state services
"""

import pytest

from conftest import song_descriptor
from letsvibe.errors import InvalidSongDataError, NotFoundError, ValidationError
from letsvibe.models import ListeningSession, Song
from letsvibe.services import playback_service, session_service, song_service


class TestSongCatalog:
    def test_resolve_creates_song_once(self, db):
        song = song_service.resolve_song(db, song_descriptor("t1", title="Original"))
        again = song_service.resolve_song(db, song_descriptor("t1", title="Renamed"))

        assert again is song
        assert again.title == "Original"
        assert db.query(Song).count() == 1

    def test_resolve_fills_in_missing_display_fields(self, db):
        song = song_service.resolve_song(db, {"id": "t2", "uri": "spotify:track:t2"})
        assert song.title == "t2"
        assert song.album_art == song_service.FALLBACK_ALBUM_ART
        assert song.duration_ms == 0

    @pytest.mark.parametrize("descriptor", [
        None,
        {},
        {"id": "t1"},
        {"uri": "spotify:track:t1"},
        {"id": "t1", "uri": "spotify:track:t1", "durationMs": -5},
        {"id": "t1", "uri": "spotify:track:t1", "durationMs": "long"},
    ])
    def test_malformed_descriptor_is_rejected(self, db, descriptor):
        with pytest.raises(InvalidSongDataError):
            song_service.resolve_song(db, descriptor)
        assert db.query(Song).count() == 0

    def test_lookup_songs_omits_unknown_ids(self, db):
        song_service.resolve_song(db, song_descriptor("a"))
        song_service.resolve_song(db, song_descriptor("b"))

        found = song_service.lookup_songs(db, ["a", "missing", "b"])
        assert sorted(song.id for song in found) == ["a", "b"]
        assert song_service.lookup_songs(db, []) == []

    def test_song_from_track(self):
        track = {
            "id": "abc",
            "name": "Midnight City",
            "uri": "spotify:track:abc",
            "duration_ms": 243000,
            "artists": [{"name": "M83"}, {"name": "Guest"}],
            "album": {"images": [
                {"url": "https://i.scdn.co/image/large-640"},
                {"url": "https://i.scdn.co/image/s64"},
            ]},
        }
        song = song_service.song_from_track(track)
        assert song == {
            "id": "abc",
            "title": "Midnight City",
            "artist": "M83, Guest",
            "albumArt": "https://i.scdn.co/image/s64",
            "uri": "spotify:track:abc",
            "durationMs": 243000,
        }

    def test_song_from_track_without_images_uses_placeholder(self):
        song = song_service.song_from_track({"id": "x", "uri": "spotify:track:x", "album": {"images": []}})
        assert song["albumArt"] == song_service.FALLBACK_ALBUM_ART

    def test_song_from_track_requires_uri(self):
        with pytest.raises(InvalidSongDataError):
            song_service.song_from_track({"id": "x"})


class TestSessionRegistry:
    def test_create_defaults_to_active(self, db):
        session = session_service.create_session(db, {"name": "Party", "hostId": "host-1"})
        assert session.id is not None
        assert session.is_active is True
        assert session.host_id == "host-1"

    @pytest.mark.parametrize("name", [None, "", "   ", 42])
    def test_create_requires_name(self, db, name):
        with pytest.raises(ValidationError):
            session_service.create_session(db, {"name": name})
        assert db.query(ListeningSession).count() == 0

    def test_get_unknown_session_is_none(self, db):
        assert session_service.get_session(db, 999) is None

    def test_update_merges_fields(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        updated = session_service.update_session(db, session.id, {"deviceId": "device-9"})
        assert updated.name == "Party"
        assert updated.device_id == "device-9"

    def test_update_unknown_session_is_not_found(self, db):
        with pytest.raises(NotFoundError):
            session_service.update_session(db, 999, {"name": "Nope"})

    def test_update_rejects_blank_name(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        with pytest.raises(ValidationError):
            session_service.update_session(db, session.id, {"name": ""})

    def test_list_active_excludes_deactivated(self, db):
        keep = session_service.create_session(db, {"name": "Keep"})
        drop = session_service.create_session(db, {"name": "Drop"})
        session_service.deactivate_session(db, drop.id)

        assert [s.id for s in session_service.list_active_sessions(db)] == [keep.id]

    def test_deactivate_is_idempotent(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        session_service.deactivate_session(db, session.id)
        again = session_service.deactivate_session(db, session.id)
        assert again.is_active is False

    def test_tokens_are_not_serialized(self, db):
        session = session_service.create_session(db, {"name": "Party", "accessToken": "secret"})
        data = session.to_dict()
        assert data["hasAccessToken"] is True
        assert "secret" not in data.values()
        assert "accessToken" not in data

    def test_store_credentials_keeps_old_refresh_token(self, db):
        session = session_service.create_session(db, {"name": "Party", "refreshToken": "r1"})
        session_service.store_credentials(db, session.id, "a2", None, 1700000000)
        assert session.access_token == "a2"
        assert session.refresh_token == "r1"
        assert session.token_expires_at == 1700000000

    def test_set_current_song(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        song_service.resolve_song(db, song_descriptor("t1"))
        session_service.set_current_song(db, session.id, "t1")
        assert session.to_dict()["currentSong"]["id"] == "t1"


class TestPlaybackState:
    def test_upsert_applies_defaults(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        state = playback_service.update_playback_state(db, session.id, {"isPlaying": True})
        assert state.is_playing is True
        assert state.progress == 0
        assert state.volume == 100

    def test_update_keeps_unsupplied_fields(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        playback_service.update_playback_state(db, session.id, {"isPlaying": True, "volume": 40})
        state = playback_service.update_playback_state(db, session.id, {"progress": 5000, "unknown": 1})
        assert state.is_playing is True
        assert state.volume == 40
        assert state.progress == 5000

    def test_values_are_clamped(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        state = playback_service.update_playback_state(db, session.id, {"progress": -10, "volume": 250})
        assert state.progress == 0
        assert state.volume == 100

    def test_wrong_types_are_rejected(self, db):
        session = session_service.create_session(db, {"name": "Party"})
        with pytest.raises(ValidationError):
            playback_service.update_playback_state(db, session.id, {"isPlaying": "yes"})
        with pytest.raises(ValidationError):
            playback_service.update_playback_state(db, session.id, {"volume": True})

    def test_missing_state_is_none(self, db):
        assert playback_service.get_playback_state(db, 1) is None
