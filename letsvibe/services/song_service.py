"""
Song catalog: caches display metadata for provider tracks.
"""

import logging
from sqlalchemy.exc import IntegrityError
from letsvibe.errors import InvalidSongDataError
from letsvibe.models import Song


logger = logging.getLogger(__name__)

FALLBACK_ALBUM_ART = "https://placehold.co/300x300/1DB954/ffffff?text=No+Album+Art"


def validate_song_descriptor(descriptor):
    """Reject descriptors that cannot be played before touching the database"""
    if not isinstance(descriptor, dict):
        raise InvalidSongDataError()
    if not descriptor.get("id") or not descriptor.get("uri"):
        raise InvalidSongDataError()
    duration = descriptor.get("durationMs", 0)
    if duration is not None and (not isinstance(duration, (int, float)) or isinstance(duration, bool) or duration < 0):
        raise InvalidSongDataError("Invalid song duration")


def resolve_song(db, descriptor):
    """
    Return the cached song for ``descriptor["id"]``, creating it from the
    descriptor on first reference. Fields of later descriptors are ignored.
    """
    validate_song_descriptor(descriptor)

    song = db.get(Song, descriptor["id"])
    if song is not None:
        return song

    song = Song(
        id=descriptor["id"],
        title=descriptor.get("title") or descriptor["id"],
        artist=descriptor.get("artist") or "",
        album_art=descriptor.get("albumArt") or FALLBACK_ALBUM_ART,
        uri=descriptor["uri"],
        duration_ms=int(descriptor.get("durationMs") or 0),
    )
    try:
        # savepoint so a concurrent insert of the same ID only undoes this row
        with db.begin_nested():
            db.add(song)
    except IntegrityError:
        logger.info("Song %s was cached concurrently, using existing row", descriptor["id"])
        song = db.get(Song, descriptor["id"])
    return song


def get_song(db, song_id):
    return db.get(Song, song_id)


def lookup_songs(db, song_ids):
    """Batch fetch; unknown IDs are left out of the result"""
    song_ids = list(song_ids)
    if not song_ids:
        return []
    return db.query(Song).filter(Song.id.in_(song_ids)).all()


def song_from_track(track):
    """Convert a Spotify track object into a song descriptor"""
    if not track or not track.get("uri"):
        raise InvalidSongDataError("Track URI is required")

    images = (track.get("album") or {}).get("images") or []
    # shortest URL tends to be the smallest image
    urls = sorted((image.get("url") for image in images if image.get("url")), key=len)
    return {
        "id": track.get("id"),
        "title": track.get("name"),
        "artist": ", ".join(artist.get("name", "") for artist in track.get("artists") or []),
        "albumArt": urls[0] if urls else FALLBACK_ALBUM_ART,
        "uri": track["uri"],
        "durationMs": track.get("duration_ms") or 0,
    }
