"""
Playback reconciliation loop.

Keeps a local view of what the Spotify player is doing for one session,
extrapolating progress between remote fetches, and starts the next
highest-voted song when the current one finishes.
"""

import logging
import threading
import time

from sqlalchemy.exc import SQLAlchemyError

from letsvibe.errors import LetsVibeError
from letsvibe.models import get_db
from letsvibe.services import playback_service, queue_service, session_service, song_service
from letsvibe.utils.retry import retry_until


logger = logging.getLogger(__name__)

# remote progress this close to the end still counts as finished
END_TOLERANCE_MS = 1500


class PlaybackReconciler:
    def __init__(
        self,
        session_id,
        player,
        device_id=None,
        interval=1.0,
        verify_every=3,
        retries=3,
        retry_delay=1.0,
        clock=time.monotonic,
        sleep=None,
        on_change=None,
    ):
        self.session_id = session_id
        self.player = player
        self.device_id = device_id
        self.interval = interval
        self.verify_every = max(1, verify_every)
        self.retries = retries
        self.retry_delay = retry_delay
        self.clock = clock
        self.on_change = on_change

        self.current_song_id = None
        self.current_uri = None
        self.duration_ms = 0
        self.progress_ms = 0
        self.is_playing = False
        self.volume = None
        self.transitioning = False
        self.last_error = None

        self._ticks = 0
        self._last_update = None
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        # retry delays wake up as soon as the loop is stopped
        self.sleep = sleep or self._stop_event.wait
        self._thread = None

    @property
    def stopped(self):
        return self._stop_event.is_set()

    def state(self):
        return {
            "sessionId": self.session_id,
            "currentSongId": self.current_song_id,
            "currentUri": self.current_uri,
            "durationMs": self.duration_ms,
            "progressMs": self.progress_ms,
            "isPlaying": self.is_playing,
            "volume": self.volume,
            "transitioning": self.transitioning,
            "lastError": self.last_error,
        }

    def begin(self, song_id, uri, duration_ms, progress_ms=0):
        """
        Record a song we just asked the player to start. Waits for a cycle
        that is in flight so a transition cannot overwrite the host's choice.
        """
        with self._cycle_lock:
            self._begin(song_id, uri, duration_ms, progress_ms)

    def _begin(self, song_id, uri, duration_ms, progress_ms=0):
        self.current_song_id = song_id
        self.current_uri = uri
        self.duration_ms = duration_ms or 0
        self.progress_ms = progress_ms or 0
        self.is_playing = True
        self._last_update = self.clock()

    def tick(self, now=None):
        """
        Run one reconciliation cycle. Returns False when another cycle is
        still in flight and this one was skipped.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Session %s: previous cycle still running, skipping tick", self.session_id)
            return False
        try:
            self._run_cycle(self.clock() if now is None else now)
        finally:
            self._cycle_lock.release()
        return True

    def _run_cycle(self, now):
        if self.stopped or not self.is_playing or self.transitioning:
            return

        if self._last_update is None:
            self._last_update = now
        elapsed_ms = int((now - self._last_update) * 1000)
        self._last_update = now
        self.progress_ms += max(0, elapsed_ms)
        if self.duration_ms:
            self.progress_ms = min(self.progress_ms, self.duration_ms)
        self._ticks += 1

        reached_end = bool(self.duration_ms) and self.progress_ms >= self.duration_ms
        if not reached_end and self._ticks % self.verify_every:
            return

        snapshot = self.player.get_snapshot()
        if self.stopped:
            return

        if reached_end and not self._still_playing(snapshot):
            snapshot = self._advance(snapshot)
            if self.stopped:
                return

        if snapshot is not None and snapshot.track_id:
            self._adopt(snapshot, now)
        elif snapshot is None:
            logger.debug("Session %s: no active playback reported", self.session_id)

    def _still_playing(self, snapshot):
        """Remote says the current song is mid-way through: local clock drifted"""
        return (
            snapshot is not None
            and snapshot.is_playing
            and snapshot.track_id == self.current_song_id
            and snapshot.progress_ms < snapshot.duration_ms - END_TOLERANCE_MS
        )

    def _advance(self, snapshot):
        """Start the next highest-voted song; returns the freshest snapshot"""
        self.transitioning = True
        previous_song_id = self.current_song_id
        try:
            with queue_service.locked_db(self.session_id) as db:
                candidate = queue_service.next_song(db, self.session_id, exclude_song_id=previous_song_id)
                next_entry = None
                if candidate is not None:
                    next_entry = (candidate.id, candidate.song_id, candidate.song.uri, candidate.song.duration_ms)

            if self.stopped:
                return None
            if next_entry is None:
                logger.info("Session %s: queue is empty, playback stops after %s", self.session_id, previous_song_id)
                self.is_playing = False
                self.progress_ms = self.duration_ms
                self._persist_state()
                return None

            item_id, song_id, uri, duration_ms = next_entry
            logger.info("Session %s: %s finished, playing %s (item %s)", self.session_id, previous_song_id, song_id, item_id)
            self.player.play_track(self.device_id, uri)
            if self.stopped:
                return None

            with queue_service.locked_db(self.session_id) as db:
                if previous_song_id:
                    previous = queue_service.find_unplayed(db, self.session_id, previous_song_id)
                    if previous is not None:
                        queue_service.mark_played(db, previous.id)
                session_service.set_current_song(db, self.session_id, song_id)

            self._begin(song_id, uri, duration_ms)

            result = retry_until(
                self.player.get_snapshot,
                lambda latest: latest is not None and latest.track_id == song_id,
                attempts=self.retries,
                delay=self.retry_delay,
                sleep=self.sleep,
                should_stop=self._stop_event.is_set,
            )
            if self.stopped:
                return None
            if not result.succeeded:
                logger.warning("Session %s: player has not confirmed %s, using latest state", self.session_id, song_id)
            latest = result.value
            if latest is not None and latest.track_id == previous_song_id:
                # stale snapshot from before the play command
                latest = None
            self._persist_state()
            return latest
        finally:
            self.transitioning = False

    def _adopt(self, snapshot, now):
        """Overwrite the local view with the remote snapshot"""
        if snapshot.track_id != self.current_song_id:
            logger.info("Session %s: player switched from %s to %s", self.session_id, self.current_song_id, snapshot.track_id)
            self.current_song_id = snapshot.track_id
            self._record_current_song(snapshot)
        self.current_uri = snapshot.track_uri
        self.duration_ms = snapshot.duration_ms or self.duration_ms
        self.progress_ms = snapshot.progress_ms
        self.is_playing = snapshot.is_playing
        if snapshot.volume_percent is not None:
            self.volume = snapshot.volume_percent
        self._last_update = now
        self._persist_state()

    def _record_current_song(self, snapshot):
        with get_db() as db:
            song_id = None
            if snapshot.track and snapshot.track.get("uri"):
                song_id = song_service.resolve_song(db, song_service.song_from_track(snapshot.track)).id
            session_service.set_current_song(db, self.session_id, song_id)

    def _persist_state(self):
        if self.stopped:
            logger.debug("Session %s: loop stopped, discarding state update", self.session_id)
            return
        data = {"isPlaying": self.is_playing, "progress": self.progress_ms}
        if self.volume is not None:
            data["volume"] = self.volume
        with get_db() as db:
            playback_service.update_playback_state(db, self.session_id, data)
        if self.on_change:
            self.on_change(self.state())

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"reconciler-{self.session_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Session %s: reconciliation loop started", self.session_id)
        return self

    def stop(self, timeout=None):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self.interval * 2)
        self._thread = None
        logger.info("Session %s: reconciliation loop stopped", self.session_id)

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive() and not self.stopped

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.tick()
                self.last_error = None
            except LetsVibeError as e:
                logger.error("Session %s: reconciliation cycle failed: %s", self.session_id, e)
                self.last_error = e.message
                if self.on_change:
                    self.on_change(self.state())
            except SQLAlchemyError as e:
                logger.error("Session %s: database error during reconciliation: %s", self.session_id, e)
                self.last_error = "Database error"
            except Exception:
                logger.exception("Session %s: unexpected error in reconciliation loop", self.session_id)
                self.last_error = "Unexpected error"
