"""
Keeps at most one running reconciliation loop per session.
"""

import logging
import threading


logger = logging.getLogger(__name__)


class ReconcilerRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._loops = {}

    def get(self, session_id):
        with self._lock:
            return self._loops.get(session_id)

    def start_for(self, session_id, factory):
        """Return the session's running loop, building and starting one if needed"""
        with self._lock:
            reconciler = self._loops.get(session_id)
            if reconciler is not None and reconciler.running:
                return reconciler
            reconciler = factory()
            self._loops[session_id] = reconciler
        reconciler.start()
        return reconciler

    def stop_for(self, session_id):
        with self._lock:
            reconciler = self._loops.pop(session_id, None)
        if reconciler is None:
            return False
        reconciler.stop()
        return True

    def stop_all(self):
        with self._lock:
            loops = list(self._loops.values())
            self._loops.clear()
        for reconciler in loops:
            reconciler.stop()
        if loops:
            logger.info("Stopped %d reconciliation loops", len(loops))


registry = ReconcilerRegistry()
