"""
Watchdog — liveness marker and "was the app killed?" detection.

The marker (KEY_LAST_ALIVE, epoch millis) is written at every cold start
and refreshed periodically while the app runs. It is removed on a clean
exit and by a full purge on logout. A marker still present at the next
cold start, while credentials are stored, means the previous process died
without going through either path (OS kill, crash, power loss).
"""

import time

from .config import log
from .constants import WATCHDOG_REFRESH_SEC, KEY_LAST_ALIVE
from .restart_policy import now_ms, read_restart_inputs


class Watchdog:
    def __init__(self, prefs, loop=None, refresh_sec=WATCHDOG_REFRESH_SEC):
        self._prefs = prefs
        self._loop = loop
        self._refresh_sec = refresh_sec
        self._handle = None
        self._previous_alive = None
        self._session_expected = False
        self._marked = False
        self.last_refresh = None

    @property
    def running(self):
        return self._handle is not None

    def initialize(self, loop=None):
        if loop is not None:
            self._loop = loop
        log.info("Watchdog initialized (refresh=%ss)", self._refresh_sec)

    def mark_alive(self):
        """Call once per cold start. Remembers the marker left by the previous run."""
        previous = self._prefs.get_int(KEY_LAST_ALIVE, None)
        self._previous_alive = previous
        self._session_expected = read_restart_inputs(self._prefs).is_logged_in
        self._write_marker()
        self._marked = True
        log.info("App marked alive (previous marker: %s)", previous)

    def was_dead(self) -> bool:
        """True when the previous session ended without a clean exit or logout."""
        if not self._marked:
            log.warning("was_dead() called before mark_alive()")
            return False
        return self._previous_alive is not None and self._session_expected

    def downtime_seconds(self):
        if self._previous_alive is None:
            return None
        return max(0.0, (now_ms() - self._previous_alive) / 1000.0)

    def _write_marker(self):
        self.last_refresh = now_ms()
        self._prefs.set(KEY_LAST_ALIVE, self.last_refresh)

    # ─── Periodic refresh (loop.call_later) ───────────────────

    def start(self):
        if self._handle is not None:
            log.info("Watchdog already running")
            return
        if self._loop is None:
            raise RuntimeError("Watchdog.start() needs an event loop (initialize(loop))")
        self._handle = self._loop.call_later(self._refresh_sec, self._refresh)
        log.info("Watchdog started")

    def _refresh(self):
        try:
            self._write_marker()
        except Exception as e:
            log.error("Watchdog refresh error: %s", e)
        self._handle = self._loop.call_later(self._refresh_sec, self._refresh)

    def stop(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            log.info("Watchdog stopped")

    def mark_clean_exit(self):
        """Remove the marker so the next start does not report a kill."""
        self.stop()
        self._prefs.remove(KEY_LAST_ALIVE)
        log.info("Watchdog: clean exit recorded")

    def status(self):
        minutes = None
        if self.last_refresh is not None:
            minutes = int((time.time() * 1000 - self.last_refresh) // 60000)
        return {
            "isRunning": self.running,
            "lastAlive": self.last_refresh,
            "minutesSinceLastAlive": minutes,
            "previousMarker": self._previous_alive,
        }
