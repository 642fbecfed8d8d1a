"""
Background worker — periodic location / heartbeat report.

  start()              → restart policy gate, stale disable-flag cleanup
  run()                → report every interval until stop() (asyncio task)
  stop(permanent=True) → writes the disable flag so automatic restarts
                         (task-removal hook, own start-up) are suppressed
                         for DISABLE_FLAG_VALIDITY_MS

Reports that fail are appended to the offline buffer and replayed after
the next report that goes through.
"""

import asyncio

from .config import log
from .constants import (
    BACKGROUND_TICK_SEC, DISABLE_FLAG_VALIDITY_MS,
    KEY_SERVICE_DISABLED, KEY_SERVICE_DISABLE_TS,
)
from . import network
from .restart_policy import now_ms, read_restart_inputs


def write_disable_flag(prefs, timestamp=None):
    prefs.set(KEY_SERVICE_DISABLED, True)
    prefs.set(KEY_SERVICE_DISABLE_TS, now_ms() if timestamp is None else timestamp)
    log.info("Background service disable flag set")


def clear_disable_flags(prefs):
    prefs.remove(KEY_SERVICE_DISABLED, KEY_SERVICE_DISABLE_TS)
    log.info("Background service disable flags cleared")


class BackgroundService:
    """
    location_provider() returns a dict such as {"latitude", "longitude",
    "accuracy"} or None when no fix is available; battery_provider() returns
    a percentage or None. Both are platform collaborators.
    """

    def __init__(self, api, prefs, credentials, buffer_file,
                 location_provider=None, battery_provider=None,
                 interval=BACKGROUND_TICK_SEC):
        self._api = api
        self._prefs = prefs
        self._credentials = credentials
        self._buffer_file = buffer_file
        self._location_provider = location_provider or (lambda: None)
        self._battery_provider = battery_provider or (lambda: None)
        self._interval = interval
        self._stop_event = None
        self.running = False
        self.reports_sent = 0
        self.consecutive_failures = 0

    # ─── Lifecycle ────────────────────────────────────────────

    def start(self, now=None):
        """True when the worker may run. Drops flags older than the validity window."""
        now = now_ms() if now is None else now
        inputs = read_restart_inputs(self._prefs)

        if not inputs.decide(now=now):
            if not inputs.is_logged_in:
                log.info("BackgroundService: not logged in — not starting")
            else:
                log.info("BackgroundService: permanently disabled — not starting")
            return False

        if inputs.permanently_disabled and now - inputs.disable_timestamp >= DISABLE_FLAG_VALIDITY_MS:
            clear_disable_flags(self._prefs)
            log.info("BackgroundService: cleared stale disable flags")

        self.running = True
        return True

    def stop(self, permanent=False):
        if permanent:
            write_disable_flag(self._prefs)
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()
        log.info("BackgroundService stopped (permanent=%s)", permanent)

    def clear_disable_flags(self):
        clear_disable_flags(self._prefs)

    # ─── Reporting ────────────────────────────────────────────

    def _send_buffered(self, token, url, payload):
        resp = self._api.post_raw(url, token, payload)
        return resp.status_code in (200, 201)

    def report_once(self):
        """One blocking report cycle. Returns True when the server accepted it."""
        loaded = self._credentials.load()
        if loaded.credential is None:
            log.warning("BackgroundService: no credentials — skipping report")
            return False
        cred = loaded.credential

        payload = self._api.build_location_payload(
            cred.deployment_code,
            location=self._location_provider(),
            battery_level=self._battery_provider(),
        )
        response = self._api.update_location(cred.token, payload)
        if response.success:
            self.reports_sent += 1
            self.consecutive_failures = 0
            if network.has_buffered_requests(self._buffer_file):
                network.flush_buffer(
                    self._buffer_file,
                    lambda url, p: self._send_buffered(cred.token, url, p),
                )
            return True

        self.consecutive_failures += 1
        log.warning("Location report failed (%d in a row): %s",
                    self.consecutive_failures, response.message)
        if response.status_code == 0:
            network.buffer_request(self._buffer_file, self._api.endpoint_url("updateLocation"), payload)
        return False

    async def run(self):
        if not self.running and not self.start():
            return
        self._stop_event = asyncio.Event()
        log.info("BackgroundService running (interval=%ss)", self._interval)
        while self.running:
            try:
                await asyncio.to_thread(self.report_once)
            except Exception as e:
                log.error("BackgroundService report error: %s", e, exc_info=True)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
