"""
Restart decision for the background worker.

Consulted by the task-removal hook (separate short-lived process) and by
the background worker itself at start-up. Inputs come only from the
plaintext preferences file; no network, no encrypted store, no token
format checks.

Read failures are treated as "value absent":
  - login state absent   → logged out → do not restart
  - disable flag absent  → not disabled → restart (if logged in)
"""

import time
from dataclasses import dataclass

from .config import log
from .constants import (
    DISABLE_FLAG_VALIDITY_MS,
    KEY_TOKEN, KEY_DEPLOYMENT_CODE,
    KEY_SERVICE_DISABLED, KEY_SERVICE_DISABLE_TS,
)


def now_ms():
    return int(time.time() * 1000)


def disable_flag_active(permanently_disabled, disable_timestamp, now,
                        validity_ms=DISABLE_FLAG_VALIDITY_MS):
    """True while a disable flag is set and still inside its validity window."""
    return bool(permanently_disabled) and (now - (disable_timestamp or 0)) < validity_ms


def should_restart(permanently_disabled, disable_timestamp, now, is_logged_in,
                   validity_ms=DISABLE_FLAG_VALIDITY_MS):
    if disable_flag_active(permanently_disabled, disable_timestamp, now, validity_ms):
        return False
    if not is_logged_in:
        return False
    return True


@dataclass(frozen=True)
class RestartInputs:
    permanently_disabled: bool = False
    disable_timestamp: int = 0
    is_logged_in: bool = False

    def decide(self, now=None, validity_ms=DISABLE_FLAG_VALIDITY_MS):
        return should_restart(
            self.permanently_disabled, self.disable_timestamp,
            now_ms() if now is None else now, self.is_logged_in, validity_ms,
        )


def read_restart_inputs(prefs):
    """Snapshot the three inputs from a PreferencesStore. Never raises."""
    try:
        data = prefs.snapshot()
    except Exception as e:
        log.warning("Restart policy: preferences unreadable (%s)", e)
        data = {}

    token = data.get(KEY_TOKEN)
    code = data.get(KEY_DEPLOYMENT_CODE)
    is_logged_in = (
        isinstance(token, str) and bool(token)
        and isinstance(code, str) and bool(code)
    )

    disabled = data.get(KEY_SERVICE_DISABLED)
    ts = data.get(KEY_SERVICE_DISABLE_TS)
    return RestartInputs(
        permanently_disabled=disabled if isinstance(disabled, bool) else False,
        disable_timestamp=ts if isinstance(ts, int) and not isinstance(ts, bool) else 0,
        is_logged_in=is_logged_in,
    )
