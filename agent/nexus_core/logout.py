"""
Logout orchestration: server notice → stop worker → purge → disable flag.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from .config import log
from .background import write_disable_flag
from .purge import PurgeError
from .storage import StorageError


@dataclass
class LogoutResult:
    success: bool = False
    message: str = ""
    warnings: list = field(default_factory=list)
    error: Optional[str] = None
    failed_phase: Optional[str] = None
    duration: float = 0.0


class LogoutService:
    def __init__(self, auth, credentials, background, watchdog, purger, prefs):
        self._auth = auth
        self._credentials = credentials
        self._background = background
        self._watchdog = watchdog
        self._purger = purger
        self._prefs = prefs

    def perform_logout(self, force_offline=False, emergency=False) -> LogoutResult:
        result = LogoutResult()
        started = time.monotonic()
        log.info("Logout started (force_offline=%s, emergency=%s)", force_offline, emergency)

        # Server notice is best effort: local cleanup always continues.
        try:
            response = self._auth.notify_logout(force_offline=force_offline)
            if response is None:
                result.warnings.append("No credentials available for server logout")
            elif not response.success:
                result.warnings.append(f"Server logout failed: {response.message}")
        except Exception as e:
            log.warning("Server logout error (continuing): %s", e)
            result.warnings.append(f"Server logout failed: {e}")

        self._background.stop(permanent=True)
        self._watchdog.stop()

        try:
            if emergency:
                self._purger.purge_sensitive_only()
                # Sensitive-only keeps settings, but not the plaintext credential copy.
                try:
                    self._credentials.primary.clear()
                except StorageError as e:
                    raise PurgeError("plaintext credentials", e) from e
                self._auth.invalidate_session()
            else:
                self._purger.purge_all()
        except PurgeError as e:
            result.error = str(e.cause)
            result.failed_phase = e.phase
            result.message = f"Logout failed: {e}"
            result.duration = time.monotonic() - started
            log.error("Logout aborted in purge phase '%s'", e.phase)
            return result

        # The full wipe also removed the flag written by stop(); restore it.
        try:
            write_disable_flag(self._prefs)
        except Exception as e:
            result.warnings.append(f"Could not write disable flag: {e}")

        result.success = True
        result.duration = time.monotonic() - started
        result.message = f"Logout completed successfully in {result.duration * 1000:.0f}ms"
        log.info(result.message)
        return result
