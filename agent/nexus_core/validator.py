"""
Deployment code validator — debounced remote "is this code in use?" check.

Runs on the asyncio event loop that owns the login form. Timers are
loop.call_later handles; the remote call itself is a blocking ApiClient
method pushed to a worker thread with asyncio.to_thread.

  schedule_check(token, code)
      → cancel pending timer
      → invalidate cached result if the code or token differs from the last
        checked pair
      → local format checks (empty / too short / no token)
      → arm a new timer (DEBOUNCE_SEC)
  timer fires
      → bail out if the code changed meanwhile
      → remote check; result applied only if code and token are still current
"""

import asyncio
import enum
from dataclasses import dataclass

from .config import log
from .constants import DEBOUNCE_SEC
from .credentials import deployment_code_error


class CodeStatus(enum.Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    AVAILABLE = "available"
    IN_USE = "in_use"
    INDETERMINATE = "indeterminate"


STATUS_MESSAGES = {
    CodeStatus.UNKNOWN: "",
    CodeStatus.CHECKING: "Validating deployment code...",
    CodeStatus.AVAILABLE: "Code is available",
    CodeStatus.IN_USE: "Code is in use on another device",
    CodeStatus.INDETERMINATE: "Unable to validate code",
}


@dataclass
class CodeValidationState:
    last_checked_code: str = ""
    status: CodeStatus = CodeStatus.UNKNOWN
    message: str = ""
    checking: bool = False

    @property
    def in_use(self) -> bool:
        return self.status is CodeStatus.IN_USE

    @property
    def valid(self) -> bool:
        return self.status is CodeStatus.AVAILABLE

    def invalidate(self, message=""):
        self.last_checked_code = ""
        self.status = CodeStatus.UNKNOWN
        self.message = message

    def is_available_for(self, code) -> bool:
        return (
            self.status is CodeStatus.AVAILABLE
            and not self.checking
            and self.last_checked_code == code
        )


def classify_response(response):
    """ApiResponse → AVAILABLE / IN_USE / INDETERMINATE."""
    if response is None or not response.success or response.data is None:
        return CodeStatus.INDETERMINATE
    if "isLoggedIn" not in response.data:
        return CodeStatus.INDETERMINATE
    return CodeStatus.IN_USE if response.data["isLoggedIn"] else CodeStatus.AVAILABLE


class DeploymentCodeValidator:
    """
    One instance per login form. check_status is a blocking callable
    (token, code) -> ApiResponse. on_change is called after every state
    change (status line refresh).
    """

    def __init__(self, check_status, loop=None, debounce_sec=DEBOUNCE_SEC, on_change=None):
        self._check_status = check_status
        self._loop = loop
        self._debounce_sec = debounce_sec
        self._on_change = on_change
        self._timer = None
        self._task = None
        self._current_token = ""
        self._checked_token = ""
        self._current_code = ""
        self.state = CodeValidationState()

    @property
    def loop(self):
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def current_code(self):
        return self._current_code

    @property
    def has_pending_timer(self):
        return self._timer is not None

    def _notify(self):
        if self._on_change is not None:
            try:
                self._on_change(self.state)
            except Exception as e:
                log.error("Validator on_change callback failed: %s", e)

    def cancel(self):
        """Drop the pending timer (in-flight checks are discarded by the code guard)."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def schedule_check(self, token, code):
        self.cancel()
        token = (token or "").strip()
        code = (code or "").strip()
        self._current_token = token
        self._current_code = code

        if code != self.state.last_checked_code or token != self._checked_token:
            self.state.invalidate()
            self.state.checking = False

        format_error = deployment_code_error(code)
        if format_error:
            self.state.invalidate(format_error)
            self._notify()
            return
        if not token:
            self._notify()
            return

        self._notify()
        self._timer = self.loop.call_later(self._debounce_sec, self._on_timer, code)

    def _on_timer(self, code):
        self._timer = None
        if code != self._current_code or not self._current_token:
            return
        self._task = self.loop.create_task(self._run_check(self._current_token, code))

    async def check_now(self, token, code):
        """Immediate check without debounce (used by tests and the CLI)."""
        self.cancel()
        self._current_token = (token or "").strip()
        self._current_code = (code or "").strip()
        if deployment_code_error(self._current_code) or not self._current_token:
            self.state.invalidate(deployment_code_error(self._current_code) or "")
            return self.state.status
        await self._run_check(self._current_token, self._current_code)
        return self.state.status

    async def _run_check(self, token, code):
        self.state.checking = True
        self.state.status = CodeStatus.CHECKING
        self.state.message = STATUS_MESSAGES[CodeStatus.CHECKING]
        self._notify()

        try:
            response = await asyncio.to_thread(self._check_status, token, code)
            result = classify_response(response)
            if result is CodeStatus.INDETERMINATE and response is not None:
                log.warning("Deployment code check indeterminate: %s", response.message)
        except Exception as e:
            log.warning("Deployment code validation failed: %s", e)
            result = CodeStatus.INDETERMINATE

        if code != self._current_code or token != self._current_token:
            log.info("Discarding stale check result for %r (field now %r)", code, self._current_code)
            return

        self.state.checking = False
        self.state.status = result
        self.state.message = STATUS_MESSAGES[result]
        if result is CodeStatus.INDETERMINATE:
            self.state.last_checked_code = ""
            self._checked_token = ""
        else:
            self.state.last_checked_code = code
            self._checked_token = token
        log.info("Deployment code %r → %s", code, result.value)
        self._notify()

    async def wait_idle(self):
        """Await the latest in-flight check, if any."""
        if self._task is not None and not self._task.done():
            await self._task
