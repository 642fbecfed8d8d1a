"""
LoginController — form state, login gating and the login transition.

All mutations happen on the event loop; remote work goes through
asyncio.to_thread. The controller never raises for validation problems:
they surface as `notice` / validator status messages.
"""

import asyncio
import enum

from .config import log
from .credentials import LoadStatus, validate_token
from .auth import LoginResult
from .validator import DeploymentCodeValidator

CORRUPTED_NOTICE = "Stored credentials were corrupted and have been cleared. Please login again."
LOGIN_BLOCKED_NOTICE = "Please provide a valid deployment code that is not in use."


class Screen(enum.Enum):
    LOGIN = "login"
    DASHBOARD = "dashboard"


class LoginController:
    def __init__(self, auth, credentials, background, check_status,
                 loop=None, debounce_sec=None, on_authenticated=None):
        self._auth = auth
        self._credentials = credentials
        self._background = background
        self._on_authenticated = on_authenticated
        kwargs = {} if debounce_sec is None else {"debounce_sec": debounce_sec}
        self.validator = DeploymentCodeValidator(check_status, loop=loop, **kwargs)
        self.token = ""
        self.deployment_code = ""
        self.token_locked = False
        self.is_loading = False
        self.notice = ""
        self.screen = Screen.LOGIN

    # ─── Cold start ───────────────────────────────────────────

    def load_stored_credentials(self):
        """Pre-fill a locked token. Returns the LoadResult."""
        loaded = self._credentials.load()
        if loaded.status is LoadStatus.CORRUPTED:
            self.notice = CORRUPTED_NOTICE
            self.token = ""
            self.token_locked = False
            log.warning("LoginController: stored credentials corrupted and cleared")
        elif loaded.credential is not None and loaded.locked:
            self.token = loaded.credential.token
            self.token_locked = True
        return loaded

    # ─── Form input ───────────────────────────────────────────

    def set_token(self, value):
        if self.token_locked:
            log.info("Token field is locked until logout")
            return False
        self.token = (value or "").strip()
        if self.deployment_code:
            self.validator.schedule_check(self.token, self.deployment_code)
        return True

    def set_deployment_code(self, value):
        self.deployment_code = (value or "").strip()
        self.notice = ""
        self.validator.schedule_check(self.token, self.deployment_code)

    @property
    def status_message(self):
        return self.validator.state.message

    @property
    def can_login(self):
        return (
            bool(self.token)
            and bool(self.deployment_code)
            and self.validator.state.is_available_for(self.deployment_code)
            and not self.is_loading
        )

    # ─── Login ────────────────────────────────────────────────

    async def login(self) -> LoginResult:
        if not self.can_login:
            self.notice = LOGIN_BLOCKED_NOTICE
            return LoginResult.failure(LOGIN_BLOCKED_NOTICE)
        if validate_token(self.token) is None:
            self.notice = "Invalid token format. Please check your token."
            return LoginResult.failure(self.notice)

        self.is_loading = True
        try:
            result = await asyncio.to_thread(self._auth.login, self.token, self.deployment_code)
        finally:
            self.is_loading = False

        if not result.is_success:
            self.notice = result.message or "Login failed"
            return result

        try:
            self._background.clear_disable_flags()
        except Exception as e:
            log.warning("Could not clear disable flags: %s", e)

        self.token_locked = True
        self.notice = result.message or ""
        self.screen = Screen.DASHBOARD
        log.info("Login complete (%s) — switching to dashboard", result.outcome.value)
        if self._on_authenticated is not None:
            self._on_authenticated(result)
        return result

    def reset_after_logout(self):
        self.validator.cancel()
        self.token = ""
        self.deployment_code = ""
        self.token_locked = False
        self.notice = ""
        self.validator.state.invalidate()
        self.screen = Screen.LOGIN
