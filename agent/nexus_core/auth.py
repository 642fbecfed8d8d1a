"""
Authentication service — unit login/logout and the cached session.

Blocking by design (wraps ApiClient); callers on the event loop use
asyncio.to_thread. The session held here is the "auth layer" state that a
purge invalidates.
"""

import enum
import time
from dataclasses import dataclass
from typing import Optional

from .config import log, mask_token
from .constants import SESSION_CHECK_ATTEMPTS
from .credentials import LoadStatus, SaveOutcome, validate_token, deployment_code_error


class AuthStatus(enum.Enum):
    NO_CREDENTIALS = "no_credentials"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_OFFLINE = "authenticated_offline"
    INVALID_CREDENTIALS = "invalid_credentials"
    CORRUPTED = "corrupted"
    ERROR = "error"


class LoginOutcome(enum.Enum):
    SUCCESS = "success"
    OFFLINE = "offline"
    FAILURE = "failure"


@dataclass(frozen=True)
class LoginResult:
    outcome: LoginOutcome
    message: Optional[str] = None
    degraded_storage: bool = False

    @property
    def is_success(self):
        return self.outcome is not LoginOutcome.FAILURE

    @property
    def is_offline(self):
        return self.outcome is LoginOutcome.OFFLINE

    @classmethod
    def failure(cls, message):
        return cls(LoginOutcome.FAILURE, message)


@dataclass
class AuthSession:
    token: Optional[str] = None
    deployment_code: Optional[str] = None
    authenticated: bool = False
    offline_mode: bool = False

    def clear(self):
        self.token = None
        self.deployment_code = None
        self.authenticated = False
        self.offline_mode = False


class AuthenticationService:
    def __init__(self, api, credentials, is_online, retry_delay=2.0):
        self._api = api
        self._credentials = credentials
        self._is_online = is_online
        self._retry_delay = retry_delay
        self.session = AuthSession()

    # ─── Session ──────────────────────────────────────────────

    def _set_session(self, token, code, offline):
        self.session.token = token
        self.session.deployment_code = code
        self.session.authenticated = True
        self.session.offline_mode = offline
        log.info("Session set — token=%s offline=%s", mask_token(token), offline)

    def invalidate_session(self):
        """Forget cached session state (does not touch storage)."""
        self.session.clear()
        log.info("Auth session invalidated")

    # ─── Login ────────────────────────────────────────────────

    def _persist(self, token, code):
        outcome = self._credentials.save(token, code)
        if outcome is SaveOutcome.INVALID:
            return None
        self._credentials.lock()
        return outcome

    def login(self, token, deployment_code) -> LoginResult:
        clean = validate_token(token)
        code = (deployment_code or "").strip()
        if clean is None:
            return LoginResult.failure("Invalid token format. Please check your token.")
        code_error = deployment_code_error(code)
        if code_error:
            return LoginResult.failure(code_error)

        if not self._is_online():
            outcome = self._persist(clean, code)
            if outcome is None:
                return LoginResult.failure("Could not store credentials")
            self._set_session(clean, code, offline=True)
            log.info("Login accepted in offline mode")
            return LoginResult(LoginOutcome.OFFLINE,
                               "Login successful (offline mode) - sync will start when online",
                               outcome is SaveOutcome.SAVED_DEGRADED)

        response = self._api.login(clean, code)
        if not response.success:
            log.warning("Login failed: %s", response.message)
            return LoginResult.failure(response.message)

        outcome = self._persist(clean, code)
        if outcome is None:
            return LoginResult.failure("Could not store credentials")
        self._set_session(clean, code, offline=False)
        return LoginResult(LoginOutcome.SUCCESS, "Login successful",
                           outcome is SaveOutcome.SAVED_DEGRADED)

    # ─── Cold start ───────────────────────────────────────────

    def _validate_with_server(self, token, code):
        """
        True/False when the server answered, None when it could not be reached.
        A session is valid while the server reports the code as logged in.
        """
        for attempt in range(1, SESSION_CHECK_ATTEMPTS + 1):
            response = self._api.check_status(token, code)
            if response.success and response.data is not None:
                return bool(response.data.get("isLoggedIn", False))
            if response.status_code == 401:
                log.warning("Server rejected stored token: %s", response.message)
                return False
            log.warning("Session check attempt %d/%d failed: %s",
                        attempt, SESSION_CHECK_ATTEMPTS, response.message)
            if attempt < SESSION_CHECK_ATTEMPTS:
                time.sleep(self._retry_delay)
        return None

    def check_authentication_status(self) -> AuthStatus:
        try:
            loaded = self._credentials.load()
        except Exception as e:
            log.error("Credential load failed: %s", e, exc_info=True)
            return AuthStatus.ERROR

        if loaded.status is LoadStatus.CORRUPTED:
            return AuthStatus.CORRUPTED
        if loaded.status is LoadStatus.ABSENT:
            return AuthStatus.NO_CREDENTIALS

        cred = loaded.credential
        if not self._is_online():
            self._set_session(cred.token, cred.deployment_code, offline=True)
            return AuthStatus.AUTHENTICATED_OFFLINE

        valid = self._validate_with_server(cred.token, cred.deployment_code)
        if valid is None:
            log.info("Server unreachable — continuing in offline mode")
            self._set_session(cred.token, cred.deployment_code, offline=True)
            return AuthStatus.AUTHENTICATED_OFFLINE
        if not valid:
            self._credentials.clear()
            self.invalidate_session()
            return AuthStatus.INVALID_CREDENTIALS

        self._set_session(cred.token, cred.deployment_code, offline=False)
        return AuthStatus.AUTHENTICATED

    # ─── Logout ───────────────────────────────────────────────

    def notify_logout(self, force_offline=False):
        """Tell the server this unit is leaving. Returns the ApiResponse or None."""
        token, code = self.session.token, self.session.deployment_code
        if not (token and code):
            loaded = self._credentials.load()
            if loaded.credential is None:
                return None
            token, code = loaded.credential.token, loaded.credential.deployment_code
        return self._api.logout(token, code, force_offline=force_offline)
