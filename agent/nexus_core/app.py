"""
FieldApp — composition root.

Builds every component once and hands them to each other by reference.
Nothing in the package is a process-wide singleton; the entry point owns
the FieldApp and therefore every component's lifetime.

  cold_start()   → watchdog init + mark_alive, kill detection, credential load
  login()        → code check + login transition (asyncio)
  run()          → watchdog refresh + background reports until stopped
  logout()       → LogoutService
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from .config import log, mask_token
from .constants import AGENT_VERSION
from .storage import PreferencesStore, SecureStore
from .credentials import CredentialStore, LoadStatus
from .api import ApiClient
from .auth import AuthenticationService, LoginResult
from .background import BackgroundService
from .watchdog import Watchdog
from .purge import DataPurgeCoordinator
from .logout import LogoutService
from .login import LoginController
from . import http_client
from . import network

KILLED_WARNING = (
    "Background monitoring was interrupted: the app was closed by the system. "
    "Keep the app running to continue tracking."
)


@dataclass
class StartupReport:
    was_dead: bool
    credentials: LoadStatus
    token_locked: bool
    warning: Optional[str] = None
    downtime_sec: Optional[float] = None


class FieldApp:
    def __init__(self, paths, config, session=None, is_online=None,
                 location_provider=None, battery_provider=None):
        self.paths = paths.ensure()
        self.config = config

        self.prefs = PreferencesStore(paths.prefs_file)
        self.secure_store = SecureStore(paths.secure_file, paths.secure_key_file)
        self.credentials = CredentialStore(self.prefs, self.secure_store)

        self.session = session if session is not None else http_client.create_session()
        self.api = ApiClient(config["serverUrl"], self.session)
        if is_online is None:
            is_online = lambda: network.is_online(self.api.server_url)  # noqa: E731
        self.auth = AuthenticationService(self.api, self.credentials, is_online)

        self.background = BackgroundService(
            self.api, self.prefs, self.credentials, paths.offline_buffer_file,
            location_provider=location_provider,
            battery_provider=battery_provider,
            interval=config.get("heartbeatIntervalSec", 30),
        )
        self.watchdog = Watchdog(self.prefs)
        self.purger = DataPurgeCoordinator(
            self.credentials, self.auth, self.prefs, self.secure_store, paths,
            scrub_targets=[self.auth.session],
        )
        self.logout_service = LogoutService(
            self.auth, self.credentials, self.background,
            self.watchdog, self.purger, self.prefs,
        )

    # ─── Cold start ───────────────────────────────────────────

    def cold_start(self) -> StartupReport:
        self.watchdog.initialize()
        self.watchdog.mark_alive()
        was_dead = self.watchdog.was_dead()

        loaded = self.credentials.load()
        report = StartupReport(
            was_dead=was_dead,
            credentials=loaded.status,
            token_locked=loaded.locked,
            downtime_sec=self.watchdog.downtime_seconds() if was_dead else None,
        )
        if was_dead:
            report.warning = KILLED_WARNING
            log.warning("Previous session was killed (%.0fs since last alive marker)",
                        report.downtime_sec or 0)
        if loaded.status is LoadStatus.CORRUPTED:
            log.warning("Stored credentials were corrupted — re-login required")
        log.info("v%s cold start: credentials=%s locked=%s",
                 AGENT_VERSION, loaded.status.value, loaded.locked)
        return report

    # ─── Login ────────────────────────────────────────────────

    def make_login_controller(self, loop=None, debounce_sec=None, on_authenticated=None):
        return LoginController(
            self.auth, self.credentials, self.background, self.api.check_status,
            loop=loop, debounce_sec=debounce_sec, on_authenticated=on_authenticated,
        )

    async def login(self, token, deployment_code) -> LoginResult:
        """Non-interactive login: one immediate code check, then the normal gate."""
        controller = self.make_login_controller()
        controller.load_stored_credentials()
        if not controller.token_locked:
            controller.set_token(token)
        controller.deployment_code = (deployment_code or "").strip()
        await controller.validator.check_now(controller.token, controller.deployment_code)
        if not controller.can_login:
            message = controller.status_message or "Deployment code could not be validated"
            log.warning("Login blocked: %s", message)
            return LoginResult.failure(message)
        result = await controller.login()
        if result.is_success:
            log.info("Logged in as %s (code %s)",
                     mask_token(controller.token), controller.deployment_code)
        return result

    # ─── Run loop ─────────────────────────────────────────────

    async def run(self):
        loop = asyncio.get_running_loop()
        self.watchdog.initialize(loop)
        if not self.background.start():
            log.info("Background service not started")
            self.watchdog.mark_clean_exit()
            return False
        self.watchdog.start()
        try:
            await self.background.run()
        finally:
            self.watchdog.mark_clean_exit()
        return True

    def stop(self, permanent=False):
        self.background.stop(permanent=permanent)

    # ─── Logout ───────────────────────────────────────────────

    def logout(self, force_offline=False, emergency=False):
        return self.logout_service.perform_logout(force_offline=force_offline, emergency=emergency)

    def close(self):
        try:
            self.session.close()
        except Exception as e:
            log.warning("Session close failed: %s", e)
