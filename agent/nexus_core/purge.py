"""
Data purge coordinator — ordered wipe of credentials, settings and files.

purge_all() phases (strictly sequential, abort on the first failure):
  1. encrypted credential entries
  2. auth-layer session cache
  3. plaintext preferences (every key)
  4. raw secure store (provider-level wipe)
  5. documents / cache / temp sweep + residual database files
  6. in-process scrub hints (logging only, no real guarantee)

purge_sensitive_only() runs phases 1, 4 and 6.

Inside phase 5 a file or directory that cannot be removed is logged and
skipped; the phase itself does not fail because of it.
"""

import shutil
from dataclasses import dataclass, field

from .config import log
from .constants import DATABASE_EXTENSIONS, SENSITIVE_FIELDS


class PurgeError(Exception):
    def __init__(self, phase, cause):
        super().__init__(f"Purge phase '{phase}' failed: {cause}")
        self.phase = phase
        self.cause = cause


@dataclass
class PurgeReport:
    prefs_cleared: bool
    secure_store_cleared: bool          # assumed: the backend cannot be enumerated
    dirs_empty: dict = field(default_factory=dict)

    @property
    def all_cleared(self):
        return self.prefs_cleared and self.secure_store_cleared and all(self.dirs_empty.values())


class DataPurgeCoordinator:
    """
    credentials   CredentialStore (its .backup backend is cleared in phase 1)
    auth          object with invalidate_session()
    prefs         PreferencesStore
    secure_store  SecureStore
    paths         AppPaths (documents / cache / temp directories)
    scrub_targets objects whose sensitive attributes get overwritten in phase 6
    """

    def __init__(self, credentials, auth, prefs, secure_store, paths, scrub_targets=()):
        self._credentials = credentials
        self._auth = auth
        self._prefs = prefs
        self._secure_store = secure_store
        self._paths = paths
        self._scrub_targets = list(scrub_targets)
        self.skipped_entries = []

    def _run_phase(self, name, func):
        log.info("Purge: %s...", name)
        try:
            func()
        except Exception as e:
            log.error("Purge phase '%s' failed: %s", name, e)
            raise PurgeError(name, e) from e
        log.info("Purge: %s done", name)

    # ─── Entry points ─────────────────────────────────────────

    def purge_all(self):
        log.info("Purge: starting full data wipe")
        self.skipped_entries = []
        self._run_phase("encrypted credentials", self._clear_encrypted_credentials)
        self._run_phase("auth session", self._invalidate_auth_session)
        self._run_phase("preferences", self._clear_preferences)
        self._run_phase("secure store", self._clear_secure_store)
        self._run_phase("file system", self._clear_file_system)
        self._run_phase("memory scrub", self._scrub_sensitive_values)
        log.info("Purge: all data cleared (%d entries skipped)", len(self.skipped_entries))

    def purge_sensitive_only(self):
        log.info("Purge: emergency wipe of sensitive data")
        self._run_phase("encrypted credentials", self._clear_encrypted_credentials)
        self._run_phase("secure store", self._clear_secure_store)
        self._run_phase("memory scrub", self._scrub_sensitive_values)
        log.info("Purge: sensitive data cleared")

    # ─── Phases ───────────────────────────────────────────────

    def _clear_encrypted_credentials(self):
        self._credentials.backup.clear()

    def _invalidate_auth_session(self):
        self._auth.invalidate_session()

    def _clear_preferences(self):
        self._prefs.clear()

    def _clear_secure_store(self):
        self._secure_store.delete_all()

    def _clear_file_system(self):
        for d in self._paths.app_dirs:
            self._clear_directory(d)
        for d in self._paths.app_dirs:
            self._delete_database_files(d)

    def _clear_directory(self, directory):
        if not directory.exists():
            return
        for entry in list(directory.iterdir()):
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as e:
                log.warning("Purge: could not delete %s: %s", entry, e)
                self.skipped_entries.append(entry)

    def _delete_database_files(self, directory):
        if not directory.exists():
            return
        for entry in directory.rglob("*"):
            if entry.suffix.lower() not in DATABASE_EXTENSIONS:
                continue
            try:
                if entry.is_file():
                    entry.unlink()
                    log.info("Purge: deleted database file %s", entry)
            except OSError as e:
                log.warning("Purge: could not delete database file %s: %s", entry, e)
                self.skipped_entries.append(entry)

    def _scrub_sensitive_values(self):
        # Python strings are immutable; rebinding only drops our references.
        for target in self._scrub_targets:
            for name in SENSITIVE_FIELDS:
                if hasattr(target, name) and getattr(target, name) is not None:
                    setattr(target, name, None)
                    log.info("Purge: dropped in-memory %s.%s", type(target).__name__, name)
        log.info("Purge: memory scrub is advisory only")

    # ─── Diagnostics ──────────────────────────────────────────

    def verify(self) -> PurgeReport:
        """Best-effort post-purge check. Secure store state is assumed, not verified."""
        dirs_empty = {}
        for d in self._paths.app_dirs:
            dirs_empty[str(d)] = not d.exists() or not any(d.iterdir())
        report = PurgeReport(
            prefs_cleared=not self._prefs.keys(),
            secure_store_cleared=True,
            dirs_empty=dirs_empty,
        )
        log.info("Purge verify: prefs=%s dirs=%s all=%s",
                 report.prefs_cleared, dirs_empty, report.all_cleared)
        return report

    def stats(self):
        file_count = 0
        for d in self._paths.app_dirs:
            if d.exists():
                file_count += sum(1 for _ in d.iterdir())
        prefs_count = len(self._prefs.keys())
        return {
            "preferencesEntries": prefs_count,
            "fileSystemEntries": file_count,
            "totalEntries": prefs_count + file_count,
        }
