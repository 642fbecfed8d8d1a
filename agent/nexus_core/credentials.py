"""
Credential record + two-tier credential repository.

  primary → PreferencesStore keys (token, deploymentCode, isTokenLocked)
  backup  → SecureStore encrypted entries (encrypted_token, encrypted_deployment_code)

Reads take the primary first and fall back to the backup. When both copies
are readable and disagree, the backup wins and the primary is repaired.
A save whose backup write failed marks the backup stale (credentialBackupStale)
until the next complete save, so an older backup never wins.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from .config import log, mask_token
from .constants import (
    MIN_TOKEN_LENGTH, MIN_DEPLOYMENT_CODE_LENGTH,
    KEY_TOKEN, KEY_DEPLOYMENT_CODE, KEY_TOKEN_LOCKED, KEY_BACKUP_STALE,
    SECURE_KEY_TOKEN, SECURE_KEY_DEPLOYMENT_CODE,
)
from .storage import StorageError, SecureStorageError


# ─── Validation ──────────────────────────────────────────────────

def validate_token(token) -> Optional[str]:
    """
    Trimmed token when it is safe to put in an HTTP header, else None.
    Header values must be printable ASCII (0x20-0x7E); tokens shorter than
    MIN_TOKEN_LENGTH are rejected.
    """
    if not isinstance(token, str):
        return None
    clean = token.strip()
    if not clean:
        return None
    for i, ch in enumerate(clean):
        if not 0x20 <= ord(ch) <= 0x7E:
            log.warning("Token rejected: invalid character at position %d (code %d)", i, ord(ch))
            return None
    if len(clean) < MIN_TOKEN_LENGTH:
        log.warning("Token rejected: too short (%d characters)", len(clean))
        return None
    return clean


def deployment_code_error(code) -> Optional[str]:
    """Inline form message for a bad code, None when the format is fine."""
    code = (code or "").strip()
    if not code:
        return "Deployment code required"
    if len(code) < MIN_DEPLOYMENT_CODE_LENGTH:
        return f"Code too short (minimum {MIN_DEPLOYMENT_CODE_LENGTH} characters)"
    return None


# ─── Records / outcomes ──────────────────────────────────────────

@dataclass(frozen=True)
class Credential:
    token: str
    deployment_code: str

    def __repr__(self):
        return f"Credential(token={mask_token(self.token)!r}, deployment_code={self.deployment_code!r})"


class SaveOutcome(enum.Enum):
    SAVED = "saved"
    SAVED_DEGRADED = "saved_degraded"   # backup copy failed, primary ok
    INVALID = "invalid"


class LoadStatus(enum.Enum):
    OK = "ok"
    ABSENT = "absent"
    CORRUPTED = "corrupted"             # wiped, re-authentication required


@dataclass(frozen=True)
class LoadResult:
    status: LoadStatus
    credential: Optional[Credential] = None
    locked: bool = False
    repaired: bool = False

    @property
    def needs_reauth(self):
        return self.status is LoadStatus.CORRUPTED


# ─── Backends ────────────────────────────────────────────────────

class PlaintextCredentialBackend:
    """Credential keys inside the preferences file."""

    name = "plaintext"

    def __init__(self, prefs):
        self._prefs = prefs

    def read(self):
        return self._prefs.get_str(KEY_TOKEN), self._prefs.get_str(KEY_DEPLOYMENT_CODE)

    def write(self, token, code):
        self._prefs.set(KEY_TOKEN, token)
        self._prefs.set(KEY_DEPLOYMENT_CODE, code)

    def clear(self):
        self._prefs.remove(KEY_TOKEN, KEY_DEPLOYMENT_CODE, KEY_TOKEN_LOCKED, KEY_BACKUP_STALE)


class EncryptedCredentialBackend:
    """Credential entries inside the encrypted store."""

    name = "encrypted"

    def __init__(self, secure_store):
        self._store = secure_store

    def read(self):
        return self._store.read(SECURE_KEY_TOKEN), self._store.read(SECURE_KEY_DEPLOYMENT_CODE)

    def write(self, token, code):
        self._store.write(SECURE_KEY_TOKEN, token)
        self._store.write(SECURE_KEY_DEPLOYMENT_CODE, code)

    def clear(self):
        self._store.delete(SECURE_KEY_TOKEN, SECURE_KEY_DEPLOYMENT_CODE)


# ─── Repository ──────────────────────────────────────────────────

class CredentialStore:
    """save / load / clear / is_locked / lock over both backends."""

    def __init__(self, prefs, secure_store):
        self._prefs = prefs
        self.primary = PlaintextCredentialBackend(prefs)
        self.backup = EncryptedCredentialBackend(secure_store)

    def save(self, token, deployment_code) -> SaveOutcome:
        clean = validate_token(token)
        code = (deployment_code or "").strip()
        if clean is None or deployment_code_error(code):
            log.warning("Credentials not saved: invalid token or deployment code")
            return SaveOutcome.INVALID

        # Primary failure propagates: without it nothing is persisted.
        self.primary.write(clean, code)

        try:
            self.backup.write(clean, code)
        except StorageError as e:
            log.warning("Encrypted credential copy failed (primary kept): %s", e)
            self._mark_backup_stale()
            return SaveOutcome.SAVED_DEGRADED

        self._prefs.remove(KEY_BACKUP_STALE)
        log.info("Credentials saved to both stores (token=%s)", mask_token(clean))
        return SaveOutcome.SAVED

    def _mark_backup_stale(self):
        # The backup may still hold an older credential (or half of a new
        # one); load() must not repair the primary from it.
        self._prefs.set(KEY_BACKUP_STALE, True)
        try:
            self.backup.clear()
        except StorageError as e:
            log.warning("Could not drop stale encrypted credentials: %s", e)

    def _read_backup(self):
        if self._prefs.get_bool(KEY_BACKUP_STALE, False):
            log.info("Encrypted credential copy marked stale, ignoring it")
            return None, None
        try:
            return self.backup.read()
        except SecureStorageError as e:
            log.warning("Encrypted credential copy unreadable: %s", e)
            return None, None

    def load(self) -> LoadResult:
        p_token, p_code = self.primary.read()
        if p_token is not None and validate_token(p_token) is None:
            log.error("Stored token failed validation — wiping credentials")
            self.clear()
            return LoadResult(LoadStatus.CORRUPTED)

        b_token, b_code = self._read_backup()

        token = p_token if p_token is not None else b_token
        code = p_code if p_code is not None else b_code
        repaired = False

        if b_token is not None and p_token is not None and b_token != p_token:
            log.warning("Credential stores disagree — repairing plaintext copy from backup")
            token = b_token
            code = b_code if b_code is not None else code
            repaired = True
        elif p_token is None and b_token is not None:
            log.info("Plaintext credentials missing — restored from encrypted backup")
            repaired = True

        if token is None:
            return LoadResult(LoadStatus.ABSENT)

        clean = validate_token(token)
        if clean is None:
            log.error("Backup token failed validation — wiping credentials")
            self.clear()
            return LoadResult(LoadStatus.CORRUPTED)

        if clean != token:
            repaired = True

        if repaired and code:
            try:
                self.primary.write(clean, code)
            except StorageError as e:
                log.warning("Could not repair plaintext credentials: %s", e)

        if not code:
            return LoadResult(LoadStatus.ABSENT, locked=self.is_locked())

        return LoadResult(
            LoadStatus.OK,
            credential=Credential(clean, code),
            locked=self.is_locked(),
            repaired=repaired,
        )

    def clear(self) -> bool:
        """Remove credential keys from both stores. True only if both succeeded."""
        ok = True
        for backend in (self.primary, self.backup):
            try:
                backend.clear()
            except StorageError as e:
                log.error("Failed clearing %s credentials: %s", backend.name, e)
                ok = False
        if ok:
            log.info("Credentials cleared from both stores")
        return ok

    def is_locked(self) -> bool:
        return self._prefs.get_bool(KEY_TOKEN_LOCKED, False)

    def lock(self):
        self._prefs.set(KEY_TOKEN_LOCKED, True)
