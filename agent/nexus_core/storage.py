"""
Local persistence backends.

  PreferencesStore → flat JSON key/value file (plaintext settings, flags,
                     primary credential copy). Readable by the task-removal
                     hook without any key material.
  SecureStore      → Fernet-encrypted values (AES-128-CBC + HMAC-SHA256 from
                     the 'cryptography' package). The Fernet key is derived
                     with PBKDF2-HMAC-SHA256 from a random per-install device
                     id and salt kept in a separate key file.

Every write replaces the whole file atomically (temp file + os.replace),
so a single key write is all-or-nothing. Multi-key updates are not
transactional.
"""

import base64
import json
import os
import secrets
import tempfile
import threading
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import log


class StorageError(Exception):
    """Plaintext store could not be read or written."""


class SecureStorageError(StorageError):
    """Encrypted store could not be read, written or decrypted."""


def _atomic_write_json(path, data):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


# ─── Plaintext preferences ───────────────────────────────────────

class PreferencesStore:
    """
    String-keyed settings file. Values are JSON scalars.

    Each set/remove/clear is a read-modify-write of the whole file, done
    under a per-instance lock so writers on the event loop and on worker
    threads do not drop each other's keys.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self):
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            log.warning("Preferences unreadable (%s) — treating as empty", e)
            return {}
        if not isinstance(data, dict):
            log.warning("Preferences file is not an object — treating as empty")
            return {}
        return data

    def _write(self, data):
        try:
            _atomic_write_json(self.path, data)
        except OSError as e:
            raise StorageError(f"Cannot write preferences {self.path}: {e}") from e

    def snapshot(self):
        """All keys as one consistent read."""
        return dict(self._read())

    def get(self, key, default=None):
        return self._read().get(key, default)

    def get_str(self, key):
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def get_bool(self, key, default=False):
        value = self._read().get(key, default)
        return value if isinstance(value, bool) else default

    def get_int(self, key, default=0):
        value = self._read().get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            return default
        return value

    def set(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, *keys):
        with self._lock:
            data = self._read()
            changed = False
            for key in keys:
                if key in data:
                    del data[key]
                    changed = True
            if changed:
                self._write(data)

    def keys(self):
        return set(self._read())

    def clear(self):
        """Drop every key, not only credentials."""
        with self._lock:
            if not self.path.exists():
                return
            self._write({})


# ─── Encrypted store ─────────────────────────────────────────────

class SecureStore:
    """
    Encrypted key/value file.

    The key file holds {"deviceId", "salt"} (base64). It is created on first
    use; delete_all() removes it together with the data file so the next
    install starts from fresh key material.
    """

    KDF_ITERATIONS = 200_000

    def __init__(self, path, key_path):
        self.path = Path(path)
        self.key_path = Path(key_path)
        self._fernet = None
        self._lock = threading.RLock()

    # ── Key material ──────────────────────────────────────────

    def _load_or_create_key_material(self):
        if self.key_path.exists():
            try:
                data = json.loads(self.key_path.read_text(encoding="utf-8"))
                return (
                    base64.b64decode(data["deviceId"]),
                    base64.b64decode(data["salt"]),
                )
            except (OSError, ValueError, KeyError, TypeError) as e:
                raise SecureStorageError(f"Key file corrupted: {e}") from e

        device_id = secrets.token_bytes(32)
        salt = secrets.token_bytes(16)
        try:
            _atomic_write_json(self.key_path, {
                "deviceId": base64.b64encode(device_id).decode("ascii"),
                "salt": base64.b64encode(salt).decode("ascii"),
            })
        except OSError as e:
            raise SecureStorageError(f"Cannot create key file: {e}") from e
        log.info("SecureStore: generated new device key material")
        return device_id, salt

    def _cipher(self):
        with self._lock:
            if self._fernet is None:
                device_id, salt = self._load_or_create_key_material()
                kdf = PBKDF2HMAC(
                    algorithm=hashes.SHA256(),
                    length=32,
                    salt=salt,
                    iterations=self.KDF_ITERATIONS,
                )
                self._fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(device_id)))
            return self._fernet

    # ── Data file ─────────────────────────────────────────────

    def _read_all(self):
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            raise SecureStorageError(f"Secure store unreadable: {e}") from e
        if not isinstance(data, dict):
            raise SecureStorageError("Secure store is not an object")
        return data

    def _write_all(self, data):
        try:
            _atomic_write_json(self.path, data)
        except OSError as e:
            raise SecureStorageError(f"Cannot write secure store: {e}") from e

    def read(self, key):
        """Decrypted value, or None when the key is absent."""
        blob = self._read_all().get(key)
        if blob is None:
            return None
        try:
            return self._cipher().decrypt(blob.encode("ascii")).decode("utf-8")
        except (InvalidToken, AttributeError, UnicodeError) as e:
            raise SecureStorageError(f"Cannot decrypt '{key}'") from e

    def write(self, key, value):
        with self._lock:
            data = self._read_all()
            data[key] = self._cipher().encrypt(value.encode("utf-8")).decode("ascii")
            self._write_all(data)

    def delete(self, *keys):
        with self._lock:
            data = self._read_all()
            if any(k in data for k in keys):
                for k in keys:
                    data.pop(k, None)
                self._write_all(data)

    def delete_all(self):
        """Provider-level wipe: data file and key material."""
        with self._lock:
            self._fernet = None
            for p in (self.path, self.key_path):
                try:
                    p.unlink(missing_ok=True)
                except OSError as e:
                    raise SecureStorageError(f"Cannot delete {p}: {e}") from e
