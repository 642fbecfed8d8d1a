import pytest

from nexus_core.credentials import (
    Credential, LoadStatus, SaveOutcome, validate_token, deployment_code_error,
)
from nexus_core.constants import (
    KEY_TOKEN, KEY_DEPLOYMENT_CODE, KEY_TOKEN_LOCKED, KEY_BACKUP_STALE,
    SECURE_KEY_TOKEN, SECURE_KEY_DEPLOYMENT_CODE,
)
from nexus_core.storage import SecureStorageError

from conftest import VALID_TOKEN


# ─── Token rules ─────────────────────────────────────────────────

@pytest.mark.parametrize("token", [
    "AAAAAAAAA\x00B",
    "AAAAAAAAAA\x7f",
    "AAAAAAAAAAé",
    "AAAA\nAAAAAA",
    "AAAAAAAAAA☃",
])
def test_token_with_byte_outside_printable_ascii_is_rejected(token):
    assert validate_token(token) is None


@pytest.mark.parametrize("token", ["", "A", "123456789", "   short   "])
def test_token_shorter_than_ten_is_rejected(token):
    assert validate_token(token) is None


@pytest.mark.parametrize("token", [
    "AAAAAAAAAA",
    "abc.DEF-123_~!@#$%^&*()",
    "with inner space",
    "~" * 64,
])
def test_valid_token_returned_unchanged(token):
    assert validate_token(token) == token


def test_valid_token_is_trimmed():
    assert validate_token("  AAAAAAAAAA \n") == "AAAAAAAAAA"


def test_non_string_token_is_rejected():
    assert validate_token(None) is None
    assert validate_token(1234567890) is None


def test_deployment_code_messages():
    assert deployment_code_error("") == "Deployment code required"
    assert "too short" in deployment_code_error("AB")
    assert deployment_code_error("XYZ1") is None


# ─── Save / load ─────────────────────────────────────────────────

def test_save_then_load_round_trip(credentials):
    assert credentials.save(VALID_TOKEN, "XYZ1") is SaveOutcome.SAVED
    loaded = credentials.load()
    assert loaded.status is LoadStatus.OK
    assert loaded.credential == Credential(VALID_TOKEN, "XYZ1")


def test_save_degrades_when_encrypted_backend_fails(credentials, secure_store, monkeypatch):
    def broken_write(key, value):
        raise SecureStorageError("keystore unavailable")

    monkeypatch.setattr(secure_store, "write", broken_write)
    assert credentials.save(VALID_TOKEN, "XYZ1") is SaveOutcome.SAVED_DEGRADED
    assert credentials.load().credential == Credential(VALID_TOKEN, "XYZ1")


def test_save_rejects_invalid_token_without_touching_stores(credentials, prefs, secure_store):
    assert credentials.save("short", "XYZ1") is SaveOutcome.INVALID
    assert prefs.keys() == set()
    assert secure_store.read(SECURE_KEY_TOKEN) is None


def test_load_absent(credentials):
    loaded = credentials.load()
    assert loaded.status is LoadStatus.ABSENT
    assert loaded.credential is None


def test_corrupted_plaintext_token_wipes_both_stores(credentials, prefs, secure_store):
    credentials.save(VALID_TOKEN, "XYZ1")
    prefs.set(KEY_TOKEN, "bad\x01token-value")

    loaded = credentials.load()

    assert loaded.status is LoadStatus.CORRUPTED
    assert loaded.needs_reauth
    assert prefs.get(KEY_TOKEN) is None
    assert prefs.get(KEY_DEPLOYMENT_CODE) is None
    assert secure_store.read(SECURE_KEY_TOKEN) is None
    assert credentials.load().status is LoadStatus.ABSENT


def test_missing_plaintext_is_restored_from_backup(credentials, prefs):
    credentials.save(VALID_TOKEN, "XYZ1")
    prefs.remove(KEY_TOKEN, KEY_DEPLOYMENT_CODE)

    loaded = credentials.load()

    assert loaded.status is LoadStatus.OK
    assert loaded.repaired
    assert prefs.get(KEY_TOKEN) == VALID_TOKEN
    assert prefs.get(KEY_DEPLOYMENT_CODE) == "XYZ1"


def test_mismatch_repairs_plaintext_from_backup(credentials, prefs):
    credentials.save(VALID_TOKEN, "XYZ1")
    prefs.set(KEY_TOKEN, "BBBBBBBBBBBB")

    loaded = credentials.load()

    assert loaded.credential.token == VALID_TOKEN
    assert loaded.repaired
    assert prefs.get(KEY_TOKEN) == VALID_TOKEN


def test_unreadable_backup_falls_back_to_plaintext(credentials, paths):
    credentials.save(VALID_TOKEN, "XYZ1")
    paths.secure_file.write_text("not json", encoding="utf-8")

    loaded = credentials.load()

    assert loaded.status is LoadStatus.OK
    assert loaded.credential == Credential(VALID_TOKEN, "XYZ1")


def test_clear_reports_success_and_empties_both(credentials, prefs, secure_store):
    credentials.save(VALID_TOKEN, "XYZ1")
    credentials.lock()
    assert credentials.clear() is True
    assert prefs.get(KEY_TOKEN_LOCKED) is None
    assert secure_store.read(SECURE_KEY_TOKEN) is None


def test_clear_reports_failure(credentials, secure_store, monkeypatch):
    credentials.save(VALID_TOKEN, "XYZ1")

    def broken_delete(*keys):
        raise SecureStorageError("locked")

    monkeypatch.setattr(secure_store, "delete", broken_delete)
    assert credentials.clear() is False


def test_lock_flag(credentials):
    assert credentials.is_locked() is False
    credentials.lock()
    assert credentials.is_locked() is True
    credentials.save(VALID_TOKEN, "XYZ1")
    assert credentials.load().locked is True


def test_repr_masks_token():
    text = repr(Credential("SECRETSECRETSECRET", "XYZ1"))
    assert "SECRETSECRETSECRET" not in text


def test_degraded_save_does_not_resurrect_older_backup(credentials, secure_store, monkeypatch):
    credentials.save(VALID_TOKEN, "XYZ1")

    def broken_write(key, value):
        raise SecureStorageError("keystore unavailable")

    monkeypatch.setattr(secure_store, "write", broken_write)
    assert credentials.save("BBBBBBBBBBBB", "QRS9") is SaveOutcome.SAVED_DEGRADED

    loaded = credentials.load()
    assert loaded.credential == Credential("BBBBBBBBBBBB", "QRS9")
    assert not loaded.repaired
    assert secure_store.read(SECURE_KEY_TOKEN) is None


def test_half_written_backup_is_ignored(credentials, secure_store, monkeypatch):
    credentials.save(VALID_TOKEN, "XYZ1")
    real_write = secure_store.write

    def fail_on_code(key, value):
        if key == SECURE_KEY_DEPLOYMENT_CODE:
            raise SecureStorageError("disk full")
        real_write(key, value)

    monkeypatch.setattr(secure_store, "write", fail_on_code)
    assert credentials.save("BBBBBBBBBBBB", "QRS9") is SaveOutcome.SAVED_DEGRADED

    assert credentials.load().credential == Credential("BBBBBBBBBBBB", "QRS9")


def test_complete_save_trusts_backup_again(credentials, prefs, secure_store, monkeypatch):
    real_write = secure_store.write

    def broken_write(key, value):
        raise SecureStorageError("keystore unavailable")

    monkeypatch.setattr(secure_store, "write", broken_write)
    credentials.save(VALID_TOKEN, "XYZ1")
    assert prefs.get(KEY_BACKUP_STALE) is True
    monkeypatch.setattr(secure_store, "write", real_write)

    assert credentials.save(VALID_TOKEN, "XYZ1") is SaveOutcome.SAVED
    assert prefs.get(KEY_BACKUP_STALE) is None
    prefs.remove(KEY_TOKEN, KEY_DEPLOYMENT_CODE)
    assert credentials.load().credential == Credential(VALID_TOKEN, "XYZ1")
