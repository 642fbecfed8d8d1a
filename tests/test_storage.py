import json
import threading

import pytest

from nexus_core.storage import PreferencesStore, SecureStore, SecureStorageError


def test_prefs_typed_getters(prefs):
    prefs.set("flag", True)
    prefs.set("count", 7)
    prefs.set("name", "unit-7")

    assert prefs.get_bool("flag") is True
    assert prefs.get_int("count") == 7
    assert prefs.get_str("name") == "unit-7"
    # wrong types fall back to defaults
    assert prefs.get_bool("count", False) is False
    assert prefs.get_int("flag", -1) == -1
    assert prefs.get_str("count") is None


def test_prefs_unreadable_file_reads_as_empty(paths):
    paths.prefs_file.write_text("{broken", encoding="utf-8")
    store = PreferencesStore(paths.prefs_file)
    assert store.keys() == set()
    store.set("a", 1)
    assert store.get("a") == 1


def test_prefs_remove_and_clear(prefs):
    prefs.set("a", 1)
    prefs.set("b", 2)
    prefs.remove("a", "missing")
    assert prefs.keys() == {"b"}
    prefs.clear()
    assert prefs.keys() == set()


def test_secure_store_does_not_keep_plaintext(secure_store, paths):
    secure_store.write("encrypted_token", "SUPERSECRETTOKEN")

    assert "SUPERSECRETTOKEN" not in paths.secure_file.read_text(encoding="utf-8")
    assert secure_store.read("encrypted_token") == "SUPERSECRETTOKEN"
    assert secure_store.read("missing") is None


def test_secure_store_survives_reopen(secure_store, paths):
    secure_store.write("k", "value")
    reopened = SecureStore(paths.secure_file, paths.secure_key_file)
    assert reopened.read("k") == "value"


def test_secure_store_tampered_value_raises(secure_store, paths):
    secure_store.write("k", "value")
    data = json.loads(paths.secure_file.read_text(encoding="utf-8"))
    data["k"] = "gAAAAAtampered"
    paths.secure_file.write_text(json.dumps(data), encoding="utf-8")

    with pytest.raises(SecureStorageError):
        secure_store.read("k")


def test_secure_store_delete_all_removes_key_material(secure_store, paths):
    secure_store.write("k", "value")
    assert paths.secure_key_file.exists()

    secure_store.delete_all()

    assert not paths.secure_file.exists()
    assert not paths.secure_key_file.exists()
    assert secure_store.read("k") is None
    secure_store.delete_all()


def test_concurrent_writers_keep_every_key(prefs):
    def writer(prefix):
        for i in range(100):
            prefs.set(f"{prefix}-{i}", i)

    threads = [threading.Thread(target=writer, args=(p,)) for p in ("loop", "worker")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(prefs.keys()) == 200


def test_concurrent_secure_writes_keep_every_key(secure_store):
    def writer(prefix):
        for i in range(20):
            secure_store.write(f"{prefix}-{i}", str(i))

    threads = [threading.Thread(target=writer, args=(p,)) for p in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert secure_store.read("a-19") == "19"
    assert secure_store.read("b-19") == "19"
    assert secure_store.read("a-0") == "0"
