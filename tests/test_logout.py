import requests

from nexus_core.constants import (
    KEY_TOKEN, KEY_DEPLOYMENT_CODE, KEY_SERVICE_DISABLED, KEY_SERVICE_DISABLE_TS,
)
from nexus_core.credentials import LoadStatus
from nexus_core.restart_policy import read_restart_inputs
from nexus_core.storage import StorageError

from conftest import VALID_TOKEN


def _logged_in_app(make_app, **kwargs):
    app = make_app(**kwargs)
    result = app.auth.login(VALID_TOKEN, "XYZ1")
    assert result.is_success
    app.prefs.set("autoInstallUpdates", True)
    (app.paths.documents_dir / "report.pdf").write_bytes(b"%PDF")
    return app


def test_full_logout(make_app, fake_session):
    app = _logged_in_app(make_app)

    result = app.logout()

    assert result.success, result.message
    assert result.warnings == []
    logout_call = fake_session.endpoint_calls("setUnit")[-1]
    assert logout_call[1]["action"] == "logout"
    assert app.prefs.keys() == {KEY_SERVICE_DISABLED, KEY_SERVICE_DISABLE_TS}
    assert not app.paths.secure_file.exists()
    assert list(app.paths.documents_dir.iterdir()) == []
    assert app.credentials.load().status is LoadStatus.ABSENT
    assert app.auth.session.token is None


def test_logout_blocks_automatic_restart(make_app):
    app = _logged_in_app(make_app)
    app.logout()

    inputs = read_restart_inputs(app.prefs)
    assert inputs.permanently_disabled
    assert inputs.decide() is False


def test_server_failure_does_not_stop_local_cleanup(make_app, fake_session):
    app = _logged_in_app(make_app)
    fake_session.route("setUnit", exc=requests.ConnectionError("offline"))

    result = app.logout(force_offline=True)

    assert result.success
    assert len(result.warnings) == 1
    assert "Server logout failed" in result.warnings[0]
    assert fake_session.endpoint_calls("setUnit")[-1][1]["forceOffline"] is True
    assert app.credentials.load().status is LoadStatus.ABSENT


def test_logout_without_credentials_warns(make_app, fake_session):
    app = make_app()
    result = app.logout()
    assert result.success
    assert result.warnings == ["No credentials available for server logout"]
    assert fake_session.endpoint_calls("setUnit") == []


def test_purge_failure_is_reported(make_app, monkeypatch):
    app = _logged_in_app(make_app)

    def broken_delete_all():
        raise StorageError("device busy")

    monkeypatch.setattr(app.secure_store, "delete_all", broken_delete_all)

    result = app.logout()

    assert not result.success
    assert result.failed_phase == "secure store"
    assert result.error == "device busy"
    assert result.message.startswith("Logout failed")


def test_emergency_logout_keeps_settings(make_app):
    app = _logged_in_app(make_app)

    result = app.logout(emergency=True)

    assert result.success
    assert app.prefs.get(KEY_TOKEN) is None
    assert app.prefs.get(KEY_DEPLOYMENT_CODE) is None
    assert app.prefs.get("autoInstallUpdates") is True
    assert not app.paths.secure_file.exists()
    assert (app.paths.documents_dir / "report.pdf").exists()
    assert app.prefs.get(KEY_SERVICE_DISABLED) is True
