import asyncio

import requests

from nexus_core.background import write_disable_flag
from nexus_core.constants import KEY_SERVICE_DISABLED, KEY_SERVICE_DISABLE_TS
from nexus_core import network

from conftest import VALID_TOKEN

MINUTE_MS = 60_000
NOW = 1_700_000_000_000


def _app(make_app, **kwargs):
    app = make_app(
        location_provider=lambda: {"latitude": 52.1, "longitude": 4.3, "accuracy": 8},
        battery_provider=lambda: 81,
        **kwargs,
    )
    app.credentials.save(VALID_TOKEN, "XYZ1")
    return app


def test_start_refused_when_logged_out(make_app):
    assert make_app().background.start(now=NOW) is False


def test_start_refused_after_recent_logout(make_app):
    app = _app(make_app)
    write_disable_flag(app.prefs, timestamp=NOW - 5 * MINUTE_MS)
    assert app.background.start(now=NOW) is False


def test_start_clears_stale_disable_flag(make_app):
    app = _app(make_app)
    write_disable_flag(app.prefs, timestamp=NOW - 11 * MINUTE_MS)

    assert app.background.start(now=NOW) is True
    assert app.prefs.get(KEY_SERVICE_DISABLED) is None
    assert app.prefs.get(KEY_SERVICE_DISABLE_TS) is None


def test_report_sends_location(make_app, fake_session):
    app = _app(make_app)

    assert app.background.report_once() is True

    (_, payload, _), = fake_session.endpoint_calls("updateLocation")
    assert payload["deploymentCode"] == "XYZ1"
    assert payload["location"]["latitude"] == 52.1
    assert payload["batteryStatus"] == 81


def test_failed_report_is_buffered_and_replayed(make_app, fake_session):
    app = _app(make_app)
    buffer_file = app.paths.offline_buffer_file
    fake_session.route("updateLocation", exc=requests.ConnectionError("no signal"))

    assert app.background.report_once() is False
    assert network.has_buffered_requests(buffer_file)

    fake_session.route("updateLocation", body={"success": True, "message": "ok"})
    assert app.background.report_once() is True

    assert not network.has_buffered_requests(buffer_file)
    # the failed attempt, the live report and the replay
    assert len(fake_session.endpoint_calls("updateLocation")) == 3


def test_server_rejection_is_not_buffered(make_app, fake_session):
    app = _app(make_app)
    fake_session.route("updateLocation", status=401, body={"success": False, "message": "revoked"})

    assert app.background.report_once() is False
    assert not network.has_buffered_requests(app.paths.offline_buffer_file)
    assert app.background.consecutive_failures == 1


def test_permanent_stop_ends_run_loop(make_app, fake_session):
    app = _app(make_app)

    async def scenario():
        task = asyncio.create_task(app.background.run())
        await asyncio.sleep(0.05)
        app.background.stop(permanent=True)
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())

    assert app.prefs.get(KEY_SERVICE_DISABLED) is True
    assert len(fake_session.endpoint_calls("updateLocation")) >= 1
