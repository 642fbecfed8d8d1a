import pytest

from nexus_core.config import AppPaths
from nexus_core.storage import PreferencesStore, SecureStore
from nexus_core.credentials import CredentialStore

VALID_TOKEN = "AAAAAAAAAA"
SERVER_URL = "https://nexus.example.test"


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body

    @property
    def text(self):
        return str(self._body)


class FakeSession:
    """
    Stand-in for requests.Session. Routes are keyed by the last URL segment
    (setUnit, checkStatus, updateLocation). A route is a FakeResponse, an
    exception instance (raised), or a callable(payload, headers).
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.closed = False

    def route(self, endpoint, status=200, body=None, exc=None, handler=None):
        if handler is not None:
            self.routes[endpoint] = handler
        elif exc is not None:
            self.routes[endpoint] = exc
        else:
            self.routes[endpoint] = FakeResponse(status, body)

    def post(self, url, json=None, headers=None, timeout=None):
        endpoint = url.rstrip("/").rsplit("/", 1)[-1]
        self.calls.append((endpoint, json, headers))
        target = self.routes.get(endpoint)
        if target is None:
            return FakeResponse(404, {"success": False, "message": "not found"})
        if isinstance(target, Exception):
            raise target
        if callable(target):
            return target(json, headers)
        return target

    def endpoint_calls(self, endpoint):
        return [c for c in self.calls if c[0] == endpoint]

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    monkeypatch.setattr(SecureStore, "KDF_ITERATIONS", 1_000)


@pytest.fixture
def paths(tmp_path):
    return AppPaths(tmp_path / "nexus").ensure()


@pytest.fixture
def prefs(paths):
    return PreferencesStore(paths.prefs_file)


@pytest.fixture
def secure_store(paths):
    return SecureStore(paths.secure_file, paths.secure_key_file)


@pytest.fixture
def credentials(prefs, secure_store):
    return CredentialStore(prefs, secure_store)


@pytest.fixture
def fake_session():
    session = FakeSession()
    session.route("setUnit", body={"success": True, "message": "Unit updated"})
    session.route("checkStatus", body={"isLoggedIn": False})
    session.route("updateLocation", body={"success": True, "message": "Location stored"})
    return session


@pytest.fixture
def make_app(paths, fake_session):
    from nexus_core.app import FieldApp

    def _make(online=True, **kwargs):
        return FieldApp(
            paths, {"serverUrl": SERVER_URL},
            session=fake_session, is_online=lambda: online, **kwargs,
        )
    return _make
