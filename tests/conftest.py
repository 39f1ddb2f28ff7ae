import threading
from urllib.parse import urlsplit

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from app import create_app
from core.storage.dual_mode import DualModeStore
from core.storage.local_store import LocalRecordStore
from core.storage.remote_store import RemoteRecordStore

SERVICE_URL = "http://records.test"


class FlaskTransport:
    """requests.Session stand-in that routes calls into a Flask test client."""

    def __init__(self, client):
        self.client = client
        self.calls = []

    def request(self, method, url, timeout=None, json=None, **kwargs):
        path = urlsplit(url).path
        self.calls.append((method, path, json))
        result = self.client.open(path, method=method, json=json)
        response = requests.Response()
        response.status_code = result.status_code
        response._content = result.get_data()
        response.headers = CaseInsensitiveDict(dict(result.headers))
        response.encoding = "utf-8"
        response.url = url
        response.reason = result.status.split(" ", 1)[-1]
        return response

    def get(self, url, timeout=None, **kwargs):
        return self.request("GET", url, timeout=timeout, **kwargs)


class DownTransport:
    """Every call fails as if the service were unreachable."""

    def __init__(self):
        self.calls = 0

    def request(self, method, url, timeout=None, **kwargs):
        self.calls += 1
        raise requests.ConnectionError(f"connection refused: {url}")

    def get(self, url, timeout=None, **kwargs):
        return self.request("GET", url, timeout=timeout, **kwargs)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            return self.now

    def advance(self, seconds):
        with self._lock:
            self.now += seconds


@pytest.fixture
def app(tmp_path):
    flask_app = create_app(db_path=tmp_path / "records.db", configure_logging=False)
    flask_app.config.update(TESTING=True)
    yield flask_app
    flask_app.extensions["record_db"].close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def record_db(app):
    return app.extensions["record_db"]


@pytest.fixture
def transport(client):
    return FlaskTransport(client)


@pytest.fixture
def remote(transport):
    return RemoteRecordStore(SERVICE_URL, session=transport)


@pytest.fixture
def local_store():
    return LocalRecordStore()


@pytest.fixture
def local_mode_store(local_store):
    return DualModeStore(local_store, None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def down_transport():
    return DownTransport()


@pytest.fixture
def remote_factory(transport):
    return lambda url: RemoteRecordStore(url, session=transport)


@pytest.fixture
def down_factory(down_transport):
    return lambda url: RemoteRecordStore(url, session=down_transport)
