# backend/tests/conftest.py

import pytest
import requests
from fastapi.testclient import TestClient

from main import create_app
from services.job_manager import JobManager
from services.media_client import MediaGeneratorClient
from services.orchestrator import JobOrchestrator, OrchestratorConfig
from services.payment_gate import PaymentGate
from services.paypal import PayPalClient
from services.storage import ArtifactStore

MEDIA_API = "https://media.test/v4"
PAYPAL_API = "https://paypal.test"
APP_URL = "http://app.test"


class FakeResponse:
    """Just enough of requests.Response for the clients under test."""

    def __init__(self, status_code=200, json_data=None, content=b""):
        self.status_code = status_code
        self._json = json_data
        self.content = content

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    @property
    def text(self):
        return str(self._json) if self._json is not None else self.content.decode(errors="replace")

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """
    Stand-in for requests.Session. Responses are queued per (method, url);
    the last queued response is repeated once the queue runs dry.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, url, *responses):
        self.routes.setdefault((method, url), []).extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.routes.get((method, url))
        if not queue:
            raise requests.ConnectionError(f"no route for {method} {url}")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def calls_to(self, method, url):
        return [c for c in self.calls if c[0] == method and c[1] == url]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def store(tmp_path, session):
    return ArtifactStore(tmp_path / "generated", session=session)


@pytest.fixture
def manager(tmp_path):
    manager = JobManager(tmp_path / "test.db")
    manager.init_db()
    return manager


@pytest.fixture
def media_client(session):
    return MediaGeneratorClient("test-key", MEDIA_API, session=session)


@pytest.fixture
def orchestrator(media_client, store, manager):
    return JobOrchestrator(
        media_client,
        store,
        manager,
        OrchestratorConfig(poll_interval=0.01, max_attempts=5),
    )


@pytest.fixture
def paypal(session):
    return PayPalClient(
        "client-id",
        "client-secret",
        api_base=PAYPAL_API,
        return_base_url=APP_URL,
        session=session,
    )


@pytest.fixture
def app(manager, store, media_client, paypal):
    return create_app(
        job_manager=manager,
        store=store,
        media_client=media_client,
        paypal=paypal,
        orchestrator_config=OrchestratorConfig(poll_interval=0.01, max_attempts=5),
        payment_gate=PaymentGate(manager),
        base_url=APP_URL,
        worker_enabled=False,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def captured_order(manager):
    """An order that went through approval and capture."""
    manager.create_order("ORDER-1", "https://paypal.test/approve/ORDER-1")
    from models import OrderStatus
    manager.set_order_status("ORDER-1", OrderStatus.CAPTURED)
    return "ORDER-1"
