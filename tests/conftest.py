import os

os.environ["DATABASE_URL"] = "sqlite://"

import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sevenvoice.config import Settings
from sevenvoice.db import get_db
from sevenvoice.deps import get_http_client, get_settings, get_stripe_client
from sevenvoice.main import app
from sevenvoice.models import Base

FAKE_MP3 = b"ID3\x03\x00fake-mp3-bytes"
WEBHOOK_SECRET = "whsec_test_secret"


class MockUpstream:
    """httpx MockTransport handler that records requests and answers from registered routes."""

    def __init__(self):
        self.requests = []
        self.routes = []

    def on(self, method, url, status_code=200, **kwargs):
        self.routes.insert(0, (method, url, status_code, kwargs))

    def calls_to(self, url):
        return [r for r in self.requests if str(r.url).startswith(url)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, url, status_code, kwargs in self.routes:
            if request.method == method and str(request.url).startswith(url):
                return httpx.Response(status_code, **kwargs)
        return httpx.Response(404, text=f"no mock for {request.method} {request.url}")


class FakeStripe:
    """Stands in for stripe.StripeClient: same service attributes, plain dict results."""

    def __init__(self):
        self.calls = []
        self.customers_db = {}
        self.subscriptions_db = {}
        self.fail_with = None
        self.customers = SimpleNamespace(create=self._create_customer, retrieve=self._retrieve_customer)
        self.prices = SimpleNamespace(create=self._create_price)
        self.subscriptions = SimpleNamespace(create=self._create_subscription, retrieve=self._retrieve_subscription)
        self.payment_intents = SimpleNamespace(create=self._create_payment_intent)

    def _record(self, name, params):
        self.calls.append((name, params))
        if self.fail_with is not None:
            raise self.fail_with

    def count(self, name):
        return len([c for c in self.calls if c[0] == name])

    def _create_customer(self, params):
        self._record("customers.create", params)
        cid = f"cus_{len(self.customers_db) + 1}"
        self.customers_db[cid] = {"id": cid, "email": params.get("email"), "metadata": dict(params.get("metadata", {}))}
        return self.customers_db[cid]

    def _retrieve_customer(self, customer_id):
        self._record("customers.retrieve", customer_id)
        return self.customers_db[customer_id]

    def _create_price(self, params):
        self._record("prices.create", params)
        return {"id": f"price_{params['metadata']['plan']}", "unit_amount": params["unit_amount"], "metadata": params["metadata"]}

    def _create_subscription(self, params):
        self._record("subscriptions.create", params)
        sid = f"sub_{len(self.subscriptions_db) + 1}"
        price = {"id": params["items"][0]["price"], "metadata": {"plan": params["metadata"]["plan"]}}
        sub = {
            "id": sid,
            "customer": params["customer"],
            "status": "incomplete",
            "current_period_end": 1767225600,
            "cancel_at_period_end": False,
            "items": {"data": [{"price": price}]},
            "latest_invoice": {"payment_intent": {"client_secret": f"{sid}_secret"}},
        }
        self.subscriptions_db[sid] = sub
        return sub

    def _retrieve_subscription(self, subscription_id):
        self._record("subscriptions.retrieve", subscription_id)
        return self.subscriptions_db[subscription_id]

    def _create_payment_intent(self, params):
        self._record("payment_intents.create", params)
        return {"id": "pi_1", "client_secret": "pi_1_secret"}


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = timestamp or int(time.time())
    mac = hmac.new(secret.encode(), f"{timestamp}.{payload.decode()}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={mac}"


def make_event(kind: str, obj: dict) -> bytes:
    return json.dumps({"id": "evt_test", "type": kind, "data": {"object": obj}}).encode()


@pytest.fixture
def settings():
    return Settings(
        SESSION_SECRET="test-session-secret",
        SESSION_COOKIE_SECURE=False,
        SESSION_TTL_SECONDS=3600,
        SESSION_ROLLING=True,
        TTS_PROVIDER="elevenlabs",
        ELEVENLABS_API_KEY="el-test-key",
        OPENAI_API_KEY=None,
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        GITHUB_CLIENT_ID="gh-client",
        GITHUB_CLIENT_SECRET="gh-secret",
        GOOGLE_CLIENT_ID=None,
        GOOGLE_CLIENT_SECRET=None,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
        TWILIO_PHONE_NUMBER=None,
        NOTIFY_PHONE_NUMBER=None,
    )


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def upstream():
    mock = MockUpstream()
    mock.on("POST", "https://api.elevenlabs.io/v1/text-to-speech/", content=FAKE_MP3, headers={"content-type": "audio/mpeg"})
    return mock


@pytest.fixture
def http(upstream):
    with httpx.Client(transport=httpx.MockTransport(upstream)) as c:
        yield c


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def client(settings, session_factory, http, fake_stripe):
    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_http_client] = lambda: http
    app.dependency_overrides[get_stripe_client] = lambda: fake_stripe
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in(client):
    r = client.post("/api/auth/signup", json={"email": "ada@example.com", "password": "secret123"})
    assert r.status_code == 200
    return r.json()["user"]
