import json

import httpx
import pytest
from httpx import AsyncClient, ASGITransport

from credit_proxy.config import Settings
from credit_proxy.main import create_app


class FakeStore:
    """In-memory stand-in for the balance store's REST tables."""

    def __init__(self):
        self.balances: dict[str, dict] = {}
        self.usage: list[dict] = []
        self.requests: list[httpx.Request] = []
        # (method, table) pairs that answer with HTTP 500
        self.failing: set[tuple[str, str]] = set()

    def add_balance(self, user_id: str, total_cost_cents: int = 0, cap_cents: int = 1500):
        self.balances[user_id] = {
            "user_id": user_id,
            "period_start": "2026-10-01T00:00:00+00:00",
            "total_cost_cents": total_cost_cents,
            "cap_cents": cap_cents,
        }

    def calls(self, method: str, table: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.endswith(f"/{table}")
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]

        if (request.method, table) in self.failing:
            return httpx.Response(500, json={"message": "store unavailable"})

        user_filter = request.url.params.get("user_id", "")
        user_id = user_filter[3:] if user_filter.startswith("eq.") else None

        if table == "credit_balance" and request.method == "GET":
            columns = request.url.params.get("select", "").split(",")
            rows = [self.balances[user_id]] if user_id in self.balances else []
            return httpx.Response(200, json=[{c: row[c] for c in columns} for row in rows])

        if table == "credit_balance" and request.method == "POST":
            row = json.loads(request.content)
            self.balances[row["user_id"]] = row
            return httpx.Response(201, json=[row])

        if table == "credit_balance" and request.method == "PATCH":
            if user_id not in self.balances:
                return httpx.Response(200, json=[])
            self.balances[user_id].update(json.loads(request.content))
            return httpx.Response(200, json=[self.balances[user_id]])

        if table == "ai_usage" and request.method == "POST":
            row = json.loads(request.content)
            self.usage.append(row)
            return httpx.Response(201, json=[row])

        return httpx.Response(404, json={"message": f"unknown table {table}"})


class FakeUpstream:
    """Records forwarded requests and answers with a configurable response."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responder = lambda request: httpx.Response(200, json={})

    def respond_with(self, status_code: int = 200, json_body=None, **kwargs):
        def responder(request):
            if json_body is not None:
                return httpx.Response(status_code, json=json_body, **kwargs)
            return httpx.Response(status_code, **kwargs)
        self.responder = responder

    def refuse_connections(self):
        def responder(request):
            raise httpx.ConnectError("Connection refused", request=request)
        self.responder = responder

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


@pytest.fixture
def settings():
    return Settings(
        store_url="https://store.test",
        store_key="service-role-key",
        user_id="user-123",
        deployment_id="deploy-456",
    )


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
async def store_http(fake_store):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_store.handler)) as client:
        yield client


@pytest.fixture
async def upstream_http(fake_upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_upstream.handler)) as client:
        yield client


@pytest.fixture
def app(settings, store_http, upstream_http):
    return create_app(settings, store_http=store_http, upstream_http=upstream_http)


@pytest.fixture
async def client(app):
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
