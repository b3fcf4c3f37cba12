import json
from typing import Dict

import httpx
import pytest
from fastapi.testclient import TestClient

from agnivirya.config import clear_settings_cache
from agnivirya.services.cashfree_service import CashfreeService


class FakeCashfree:
    """Gateway de Cashfree en memoria, servido a través de httpx.MockTransport."""

    def __init__(self):
        self.orders: Dict[str, dict] = {}
        self.requests = []
        self.fail_with = None
        self._next_cf_id = 5000

    def pay(self, order_id: str) -> None:
        self.orders[order_id]["order_status"] = "PAID"

    def _find(self, key: str):
        for order in self.orders.values():
            if order["order_id"] == key or str(order["cf_order_id"]) == key:
                return order
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "gateway unavailable", "code": "internal_error"})

        path = request.url.path
        if request.method == "POST" and path.endswith("/orders"):
            body = json.loads(request.content)
            self._next_cf_id += 1
            order = {
                "order_id": body["order_id"],
                "cf_order_id": self._next_cf_id,
                "payment_session_id": f"session_{body['order_id']}",
                "order_status": "ACTIVE",
                "order_amount": body["order_amount"],
                "order_currency": body["order_currency"],
                "customer_details": body["customer_details"],
            }
            self.orders[order["order_id"]] = order
            return httpx.Response(200, json=order)

        if request.method == "GET" and "/orders/" in path:
            order = self._find(path.rsplit("/", 1)[-1])
            if order is None:
                return httpx.Response(404, json={"message": "order not found", "code": "order_not_found"})
            return httpx.Response(200, json=order)

        return httpx.Response(404, json={"message": "unknown endpoint"})

    def service(self) -> CashfreeService:
        return CashfreeService(
            client_id="test_client_id",
            client_secret="test_client_secret",
            mode="sandbox",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def app_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("VISITOR_STORAGE", "memory")
    monkeypatch.setenv("TRACK_PAGE_VISITS", "false")
    monkeypatch.setenv("ENABLE_REQUEST_LOGGING", "false")
    monkeypatch.setenv("CASHFREE_CLIENT_ID", "test_client_id")
    monkeypatch.setenv("CASHFREE_CLIENT_SECRET", "test_client_secret")
    monkeypatch.setenv("ASSETS_DIR", str(tmp_path / "assets"))
    monkeypatch.delenv("RETURN_URL", raising=False)
    monkeypatch.delenv("CASHFREE_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("VERCEL", raising=False)
    monkeypatch.delenv("VISITOR_ADMIN_TOKEN", raising=False)
    monkeypatch.setenv("ENABLE_RATE_LIMITING", "false")
    clear_settings_cache()
    yield tmp_path
    clear_settings_cache()


@pytest.fixture
def gateway():
    return FakeCashfree()


@pytest.fixture
def client(app_env, gateway):
    from agnivirya.main import app

    with TestClient(app) as test_client:
        app.state.cashfree_service = gateway.service()
        yield test_client
