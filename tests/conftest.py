from __future__ import annotations

import threading
from typing import Any

import pytest

from alumni_giving.payments.client import (
    ConfirmResult,
    DonationRequest,
    IntentResult,
    OrderResult,
    PaymentResult,
)


class FakeAnalytics:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track(self, event: str, properties: dict[str, Any] | None = None) -> None:
        self.events.append((event, dict(properties or {})))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class FakeDonationApi:
    """Records calls in order; results can be overridden per test."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.intent = IntentResult(status="ok", client_secret="pi_123_secret_abc", donation_id="don_1")
        self.confirm = ConfirmResult(
            status="ok",
            transaction_id="pi_123",
            receipt_url="https://receipts.example.org/pi_123",
            donation={"_id": "don_1"},
        )
        self.order = OrderResult(status="ok", order_id="ORDER-1")
        self.capture = ConfirmResult(
            status="ok",
            transaction_id="CAPTURE-1",
            receipt_url=None,
            donation={"_id": "don_2"},
        )

    def create_intent(self, **kwargs: Any) -> IntentResult:
        self.calls.append(("create_intent", kwargs))
        return self.intent

    def confirm_payment(self, **kwargs: Any) -> ConfirmResult:
        self.calls.append(("confirm_payment", kwargs))
        return self.confirm

    def create_paypal_order(self, **kwargs: Any) -> OrderResult:
        self.calls.append(("create_paypal_order", kwargs))
        return self.order

    def capture_paypal_order(self, order_id: str) -> ConfirmResult:
        self.calls.append(("capture_paypal_order", {"order_id": order_id}))
        return self.capture

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeAdapter:
    """Adapter that returns a canned result, optionally blocking until released."""

    def __init__(self, result: PaymentResult, *, errors: dict[str, str] | None = None, block: bool = False) -> None:
        self.result = result
        self.errors = errors or {}
        self.requests: list[DonationRequest] = []
        self.started = threading.Event()
        self.release = threading.Event()
        if not block:
            self.release.set()

    def validate(self, request: DonationRequest) -> dict[str, str]:
        return dict(self.errors)

    def execute(self, request: DonationRequest) -> PaymentResult:
        self.requests.append(request)
        self.started.set()
        self.release.wait(5)
        return self.result


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)

    def set(self, key, value, nx=False, px=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def exists(self, key):
        return int(key in self.data)

    def eval(self, script, numkeys, key, token):
        if self.data.get(key) == token:
            del self.data[key]
            return 1
        return 0


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        fn(*args, **kwargs)


@pytest.fixture
def analytics() -> FakeAnalytics:
    return FakeAnalytics()


@pytest.fixture
def api() -> FakeDonationApi:
    return FakeDonationApi()
