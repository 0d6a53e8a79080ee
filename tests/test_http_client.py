import json
from decimal import Decimal

import pytest
import requests

from alumni_giving.checkout.constants import NETWORK_ERROR
from alumni_giving.checkout.state import DonorInfo
from alumni_giving.payments.http_client import HttpDonationApi, HttpDonationApiConfig


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = json.dumps(payload).encode() if payload is not None else b""
        self.text = self.content.decode()

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.posts = []

    def post(self, url, *, headers, json, timeout):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


def _api(session, base_url="https://api.example.org/api/"):
    api = HttpDonationApi(
        HttpDonationApiConfig(base_url=base_url, timeout_seconds=15, payment_timeout_seconds=30, auth_bearer_token="tok")
    )
    api._session = lambda: session
    return api


def _intent(api):
    return api.create_intent(
        amount=Decimal("50"),
        currency="USD",
        donation_type="one-time",
        category="all",
        metadata={"platform": "alumni_platform"},
    )


def test_create_intent_posts_camel_case_payload():
    session = FakeSession(FakeResponse(200, {"clientSecret": "pi_1_secret_x", "donationId": "don_1"}))
    result = _intent(_api(session))

    assert result.status == "ok"
    assert result.client_secret == "pi_1_secret_x"
    assert result.donation_id == "don_1"

    post = session.posts[0]
    assert post["url"] == "https://api.example.org/api/donations/create-intent"
    assert post["headers"]["Authorization"] == "Bearer tok"
    assert post["json"]["amount"] == 50.0
    assert post["timeout"] == (3.0, 15.0)


def test_server_message_is_surfaced_verbatim():
    session = FakeSession(FakeResponse(400, {"message": "Amount below minimum"}))
    assert _intent(_api(session)).error == "Amount below minimum"


def test_error_key_used_when_message_missing():
    session = FakeSession(FakeResponse(422, {"error": "Invalid category"}))
    assert _intent(_api(session)).error == "Invalid category"


def test_fallback_message_without_body():
    session = FakeSession(FakeResponse(500))
    assert _intent(_api(session)).error == "Failed to initialize payment"


def test_transport_failure_is_a_network_error():
    session = FakeSession(exc=requests.ConnectionError("connection refused"))
    result = _intent(_api(session))
    assert result.status == "error"
    assert result.error == NETWORK_ERROR


def test_missing_base_url_never_sends():
    session = FakeSession(FakeResponse(200, {}))
    result = _intent(_api(session, base_url=""))
    assert result.error == NETWORK_ERROR
    assert session.posts == []


def test_base_url_whitespace_is_ignored():
    session = FakeSession(FakeResponse(200, {"clientSecret": "s"}))
    _intent(_api(session, base_url="https://api.example.org\n/api/ "))
    assert session.posts[0]["url"] == "https://api.example.org/api/donations/create-intent"


def test_confirm_uses_payment_timeout_and_returns_transaction():
    session = FakeSession(
        FakeResponse(200, {"transactionId": "pi_1", "receiptUrl": "https://r", "donation": {"_id": "don_1"}})
    )
    result = _api(session).confirm_payment(
        payment_intent_id="pi_1",
        donation_id="don_1",
        donor_info=DonorInfo(name="Jane", email="jane@x.com"),
    )

    assert result.status == "ok"
    assert result.transaction_id == "pi_1"
    assert result.receipt_url == "https://r"
    assert result.donation == {"_id": "don_1"}
    assert session.posts[0]["timeout"] == (3.0, 30.0)
    assert session.posts[0]["json"]["donorInfo"]["email"] == "jane@x.com"


def test_confirm_without_transaction_id_fails():
    session = FakeSession(FakeResponse(200, {"success": True}))
    result = _api(session).confirm_payment(payment_intent_id="pi_1", donation_id=None, donor_info=DonorInfo())
    assert result.error == "Failed to confirm payment"


@pytest.mark.parametrize(
    "response,expected",
    [
        (FakeResponse(200, {"orderId": "ORDER-1"}), None),
        (FakeResponse(200, {}), "Failed to create PayPal order"),
        (FakeResponse(503, {"message": "PayPal unavailable"}), "PayPal unavailable"),
    ],
)
def test_create_paypal_order(response, expected):
    session = FakeSession(response)
    result = _api(session).create_paypal_order(
        amount=Decimal("25"),
        currency="USD",
        donation_type="one-time",
        category="programs",
        donor_info=DonorInfo(name="Jane", email="jane@x.com"),
    )
    assert result.error == expected
    if expected is None:
        assert result.order_id == "ORDER-1"


def test_capture_paypal_order_fallback():
    session = FakeSession(FakeResponse(500))
    result = _api(session).capture_paypal_order("ORDER-1")
    assert result.error == "Failed to capture PayPal payment"
    assert session.posts[0]["json"] == {"orderId": "ORDER-1"}
