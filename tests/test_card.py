from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from alumni_giving.checkout.constants import UNEXPECTED_ERROR
from alumni_giving.checkout.state import DonorInfo
from alumni_giving.payments import card
from alumni_giving.payments.card import (
    CARD_INCOMPLETE,
    CardAdapter,
    CardConfirmation,
    StripeCardConfirmer,
    payment_intent_id,
    stripe_metadata,
)
from alumni_giving.payments.client import DonationRequest, IntentResult, PaymentDetails
from alumni_giving.payments.errors import STRIPE_GENERIC_ERROR


class FakeConfirmer:
    def __init__(self, confirmation=None):
        self.confirmation = confirmation or CardConfirmation(status="succeeded", payment_intent_id="pi_123")
        self.calls = []

    def confirm(self, client_secret, *, payment_method, donor_info):
        self.calls.append((client_secret, payment_method))
        return self.confirmation


def _request(payment_method="pm_card_visa"):
    return DonationRequest(
        amount=Decimal("50"),
        currency="USD",
        type="one-time",
        category="scholarships",
        donor_info=DonorInfo(name="Jane Doe", email="jane@x.com"),
        details=PaymentDetails(card_payment_method=payment_method),
    )


def test_payment_intent_id_from_client_secret():
    assert payment_intent_id("pi_123_secret_abc") == "pi_123"


def test_stripe_metadata():
    meta = stripe_metadata(_request())
    assert meta == {
        "donation_type": "one-time",
        "donation_category": "scholarships",
        "donor_name": "Jane Doe",
        "donor_email": "jane@x.com",
        "platform": "alumni_platform",
    }


def test_missing_card_is_a_validation_error(api):
    adapter = CardAdapter(api=api, confirmer=FakeConfirmer())
    assert adapter.validate(_request(payment_method="")) == {"card": CARD_INCOMPLETE}

    result = adapter.execute(_request(payment_method=None))
    assert result.error == CARD_INCOMPLETE
    assert api.calls == []


def test_card_flow_runs_in_order(api):
    confirmer = FakeConfirmer()
    result = CardAdapter(api=api, confirmer=confirmer).execute(_request())

    assert result.status == "ok"
    assert result.transaction.transaction_id == "pi_123"
    assert result.transaction.receipt_url == "https://receipts.example.org/pi_123"
    assert result.transaction.donation_id == "don_1"
    assert result.client_secret == "pi_123_secret_abc"
    assert api.names() == ["create_intent", "confirm_payment"]
    assert confirmer.calls == [("pi_123_secret_abc", "pm_card_visa")]
    assert api.calls[1][1]["payment_intent_id"] == "pi_123"


def test_declined_card_is_mapped_and_never_confirmed_server_side(api):
    confirmer = FakeConfirmer(CardConfirmation(status="error", error_code="card_declined"))
    result = CardAdapter(api=api, confirmer=confirmer).execute(_request())

    assert result.error == "Your card was declined. Please try another card."
    assert api.names() == ["create_intent"]


def test_unknown_stripe_code_gets_generic_message(api):
    confirmer = FakeConfirmer(CardConfirmation(status="error", error_code="something_new"))
    assert CardAdapter(api=api, confirmer=confirmer).execute(_request()).error == STRIPE_GENERIC_ERROR


def test_intent_failure_skips_confirmation(api):
    api.intent = IntentResult(status="error", error="Amount below minimum")
    confirmer = FakeConfirmer()
    result = CardAdapter(api=api, confirmer=confirmer).execute(_request())

    assert result.error == "Amount below minimum"
    assert confirmer.calls == []


def test_unexpected_exception_is_contained(api):
    def boom(**kwargs):
        raise KeyError("clientSecret")

    api.create_intent = boom
    result = CardAdapter(api=api, confirmer=FakeConfirmer()).execute(_request())
    assert result.status == "error"
    assert result.error == UNEXPECTED_ERROR


class FakePaymentIntents:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def confirm(self, intent_id, params=None):
        self.calls.append((intent_id, params))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def stripe_intents(monkeypatch):
    holder = {}

    def client_factory(api_key, http_client=None):
        holder["api_key"] = api_key
        return SimpleNamespace(payment_intents=holder["intents"])

    monkeypatch.setattr(card.stripe, "StripeClient", client_factory)
    return holder


def _confirm():
    return StripeCardConfirmer("pk_test_123").confirm(
        "pi_123_secret_abc",
        payment_method="pm_card_visa",
        donor_info=DonorInfo(name="Jane", email="jane@x.com"),
    )


def test_stripe_confirmer_success(stripe_intents):
    stripe_intents["intents"] = FakePaymentIntents(SimpleNamespace(id="pi_123", status="succeeded"))

    confirmation = _confirm()

    assert confirmation == CardConfirmation(status="succeeded", payment_intent_id="pi_123")
    assert stripe_intents["api_key"] == "pk_test_123"
    intent_id, params = stripe_intents["intents"].calls[0]
    assert intent_id == "pi_123"
    assert params["client_secret"] == "pi_123_secret_abc"
    assert params["receipt_email"] == "jane@x.com"


def test_stripe_confirmer_card_error(stripe_intents):
    stripe_intents["intents"] = FakePaymentIntents(
        stripe.CardError("Your card has insufficient funds.", None, "insufficient_funds")
    )
    confirmation = _confirm()
    assert confirmation.status == "error"
    assert confirmation.error_code == "insufficient_funds"


def test_stripe_confirmer_requires_action(stripe_intents):
    stripe_intents["intents"] = FakePaymentIntents(SimpleNamespace(id="pi_123", status="requires_action"))
    assert _confirm().error_code == "authentication_required"
