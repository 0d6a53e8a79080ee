from decimal import Decimal

import pytest

from alumni_giving.checkout.constants import CONFIGURATION_ERROR, PaymentMethod
from alumni_giving.checkout.state import DonorInfo, TransactionResult
from alumni_giving.config import Settings
from alumni_giving.payments.card import CardAdapter
from alumni_giving.payments.client import DonationRequest, PaymentDetails, PaymentResult
from alumni_giving.payments.dispatcher import PaymentConfig, PaymentDispatcher, build_dispatcher

from conftest import FakeAdapter


def _request():
    return DonationRequest(
        amount=Decimal("10"),
        currency="USD",
        type="one-time",
        category="all",
        donor_info=DonorInfo(name="Jane", email="jane@x.com"),
        details=PaymentDetails(phone_number="0770123456"),
    )


def _all_adapters():
    ok = PaymentResult.ok(TransactionResult(transaction_id="t"))
    return {method: FakeAdapter(ok) for method in PaymentMethod}


def test_missing_keys_disable_card_and_paypal():
    dispatcher = PaymentDispatcher(PaymentConfig(), _all_adapters())
    assert dispatcher.enabled_methods() == [PaymentMethod.LIBERIA_MOBILE_MONEY, PaymentMethod.ORANGE_MONEY]
    assert not dispatcher.is_enabled("card")
    assert not dispatcher.is_enabled("paypal")


def test_all_methods_enabled_with_keys():
    config = PaymentConfig(stripe_key="pk_test", paypal_client_id="client-id")
    dispatcher = PaymentDispatcher(config, _all_adapters())
    assert dispatcher.enabled_methods() == list(PaymentMethod)


@pytest.mark.parametrize("method", ["card", "bitcoin", ""])
def test_unavailable_method_is_a_configuration_error(method):
    adapters = _all_adapters()
    dispatcher = PaymentDispatcher(PaymentConfig(mobile_money_enabled=False), adapters)

    assert dispatcher.execute(method, _request()).error == CONFIGURATION_ERROR
    assert dispatcher.validate(method, _request()) == {"paymentMethod": CONFIGURATION_ERROR}
    assert adapters[PaymentMethod.CARD].requests == []


def test_routes_to_selected_adapter():
    adapters = _all_adapters()
    dispatcher = PaymentDispatcher(PaymentConfig(), adapters)

    result = dispatcher.execute("orange_money", _request())

    assert result.status == "ok"
    assert len(adapters[PaymentMethod.ORANGE_MONEY].requests) == 1
    assert adapters[PaymentMethod.LIBERIA_MOBILE_MONEY].requests == []


def test_build_dispatcher_from_settings(monkeypatch, api, analytics):
    monkeypatch.setenv("STRIPE_PUBLISHABLE_KEY", "pk_test_123")
    monkeypatch.delenv("PAYPAL_CLIENT_ID", raising=False)
    monkeypatch.setenv("ORANGE_MONEY_ENABLED", "0")
    monkeypatch.setenv("MOBILE_MONEY_DELAY_MS", "0")

    dispatcher = build_dispatcher(Settings(), api=api, analytics=analytics)

    assert dispatcher.enabled_methods() == [PaymentMethod.CARD, PaymentMethod.LIBERIA_MOBILE_MONEY]
    assert dispatcher.config.stripe_key == "pk_test_123"


def test_build_dispatcher_without_stripe_key_has_no_card(monkeypatch, api, analytics):
    monkeypatch.delenv("STRIPE_PUBLISHABLE_KEY", raising=False)
    dispatcher = build_dispatcher(Settings(), api=api, analytics=analytics)
    assert dispatcher.validate("card", _request()) == {"paymentMethod": CONFIGURATION_ERROR}


def test_card_adapter_is_built_when_key_present(monkeypatch, api, analytics):
    monkeypatch.setenv("STRIPE_PUBLISHABLE_KEY", "pk_test_123")
    dispatcher = build_dispatcher(Settings(), api=api, analytics=analytics)
    assert isinstance(dispatcher._adapters[PaymentMethod.CARD], CardAdapter)
