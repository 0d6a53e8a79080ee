from decimal import Decimal

import pytest

from alumni_giving.checkout.constants import UNEXPECTED_ERROR
from alumni_giving.checkout.state import DonorInfo
from alumni_giving.payments.client import DonationRequest, PaymentDetails
from alumni_giving.payments.mobile_money import (
    LIBERIA_MOBILE_MONEY,
    ORANGE_MONEY,
    MobileMoneyAdapter,
    MobileMoneyCharge,
    PlaceholderMobileMoneyProvider,
)


class FakeProvider:
    def __init__(self, charge=None, exc=None):
        self.charge_result = charge or MobileMoneyCharge(status="ok")
        self.exc = exc
        self.calls = []

    def charge(self, **kwargs):
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        return self.charge_result


def _request(phone, reference=None):
    return DonationRequest(
        amount=Decimal("20"),
        currency="USD",
        type="one-time",
        category="all",
        donor_info=DonorInfo(name="Jane", email="jane@x.com"),
        details=PaymentDetails(phone_number=phone, reference=reference),
    )


def _adapter(analytics, provider=None, variant=LIBERIA_MOBILE_MONEY):
    return MobileMoneyAdapter(variant=variant, provider=provider or FakeProvider(), analytics=analytics)


@pytest.mark.parametrize(
    "variant,message",
    [
        (LIBERIA_MOBILE_MONEY, "Enter a valid mobile number"),
        (ORANGE_MONEY, "Enter a valid Orange Money number"),
    ],
)
def test_short_phone_is_rejected(analytics, variant, message):
    assert _adapter(analytics, variant=variant).validate(_request("12345")) == {"phone": message}


@pytest.mark.parametrize("phone", ["0770123456", "0770 123 456", " 12345678 "])
def test_phone_whitespace_is_ignored(analytics, phone):
    assert _adapter(analytics).validate(_request(phone)) == {}


def test_invalid_phone_never_initiates(analytics):
    provider = FakeProvider()
    result = _adapter(analytics, provider).execute(_request("1234567"))
    assert result.error == "Enter a valid mobile number"
    assert analytics.events == []
    assert provider.calls == []


def test_successful_charge(analytics):
    provider = FakeProvider()
    result = _adapter(analytics, provider).execute(_request("0770 123 456", reference="alumni gift"))

    assert result.status == "ok"
    assert result.transaction.transaction_id.startswith("MM-")
    assert analytics.names() == ["payment_initiated", "payment_success"]
    assert analytics.events[0][1]["method"] == "liberia_mobile_money"
    assert provider.calls[0]["phone_number"] == "0770123456"
    assert provider.calls[0]["reference"] == "alumni gift"


def test_orange_money_prefix(analytics):
    result = _adapter(analytics, variant=ORANGE_MONEY).execute(_request("0880123456"))
    assert result.transaction.transaction_id.startswith("OM-")


def test_provider_reference_is_used_as_transaction_id(analytics):
    provider = FakeProvider(MobileMoneyCharge(status="ok", reference="LMM-998"))
    assert _adapter(analytics, provider).execute(_request("0770123456")).transaction.transaction_id == "LMM-998"


def test_provider_decline(analytics):
    provider = FakeProvider(MobileMoneyCharge(status="error", error="Insufficient wallet balance"))
    result = _adapter(analytics, provider).execute(_request("0770123456"))

    assert result.error == "Insufficient wallet balance"
    assert analytics.names() == ["payment_initiated", "payment_error"]


def test_provider_exception_is_contained(analytics):
    provider = FakeProvider(exc=TimeoutError("gateway timeout"))
    result = _adapter(analytics, provider).execute(_request("0770123456"))
    assert result.error == UNEXPECTED_ERROR


def test_failing_analytics_never_breaks_payment():
    class BrokenAnalytics:
        def track(self, event, properties=None):
            raise ConnectionError("collector down")

    result = _adapter(BrokenAnalytics()).execute(_request("0770123456"))
    assert result.status == "ok"


def test_placeholder_provider_succeeds():
    charge = PlaceholderMobileMoneyProvider(delay_seconds=0).charge(
        phone_number="0770123456", amount=Decimal("5"), currency="USD"
    )
    assert charge.status == "ok"
