from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from ..checkout.constants import PAYMENT_FAILED, UNEXPECTED_ERROR, AnalyticsEvent, PaymentMethod
from ..checkout.state import TransactionResult
from .client import AnalyticsSink, DonationRequest, PaymentResult

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^[0-9]{8,}$")


@dataclass(frozen=True)
class MobileMoneyCharge:
    status: str  # "ok" | "error"
    reference: str | None = None
    error: str | None = None


class MobileMoneyProvider(Protocol):
    def charge(
        self,
        *,
        phone_number: str,
        amount: Decimal,
        currency: str,
        reference: str | None = None,
    ) -> MobileMoneyCharge: ...


class PlaceholderMobileMoneyProvider(MobileMoneyProvider):
    """Stand-in until the mobile money gateway API exists: waits, then succeeds."""

    def __init__(self, *, delay_seconds: float = 0.8) -> None:
        self._delay_seconds = max(0.0, float(delay_seconds))

    def charge(
        self,
        *,
        phone_number: str,
        amount: Decimal,
        currency: str,
        reference: str | None = None,
    ) -> MobileMoneyCharge:
        if self._delay_seconds:
            time.sleep(self._delay_seconds)
        return MobileMoneyCharge(status="ok")


@dataclass(frozen=True)
class MobileMoneyVariant:
    method: PaymentMethod
    transaction_prefix: str
    invalid_phone_message: str


LIBERIA_MOBILE_MONEY = MobileMoneyVariant(
    method=PaymentMethod.LIBERIA_MOBILE_MONEY,
    transaction_prefix="MM",
    invalid_phone_message="Enter a valid mobile number",
)

ORANGE_MONEY = MobileMoneyVariant(
    method=PaymentMethod.ORANGE_MONEY,
    transaction_prefix="OM",
    invalid_phone_message="Enter a valid Orange Money number",
)


def normalize_phone(phone_number: str | None) -> str:
    return "".join((phone_number or "").split())


class MobileMoneyAdapter:
    def __init__(
        self,
        *,
        variant: MobileMoneyVariant,
        provider: MobileMoneyProvider,
        analytics: AnalyticsSink,
    ) -> None:
        self._variant = variant
        self._provider = provider
        self._analytics = analytics

    @property
    def method(self) -> PaymentMethod:
        return self._variant.method

    def validate(self, request: DonationRequest) -> dict[str, str]:
        if not PHONE_RE.match(normalize_phone(request.details.phone_number)):
            return {"phone": self._variant.invalid_phone_message}
        return {}

    def _track(self, event: AnalyticsEvent, **extra: Any) -> None:
        try:
            self._analytics.track(event.value, {"method": self._variant.method.value, **extra})
        except Exception:  # noqa: BLE001
            logger.exception("Analytics tracking failed for %s", event.value)

    def execute(self, request: DonationRequest) -> PaymentResult:
        errors = self.validate(request)
        if errors:
            return PaymentResult.failed(errors["phone"])

        self._track(AnalyticsEvent.PAYMENT_INITIATED)
        try:
            charge = self._provider.charge(
                phone_number=normalize_phone(request.details.phone_number),
                amount=request.amount,
                currency=request.currency,
                reference=(request.details.reference or "").strip() or None,
            )
        except Exception:  # noqa: BLE001
            logger.exception("%s charge failed unexpectedly", self._variant.method.value)
            self._track(AnalyticsEvent.PAYMENT_ERROR, error="exception")
            return PaymentResult.failed(UNEXPECTED_ERROR)

        if charge.status != "ok":
            self._track(AnalyticsEvent.PAYMENT_ERROR, error=charge.error)
            return PaymentResult.failed(charge.error or PAYMENT_FAILED)

        self._track(AnalyticsEvent.PAYMENT_SUCCESS)
        transaction_id = charge.reference or f"{self._variant.transaction_prefix}-{int(time.time() * 1000)}"
        return PaymentResult.ok(TransactionResult(transaction_id=transaction_id))
