from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Protocol

from ..checkout.state import DonorInfo, TransactionResult


@dataclass(frozen=True)
class ApprovalOutcome:
    status: str  # "approved" | "cancelled" | "error"
    error_name: str | None = None
    error_message: str | None = None


class PayPalApproval(Protocol):
    """Buyer-side approval step of the PayPal button flow."""

    def request_approval(self, order_id: str) -> ApprovalOutcome: ...


@dataclass(frozen=True)
class PaymentDetails:
    card_payment_method: str | None = None
    phone_number: str | None = None
    reference: str | None = None
    paypal_approval: PayPalApproval | None = None


@dataclass(frozen=True)
class DonationRequest:
    amount: Decimal
    currency: str
    type: str
    category: str
    donor_info: DonorInfo
    frequency: str | None = None
    details: PaymentDetails = field(default_factory=PaymentDetails)


@dataclass(frozen=True)
class PaymentResult:
    status: str  # "ok" | "cancelled" | "error"
    transaction: TransactionResult | None = None
    error: str | None = None
    # Set by card payments once the platform has created the PaymentIntent.
    client_secret: str | None = None
    donation_id: str | None = None

    def with_intent(self, intent: IntentResult) -> PaymentResult:
        return replace(self, client_secret=intent.client_secret, donation_id=intent.donation_id)

    @classmethod
    def ok(cls, transaction: TransactionResult) -> PaymentResult:
        return cls(status="ok", transaction=transaction)

    @classmethod
    def failed(cls, error: str) -> PaymentResult:
        return cls(status="error", error=error)

    @classmethod
    def cancelled(cls, message: str) -> PaymentResult:
        return cls(status="cancelled", error=message)


class PaymentAdapter(Protocol):
    def validate(self, request: DonationRequest) -> dict[str, str]: ...

    def execute(self, request: DonationRequest) -> PaymentResult: ...


# --- platform REST API ---


@dataclass(frozen=True)
class IntentResult:
    status: str  # "ok" | "error"
    client_secret: str | None = None
    donation_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class OrderResult:
    status: str  # "ok" | "error"
    order_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ConfirmResult:
    status: str  # "ok" | "error"
    transaction_id: str | None = None
    receipt_url: str | None = None
    donation: dict[str, Any] | None = None
    error: str | None = None


class DonationApi(Protocol):
    def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        donation_type: str,
        category: str,
        metadata: dict[str, Any],
    ) -> IntentResult: ...

    def confirm_payment(
        self,
        *,
        payment_intent_id: str,
        donation_id: str | None,
        donor_info: DonorInfo,
    ) -> ConfirmResult: ...

    def create_paypal_order(
        self,
        *,
        amount: Decimal,
        currency: str,
        donation_type: str,
        category: str,
        donor_info: DonorInfo,
    ) -> OrderResult: ...

    def capture_paypal_order(self, order_id: str) -> ConfirmResult: ...


class AnalyticsSink(Protocol):
    def track(self, event: str, properties: dict[str, Any] | None = None) -> None: ...


def donor_payload(donor: DonorInfo) -> dict[str, Any]:
    return {
        "name": donor.name,
        "email": donor.email,
        "displayName": donor.display_name,
        "optInRecognition": donor.opt_in_recognition,
        "optInUpdates": donor.opt_in_updates,
    }
