from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from .constants import Category, DonationType, PaymentMethod


class CheckoutStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


def normalize_text(text: str | None) -> str:
    return (text or "").strip()


def to_decimal(value: Any) -> Decimal | None:
    """Coerce preset amounts (int, float, str or Decimal) to Decimal."""

    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


@dataclass
class DonorInfo:
    name: str = ""
    email: str = ""
    display_name: str | None = None
    opt_in_recognition: bool = False
    opt_in_updates: bool = False


@dataclass
class DonationDraft:
    type: str = DonationType.ONE_TIME.value
    frequency: str | None = None
    amount: Decimal | None = None
    custom_amount: str = ""
    category: str = Category.ALL.value
    donor_info: DonorInfo = field(default_factory=DonorInfo)
    payment_method: str = PaymentMethod.CARD.value


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: str
    receipt_url: str | None = None
    donation_id: str | None = None


@dataclass
class CheckoutState:
    draft: DonationDraft = field(default_factory=DonationDraft)

    processing: bool = False
    success: bool = False
    error: str | None = None
    # Advisory, non-error message (e.g. a cancelled PayPal approval).
    notice: str | None = None

    transaction: TransactionResult | None = None
    donation_id: str | None = None
    client_secret: str | None = None

    validation_errors: dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> CheckoutStatus:
        if self.processing:
            return CheckoutStatus.PROCESSING
        if self.success:
            return CheckoutStatus.SUCCESS
        if self.error:
            return CheckoutStatus.ERROR
        return CheckoutStatus.IDLE

    def to_dict(self) -> dict[str, Any]:
        draft = self.draft
        donor = draft.donor_info
        transaction = self.transaction
        return {
            "formData": {
                "type": draft.type,
                "frequency": draft.frequency,
                "amount": str(draft.amount) if draft.amount is not None else None,
                "customAmount": draft.custom_amount,
                "category": draft.category,
                "donorInfo": {
                    "name": donor.name,
                    "email": donor.email,
                    "displayName": donor.display_name,
                    "optInRecognition": donor.opt_in_recognition,
                    "optInUpdates": donor.opt_in_updates,
                },
                "paymentMethod": draft.payment_method,
            },
            "status": self.status.value,
            "processing": self.processing,
            "success": self.success,
            "error": self.error,
            "notice": self.notice,
            "transactionId": transaction.transaction_id if transaction else None,
            "receiptUrl": transaction.receipt_url if transaction else None,
            "donationId": (transaction.donation_id if transaction else None) or self.donation_id,
            "clientSecret": self.client_secret,
            "validationErrors": dict(self.validation_errors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckoutState:
        form = data.get("formData") or {}
        donor = form.get("donorInfo") or {}

        transaction = None
        if data.get("transactionId"):
            transaction = TransactionResult(
                transaction_id=str(data["transactionId"]),
                receipt_url=data.get("receiptUrl"),
                donation_id=data.get("donationId"),
            )

        errors = data.get("validationErrors")
        return cls(
            draft=DonationDraft(
                type=str(form.get("type") or DonationType.ONE_TIME.value),
                frequency=form.get("frequency"),
                amount=to_decimal(form.get("amount")),
                custom_amount=str(form.get("customAmount") or ""),
                category=str(form.get("category") or Category.ALL.value),
                donor_info=DonorInfo(
                    name=str(donor.get("name") or ""),
                    email=str(donor.get("email") or ""),
                    display_name=donor.get("displayName"),
                    opt_in_recognition=bool(donor.get("optInRecognition")),
                    opt_in_updates=bool(donor.get("optInUpdates")),
                ),
                payment_method=str(form.get("paymentMethod") or PaymentMethod.CARD.value),
            ),
            processing=bool(data.get("processing")),
            success=bool(data.get("success")),
            error=data.get("error"),
            notice=data.get("notice"),
            transaction=transaction,
            donation_id=data.get("donationId"),
            client_secret=data.get("clientSecret"),
            validation_errors=dict(errors) if isinstance(errors, dict) else {},
        )
