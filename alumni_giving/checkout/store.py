from __future__ import annotations

from decimal import Decimal
from typing import Any

from .amount import (
    CUSTOM_AMOUNT_FIELD,
    effective_amount,
    is_submittable,
    validate_custom_amount,
)
from .constants import Category, DonationType, Frequency, PaymentMethod
from .state import CheckoutState, CheckoutStatus, DonationDraft, DonorInfo, TransactionResult, to_decimal

_DONOR_FIELDS = {
    "name": "name",
    "email": "email",
    "display_name": "display_name",
    "displayName": "display_name",
    "opt_in_recognition": "opt_in_recognition",
    "optInRecognition": "opt_in_recognition",
    "opt_in_updates": "opt_in_updates",
    "optInUpdates": "opt_in_updates",
}

_BOOL_DONOR_FIELDS = {"opt_in_recognition", "opt_in_updates"}

_METHOD_ERROR_FIELDS = ("paymentMethod", "card", "phone", "paypal")


def _enum_value(enum_cls: Any, value: Any, label: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValueError(f"Unknown {label}: {value!r}") from None


class DonationStore:
    """Single owner of one checkout's state.

    All mutation goes through the methods below so observers never see a
    half-applied change (e.g. both a preset and a custom amount).
    """

    def __init__(self, state: CheckoutState | None = None) -> None:
        self._state = state if state is not None else CheckoutState()

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def draft(self) -> DonationDraft:
        return self._state.draft

    # --- form data ---

    def set_donation_type(self, donation_type: str) -> None:
        draft = self.draft
        draft.type = _enum_value(DonationType, donation_type, "donation type")
        if draft.type == DonationType.ONE_TIME.value:
            draft.frequency = None
        # The maximum depends on the type, so re-check pending custom input.
        if draft.amount is None and draft.custom_amount:
            self._check_custom_amount()

    def set_donation_frequency(self, frequency: str | None) -> None:
        if frequency is None or self.draft.type != DonationType.RECURRING.value:
            self.draft.frequency = None
            return
        self.draft.frequency = _enum_value(Frequency, frequency, "frequency")

    def set_amount(self, value: Decimal | float | int | str | None) -> None:
        amount = to_decimal(value)
        self.draft.amount = amount
        if amount is not None:
            self.draft.custom_amount = ""
            self.clear_validation_error(CUSTOM_AMOUNT_FIELD)
            self.clear_validation_error("amount")

    def set_custom_amount(self, text: str | None) -> None:
        self.draft.custom_amount = text or ""
        if self.draft.custom_amount:
            self.draft.amount = None
        self._state.validation_errors.pop("amount", None)
        self._check_custom_amount()

    def set_category(self, category: str) -> None:
        self.draft.category = _enum_value(Category, category, "category")

    def set_payment_method(self, method: str) -> None:
        self.draft.payment_method = _enum_value(PaymentMethod, method, "payment method")
        # Pre-flight errors belong to the previous method's inputs.
        for field in _METHOD_ERROR_FIELDS:
            self.clear_validation_error(field)

    def update_donor_field(self, field: str, value: Any) -> None:
        attr = _DONOR_FIELDS.get(field)
        if attr is None:
            raise ValueError(f"Unknown donor field: {field!r}")
        if attr in _BOOL_DONOR_FIELDS:
            value = bool(value)
        elif attr == "display_name":
            value = str(value) if value else None
        else:
            value = "" if value is None else str(value)
        setattr(self.draft.donor_info, attr, value)
        self.clear_validation_error(attr)

    def set_donor_info(self, **fields: Any) -> None:
        for name, value in fields.items():
            self.update_donor_field(name, value)

    def prefill_donor_info(self, name: str | None, email: str | None) -> None:
        donor = self.draft.donor_info
        donor.name = name or ""
        donor.email = email or ""

    # --- validation errors ---

    def set_validation_errors(self, errors: dict[str, str]) -> None:
        self._state.validation_errors = dict(errors)

    def clear_validation_errors(self) -> None:
        self._state.validation_errors = {}

    def clear_validation_error(self, field: str) -> None:
        self._state.validation_errors.pop(field, None)

    def _check_custom_amount(self) -> None:
        error = validate_custom_amount(self.draft.custom_amount, self.draft.type)
        if error:
            self._state.validation_errors[CUSTOM_AMOUNT_FIELD] = error
        else:
            self._state.validation_errors.pop(CUSTOM_AMOUNT_FIELD, None)

    # --- processing ---

    def start_processing(self) -> None:
        state = self._state
        state.processing = True
        state.error = None
        state.success = False
        state.notice = None
        # Each attempt creates its own intent.
        state.client_secret = None
        state.donation_id = None

    def set_client_secret(self, client_secret: str | None, donation_id: str | None) -> None:
        self._state.client_secret = client_secret
        self._state.donation_id = donation_id

    def processing_success(self, result: TransactionResult) -> None:
        state = self._state
        if state.transaction is not None and state.success:
            raise RuntimeError("Transaction result is already set for this checkout")
        state.processing = False
        state.success = True
        state.error = None
        state.notice = None
        if result.donation_id is None and state.donation_id:
            result = TransactionResult(
                transaction_id=result.transaction_id,
                receipt_url=result.receipt_url,
                donation_id=state.donation_id,
            )
        state.transaction = result
        state.donation_id = result.donation_id

    def processing_error(self, message: str) -> None:
        state = self._state
        state.processing = False
        state.success = False
        state.error = message

    def processing_cancelled(self, message: str) -> None:
        state = self._state
        state.processing = False
        state.success = False
        state.error = None
        state.notice = message

    def clear_error(self) -> None:
        self._state.error = None

    # --- reset ---

    def reset_donation(self) -> None:
        """Back to defaults, keeping donor name/email for a repeat gift."""

        donor = self.draft.donor_info
        self._state = CheckoutState(
            draft=DonationDraft(donor_info=DonorInfo(name=donor.name, email=donor.email))
        )

    def reset_donation_complete(self) -> None:
        self._state = CheckoutState()

    # --- selectors ---

    @property
    def status(self) -> CheckoutStatus:
        return self._state.status

    @property
    def effective_amount(self) -> Decimal | None:
        return effective_amount(self.draft)

    @property
    def has_valid_amount(self) -> bool:
        amount = self.effective_amount
        return amount is not None and amount > 0

    @property
    def is_recurring(self) -> bool:
        return self.draft.type == DonationType.RECURRING.value

    @property
    def has_validation_errors(self) -> bool:
        return bool(self._state.validation_errors)

    def is_form_valid(self) -> bool:
        return is_submittable(self._state)

    def summary(self) -> dict[str, Any]:
        draft = self.draft
        return {
            "amount": self.effective_amount,
            "type": draft.type,
            "frequency": draft.frequency,
            "category": draft.category,
            "donorName": draft.donor_info.name,
            "donorEmail": draft.donor_info.email,
            "isRecurring": self.is_recurring,
        }
