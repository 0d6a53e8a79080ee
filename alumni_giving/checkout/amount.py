"""Effective-amount resolution and checkout form validation.

Everything here is derived from a draft; nothing is stored.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from .constants import (
    INVALID_AMOUNT,
    MAX_ONE_TIME_AMOUNT,
    MAX_RECURRING_AMOUNT,
    MIN_AMOUNT,
    DonationType,
)
from .state import CheckoutState, DonationDraft, DonorInfo, normalize_text

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CUSTOM_AMOUNT_FIELD = "customAmount"


def parse_amount(text: str | None) -> Decimal | None:
    raw = normalize_text(text)
    if not raw:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def effective_amount(draft: DonationDraft) -> Decimal | None:
    if draft.amount is not None:
        return draft.amount
    if draft.custom_amount:
        return parse_amount(draft.custom_amount)
    return None


def max_amount(donation_type: str) -> Decimal:
    if donation_type == DonationType.RECURRING.value:
        return MAX_RECURRING_AMOUNT
    return MAX_ONE_TIME_AMOUNT


def _dollars(value: Decimal) -> str:
    return f"${value:,.0f}" if value == value.to_integral_value() else f"${value:,.2f}"


def validate_custom_amount(text: str | None, donation_type: str) -> str | None:
    """Advisory message for free-text amount input, or None when acceptable.

    An empty field is not an error here; the submit-time check covers it.
    """

    if not normalize_text(text):
        return None

    value = parse_amount(text)
    if value is None:
        return "Please enter a valid number"
    if value < MIN_AMOUNT:
        return f"Minimum donation is {_dollars(MIN_AMOUNT)}"
    limit = max_amount(donation_type)
    if value > limit:
        return f"Maximum donation is {_dollars(limit)}"
    return None


def validate_payment_amount(amount: Decimal | None, donation_type: str) -> str | None:
    if amount is None or amount <= 0:
        return INVALID_AMOUNT
    if amount < MIN_AMOUNT:
        return f"Minimum donation is {_dollars(MIN_AMOUNT)}"
    limit = max_amount(donation_type)
    if amount > limit:
        return f"Maximum donation is {_dollars(limit)}"
    return None


def is_valid_email(email: str | None) -> bool:
    return bool(EMAIL_RE.match(normalize_text(email)))


def validate_donor(donor: DonorInfo) -> dict[str, str]:
    errors: dict[str, str] = {}

    if not normalize_text(donor.name):
        errors["name"] = "Name is required"

    email = normalize_text(donor.email)
    if not email:
        errors["email"] = "Email is required"
    elif not is_valid_email(email):
        errors["email"] = "Please enter a valid email address"

    return errors


def validate_draft(draft: DonationDraft) -> dict[str, str]:
    """Submit-time validation of the amount and donor fields."""

    errors: dict[str, str] = {}

    if draft.amount is None and normalize_text(draft.custom_amount):
        custom_error = validate_custom_amount(draft.custom_amount, draft.type)
        if custom_error:
            errors[CUSTOM_AMOUNT_FIELD] = custom_error

    if CUSTOM_AMOUNT_FIELD not in errors:
        amount_error = validate_payment_amount(effective_amount(draft), draft.type)
        if amount_error:
            key = "amount" if draft.amount is not None or not draft.custom_amount else CUSTOM_AMOUNT_FIELD
            errors[key] = amount_error

    errors.update(validate_donor(draft.donor_info))
    return errors


def is_submittable(state: CheckoutState) -> bool:
    amount = effective_amount(state.draft)
    if amount is None or amount <= 0 or state.validation_errors:
        return False
    return not validate_draft(state.draft)


def format_amount(amount: Decimal | float | int | None, currency: str = "USD") -> str:
    value = Decimal(str(amount if amount is not None else 0))
    symbol = "$" if currency.upper() == "USD" else f"{currency.upper()} "
    return f"{symbol}{value:,.2f}"
