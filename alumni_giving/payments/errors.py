"""User-facing messages for payment provider failures."""

from __future__ import annotations

STRIPE_ERROR_MESSAGES = {
    # Card errors
    "card_declined": "Your card was declined. Please try another card.",
    "expired_card": "Your card has expired. Please use a different card.",
    "incorrect_cvc": "The card security code is incorrect.",
    "incorrect_number": "The card number is incorrect.",
    "invalid_cvc": "The card security code is invalid.",
    "invalid_expiry_month": "The card expiration month is invalid.",
    "invalid_expiry_year": "The card expiration year is invalid.",
    "invalid_number": "The card number is invalid.",
    "insufficient_funds": "Your card has insufficient funds.",
    "processing_error": "An error occurred while processing your card. Please try again.",
    "authentication_required": "Additional authentication is required. Please complete the verification.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
    "api_error": "An error occurred with our payment processor. Please try again.",
    "validation_error": "Please check your payment information and try again.",
}

STRIPE_GENERIC_ERROR = "An unexpected error occurred. Please try again."

PAYPAL_ERROR_MESSAGES = {
    "INSTRUMENT_DECLINED": "Your payment method was declined. Please try another payment method.",
    "PAYER_ACTION_REQUIRED": "Additional action is required. Please complete the payment process.",
    "INTERNAL_SERVER_ERROR": "A server error occurred. Please try again.",
    "INVALID_REQUEST": "Invalid payment request. Please refresh and try again.",
    "RESOURCE_NOT_FOUND": "Payment session expired. Please start over.",
    "UNPROCESSABLE_ENTITY": "Unable to process payment. Please check your information.",
    "PERMISSION_DENIED": "Payment authorization failed. Please try again.",
}

PAYPAL_GENERIC_ERROR = "An error occurred with PayPal. Please try again or use a different payment method."


def stripe_error_message(code: str | None) -> str:
    return STRIPE_ERROR_MESSAGES.get((code or "").strip().lower(), STRIPE_GENERIC_ERROR)


def paypal_error_message(name: str | None) -> str:
    # Raw PayPal messages are not shown; unknown names get the generic text.
    return PAYPAL_ERROR_MESSAGES.get((name or "").strip().upper(), PAYPAL_GENERIC_ERROR)
