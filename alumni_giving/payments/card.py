from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import stripe

from ..checkout.constants import UNEXPECTED_ERROR
from ..checkout.state import DonorInfo, TransactionResult
from .client import DonationApi, DonationRequest, PaymentResult
from .errors import stripe_error_message

logger = logging.getLogger(__name__)

CARD_INCOMPLETE = "Please complete your card information."


@dataclass(frozen=True)
class CardConfirmation:
    status: str  # "succeeded" | "error"
    payment_intent_id: str | None = None
    error_code: str | None = None


class CardConfirmer(Protocol):
    def confirm(
        self,
        client_secret: str,
        *,
        payment_method: str,
        donor_info: DonorInfo,
    ) -> CardConfirmation: ...


def payment_intent_id(client_secret: str) -> str:
    # Client secrets look like "pi_123_secret_abc".
    return client_secret.split("_secret_", 1)[0]


def stripe_metadata(request: DonationRequest) -> dict[str, Any]:
    donor = request.donor_info
    return {
        "donation_type": request.type,
        "donation_category": request.category,
        "donor_name": donor.name or "Anonymous",
        "donor_email": donor.email or "",
        "platform": "alumni_platform",
    }


class StripeCardConfirmer(CardConfirmer):
    """Confirms a PaymentIntent the way Stripe.js does: publishable key plus client secret."""

    def __init__(self, publishable_key: str, *, timeout_seconds: int = 30) -> None:
        self._publishable_key = publishable_key
        self._timeout_seconds = max(1, int(timeout_seconds))

    def confirm(
        self,
        client_secret: str,
        *,
        payment_method: str,
        donor_info: DonorInfo,
    ) -> CardConfirmation:
        intent_id = payment_intent_id(client_secret)
        client = stripe.StripeClient(
            self._publishable_key,
            http_client=stripe.RequestsClient(timeout=self._timeout_seconds),
        )
        params: dict[str, Any] = {"client_secret": client_secret, "payment_method": payment_method}
        if donor_info.email:
            params["receipt_email"] = donor_info.email
        try:
            intent = client.payment_intents.confirm(intent_id, params=params)
        except stripe.CardError as exc:
            logger.info("Stripe card error for %s: %s", intent_id, exc.code)
            return CardConfirmation(status="error", payment_intent_id=intent_id, error_code=exc.code)
        except stripe.RateLimitError:
            logger.warning("Stripe rate limit while confirming %s", intent_id)
            return CardConfirmation(status="error", payment_intent_id=intent_id, error_code="rate_limit")
        except stripe.StripeError as exc:
            logger.error("Stripe error while confirming %s: %s", intent_id, exc)
            return CardConfirmation(
                status="error",
                payment_intent_id=intent_id,
                error_code=getattr(exc, "code", None) or "api_error",
            )

        if intent.status in {"requires_action", "requires_source_action"}:
            return CardConfirmation(
                status="error",
                payment_intent_id=intent.id,
                error_code="authentication_required",
            )
        if intent.status not in {"succeeded", "processing", "requires_capture"}:
            last_error = getattr(intent, "last_payment_error", None)
            code = getattr(last_error, "code", None) if last_error else None
            return CardConfirmation(status="error", payment_intent_id=intent.id, error_code=code or "processing_error")

        return CardConfirmation(status="succeeded", payment_intent_id=intent.id)


class CardAdapter:
    """create-intent -> client confirmation -> server confirmation, strictly in order."""

    def __init__(
        self,
        *,
        api: DonationApi,
        confirmer: CardConfirmer,
    ) -> None:
        self._api = api
        self._confirmer = confirmer

    def validate(self, request: DonationRequest) -> dict[str, str]:
        if not (request.details.card_payment_method or "").strip():
            return {"card": CARD_INCOMPLETE}
        return {}

    def execute(self, request: DonationRequest) -> PaymentResult:
        errors = self.validate(request)
        if errors:
            return PaymentResult.failed(errors["card"])

        try:
            return self._execute(request)
        except Exception:  # noqa: BLE001
            logger.exception("Card payment failed unexpectedly")
            return PaymentResult.failed(UNEXPECTED_ERROR)

    def _execute(self, request: DonationRequest) -> PaymentResult:
        intent = self._api.create_intent(
            amount=request.amount,
            currency=request.currency,
            donation_type=request.type,
            category=request.category,
            metadata=stripe_metadata(request),
        )
        if intent.status != "ok" or not intent.client_secret:
            return PaymentResult.failed(intent.error or "Failed to initialize payment")

        confirmation = self._confirmer.confirm(
            intent.client_secret,
            payment_method=(request.details.card_payment_method or "").strip(),
            donor_info=request.donor_info,
        )
        if confirmation.status != "succeeded":
            return PaymentResult.failed(stripe_error_message(confirmation.error_code)).with_intent(intent)

        confirmed = self._api.confirm_payment(
            payment_intent_id=confirmation.payment_intent_id or payment_intent_id(intent.client_secret),
            donation_id=intent.donation_id,
            donor_info=request.donor_info,
        )
        if confirmed.status != "ok" or not confirmed.transaction_id:
            return PaymentResult.failed(confirmed.error or "Failed to confirm payment").with_intent(intent)

        # Without a donation record in the response the checkout keeps the intent's id.
        donation_id = None
        if confirmed.donation and confirmed.donation.get("_id"):
            donation_id = str(confirmed.donation["_id"])

        return PaymentResult.ok(
            TransactionResult(
                transaction_id=confirmed.transaction_id,
                receipt_url=confirmed.receipt_url,
                donation_id=donation_id,
            )
        ).with_intent(intent)
