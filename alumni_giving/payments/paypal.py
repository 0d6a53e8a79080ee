from __future__ import annotations

import logging
import threading

from ..checkout.constants import PAYMENT_CANCELLED, UNEXPECTED_ERROR
from ..checkout.state import TransactionResult
from .client import ApprovalOutcome, DonationApi, DonationRequest, PaymentResult, PayPalApproval
from .errors import paypal_error_message

logger = logging.getLogger(__name__)

APPROVAL_UNAVAILABLE = "PayPal checkout is not ready. Please try again."


class DeferredApproval(PayPalApproval):
    """Approval resolved by another thread, e.g. the buyer's button callbacks.

    `request_approval` blocks the payment worker until `approve`, `cancel` or
    `fail` is called, or the timeout expires.
    """

    def __init__(self, *, timeout_seconds: float = 30.0) -> None:
        self._timeout_seconds = max(0.0, float(timeout_seconds))
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._outcome: ApprovalOutcome | None = None
        self._order_id: str | None = None
        self._order_ready = threading.Event()

    @property
    def order_id(self) -> str | None:
        return self._order_id

    def wait_for_order(self, timeout: float | None = None) -> str | None:
        self._order_ready.wait(timeout)
        return self._order_id

    def request_approval(self, order_id: str) -> ApprovalOutcome:
        with self._lock:
            self._order_id = order_id
        self._order_ready.set()

        if not self._event.wait(self._timeout_seconds):
            logger.info("PayPal approval for order %s timed out", order_id)
            return ApprovalOutcome(status="error", error_name="RESOURCE_NOT_FOUND")

        with self._lock:
            return self._outcome or ApprovalOutcome(status="error")

    def _resolve(self, outcome: ApprovalOutcome, order_id: str | None) -> bool:
        with self._lock:
            if self._outcome is not None:
                return False
            if order_id and self._order_id and order_id != self._order_id:
                logger.warning("PayPal approval for unexpected order %s (pending %s)", order_id, self._order_id)
                return False
            self._outcome = outcome
        self._event.set()
        return True

    def approve(self, order_id: str | None = None) -> bool:
        return self._resolve(ApprovalOutcome(status="approved"), order_id)

    def cancel(self, order_id: str | None = None) -> bool:
        return self._resolve(ApprovalOutcome(status="cancelled"), order_id)

    def fail(self, name: str | None = None, message: str | None = None, order_id: str | None = None) -> bool:
        return self._resolve(ApprovalOutcome(status="error", error_name=name, error_message=message), order_id)


class PayPalAdapter:
    """create-order -> buyer approval -> capture-order, keyed by the PayPal order id."""

    def __init__(self, *, api: DonationApi) -> None:
        self._api = api

    def validate(self, request: DonationRequest) -> dict[str, str]:
        if request.details.paypal_approval is None:
            return {"paypal": APPROVAL_UNAVAILABLE}
        return {}

    def execute(self, request: DonationRequest) -> PaymentResult:
        errors = self.validate(request)
        if errors:
            return PaymentResult.failed(errors["paypal"])

        try:
            return self._execute(request)
        except Exception:  # noqa: BLE001
            logger.exception("PayPal payment failed unexpectedly")
            return PaymentResult.failed(UNEXPECTED_ERROR)

    def _execute(self, request: DonationRequest) -> PaymentResult:
        order = self._api.create_paypal_order(
            amount=request.amount,
            currency=request.currency,
            donation_type=request.type,
            category=request.category,
            donor_info=request.donor_info,
        )
        if order.status != "ok" or not order.order_id:
            return PaymentResult.failed(order.error or "Failed to create PayPal order")

        approval = request.details.paypal_approval
        outcome = approval.request_approval(order.order_id)

        if outcome.status == "cancelled":
            logger.info("PayPal order %s cancelled by payer", order.order_id)
            return PaymentResult.cancelled(PAYMENT_CANCELLED)

        if outcome.status != "approved":
            return PaymentResult.failed(paypal_error_message(outcome.error_name))

        captured = self._api.capture_paypal_order(order.order_id)
        if captured.status != "ok" or not captured.transaction_id:
            return PaymentResult.failed(captured.error or "Failed to capture PayPal payment")

        donation_id = None
        if captured.donation and captured.donation.get("_id"):
            donation_id = str(captured.donation["_id"])

        return PaymentResult.ok(
            TransactionResult(
                transaction_id=captured.transaction_id,
                receipt_url=captured.receipt_url,
                donation_id=donation_id,
            )
        )
