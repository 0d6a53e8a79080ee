from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from ..payments.client import AnalyticsSink, DonationRequest, PaymentDetails, PaymentResult
from ..payments.dispatcher import PaymentDispatcher
from .amount import effective_amount, format_amount, validate_draft
from .constants import (
    DEFAULT_CURRENCY,
    FREQUENCY_NAMES,
    NEXT_CHARGE_DAYS,
    SUCCESS_MESSAGES,
    UNEXPECTED_ERROR,
    AnalyticsEvent,
    DonationType,
    Frequency,
    category_name,
)
from .store import DonationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitOutcome:
    # "accepted" (prepare only) | "success" | "error" | "cancelled" | "invalid" | "ignored"
    status: str
    message: str | None = None
    errors: dict[str, str] | None = None


@dataclass(frozen=True)
class ThankYouSummary:
    amount: Decimal
    amount_display: str
    category: str
    category_name: str
    donation_type: str
    frequency: str | None
    transaction_id: str
    receipt_url: str | None
    next_charge_date: date | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": str(self.amount),
            "amountDisplay": self.amount_display,
            "category": self.category,
            "categoryName": self.category_name,
            "type": self.donation_type,
            "frequency": self.frequency,
            "frequencyName": _frequency_name(self.frequency),
            "transactionId": self.transaction_id,
            "receiptUrl": self.receipt_url,
            "nextChargeDate": self.next_charge_date.isoformat() if self.next_charge_date else None,
            "message": self.message,
        }


def _frequency_name(frequency: str | None) -> str | None:
    if not frequency:
        return None
    try:
        return FREQUENCY_NAMES[Frequency(frequency)]
    except ValueError:
        return None


class SubmissionOrchestrator:
    """Drives one checkout through idle -> processing -> success | error.

    `submit` is `prepare` followed by `execute`. The HTTP surface calls them
    separately so validation answers synchronously while the payment runs on
    a worker. The lock and the `processing` flag together keep at most one
    payment in flight; extra submits are answered with "ignored".
    """

    def __init__(
        self,
        store: DonationStore,
        dispatcher: PaymentDispatcher,
        *,
        analytics: AnalyticsSink,
        currency: str = DEFAULT_CURRENCY,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._analytics = analytics
        self._currency = currency
        self._today = today
        self._lock = threading.Lock()

    @property
    def store(self) -> DonationStore:
        return self._store

    def _track(self, event: AnalyticsEvent, properties: dict[str, Any]) -> None:
        try:
            self._analytics.track(event.value, properties)
        except Exception:  # noqa: BLE001
            logger.exception("Analytics tracking failed for %s", event.value)

    def _request(self, details: PaymentDetails) -> DonationRequest | None:
        draft = self._store.draft
        amount = effective_amount(draft)
        if amount is None:
            return None
        return DonationRequest(
            amount=amount,
            currency=self._currency,
            type=draft.type,
            category=draft.category,
            donor_info=replace(draft.donor_info),
            frequency=draft.frequency,
            details=details,
        )

    def _event_properties(self, request: DonationRequest, **extra: Any) -> dict[str, Any]:
        return {
            "amount": str(request.amount),
            "currency": request.currency,
            "type": request.type,
            "category": request.category,
            "method": self._store.draft.payment_method,
            **extra,
        }

    def prepare(self, details: PaymentDetails | None = None) -> SubmitOutcome:
        details = details or PaymentDetails()
        with self._lock:
            state = self._store.state
            if state.processing:
                logger.info("Submit ignored: payment already in progress")
                return SubmitOutcome(status="ignored")
            if state.success:
                logger.info("Submit ignored: checkout already completed")
                return SubmitOutcome(status="ignored")

            errors = validate_draft(state.draft)
            request = self._request(details)
            if not errors and request is not None:
                errors.update(self._dispatcher.validate(state.draft.payment_method, request))

            if errors or request is None:
                self._store.set_validation_errors(errors)
                return SubmitOutcome(status="invalid", message=next(iter(errors.values()), None), errors=errors)

            self._store.clear_validation_errors()
            self._store.start_processing()

        self._track(AnalyticsEvent.DONATION_SUBMITTED, self._event_properties(request))
        return SubmitOutcome(status="accepted")

    def execute(self, details: PaymentDetails | None = None) -> SubmitOutcome:
        details = details or PaymentDetails()
        with self._lock:
            if not self._store.state.processing:
                return SubmitOutcome(status="ignored")
            request = self._request(details)
            method = self._store.draft.payment_method

        if request is None:
            result = PaymentResult.failed(UNEXPECTED_ERROR)
        else:
            try:
                result = self._dispatcher.execute(method, request)
            except Exception:  # noqa: BLE001
                logger.exception("Payment dispatch failed for method %s", method)
                result = PaymentResult.failed(UNEXPECTED_ERROR)

        return self._apply(result, request)

    def submit(self, details: PaymentDetails | None = None) -> SubmitOutcome:
        prepared = self.prepare(details)
        if prepared.status != "accepted":
            return prepared
        return self.execute(details)

    def _apply(self, result: PaymentResult, request: DonationRequest | None) -> SubmitOutcome:
        props = self._event_properties(request) if request is not None else {}

        with self._lock:
            if result.client_secret or result.donation_id:
                self._store.set_client_secret(result.client_secret, result.donation_id)
            if result.status == "ok" and result.transaction is not None:
                self._store.processing_success(result.transaction)
                outcome = SubmitOutcome(status="success")
            elif result.status == "cancelled":
                self._store.processing_cancelled(result.error or "")
                outcome = SubmitOutcome(status="cancelled", message=result.error)
            else:
                message = result.error or UNEXPECTED_ERROR
                self._store.processing_error(message)
                outcome = SubmitOutcome(status="error", message=message)

        if outcome.status == "success":
            self._track(
                AnalyticsEvent.DONATION_SUCCESS,
                {**props, "transactionId": result.transaction.transaction_id},
            )
        elif outcome.status == "cancelled":
            self._track(AnalyticsEvent.DONATION_CANCELLED, props)
        else:
            logger.info("Donation failed: %s", outcome.message)
            self._track(AnalyticsEvent.DONATION_ERROR, {**props, "error": outcome.message})
        return outcome

    def thank_you(self) -> ThankYouSummary | None:
        state = self._store.state
        if not state.success or state.transaction is None:
            return None

        draft = state.draft
        amount = effective_amount(draft) or Decimal("0")
        recurring = draft.type == DonationType.RECURRING.value
        return ThankYouSummary(
            amount=amount,
            amount_display=format_amount(amount, self._currency),
            category=draft.category,
            category_name=category_name(draft.category),
            donation_type=draft.type,
            frequency=draft.frequency,
            transaction_id=state.transaction.transaction_id,
            receipt_url=state.transaction.receipt_url,
            next_charge_date=self._today() + timedelta(days=NEXT_CHARGE_DAYS) if recurring else None,
            message=SUCCESS_MESSAGES[DonationType(draft.type)],
        )

    def _reset(self) -> bool:
        with self._lock:
            if self._store.state.processing:
                return False
            self._store.reset_donation()
            return True

    def make_another_donation(self) -> bool:
        return self._reset()

    def close_thank_you(self) -> bool:
        return self._reset()
