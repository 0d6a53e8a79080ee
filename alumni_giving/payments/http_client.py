from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import requests

from ..checkout.constants import NETWORK_ERROR
from ..checkout.state import DonorInfo
from .client import ConfirmResult, DonationApi, IntentResult, OrderResult, donor_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpDonationApiConfig:
    base_url: str
    timeout_seconds: int = 15
    payment_timeout_seconds: int = 30
    auth_bearer_token: str = ""


def _money(amount: Decimal) -> float:
    # The REST API takes amounts as JSON numbers in major units.
    return float(amount)


def _failure_message(status_code: int, error: str | None, fallback: str) -> str:
    # Transport failures (status 0) never carry a server message worth showing.
    if status_code == 0:
        return NETWORK_ERROR
    return error or fallback


class HttpDonationApi(DonationApi):
    def __init__(self, config: HttpDonationApiConfig) -> None:
        # Guard against env var formatting mistakes like:
        #   BACKEND_BASE_URL=https://host.tld\n/api/
        self._base_url = "".join((config.base_url or "").split())
        self._timeout_seconds = max(1, int(config.timeout_seconds))
        self._payment_timeout_seconds = max(1, int(config.payment_timeout_seconds))
        self._auth_bearer_token = (config.auth_bearer_token or "").strip()

        # Keep one requests.Session per worker thread for connection pooling
        # without sharing a Session across threads.
        self._local = threading.local()

    def _session(self) -> requests.Session:
        sess = getattr(self._local, "session", None)
        if sess is None:
            sess = requests.Session()
            self._local.session = sess
        return sess

    @staticmethod
    def _timeout(seconds: int) -> tuple[float, float]:
        # requests timeout is (connect, read)
        connect = min(3.0, float(seconds))
        read = float(seconds)
        return (connect, read)

    def _url(self, path: str) -> str:
        base = self._base_url.rstrip("/")
        p = path.lstrip("/")
        return f"{base}/{p}"

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._auth_bearer_token:
            headers["Authorization"] = f"Bearer {self._auth_bearer_token}"
        return headers

    def _post_json(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        timeout_seconds: int | None = None,
    ) -> tuple[int, dict[str, Any] | None, str | None]:
        if not self._base_url:
            return 0, None, "BACKEND_BASE_URL is not configured"

        url = self._url(path)
        try:
            resp = self._session().post(
                url,
                headers=self._headers(),
                json=payload,
                timeout=self._timeout(timeout_seconds or self._timeout_seconds),
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Donation API request failed: %s", url)
            return 0, None, str(exc)

        try:
            data = resp.json() if resp.content else None
        except Exception:  # noqa: BLE001
            data = None

        if 200 <= resp.status_code < 300:
            return resp.status_code, data, None

        error_msg = None
        if isinstance(data, dict):
            error_msg = str(data.get("message") or data.get("error") or "") or None
        logger.warning("Donation API %s returned HTTP %s: %s", path, resp.status_code, error_msg)
        return resp.status_code, data, error_msg

    def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        donation_type: str,
        category: str,
        metadata: dict[str, Any],
    ) -> IntentResult:
        status_code, data, error = self._post_json(
            "donations/create-intent",
            {
                "amount": _money(amount),
                "currency": currency,
                "type": donation_type,
                "category": category,
                "metadata": metadata,
            },
        )

        if not 200 <= status_code < 300:
            return IntentResult(status="error", error=_failure_message(status_code, error, "Failed to initialize payment"))

        if not isinstance(data, dict) or not data.get("clientSecret"):
            return IntentResult(status="error", error="Failed to initialize payment")

        donation_id = data.get("donationId")
        return IntentResult(
            status="ok",
            client_secret=str(data["clientSecret"]),
            donation_id=str(donation_id) if donation_id else None,
        )

    def confirm_payment(
        self,
        *,
        payment_intent_id: str,
        donation_id: str | None,
        donor_info: DonorInfo,
    ) -> ConfirmResult:
        status_code, data, error = self._post_json(
            "donations/confirm",
            {
                "paymentIntentId": payment_intent_id,
                "donationId": donation_id,
                "donorInfo": donor_payload(donor_info),
            },
            timeout_seconds=self._payment_timeout_seconds,
        )
        return self._confirm_result(status_code, data, error, fallback="Failed to confirm payment")

    def create_paypal_order(
        self,
        *,
        amount: Decimal,
        currency: str,
        donation_type: str,
        category: str,
        donor_info: DonorInfo,
    ) -> OrderResult:
        status_code, data, error = self._post_json(
            "donations/paypal/create-order",
            {
                "amount": _money(amount),
                "currency": currency,
                "type": donation_type,
                "category": category,
                "donorInfo": donor_payload(donor_info),
            },
        )

        if not 200 <= status_code < 300:
            return OrderResult(status="error", error=_failure_message(status_code, error, "Failed to create PayPal order"))

        order_id = data.get("orderId") if isinstance(data, dict) else None
        if not order_id:
            return OrderResult(status="error", error="Failed to create PayPal order")
        return OrderResult(status="ok", order_id=str(order_id))

    def capture_paypal_order(self, order_id: str) -> ConfirmResult:
        status_code, data, error = self._post_json(
            "donations/paypal/capture-order",
            {"orderId": order_id},
            timeout_seconds=self._payment_timeout_seconds,
        )
        return self._confirm_result(status_code, data, error, fallback="Failed to capture PayPal payment")

    @staticmethod
    def _confirm_result(
        status_code: int,
        data: dict[str, Any] | None,
        error: str | None,
        *,
        fallback: str,
    ) -> ConfirmResult:
        if not 200 <= status_code < 300:
            return ConfirmResult(status="error", error=_failure_message(status_code, error, fallback))

        if not isinstance(data, dict) or not data.get("transactionId"):
            return ConfirmResult(status="error", error=fallback)

        donation = data.get("donation")
        return ConfirmResult(
            status="ok",
            transaction_id=str(data["transactionId"]),
            receipt_url=data.get("receiptUrl") or None,
            donation=donation if isinstance(donation, dict) else None,
        )
