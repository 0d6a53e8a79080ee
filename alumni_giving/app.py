import copy
import logging
import os
from typing import Any
import time
import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import date
import uuid

from dotenv import load_dotenv, find_dotenv
from flask import Flask, request
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration

load_dotenv(find_dotenv())

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .checkout.constants import (
    CATEGORY_DESCRIPTIONS,
    CATEGORY_NAMES,
    CONFIGURATION_ERROR,
    FREQUENCY_NAMES,
    MAX_ONE_TIME_AMOUNT,
    MAX_RECURRING_AMOUNT,
    MIN_AMOUNT,
    PRESET_AMOUNTS,
    SESSION_EXPIRED,
    AnalyticsEvent,
    DonationType,
    PaymentMethod,
)
from .checkout.orchestrator import SubmissionOrchestrator
from .checkout.state import CheckoutState
from .checkout.store import DonationStore
from .config import SETTINGS, Settings
from .integrations.analytics import AnalyticsClient
from .payments.client import AnalyticsSink, DonationApi, PaymentDetails
from .payments.dispatcher import PaymentDispatcher, build_dispatcher
from .payments.http_client import HttpDonationApi, HttpDonationApiConfig
from .payments.paypal import DeferredApproval
from .storage.redis_session_store import RedisLock, RedisSessionStore, create_redis_client
from .storage.session_store import CheckoutSession, SessionStore

RECURRING_UNAVAILABLE = "Recurring donations are not available yet."

# Donor fields accepted from the JSON body, in camelCase as the SPA sends them.
_DONOR_KEYS = ("name", "email", "displayName", "optInRecognition", "optInUpdates")


def _init_sentry(settings: Settings) -> None:
    if not settings.sentry_dsn:
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[FlaskIntegration()],
    )
    logger.info("Sentry enabled (environment=%s)", settings.sentry_environment)


def _init_redis(settings: Settings):
    if not settings.redis_url:
        return None
    try:
        client = create_redis_client(settings.redis_url)
        if client is None:
            return None
        # Validate connectivity early in production if requested.
        if settings.redis_required:
            client.ping()
        logger.info("Redis enabled for checkout sessions/submit locks")
        return client
    except Exception:  # noqa: BLE001
        logger.exception("Failed to initialize Redis")
        if settings.redis_required:
            raise
        return None


class _Runtime:
    """Collaborators and per-process bookkeeping shared by the routes."""

    def __init__(
        self,
        settings: Settings,
        *,
        sessions: Any,
        dispatcher: PaymentDispatcher,
        analytics: AnalyticsSink,
        executor: Executor | None,
        approval_executor: Executor | None,
        redis_client: Any,
        today: Callable[[], date],
    ) -> None:
        self.settings = settings
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.analytics = analytics
        self.redis = redis_client
        self.today = today

        self._executor = executor
        self._approval_executor = approval_executor
        self._executor_lock = threading.Lock()

        self._locks: dict[str, tuple[threading.Lock, float]] = {}
        self._locks_lock = threading.Lock()

        # PayPal approvals waiting on the buyer, keyed by checkout id.
        self.pending_approvals: dict[str, DeferredApproval] = {}
        self.pending_lock = threading.Lock()

    def executor(self) -> Executor:
        # Lazily create the executor so pre-fork servers (e.g. gunicorn) don't
        # instantiate a thread pool in the master process.
        if self._executor is not None:
            return self._executor
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.payment_worker_threads,
                    thread_name_prefix="payment",
                )
            return self._executor

    def approval_executor(self) -> Executor:
        # A PayPal submit holds its worker until the buyer answers, so it must
        # never occupy the pool card and mobile money payments run on.
        if self._approval_executor is not None:
            return self._approval_executor
        with self._executor_lock:
            if self._approval_executor is None:
                self._approval_executor = ThreadPoolExecutor(
                    max_workers=self.settings.paypal_worker_threads,
                    thread_name_prefix="paypal",
                )
            return self._approval_executor

    def submit_ttl_seconds(self) -> int:
        # Longest a single submit can run: buyer approval plus create and capture.
        return self.settings.paypal_approval_timeout_seconds + 2 * self.settings.payment_timeout_seconds

    def checkout_lock(self, checkout_id: str) -> threading.Lock:
        now = time.time()
        with self._locks_lock:
            item = self._locks.get(checkout_id)
            lock = item[0] if item is not None else threading.Lock()
            self._locks[checkout_id] = (lock, now)

            # Opportunistic cleanup to prevent unbounded growth.
            if len(self._locks) > 500:
                cutoff = now - self.settings.checkout_ttl_seconds
                for k in [k for k, (_, ts) in self._locks.items() if ts <= cutoff]:
                    self._locks.pop(k, None)

            return lock

    def orchestrator(self, store: DonationStore) -> SubmissionOrchestrator:
        return SubmissionOrchestrator(
            store,
            self.dispatcher,
            analytics=self.analytics,
            currency=self.settings.currency,
            today=self.today,
        )

    def submit_lock(self, checkout_id: str) -> RedisLock | None:
        if self.redis is None:
            return None
        return RedisLock(
            redis_client=self.redis,
            checkout_id=checkout_id,
            ttl_seconds=self.submit_ttl_seconds(),
            key_prefix=self.settings.redis_key_prefix,
        )

    def submit_running(self, session: CheckoutSession) -> bool:
        """Whether a processing checkout may still have a live submit behind it."""
        lock = self.submit_lock(session.checkout_id)
        if lock is not None:
            return lock.is_held()
        return time.time() - session.updated_at < self.submit_ttl_seconds()

    def track(self, event: AnalyticsEvent, properties: dict[str, Any]) -> None:
        try:
            self.analytics.track(event.value, properties)
        except Exception:  # noqa: BLE001
            logger.exception("Analytics tracking failed for %s", event.value)


def _json_body() -> dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def create_app(
    settings: Settings = SETTINGS,
    *,
    sessions: Any = None,
    api: DonationApi | None = None,
    analytics: AnalyticsSink | None = None,
    dispatcher: PaymentDispatcher | None = None,
    executor: Executor | None = None,
    approval_executor: Executor | None = None,
    redis_client: Any = None,
    today: Callable[[], date] = date.today,
) -> Flask:
    _init_sentry(settings)

    if sessions is None:
        redis_client = redis_client if redis_client is not None else _init_redis(settings)
        if redis_client is not None:
            sessions = RedisSessionStore(
                redis_client=redis_client,
                ttl_seconds=settings.checkout_ttl_seconds,
                key_prefix=settings.redis_key_prefix,
            )
        else:
            sessions = SessionStore(ttl_seconds=settings.checkout_ttl_seconds)

    if api is None:
        if not settings.backend_base_url:
            logger.warning("BACKEND_BASE_URL is not set; card and PayPal payments will fail")
        api = HttpDonationApi(
            HttpDonationApiConfig(
                base_url=settings.backend_base_url,
                timeout_seconds=settings.backend_timeout_seconds,
                payment_timeout_seconds=settings.payment_timeout_seconds,
                auth_bearer_token=settings.backend_auth_bearer_token,
            )
        )

    if analytics is None:
        analytics = AnalyticsClient(
            endpoint=settings.analytics_endpoint,
            timeout_seconds=settings.analytics_timeout_seconds,
        )

    if dispatcher is None:
        dispatcher = build_dispatcher(settings, api=api, analytics=analytics)

    rt = _Runtime(
        settings,
        sessions=sessions,
        dispatcher=dispatcher,
        analytics=analytics,
        executor=executor,
        approval_executor=approval_executor,
        redis_client=redis_client,
        today=today,
    )

    app = Flask(__name__)
    app.extensions["alumni_giving"] = rt

    def _payload(session: CheckoutSession) -> dict[str, Any]:
        store = DonationStore(session.state)
        thank_you = rt.orchestrator(store).thank_you()
        amount = store.effective_amount

        paypal_order_id = None
        with rt.pending_lock:
            approval = rt.pending_approvals.get(session.checkout_id)
        if approval is not None:
            paypal_order_id = approval.order_id

        state = session.state.to_dict()
        state.pop("clientSecret", None)
        return {
            "checkoutId": session.checkout_id,
            **state,
            "effectiveAmount": str(amount) if amount is not None else None,
            "isFormValid": store.is_form_valid(),
            "summary": {**store.summary(), "amount": str(amount) if amount is not None else None},
            "thankYou": thank_you.to_dict() if thank_you else None,
            "paypalOrderId": paypal_order_id,
        }

    def _save(session: CheckoutSession, store: DonationStore) -> None:
        # reset_* replace the state object, so always write back from the store.
        session.state = store.state
        rt.sessions.upsert(session.checkout_id, session)

    def _run_payment(
        checkout_id: str,
        orchestrator: SubmissionOrchestrator,
        details: PaymentDetails,
        submit_lock: RedisLock | None,
    ) -> None:
        processed = orchestrator.store.state
        try:
            outcome = orchestrator.execute(details)
            logger.info("Checkout %s finished: %s", checkout_id, outcome.status)
            with rt.checkout_lock(checkout_id):
                session = rt.sessions.get(checkout_id)
                if session is None:
                    session = CheckoutSession(checkout_id=checkout_id)
                elif session.state is not processed and not session.state.processing:
                    # Reset after the outcome landed in shared memory; the newer state wins.
                    logger.info("Checkout %s changed while finishing; keeping the stored state", checkout_id)
                    return
                _save(session, orchestrator.store)
        except Exception:  # noqa: BLE001
            logger.exception("Unhandled exception while processing checkout %s", checkout_id)
        finally:
            with rt.pending_lock:
                rt.pending_approvals.pop(checkout_id, None)
            if submit_lock is not None:
                submit_lock.release()

    @app.get("/health")
    def health() -> tuple[str, int]:
        return "ok", 200

    @app.get("/checkout/config")
    def checkout_config() -> tuple[dict[str, object], int]:
        return (
            {
                "currency": settings.currency,
                "paymentMethods": [m.value for m in rt.dispatcher.enabled_methods()],
                "stripePublishableKey": rt.dispatcher.config.stripe_key or None,
                "paypalClientId": rt.dispatcher.config.paypal_client_id or None,
                "presetAmounts": [str(a) for a in PRESET_AMOUNTS],
                "minAmount": str(MIN_AMOUNT),
                "maxAmount": {
                    DonationType.ONE_TIME.value: str(MAX_ONE_TIME_AMOUNT),
                    DonationType.RECURRING.value: str(MAX_RECURRING_AMOUNT),
                },
                "recurringEnabled": settings.recurring_enabled,
                "frequencies": [{"id": f.value, "name": name} for f, name in FREQUENCY_NAMES.items()],
                "categories": [
                    {"id": c.value, "name": name, "description": CATEGORY_DESCRIPTIONS[c]}
                    for c, name in CATEGORY_NAMES.items()
                ],
            },
            200,
        )

    @app.post("/checkout")
    def create_checkout() -> tuple[dict[str, object], int]:
        data = _json_body()
        checkout_id = uuid.uuid4().hex
        store = DonationStore(CheckoutState())

        donor = data.get("donorInfo") or {}
        if isinstance(donor, dict) and (donor.get("name") or donor.get("email")):
            store.prefill_donor_info(donor.get("name"), donor.get("email"))

        enabled = rt.dispatcher.enabled_methods()
        if enabled and PaymentMethod(store.draft.payment_method) not in enabled:
            store.set_payment_method(enabled[0].value)

        session = CheckoutSession(checkout_id=checkout_id)
        with rt.checkout_lock(checkout_id):
            _save(session, store)
        logger.info("Checkout %s created", checkout_id)
        return _payload(session), 201

    @app.get("/checkout/<checkout_id>")
    def get_checkout(checkout_id: str) -> tuple[dict[str, object], int]:
        session = rt.sessions.get(checkout_id)
        if session is None:
            return {"error": SESSION_EXPIRED}, 404
        return _payload(session), 200

    @app.patch("/checkout/<checkout_id>")
    def update_checkout(checkout_id: str) -> tuple[dict[str, object], int]:
        data = _json_body()
        with rt.checkout_lock(checkout_id):
            session = rt.sessions.get(checkout_id)
            if session is None:
                return {"error": SESSION_EXPIRED}, 404
            if session.state.processing:
                return {"error": "payment in progress"}, 409

            # Work on a copy so a rejected field leaves the stored checkout untouched.
            store = DonationStore(copy.deepcopy(session.state))
            events: list[tuple[AnalyticsEvent, dict[str, Any]]] = []
            try:
                if "type" in data:
                    if data["type"] == DonationType.RECURRING.value and not settings.recurring_enabled:
                        return {"error": RECURRING_UNAVAILABLE}, 400
                    store.set_donation_type(data["type"])
                    events.append((AnalyticsEvent.TYPE_CHANGED, {"type": store.draft.type}))
                if "frequency" in data:
                    store.set_donation_frequency(data["frequency"])
                if "amount" in data:
                    store.set_amount(data["amount"])
                    if store.draft.amount is not None:
                        events.append((AnalyticsEvent.AMOUNT_SELECTED, {"amount": str(store.draft.amount)}))
                if "customAmount" in data:
                    store.set_custom_amount(str(data["customAmount"] or ""))
                if "category" in data:
                    store.set_category(data["category"])
                    events.append((AnalyticsEvent.CATEGORY_SELECTED, {"category": store.draft.category}))
                if "paymentMethod" in data:
                    if not rt.dispatcher.is_enabled(data["paymentMethod"]):
                        return {"error": CONFIGURATION_ERROR}, 400
                    store.set_payment_method(data["paymentMethod"])
                    events.append((AnalyticsEvent.PAYMENT_METHOD_SELECTED, {"method": store.draft.payment_method}))
                donor = data.get("donorInfo")
                if isinstance(donor, dict):
                    store.set_donor_info(**{k: v for k, v in donor.items() if k in _DONOR_KEYS})
                if data.get("clearError"):
                    store.clear_error()
            except ValueError as exc:
                return {"error": str(exc)}, 400

            _save(session, store)

        for event, props in events:
            rt.track(event, props)
        return _payload(session), 200

    @app.post("/checkout/<checkout_id>/submit")
    def submit_checkout(checkout_id: str) -> tuple[dict[str, object], int]:
        data = _json_body()
        with rt.checkout_lock(checkout_id):
            session = rt.sessions.get(checkout_id)
            if session is None:
                return {"error": SESSION_EXPIRED}, 404

            submit_lock = rt.submit_lock(checkout_id)
            if submit_lock is not None and not submit_lock.try_acquire():
                return {"outcome": "ignored", "error": "payment in progress"}, 409

            store = DonationStore(session.state)
            approval = None
            if store.draft.payment_method == PaymentMethod.PAYPAL.value:
                approval = DeferredApproval(timeout_seconds=settings.paypal_approval_timeout_seconds)
            details = PaymentDetails(
                card_payment_method=data.get("cardPaymentMethod"),
                phone_number=data.get("phoneNumber"),
                reference=data.get("reference"),
                paypal_approval=approval,
            )

            orchestrator = rt.orchestrator(store)
            outcome = orchestrator.prepare(details)
            if outcome.status != "accepted":
                if submit_lock is not None:
                    submit_lock.release()
                if outcome.status == "invalid":
                    _save(session, store)
                    return {"outcome": "invalid", "errors": outcome.errors or {}, "checkout": _payload(session)}, 400
                return {"outcome": outcome.status, "checkout": _payload(session)}, 409

            _save(session, store)
            if approval is not None:
                with rt.pending_lock:
                    rt.pending_approvals[checkout_id] = approval

        executor = rt.approval_executor() if approval is not None else rt.executor()
        try:
            executor.submit(_run_payment, checkout_id, orchestrator, details, submit_lock)
        except RuntimeError:
            logger.exception("Payment executor unavailable for checkout %s", checkout_id)
            _run_payment(checkout_id, orchestrator, details, submit_lock)
        return {"outcome": "accepted", "checkout": _payload(session)}, 202

    def _approval(checkout_id: str) -> DeferredApproval | None:
        with rt.pending_lock:
            return rt.pending_approvals.get(checkout_id)

    @app.post("/checkout/<checkout_id>/paypal/approve")
    def paypal_approve(checkout_id: str) -> tuple[dict[str, object], int]:
        approval = _approval(checkout_id)
        if approval is None:
            return {"error": "no pending PayPal order"}, 404
        ok = approval.approve(_json_body().get("orderID"))
        return {"ok": ok}, 200 if ok else 409

    @app.post("/checkout/<checkout_id>/paypal/cancel")
    def paypal_cancel(checkout_id: str) -> tuple[dict[str, object], int]:
        approval = _approval(checkout_id)
        if approval is None:
            return {"error": "no pending PayPal order"}, 404
        ok = approval.cancel(_json_body().get("orderID"))
        return {"ok": ok}, 200 if ok else 409

    @app.post("/checkout/<checkout_id>/paypal/error")
    def paypal_error(checkout_id: str) -> tuple[dict[str, object], int]:
        approval = _approval(checkout_id)
        if approval is None:
            return {"error": "no pending PayPal order"}, 404
        data = _json_body()
        ok = approval.fail(data.get("name"), data.get("message"), data.get("orderID"))
        return {"ok": ok}, 200 if ok else 409

    def _reset(checkout_id: str, *, complete: bool) -> tuple[dict[str, object], int]:
        with rt.checkout_lock(checkout_id):
            session = rt.sessions.get(checkout_id)
            if session is None:
                return {"error": SESSION_EXPIRED}, 404
            store = DonationStore(session.state)
            if complete:
                if store.state.processing:
                    # A worker that died mid-payment leaves the flag behind; once the
                    # submit could no longer be running, a full reset may clear it.
                    if rt.submit_running(session):
                        return {"error": "payment in progress"}, 409
                    logger.warning("Clearing stale processing flag on checkout %s", checkout_id)
                store.reset_donation_complete()
            elif not rt.orchestrator(store).close_thank_you():
                return {"error": "payment in progress"}, 409
            _save(session, store)
        return _payload(session), 200

    @app.post("/checkout/<checkout_id>/reset")
    def reset_checkout(checkout_id: str) -> tuple[dict[str, object], int]:
        return _reset(checkout_id, complete=bool(_json_body().get("complete")))

    @app.post("/checkout/<checkout_id>/another")
    def another_donation(checkout_id: str) -> tuple[dict[str, object], int]:
        with rt.checkout_lock(checkout_id):
            session = rt.sessions.get(checkout_id)
            if session is None:
                return {"error": SESSION_EXPIRED}, 404
            store = DonationStore(session.state)
            if not rt.orchestrator(store).make_another_donation():
                return {"error": "payment in progress"}, 409
            _save(session, store)
        return _payload(session), 200

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=False)
