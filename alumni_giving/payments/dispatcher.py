from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ..checkout.constants import CONFIGURATION_ERROR, PaymentMethod
from ..config import Settings
from .card import CardAdapter, CardConfirmer, StripeCardConfirmer
from .client import AnalyticsSink, DonationApi, DonationRequest, PaymentAdapter, PaymentResult
from .mobile_money import (
    LIBERIA_MOBILE_MONEY,
    ORANGE_MONEY,
    MobileMoneyAdapter,
    MobileMoneyProvider,
    PlaceholderMobileMoneyProvider,
)
from .paypal import PayPalAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentConfig:
    """Which payment methods may be offered.

    stripe_key          enables "card"
    paypal_client_id    enables "paypal"
    mobile_money_enabled / orange_money_enabled toggle the mobile money stand-ins
    """

    stripe_key: str = ""
    paypal_client_id: str = ""
    mobile_money_enabled: bool = True
    orange_money_enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> PaymentConfig:
        return cls(
            stripe_key=settings.stripe_publishable_key,
            paypal_client_id=settings.paypal_client_id,
            mobile_money_enabled=settings.mobile_money_enabled,
            orange_money_enabled=settings.orange_money_enabled,
        )

    def allows(self, method: PaymentMethod) -> bool:
        if method is PaymentMethod.CARD:
            return bool(self.stripe_key)
        if method is PaymentMethod.PAYPAL:
            return bool(self.paypal_client_id)
        if method is PaymentMethod.LIBERIA_MOBILE_MONEY:
            return self.mobile_money_enabled
        if method is PaymentMethod.ORANGE_MONEY:
            return self.orange_money_enabled
        return False


def _method(value: str | PaymentMethod) -> PaymentMethod | None:
    try:
        return PaymentMethod(value)
    except ValueError:
        return None


class PaymentDispatcher:
    def __init__(self, config: PaymentConfig, adapters: Mapping[PaymentMethod, PaymentAdapter]) -> None:
        self._config = config
        # Methods the config disables are dropped here, once, rather than at submit time.
        self._adapters: dict[PaymentMethod, PaymentAdapter] = {
            method: adapter for method, adapter in adapters.items() if config.allows(method)
        }
        disabled = [m.value for m in PaymentMethod if m not in self._adapters]
        if disabled:
            logger.info("Payment methods disabled: %s", ", ".join(disabled))

    @property
    def config(self) -> PaymentConfig:
        return self._config

    def enabled_methods(self) -> list[PaymentMethod]:
        return [m for m in PaymentMethod if m in self._adapters]

    def is_enabled(self, method: str | PaymentMethod) -> bool:
        m = _method(method)
        return m is not None and m in self._adapters

    def validate(self, method: str | PaymentMethod, request: DonationRequest) -> dict[str, str]:
        m = _method(method)
        adapter = self._adapters.get(m) if m is not None else None
        if adapter is None:
            return {"paymentMethod": CONFIGURATION_ERROR}
        return adapter.validate(request)

    def execute(self, method: str | PaymentMethod, request: DonationRequest) -> PaymentResult:
        m = _method(method)
        adapter = self._adapters.get(m) if m is not None else None
        if adapter is None:
            logger.warning("Payment attempted with unavailable method %r", method)
            return PaymentResult.failed(CONFIGURATION_ERROR)
        return adapter.execute(request)


def build_dispatcher(
    settings: Settings,
    *,
    api: DonationApi,
    analytics: AnalyticsSink,
    card_confirmer: CardConfirmer | None = None,
    mobile_money_provider: MobileMoneyProvider | None = None,
    orange_money_provider: MobileMoneyProvider | None = None,
) -> PaymentDispatcher:
    config = PaymentConfig.from_settings(settings)
    delay_seconds = settings.mobile_money_delay_ms / 1000.0

    adapters: dict[PaymentMethod, PaymentAdapter] = {
        PaymentMethod.PAYPAL: PayPalAdapter(api=api),
        PaymentMethod.LIBERIA_MOBILE_MONEY: MobileMoneyAdapter(
            variant=LIBERIA_MOBILE_MONEY,
            provider=mobile_money_provider or PlaceholderMobileMoneyProvider(delay_seconds=delay_seconds),
            analytics=analytics,
        ),
        PaymentMethod.ORANGE_MONEY: MobileMoneyAdapter(
            variant=ORANGE_MONEY,
            provider=orange_money_provider or PlaceholderMobileMoneyProvider(delay_seconds=delay_seconds),
            analytics=analytics,
        ),
    }
    if config.stripe_key:
        adapters[PaymentMethod.CARD] = CardAdapter(
            api=api,
            confirmer=card_confirmer
            or StripeCardConfirmer(config.stripe_key, timeout_seconds=settings.payment_timeout_seconds),
        )

    return PaymentDispatcher(config, adapters)
