import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.port = _env_int("PORT", 5000)
        self.public_base_url = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
        self.checkout_ttl_seconds = _env_int("CHECKOUT_TTL_SECONDS", 60 * 60)

        # Platform REST API (donations endpoints live under this base URL).
        self.backend_base_url = os.getenv("BACKEND_BASE_URL", "").strip()
        self.backend_timeout_seconds = _env_int("BACKEND_TIMEOUT_SECONDS", 15)
        self.payment_timeout_seconds = _env_int("PAYMENT_TIMEOUT_SECONDS", 30)
        # How long a PayPal order waits for the buyer to approve or cancel it.
        self.paypal_approval_timeout_seconds = _env_int("PAYPAL_APPROVAL_TIMEOUT_SECONDS", 300)
        self.backend_auth_bearer_token = os.getenv("BACKEND_AUTH_BEARER_TOKEN", "").strip()

        # Payment providers. An empty key disables the matching payment method.
        self.stripe_publishable_key = os.getenv("STRIPE_PUBLISHABLE_KEY", "").strip()
        self.paypal_client_id = os.getenv("PAYPAL_CLIENT_ID", "").strip()
        self.mobile_money_enabled = _env_bool("MOBILE_MONEY_ENABLED", True)
        self.orange_money_enabled = _env_bool("ORANGE_MONEY_ENABLED", True)
        # Stand-in provider delay until the mobile money gateways are wired up.
        self.mobile_money_delay_ms = _env_int("MOBILE_MONEY_DELAY_MS", 800)

        self.currency = os.getenv("DONATION_CURRENCY", "USD").strip().upper() or "USD"
        # The donate page only offers one-time gifts for now.
        self.recurring_enabled = _env_bool("RECURRING_ENABLED", False)

        # Analytics collector. Events are only logged when unset.
        self.analytics_endpoint = os.getenv("ANALYTICS_ENDPOINT", "").strip()
        self.analytics_timeout_seconds = _env_int("ANALYTICS_TIMEOUT_SECONDS", 5)

        # Background payment workers
        self.payment_worker_threads = max(1, _env_int("PAYMENT_WORKER_THREADS", 8))
        # PayPal submits wait on the buyer, so they get their own pool.
        self.paypal_worker_threads = max(1, _env_int("PAYPAL_WORKER_THREADS", 4))

        # Optional: Redis for shared checkout sessions and cross-worker submit locks.
        # Example: redis://localhost:6379/0
        self.redis_url = os.getenv("REDIS_URL", "").strip()
        self.redis_key_prefix = os.getenv("REDIS_KEY_PREFIX", "alumni_giving").strip() or "alumni_giving"
        self.redis_required = _env_bool("REDIS_REQUIRED", False)

        # Error tracking via Sentry.  Set SENTRY_DSN to enable.
        # Example: https://<key>@o<org>.ingest.sentry.io/<project>
        self.sentry_dsn = os.getenv("SENTRY_DSN", "").strip()
        self.sentry_environment = os.getenv("SENTRY_ENVIRONMENT", "production").strip() or "production"
        self.sentry_traces_sample_rate = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1") or "0.1")


SETTINGS = Settings()
