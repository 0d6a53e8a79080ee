from __future__ import annotations

import json
import logging
import uuid
from typing import Any

import redis

from .session_store import CheckoutSession

logger = logging.getLogger(__name__)


def create_redis_client(redis_url: str):
    if not redis_url:
        return None
    return redis.Redis.from_url(redis_url, decode_responses=True)


class RedisSessionStore:
    def __init__(
        self,
        *,
        redis_client: Any,
        ttl_seconds: int,
        key_prefix: str = "alumni_giving",
    ) -> None:
        self._ttl_seconds = max(60, int(ttl_seconds))
        self._redis = redis_client
        self._prefix = (key_prefix or "alumni_giving").strip() or "alumni_giving"

    def _key(self, key: str) -> str:
        k = (key or "").strip() or "unknown"
        return f"{self._prefix}:checkout:{k}"

    def get(self, key: str) -> CheckoutSession | None:
        raw = self._redis.get(self._key(key))
        if not raw:
            return None

        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Invalid checkout JSON in Redis for key=%s", key)
            return None

        if not isinstance(data, dict):
            return None

        try:
            session = CheckoutSession.from_dict(data)
        except (TypeError, ValueError):
            logger.warning("Invalid checkout payload in Redis for key=%s", key)
            return None

        # Expiration is handled by the Redis TTL.
        return session

    def upsert(self, key: str, session: CheckoutSession) -> None:
        session.touch()
        self._redis.setex(self._key(key), self._ttl_seconds, json.dumps(session.to_dict()))

    def clear(self, key: str) -> None:
        self._redis.delete(self._key(key))


class RedisLock:
    """Cross-worker submit lock for one checkout, expiring after `ttl_seconds`.

    The token is unique per holder; release only deletes the key while it
    still carries that token.
    """

    _RELEASE_SCRIPT = (
        "if redis.call('get', KEYS[1]) == ARGV[1] then "
        "  return redis.call('del', KEYS[1]) "
        "else "
        "  return 0 "
        "end"
    )

    def __init__(
        self,
        *,
        redis_client: Any,
        checkout_id: str,
        ttl_seconds: int,
        key_prefix: str = "alumni_giving",
    ) -> None:
        self._redis = redis_client
        self.key = f"{key_prefix}:lock:submit:{checkout_id}"
        self._token = uuid.uuid4().hex
        self._ttl_ms = max(1, int(ttl_seconds)) * 1000
        self.acquired = False

    def try_acquire(self) -> bool:
        self.acquired = bool(self._redis.set(self.key, self._token, nx=True, px=self._ttl_ms))
        if not self.acquired:
            logger.info("Submit lock %s is held by another worker", self.key)
        return self.acquired

    def is_held(self) -> bool:
        """True while any worker holds the lock, this one included."""
        return bool(self._redis.exists(self.key))

    def release(self) -> None:
        if not self.acquired:
            return
        try:
            self._redis.eval(self._RELEASE_SCRIPT, 1, self.key, self._token)
        except Exception:  # noqa: BLE001
            # The key still expires on its own.
            logger.exception("Failed to release submit lock %s", self.key)
        finally:
            self.acquired = False
