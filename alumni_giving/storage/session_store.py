from __future__ import annotations

from dataclasses import dataclass, field
import time
import threading
from typing import Any

from ..checkout.state import CheckoutState


@dataclass
class CheckoutSession:
    checkout_id: str
    state: CheckoutState = field(default_factory=CheckoutState)

    created_at: float = 0.0
    updated_at: float = 0.0

    def touch(self) -> None:
        self.updated_at = time.time()
        if not self.created_at:
            self.created_at = self.updated_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkoutId": self.checkout_id,
            "state": self.state.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckoutSession:
        return cls(
            checkout_id=str(data.get("checkoutId") or ""),
            state=CheckoutState.from_dict(data.get("state") or {}),
            created_at=float(data.get("createdAt") or 0.0),
            updated_at=float(data.get("updatedAt") or 0.0),
        )


class SessionStore:
    def __init__(self, ttl_seconds: int) -> None:
        self._ttl_seconds = max(60, ttl_seconds)
        self._store: dict[str, tuple[CheckoutSession, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CheckoutSession | None:
        with self._lock:
            item = self._store.get(key)
            if not item:
                return None

            session, expires_at = item
            if time.time() >= expires_at:
                self._store.pop(key, None)
                return None

            return session

    def upsert(self, key: str, session: CheckoutSession) -> None:
        session.touch()
        expires_at = session.updated_at + self._ttl_seconds
        with self._lock:
            self._store[key] = (session, expires_at)
            # Opportunistic cleanup so abandoned checkouts don't pile up.
            if len(self._store) > 1000:
                now = time.time()
                for k in [k for k, (_, exp) in self._store.items() if exp <= now]:
                    self._store.pop(k, None)

    def clear(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)
