from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any

import requests

logger = logging.getLogger(__name__)


class AnalyticsClient:
    """Fire-and-forget event sink.

    Events are always logged. When an endpoint is configured they are also
    POSTed on a background executor so the payment path never waits on them.
    """

    def __init__(
        self,
        *,
        endpoint: str = "",
        timeout_seconds: int = 5,
        executor: Executor | None = None,
    ) -> None:
        self._endpoint = (endpoint or "").strip()
        self._timeout_seconds = max(1, int(timeout_seconds))
        self._executor = executor
        self._executor_lock = threading.Lock()
        # One requests.Session per worker thread for connection pooling.
        self._local = threading.local()

    def _session(self) -> requests.Session:
        sess = getattr(self._local, "session", None)
        if sess is None:
            sess = requests.Session()
            self._local.session = sess
        return sess

    def _timeout(self) -> tuple[float, float]:
        seconds = float(self._timeout_seconds)
        return (min(3.0, seconds), seconds)

    def _get_executor(self) -> Executor:
        if self._executor is not None:
            return self._executor
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="analytics")
            return self._executor

    def is_configured(self) -> bool:
        return bool(self._endpoint)

    def track(self, event: str, properties: dict[str, Any] | None = None) -> None:
        props = dict(properties or {})
        logger.info("analytics event=%s properties=%s", event, props)
        if not self._endpoint:
            return

        payload = {"event": event, "properties": props, "timestamp": int(time.time() * 1000)}
        try:
            self._get_executor().submit(self._send, payload)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to schedule analytics event %s", event)

    def _send(self, payload: dict[str, Any]) -> None:
        try:
            resp = self._session().post(self._endpoint, json=payload, timeout=self._timeout())
            if resp.status_code >= 400:
                logger.warning("Analytics delivery failed: %s %s", resp.status_code, resp.text[:200])
        except Exception:  # noqa: BLE001
            logger.exception("Analytics delivery exception")
