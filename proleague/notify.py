"""Outbound chat notifications.

The core hands fully formed events to a notifier and moves on; retries live
here, not in the callers.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from .errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

RETRY_DELAYS = (2.0, 5.0)
TIMEOUT_SECONDS = 10


def _fmt_when(ms: Optional[int]) -> str:
    if not ms:
        return "TBD"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def format_event(event: Dict[str, Any]) -> str:
    """Plain text line for a news event."""
    payload = event.get("payload") or {}
    kind = event.get("kind")
    if kind == "final":
        score = payload.get("score") or {}
        line = f"FT: {payload.get('home')} {score.get('home', 0)}-{score.get('away', 0)} {payload.get('away')}"
        scorers = payload.get("scorers") or []
        if scorers:
            line += "\nScorers: " + ", ".join(scorers)
        return line
    if kind == "scheduled":
        return f"Match scheduled: {payload.get('home')} vs {payload.get('away')} at {_fmt_when(payload.get('when'))}"
    if kind == "hattrick":
        return f"Hat-trick! {payload.get('player')} scored {payload.get('goals')} for {payload.get('club')}"
    if kind == "milestone":
        return f"{payload.get('player')} hit {payload.get('value')} {payload.get('stat')} this season"
    if kind == "hot_streak":
        return f"{payload.get('player')} has scored in {payload.get('streak')} straight matches"
    return str(payload.get("text") or kind)


class NullNotifier:
    """Accepts everything and sends nothing."""

    def deliver(self, event: Dict[str, Any]) -> bool:
        logger.debug("Notification dropped (no sink configured): %s", event.get("id"))
        return True


class WebhookNotifier:
    def __init__(
        self,
        url: str,
        *,
        session: Optional[requests.Session] = None,
        retry_delays: Sequence[float] = RETRY_DELAYS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = url
        self.session = session or requests.Session()
        self.retry_delays = list(retry_delays)
        self.sleep = sleep

    def deliver(self, event: Dict[str, Any]) -> bool:
        body = {"content": format_event(event)}
        errors: List[str] = []
        for attempt in range(len(self.retry_delays) + 1):
            try:
                response = self.session.post(self.url, json=body, timeout=TIMEOUT_SECONDS)
                response.raise_for_status()
                return True
            except requests.RequestException as exc:
                errors.append(str(exc))
                logger.warning("Webhook attempt %d failed for %s: %s", attempt + 1, event.get("id"), exc)
            if attempt < len(self.retry_delays):
                self.sleep(self.retry_delays[attempt])
        raise UpstreamUnavailable(f"Notification sink unavailable: {errors[-1]}")


class BackgroundNotifier:
    """Hands deliveries to a single worker thread so callers never wait on the sink.

    Events keep their submission order. Failures are logged by the worker.
    """

    def __init__(self, inner: Any, *, executor: Optional[ThreadPoolExecutor] = None) -> None:
        self.inner = inner
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="notify")
        self._pending: List[Future] = []

    def deliver(self, event: Dict[str, Any]) -> bool:
        future = self.executor.submit(self._send, dict(event))
        self._pending = [item for item in self._pending if not item.done()]
        self._pending.append(future)
        return True

    def _send(self, event: Dict[str, Any]) -> bool:
        try:
            return bool(self.inner.deliver(event))
        except UpstreamUnavailable as exc:
            logger.warning("Could not deliver %s: %s", event.get("id"), exc)
            return False

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for every queued delivery to finish."""
        for future in list(self._pending):
            future.result(timeout=timeout)

    def close(self) -> None:
        self.executor.shutdown(wait=True)
