from __future__ import annotations
import asyncio
import hmac
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from ..core.timeutil import now_ms
from ..domain.interfaces import KeyValueStore, PushDelivery
from ..domain.models import DispatchResult

logger = logging.getLogger(__name__)

VALID_STATES = ("low", "high")
TITLES = {
    "low": "Soil getting dry",
    "high": "Soil saturated",
}


class AlertRequestError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class AlertRequest:
    state: str
    moisture: float


def _parse_moisture(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError("not a number")
    number = float(value)
    if math.isnan(number):
        raise ValueError("not a number")
    return number


def validate_alert_request(payload: Mapping[str, Any], shared_secret: str) -> AlertRequest:
    """Authenticate first, then validate.

    401 for a missing or wrong secret (also when no secret is configured),
    400 for an unknown state or non-numeric moisture.
    """
    secret = payload.get("secret")
    if not secret or not shared_secret or not hmac.compare_digest(str(secret).encode("utf-8"), shared_secret.encode("utf-8")):
        raise AlertRequestError(401, "Unauthorized")

    state = payload.get("state")
    if state not in VALID_STATES:
        raise AlertRequestError(400, "Invalid state")

    try:
        moisture = _parse_moisture(payload.get("moisture"))
    except (TypeError, ValueError, OverflowError):
        raise AlertRequestError(400, "Invalid moisture")

    return AlertRequest(state=state, moisture=moisture)


def format_moisture(moisture: float) -> str:
    return f"{moisture:g}"


class AlertThrottle:
    """Per-state cooldown in front of push delivery.

    The last-dispatch time is written only after the push was accepted, so a
    failed send does not use up the cooldown. Read, decide, send and persist
    run under one lock per state, so two racing triggers cannot both send.
    """

    def __init__(
        self,
        store: KeyValueStore,
        push: PushDelivery,
        cooldown_ms: int = 20_000,
        topic: str = "soil-alerts",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._push = push
        self._cooldown_ms = cooldown_ms
        self._topic = topic
        self._clock = clock
        self._locks = {state: asyncio.Lock() for state in VALID_STATES}

    @staticmethod
    def _key(state: str) -> str:
        return f"alert:last:{state}"

    async def last_dispatch_ms(self, state: str) -> Optional[int]:
        """None when never dispatched or the stored value is unusable."""
        raw = await self._store.get(self._key(state))
        if raw is None:
            return None
        try:
            value = float(raw)
        except (TypeError, ValueError):
            logger.warning("Corrupt last-dispatch value for %s: %r (treating as never sent)", state, raw)
            return None
        if not math.isfinite(value):
            return None
        return int(value)

    async def try_dispatch(self, state: str, moisture: float) -> DispatchResult:
        if state not in VALID_STATES:
            raise ValueError(f"Unknown alert state: {state!r}")

        async with self._locks[state]:
            last = await self.last_dispatch_ms(state)
            now = self._clock()
            elapsed = None if last is None else now - last
            if elapsed is not None and elapsed < self._cooldown_ms:
                remaining = self._cooldown_ms - elapsed
                logger.info("Alert %s suppressed (cooldown, %dms left)", state, remaining)
                return DispatchResult(sent=False, remaining_ms=remaining)

            shown = format_moisture(moisture)
            await self._push.send_to_topic(
                self._topic,
                TITLES[state],
                f"Moisture is at {shown}%",
                {"state": state, "moisture": shown},
            )
            await self._store.set(self._key(state), str(now))
            logger.info("Alert %s dispatched (moisture=%s)", state, shown)
            return DispatchResult(sent=True)
