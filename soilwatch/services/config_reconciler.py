from __future__ import annotations
import asyncio
import logging
from typing import Optional

from ..domain.errors import ThresholdValidationError
from ..domain.interfaces import SourceClient
from ..domain.models import ConfigUpdate, Notice
from .endpoint import BaseUrlState
from .engine import ReconciliationEngine
from .notices import NoticeBus

logger = logging.getLogger(__name__)

THRESHOLD_RULE = "Thresholds must be between 0-100 and low < high"


def validate_thresholds(low: int, high: int) -> None:
    if low < 0 or high > 100 or low >= high:
        raise ThresholdValidationError(THRESHOLD_RULE)


class ConfigReconciler:
    """Writes sparse config changes to the device and merges the reply.

    Applies are queued behind one lock so two partial merges never
    interleave. The device's reply wins over what was requested.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        source: SourceClient,
        endpoint: BaseUrlState,
        notices: NoticeBus,
        timeout: float = 5.0,
    ) -> None:
        self._engine = engine
        self._source = source
        self._endpoint = endpoint
        self._notices = notices
        self._timeout = timeout
        self._lock = asyncio.Lock()

    @property
    def base_url(self) -> str:
        return self._endpoint.value

    async def _apply(
        self,
        update: ConfigUpdate,
        success_text: str,
        failure_text: str,
        fallback_name: Optional[str] = None,
    ) -> Notice:
        async with self._lock:
            self._engine.update(is_applying_config=True)
            try:
                result = await asyncio.wait_for(
                    self._source.update_config(self._endpoint.value, update),
                    timeout=self._timeout,
                )
            except asyncio.CancelledError:
                self._engine.update(is_applying_config=False)
                raise
            except Exception as e:
                message = getattr(e, "message", None) or str(e) or failure_text
                logger.warning("Config apply %s failed: %s", update.present(), message)
                self._engine.update(is_applying_config=False)
                return self._notices.publish("failure", message)

            self._engine.merge_config(
                result,
                clear_history=bool(update.clear_history),
                fallback_name=fallback_name,
            )
            return self._notices.publish("success", success_text)

    async def apply_cooldown(self, cooldown_ms: int) -> Notice:
        return await self._apply(
            ConfigUpdate(cooldown_ms=cooldown_ms),
            "Cooldown updated",
            "Failed to update cooldown",
        )

    async def apply_calibration(self, wet: Optional[int], dry: Optional[int]) -> Notice:
        return await self._apply(
            ConfigUpdate(wet=wet, dry=dry),
            "Calibration saved",
            "Calibration failed",
        )

    async def apply_alert_settings(self, enabled: bool, low: int, high: int) -> Notice:
        try:
            validate_thresholds(low, high)
        except ThresholdValidationError as e:
            return self._notices.publish("validation", str(e))
        return await self._apply(
            ConfigUpdate(alerts_enabled=enabled, alert_low=low, alert_high=high),
            "Alert settings saved",
            "Failed to save alert settings",
        )

    async def update_sensor_name(self, name: str) -> Notice:
        return await self._apply(
            ConfigUpdate(sensor_name=name),
            "Sensor name updated",
            "Failed to update sensor name",
            fallback_name=name,
        )

    async def clear_history(self) -> Notice:
        return await self._apply(
            ConfigUpdate(clear_history=True),
            "History cleared",
            "Failed to clear history",
        )

    async def save_base_url(self, url: str) -> Notice:
        normalized = await self._endpoint.save(url)
        self._engine.update(base_url=normalized)
        return self._notices.publish("info", "Base URL saved")
