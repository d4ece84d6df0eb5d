from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..domain.errors import SourceError
from ..domain.models import ConfigResult, ConfigUpdate, HistoryData, HistoryPoint, LiveData

logger = logging.getLogger(__name__)


# --- Wire payloads (camelCase keys as served by the ESP32 and the relay) ---
class _LivePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    raw: int = 0
    moisture: int
    time: str = ""
    ip: str = ""
    wet: int = 0
    dry: int = 0
    interval: int = 0
    max_points: int = Field(default=0, alias="maxPoints")
    notif_cooldown: int = Field(default=0, alias="notifCooldown")
    alert_low: int = Field(default=0, alias="alertLow")
    alert_high: int = Field(default=0, alias="alertHigh")
    alerts_enabled: bool = Field(default=True, alias="alertsEnabled")
    name: Optional[str] = None


class _HistoryPointPayload(BaseModel):
    t: int
    m: int


class _HistoryPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    max_points: int = Field(default=0, alias="maxPoints")
    points: list[_HistoryPointPayload] = Field(default_factory=list)


class _ConfigPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ok: bool = True
    wet: Optional[int] = None
    dry: Optional[int] = None
    cooldown: Optional[int] = None
    alert_low: Optional[int] = Field(default=None, alias="alertLow")
    alert_high: Optional[int] = Field(default=None, alias="alertHigh")
    alerts_enabled: Optional[bool] = Field(default=None, alias="alertsEnabled")
    name: Optional[str] = None


def config_query(update: ConfigUpdate) -> dict[str, Any]:
    """Query parameters for ``/config``; absent fields are not sent."""
    params: dict[str, Any] = {}
    if update.wet is not None:
        params["wet"] = update.wet
    if update.dry is not None:
        params["dry"] = update.dry
    if update.cooldown_ms is not None:
        params["cooldown"] = update.cooldown_ms
    if update.alert_low is not None:
        params["alertLow"] = update.alert_low
    if update.alert_high is not None:
        params["alertHigh"] = update.alert_high
    if update.alerts_enabled is not None:
        params["alerts"] = 1 if update.alerts_enabled else 0
    if update.sensor_name is not None:
        params["name"] = update.sensor_name
    if update.clear_history:
        params["clearHistory"] = 1
    return params


class HttpSourceClient:
    """JSON-over-HTTP source: the ESP32 on the LAN or the cloud relay.

    Both speak the same payloads; they differ only in the path names.
    """

    def __init__(
        self,
        name: str,
        live_path: str = "data",
        history_path: str = "history",
        config_path: str = "config",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.name = name
        self._live_path = live_path
        self._history_path = history_path
        self._config_path = config_path
        self._timeout = timeout
        self._client = client

    async def _get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException as e:
            raise SourceError(self.name, f"{self.name} timed out") from e
        except httpx.HTTPStatusError as e:
            raise SourceError(self.name, f"{self.name} returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SourceError(self.name, f"{self.name} unreachable: {e}") from e
        except ValueError as e:
            raise SourceError(self.name, f"{self.name} sent invalid JSON") from e

    async def fetch_live(self, base_url: str) -> LiveData:
        data = await self._get_json(base_url + self._live_path)
        try:
            p = _LivePayload.model_validate(data)
        except ValidationError as e:
            raise SourceError(self.name, f"{self.name} sent malformed live data") from e
        return LiveData(
            raw=p.raw,
            moisture=p.moisture,
            time=p.time,
            ip=p.ip,
            wet=p.wet,
            dry=p.dry,
            interval_ms=p.interval,
            max_points=p.max_points,
            cooldown_ms=p.notif_cooldown,
            alert_low=p.alert_low,
            alert_high=p.alert_high,
            alerts_enabled=p.alerts_enabled,
            name=p.name,
        )

    async def fetch_history(self, base_url: str) -> HistoryData:
        data = await self._get_json(base_url + self._history_path)
        try:
            p = _HistoryPayload.model_validate(data)
        except ValidationError as e:
            raise SourceError(self.name, f"{self.name} sent malformed history") from e
        return HistoryData(
            points=tuple(HistoryPoint(timestamp=pt.t, moisture=pt.m) for pt in p.points),
            max_points=p.max_points,
        )

    async def update_config(self, base_url: str, update: ConfigUpdate) -> ConfigResult:
        params = config_query(update)
        logger.info("%s config update: %s", self.name, params)
        data = await self._get_json(base_url + self._config_path, params=params)
        try:
            p = _ConfigPayload.model_validate(data)
        except ValidationError as e:
            raise SourceError(self.name, f"{self.name} sent malformed config response") from e
        if not p.ok:
            raise SourceError(self.name, f"{self.name} rejected the config change")
        return ConfigResult(
            ok=p.ok,
            wet=p.wet,
            dry=p.dry,
            cooldown_ms=p.cooldown,
            alert_low=p.alert_low,
            alert_high=p.alert_high,
            alerts_enabled=p.alerts_enabled,
            name=p.name,
        )
