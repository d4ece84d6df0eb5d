from __future__ import annotations
import math
import random
from dataclasses import dataclass, field
from typing import Literal, Optional

from ..core.timeutil import now_utc
from ..domain.errors import SourceError
from ..domain.models import ConfigResult, ConfigUpdate, HistoryData, HistoryPoint, LiveData


PatternType = Literal["manual", "sine", "random"]


@dataclass
class SimDeviceState:
    """What the simulated ESP32 holds in its flash/RAM."""
    name: Optional[str] = "Sim sensor"
    ip: str = "192.168.1.50"
    wet: int = 1200
    dry: int = 3000
    interval_ms: int = 1000
    max_points: int = 14400
    cooldown_ms: int = 20000
    alert_low: int = 30
    alert_high: int = 80
    alerts_enabled: bool = True
    history: list[HistoryPoint] = field(default_factory=list)


@dataclass
class PatternConfig:
    type: PatternType = "sine"
    baseline: float = 50.0
    amplitude: float = 20.0
    period_s: float = 600.0
    noise: float = 2.0


class SimulatedSoilSource:
    """In-process stand-in for the ESP32 (or the relay) used in sim mode.

    Both sim sources can share one ``SimDeviceState`` so that a config write
    through one is visible through the other, like the real relay mirroring
    the device.
    """

    def __init__(self, name: str, device: Optional[SimDeviceState] = None) -> None:
        self.name = name
        self.device = device or SimDeviceState()
        self._enabled = True
        self._manual_value: Optional[int] = None
        self._pattern = PatternConfig()
        self._t0 = now_utc()

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def set_manual(self, moisture: int) -> None:
        self._pattern.type = "manual"
        self._manual_value = int(moisture)

    def set_pattern(self, cfg: PatternConfig) -> None:
        self._pattern = cfg
        if cfg.type != "manual":
            self._manual_value = None

    def _check(self) -> None:
        if not self._enabled:
            raise SourceError(self.name, f"{self.name} offline (simulated)")

    def _moisture(self) -> int:
        p = self._pattern
        if p.type == "manual" and self._manual_value is not None:
            return self._manual_value
        t = (now_utc() - self._t0).total_seconds()
        if p.type == "sine":
            val = p.baseline + p.amplitude * math.sin(2 * math.pi * t / max(p.period_s, 1.0))
        elif p.type == "random":
            val = p.baseline + random.uniform(-p.amplitude, p.amplitude)
        else:
            val = p.baseline
        if p.noise > 0:
            val += random.uniform(-p.noise, p.noise)
        return int(round(min(100.0, max(0.0, val))))

    def _raw_for(self, moisture: int) -> int:
        d = self.device
        return int(d.dry - (d.dry - d.wet) * moisture / 100.0)

    async def fetch_live(self, base_url: str) -> LiveData:
        self._check()
        d = self.device
        moisture = self._moisture()
        ts = now_utc()
        d.history.append(HistoryPoint(timestamp=int(ts.timestamp()), moisture=moisture))
        if len(d.history) > d.max_points:
            del d.history[: len(d.history) - d.max_points]
        return LiveData(
            raw=self._raw_for(moisture),
            moisture=moisture,
            time=ts.isoformat(),
            ip=d.ip,
            wet=d.wet,
            dry=d.dry,
            interval_ms=d.interval_ms,
            max_points=d.max_points,
            cooldown_ms=d.cooldown_ms,
            alert_low=d.alert_low,
            alert_high=d.alert_high,
            alerts_enabled=d.alerts_enabled,
            name=d.name,
        )

    async def fetch_history(self, base_url: str) -> HistoryData:
        self._check()
        return HistoryData(points=tuple(self.device.history), max_points=self.device.max_points)

    async def update_config(self, base_url: str, update: ConfigUpdate) -> ConfigResult:
        self._check()
        d = self.device
        if update.wet is not None:
            d.wet = update.wet
        if update.dry is not None:
            d.dry = update.dry
        # The firmware keeps wet below dry (wet soil reads lower)
        if d.wet > d.dry:
            d.wet, d.dry = d.dry, d.wet
        if update.cooldown_ms is not None:
            d.cooldown_ms = update.cooldown_ms
        if update.alert_low is not None:
            d.alert_low = update.alert_low
        if update.alert_high is not None:
            d.alert_high = update.alert_high
        if update.alerts_enabled is not None:
            d.alerts_enabled = update.alerts_enabled
        if update.sensor_name is not None:
            d.name = update.sensor_name
        if update.clear_history:
            d.history.clear()
        return ConfigResult(
            ok=True,
            wet=d.wet,
            dry=d.dry,
            cooldown_ms=d.cooldown_ms,
            alert_low=d.alert_low,
            alert_high=d.alert_high,
            alerts_enabled=d.alerts_enabled,
            name=d.name,
        )

    def status(self) -> dict:
        return {
            "name": self.name,
            "enabled": self._enabled,
            "manual_value": self._manual_value,
            "pattern": self._pattern.__dict__,
        }
