from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ConnectionStatus(str, Enum):
    CONNECTING = "CONNECTING"
    LOCAL = "LOCAL"
    REMOTE = "REMOTE"
    OFFLINE = "OFFLINE"


@dataclass(frozen=True)
class LiveSample:
    timestamp_ms: int  # receipt time, not the device's clock
    moisture: int


@dataclass(frozen=True)
class HistoryPoint:
    timestamp: int  # seconds since epoch
    moisture: int


@dataclass(frozen=True)
class LiveData:
    raw: int
    moisture: int
    time: str
    ip: str
    wet: int
    dry: int
    interval_ms: int
    max_points: int
    cooldown_ms: int
    alert_low: int
    alert_high: int
    alerts_enabled: bool
    name: Optional[str] = None


@dataclass(frozen=True)
class HistoryData:
    points: tuple[HistoryPoint, ...]
    max_points: int = 0


@dataclass(frozen=True)
class ConfigUpdate:
    """Sparse config change. ``None`` fields are left untouched on the device."""
    wet: Optional[int] = None
    dry: Optional[int] = None
    cooldown_ms: Optional[int] = None
    alert_low: Optional[int] = None
    alert_high: Optional[int] = None
    alerts_enabled: Optional[bool] = None
    sensor_name: Optional[str] = None
    clear_history: Optional[bool] = None

    def present(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class ConfigResult:
    ok: bool = True
    wet: Optional[int] = None
    dry: Optional[int] = None
    cooldown_ms: Optional[int] = None
    alert_low: Optional[int] = None
    alert_high: Optional[int] = None
    alerts_enabled: Optional[bool] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class DeviceSnapshot:
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    base_url: str = ""
    sensor_name: Optional[str] = None
    moisture: Optional[int] = None
    raw: Optional[int] = None
    last_updated: Optional[str] = None
    ip: Optional[str] = None
    wet: Optional[int] = None
    dry: Optional[int] = None
    interval_ms: Optional[int] = None
    max_points: Optional[int] = None
    cooldown_ms: Optional[int] = None
    alert_low: Optional[int] = None
    alert_high: Optional[int] = None
    alerts_enabled: bool = True
    live_samples: tuple[LiveSample, ...] = ()
    history: tuple[HistoryPoint, ...] = ()
    error_message: Optional[str] = None
    is_history_loading: bool = False
    is_applying_config: bool = False


@dataclass(frozen=True)
class Notice:
    kind: str  # "success" | "failure" | "validation" | "info"
    text: str
    ts_utc: datetime


@dataclass(frozen=True)
class DispatchResult:
    sent: bool
    remaining_ms: int = 0
