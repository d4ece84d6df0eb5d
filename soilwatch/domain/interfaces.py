from __future__ import annotations
from typing import Any, Optional, Protocol, runtime_checkable
from .models import ConfigResult, ConfigUpdate, HistoryData, LiveData


@runtime_checkable
class SourceClient(Protocol):
    name: str

    async def fetch_live(self, base_url: str) -> LiveData:
        ...

    async def fetch_history(self, base_url: str) -> HistoryData:
        ...

    async def update_config(self, base_url: str, update: ConfigUpdate) -> ConfigResult:
        ...


@runtime_checkable
class PushDelivery(Protocol):
    async def send_to_topic(self, topic: str, title: str, body: str, data: dict[str, str]) -> None:
        """Raise PushDeliveryError when the notification was not accepted."""
        ...


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


@runtime_checkable
class SettingsStore(Protocol):
    async def get_setting(self, key: str) -> Optional[str]:
        ...

    async def set_settings_batch(self, updates: dict[str, Any]) -> None:
        ...
