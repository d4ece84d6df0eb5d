from __future__ import annotations
from typing import Any, Dict, Optional


class InMemoryStore:
    """Single-instance variant of the durable store; state dies with the process."""

    def __init__(self) -> None:
        self._kv: Dict[str, str] = {}
        self._settings: Dict[str, str] = {}

    async def init(self) -> None:
        return None

    async def get(self, key: str) -> Optional[str]:
        return self._kv.get(key)

    async def set(self, key: str, value: str) -> None:
        self._kv[key] = value

    async def get_setting(self, key: str) -> Optional[str]:
        return self._settings.get(key)

    async def set_settings_batch(self, updates: Dict[str, Any]) -> None:
        for key, value in updates.items():
            self._settings[key] = str(value)
