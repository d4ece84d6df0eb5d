from __future__ import annotations
import logging
from typing import Optional

from ..domain.interfaces import SettingsStore

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://soilmonitor.local/"
BASE_URL_KEY = "base_url"


def normalize_base_url(raw: Optional[str], default: str = DEFAULT_BASE_URL) -> str:
    trimmed = (raw or "").strip()
    if not trimmed:
        return default
    if not (trimmed.startswith("http://") or trimmed.startswith("https://")):
        trimmed = f"http://{trimmed}"
    return trimmed if trimmed.endswith("/") else f"{trimmed}/"


class BaseUrlState:
    """The user-chosen device URL. Read on every request, so changes apply
    to the next poll or config write without restarting anything."""

    def __init__(self, store: Optional[SettingsStore] = None, default: str = DEFAULT_BASE_URL) -> None:
        self._store = store
        self._default = normalize_base_url(default)
        self._value = self._default

    @property
    def value(self) -> str:
        return self._value

    async def load(self) -> str:
        if self._store is not None:
            saved = await self._store.get_setting(BASE_URL_KEY)
            self._value = normalize_base_url(saved, self._default)
        logger.info("Device base URL: %s", self._value)
        return self._value

    async def save(self, raw: str) -> str:
        normalized = normalize_base_url(raw, self._default)
        if self._store is not None:
            await self._store.set_settings_batch({BASE_URL_KEY: normalized})
        self._value = normalized
        logger.info("Device base URL changed to %s", normalized)
        return normalized
