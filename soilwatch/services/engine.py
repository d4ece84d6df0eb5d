from __future__ import annotations
import asyncio
import contextlib
import logging
from dataclasses import replace
from typing import Callable, Optional

from ..core.config import Settings
from ..core.timeutil import now_ms
from ..domain.buffers import SampleBuffer, trim_history
from ..domain.errors import AllSourcesFailed
from ..domain.interfaces import SourceClient
from ..domain.models import ConfigResult, ConnectionStatus, DeviceSnapshot, LiveData
from .endpoint import BaseUrlState, normalize_base_url
from .fallback import SourceRoute, first_success

logger = logging.getLogger(__name__)

LIVE_FAILURE_FALLBACK = "Failed to reach ESP32 or cloud backend"
HISTORY_FAILURE_FALLBACK = "Failed to load history from device or cloud"


class ReconciliationEngine:
    """Keeps one DeviceSnapshot current from a local and a remote source.

    Two independent loops run as asyncio tasks: a fast live poll and a slow
    history poll. Each is sequential with itself. The snapshot is a frozen
    dataclass swapped in one assignment, so readers always see a whole one.
    """

    def __init__(
        self,
        local: SourceClient,
        remote: SourceClient,
        endpoint: BaseUrlState,
        cfg: Settings,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._cfg = cfg
        self._endpoint = endpoint
        self._clock = clock
        remote_base = normalize_base_url(cfg.remote_base_url)
        self._routes = (
            SourceRoute(client=local, base_url=lambda: self._endpoint.value, status=ConnectionStatus.LOCAL),
            SourceRoute(client=remote, base_url=lambda: remote_base, status=ConnectionStatus.REMOTE),
        )

        self._samples = SampleBuffer(cfg.live_window_ms)
        self._snapshot = DeviceSnapshot(base_url=endpoint.value)

        self._live_lock = asyncio.Lock()
        self._history_lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    # --- Read side ---
    @property
    def snapshot(self) -> DeviceSnapshot:
        return self._snapshot

    @property
    def samples(self) -> SampleBuffer:
        return self._samples

    # --- Single writer path ---
    def update(self, **changes) -> DeviceSnapshot:
        prev = self._snapshot
        self._snapshot = replace(prev, **changes)
        if self._snapshot.status is not prev.status:
            logger.info("Connection status %s -> %s", prev.status.value, self._snapshot.status.value)
        return self._snapshot

    def merge_config(
        self,
        result: ConfigResult,
        clear_history: bool = False,
        fallback_name: Optional[str] = None,
    ) -> DeviceSnapshot:
        """Merge an authoritative config response; absent fields keep their value."""
        changes: dict = {"is_applying_config": False}
        for src, dst in (
            ("wet", "wet"),
            ("dry", "dry"),
            ("cooldown_ms", "cooldown_ms"),
            ("alert_low", "alert_low"),
            ("alert_high", "alert_high"),
            ("alerts_enabled", "alerts_enabled"),
            ("name", "sensor_name"),
        ):
            value = getattr(result, src)
            if value is not None:
                changes[dst] = value
        if result.name is None and fallback_name is not None:
            changes["sensor_name"] = fallback_name
        if clear_history:
            self._samples.clear()
            changes.update(history=(), live_samples=(), is_history_loading=False)
        return self.update(**changes)

    def _apply_live(self, status: ConnectionStatus, data: LiveData) -> None:
        prev = self._snapshot
        self.update(
            status=status,
            sensor_name=data.name if data.name is not None else prev.sensor_name,
            moisture=data.moisture,
            raw=data.raw,
            last_updated=data.time,
            ip=data.ip,
            wet=data.wet,
            dry=data.dry,
            interval_ms=data.interval_ms,
            max_points=data.max_points,
            cooldown_ms=data.cooldown_ms,
            alert_low=data.alert_low,
            alert_high=data.alert_high,
            alerts_enabled=data.alerts_enabled,
            live_samples=self._samples.snapshot(),
            error_message=None,
        )

    # --- One cycle of each loop ---
    async def poll_live_once(self) -> ConnectionStatus:
        async with self._live_lock:
            try:
                route, data = await first_success(
                    self._routes,
                    lambda client, base: client.fetch_live(base),
                    timeout=self._cfg.request_timeout_s,
                )
            except AllSourcesFailed as e:
                self.update(
                    status=ConnectionStatus.OFFLINE,
                    error_message=e.message or LIVE_FAILURE_FALLBACK,
                )
                return ConnectionStatus.OFFLINE

            # Receipt time, not the payload's time field
            self._samples.append(data.moisture, self._clock())
            self._apply_live(route.status, data)
            return route.status

    async def refresh_history_once(self) -> bool:
        async with self._history_lock:
            self.update(is_history_loading=True)
            try:
                route, data = await first_success(
                    self._routes,
                    lambda client, base: client.fetch_history(base),
                    timeout=self._cfg.request_timeout_s,
                )
            except asyncio.CancelledError:
                self.update(is_history_loading=False)
                raise
            except AllSourcesFailed as e:
                # Keep showing stale history rather than nothing
                self.update(
                    is_history_loading=False,
                    error_message=e.message or HISTORY_FAILURE_FALLBACK,
                )
                return False

            trimmed = trim_history(data.points, self._cfg.history_window_seconds)
            logger.debug("History from %s: %d points (%d after trim)", route.client.name, len(data.points), len(trimmed))
            self.update(history=trimmed, is_history_loading=False, error_message=None)
            return True

    # --- Lifecycle ---
    async def start(self) -> None:
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self._run_live(), name="live_poll_loop"),
            asyncio.create_task(self._run_history(), name="history_poll_loop"),
        ]

    async def stop(self) -> None:
        self._stop.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run_live(self) -> None:
        logger.info("Live poll loop started (period=%sms)", self._cfg.live_poll_ms)
        while not self._stop.is_set():
            try:
                await self.poll_live_once()
            except Exception as e:
                logger.exception("Live poll error: %s", e)
            await self._sleep(self._cfg.live_poll_ms / 1000.0)
        logger.info("Live poll loop stopped")

    async def _run_history(self) -> None:
        logger.info("History poll loop started (period=%ss)", self._cfg.history_poll_seconds)
        while not self._stop.is_set():
            try:
                await self.refresh_history_once()
            except Exception as e:
                logger.exception("History poll error: %s", e)
            await self._sleep(self._cfg.history_poll_seconds)
        logger.info("History poll loop stopped")
