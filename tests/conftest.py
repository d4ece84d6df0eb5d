from __future__ import annotations

import asyncio
from typing import Optional, Union

import pytest

from soilwatch.core.config import Settings
from soilwatch.domain.errors import PushDeliveryError, SourceError
from soilwatch.domain.models import ConfigResult, ConfigUpdate, HistoryData, HistoryPoint, LiveData
from soilwatch.services.endpoint import BaseUrlState
from soilwatch.services.engine import ReconciliationEngine
from soilwatch.services.notices import NoticeBus
from soilwatch.storage.kv import InMemoryStore


def make_live(moisture: int = 42, **overrides) -> LiveData:
    fields = dict(
        raw=2100,
        moisture=moisture,
        time="2024-01-01T00:00:00Z",
        ip="192.168.1.50",
        wet=1200,
        dry=3000,
        interval_ms=1000,
        max_points=14400,
        cooldown_ms=20000,
        alert_low=30,
        alert_high=80,
        alerts_enabled=True,
        name="Balcony",
    )
    fields.update(overrides)
    return LiveData(**fields)


Outcome = Union[LiveData, HistoryData, ConfigResult, BaseException]


class FakeSource:
    """Scripted SourceClient. Set ``live``/``history``/``config`` to a value or an exception."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.live: Outcome = SourceError(name, f"{name} down")
        self.history: Outcome = SourceError(name, f"{name} down")
        self.config: Outcome = ConfigResult(ok=True)
        self.live_calls: list[str] = []
        self.history_calls: list[str] = []
        self.config_calls: list[ConfigUpdate] = []
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    @staticmethod
    def _resolve(outcome: Outcome):
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def fetch_live(self, base_url: str) -> LiveData:
        self.live_calls.append(base_url)
        return self._resolve(self.live)

    async def fetch_history(self, base_url: str) -> HistoryData:
        self.history_calls.append(base_url)
        return self._resolve(self.history)

    async def update_config(self, base_url: str, update: ConfigUpdate) -> ConfigResult:
        self.config_calls.append(update)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            return self._resolve(self.config)
        finally:
            self.in_flight -= 1


class FakePush:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail_next = 0

    async def send_to_topic(self, topic: str, title: str, body: str, data: dict[str, str]) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise PushDeliveryError("FCM send failed")
        self.sent.append({"topic": topic, "title": title, "body": body, "data": data})


class FakeClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def points(*pairs: tuple[int, int]) -> tuple[HistoryPoint, ...]:
    return tuple(HistoryPoint(timestamp=t, moisture=m) for t, m in pairs)


@pytest.fixture
def cfg() -> Settings:
    return Settings(
        _env_file=None,
        live_poll_ms=10,
        history_poll_seconds=1,
        request_timeout_s=1.0,
        remote_base_url="https://relay.example/fn/",
        default_base_url="http://soil.lan/",
    )


@pytest.fixture
def local() -> FakeSource:
    return FakeSource("local")


@pytest.fixture
def remote() -> FakeSource:
    return FakeSource("remote")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_700_000_000_000)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def endpoint(cfg, store) -> BaseUrlState:
    return BaseUrlState(store=store, default=cfg.default_base_url)


@pytest.fixture
def notices() -> NoticeBus:
    return NoticeBus()


@pytest.fixture
def engine(local, remote, endpoint, cfg, clock) -> ReconciliationEngine:
    return ReconciliationEngine(local, remote, endpoint, cfg, clock=clock)
