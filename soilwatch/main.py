from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router
import soilwatch.api.routes as routes_module

from .domain.interfaces import PushDelivery, SourceClient
from .drivers.http_source import HttpSourceClient
from .drivers.push_http import HttpPushDelivery
from .drivers.push_sim import LoggingPushDelivery
from .drivers.source_sim import SimDeviceState, SimulatedSoilSource
from .services.alert_throttle import AlertThrottle
from .services.config_reconciler import ConfigReconciler
from .services.endpoint import BaseUrlState
from .services.engine import ReconciliationEngine
from .services.notices import NoticeBus
from .storage.kv import InMemoryStore
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)


# Shared by both HTTP sources; owned here and closed on shutdown
http_client: httpx.AsyncClient | None = None
sim_sources: dict[str, SimulatedSoilSource] = {}


def build_sources() -> tuple[SourceClient, SourceClient]:
    global http_client

    if settings.mode.lower() == "http":
        http_client = httpx.AsyncClient(timeout=settings.request_timeout_s)
        local = HttpSourceClient(
            "local",
            live_path="data",
            history_path="history",
            config_path="config",
            timeout=settings.request_timeout_s,
            client=http_client,
        )
        remote = HttpSourceClient(
            "remote",
            live_path="latest",
            history_path="history",
            config_path="config",
            timeout=settings.request_timeout_s,
            client=http_client,
        )
        return local, remote

    # default to sim: one device seen through both routes
    device = SimDeviceState()
    sim_sources["local"] = SimulatedSoilSource("local", device)
    sim_sources["remote"] = SimulatedSoilSource("remote", device)
    return sim_sources["local"], sim_sources["remote"]


def build_store() -> SQLiteRepository | InMemoryStore:
    if settings.store.lower() == "memory":
        logger.warning("store=memory: alert cooldowns and the saved base URL are lost on restart")
        return InMemoryStore()
    return SQLiteRepository(settings.sqlite_path)


def build_push() -> PushDelivery:
    if settings.push_gateway_url:
        return HttpPushDelivery(settings.push_gateway_url, timeout=settings.push_timeout_s)
    logger.warning("push_gateway_url not set, alerts will only be logged")
    return LoggingPushDelivery()


# --- Singletons ---
local_source, remote_source = build_sources()
repo = build_store()
notices = NoticeBus()
endpoint = BaseUrlState(store=repo, default=settings.default_base_url)
engine = ReconciliationEngine(local_source, remote_source, endpoint, settings)
reconciler = ConfigReconciler(engine, local_source, endpoint, notices, timeout=settings.request_timeout_s)
throttle = AlertThrottle(
    store=repo,
    push=build_push(),
    cooldown_ms=settings.alert_cooldown_ms,
    topic=settings.alert_topic,
)


def get_engine() -> ReconciliationEngine:
    return engine


def get_reconciler() -> ConfigReconciler:
    return reconciler


def get_notices() -> NoticeBus:
    return notices


def get_throttle() -> AlertThrottle:
    return throttle


def get_sim_sources() -> dict[str, SimulatedSoilSource]:
    return sim_sources


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (mode=%s)", settings.app_name, settings.mode)

    await repo.init()
    base = await endpoint.load()
    engine.update(base_url=base)

    await engine.start()

    try:
        yield
    finally:
        await engine.stop()

        if http_client is not None:
            await http_client.aclose()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_engine] = get_engine
app.dependency_overrides[routes_module.get_reconciler] = get_reconciler
app.dependency_overrides[routes_module.get_notices] = get_notices
app.dependency_overrides[routes_module.get_throttle] = get_throttle
app.dependency_overrides[routes_module.get_sim_sources] = get_sim_sources

app.include_router(api_router, prefix="/api")
