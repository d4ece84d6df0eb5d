import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import soilwatch.api.routes as routes_module
from soilwatch.core.config import settings
from soilwatch.domain.models import ConfigResult
from soilwatch.drivers.source_sim import SimulatedSoilSource
from soilwatch.services.alert_throttle import AlertThrottle
from soilwatch.services.config_reconciler import ConfigReconciler

from conftest import FakeClock, FakePush, make_live


@pytest.fixture
def push() -> FakePush:
    return FakePush()


@pytest.fixture
def alert_clock() -> FakeClock:
    return FakeClock(1_000_000)


@pytest.fixture
def client(engine, local, endpoint, notices, store, push, alert_clock, monkeypatch):
    monkeypatch.setattr(settings, "alert_shared_secret", "s3cret")
    reconciler = ConfigReconciler(engine, local, endpoint, notices, timeout=1.0)
    throttle = AlertThrottle(store=store, push=push, cooldown_ms=20000, clock=alert_clock)

    app = FastAPI()
    app.dependency_overrides[routes_module.get_engine] = lambda: engine
    app.dependency_overrides[routes_module.get_reconciler] = lambda: reconciler
    app.dependency_overrides[routes_module.get_notices] = lambda: notices
    app.dependency_overrides[routes_module.get_throttle] = lambda: throttle
    app.dependency_overrides[routes_module.get_sim_sources] = lambda: {}
    app.include_router(routes_module.router, prefix="/api")
    with TestClient(app) as c:
        yield c


def test_snapshot_starts_connecting(client) -> None:
    body = client.get("/api/snapshot").json()
    assert body["status"] == "CONNECTING"
    assert body["history"] == []
    assert body["error_message"] is None


def test_alert_endpoint_status_codes(client, push, alert_clock) -> None:
    assert client.post("/api/alert", json={"secret": "nope", "state": "low", "moisture": 5}).status_code == 401
    assert client.post("/api/alert", json={"secret": "s3cret", "state": "mid", "moisture": 5}).status_code == 400
    assert client.post("/api/alert", json={"secret": "s3cret", "state": "low", "moisture": "dry"}).status_code == 400
    assert client.post("/api/alert", content=b"{not json", headers={"content-type": "application/json"}).status_code == 400

    ok = client.post("/api/alert", json={"secret": "s3cret", "state": "low", "moisture": 12})
    assert ok.status_code == 200
    assert ok.json() == {"ok": True}

    alert_clock.now += 5000
    cooled = client.post("/api/alert", json={"secret": "s3cret", "state": "low", "moisture": 12})
    assert cooled.status_code == 200
    assert cooled.json() == {"ok": False, "reason": "cooldown", "remainingMs": 15000}
    assert len(push.sent) == 1


def test_alert_push_failure_is_500(client, push) -> None:
    push.fail_next = 1
    resp = client.post("/api/alert", json={"secret": "s3cret", "state": "high", "moisture": 97})
    assert resp.status_code == 500
    assert resp.json()["error"] == "push_send_failed"

    retry = client.post("/api/alert", json={"secret": "s3cret", "state": "high", "moisture": 97})
    assert retry.json() == {"ok": True}


def test_bad_thresholds_rejected_before_device(client, local) -> None:
    resp = client.post("/api/config/alerts", json={"enabled": True, "low": 60, "high": 40})
    assert resp.status_code == 400
    assert local.config_calls == []


def test_cooldown_action_merges_into_snapshot(client, local) -> None:
    local.config = ConfigResult(ok=True, cooldown_ms=45000, wet=1000, dry=3200)
    resp = client.post("/api/config/cooldown", json={"cooldown_ms": 45000})
    assert resp.json() == {"ok": True, "message": "Cooldown updated"}

    snap = client.get("/api/snapshot").json()
    assert snap["cooldown_ms"] == 45000
    assert snap["dry"] == 3200

    recent = client.get("/api/notices/recent").json()["notices"]
    assert recent[-1]["text"] == "Cooldown updated"


def test_empty_calibration_is_400(client) -> None:
    assert client.post("/api/config/calibration", json={}).status_code == 400


def test_history_refresh_and_base_url(client, local) -> None:
    local.live = make_live(40)
    resp = client.post("/api/history/refresh")
    assert resp.json()["ok"] is False

    resp = client.put("/api/base-url", json={"url": "10.1.1.1"})
    assert resp.json() == {"ok": True, "message": "Base URL saved", "base_url": "http://10.1.1.1/"}
    assert client.get("/api/snapshot").json()["base_url"] == "http://10.1.1.1/"


def test_alert_non_ascii_secret_is_401(client, push) -> None:
    resp = client.post("/api/alert", json={"secret": "é", "state": "low", "moisture": 10})
    assert resp.status_code == 401
    assert push.sent == []


def test_alert_huge_moisture_is_400(client) -> None:
    resp = client.post("/api/alert", content=b'{"secret": "s3cret", "state": "low", "moisture": 1' + b"0" * 400 + b"}",
                       headers={"content-type": "application/json"})
    assert resp.status_code == 400


@pytest.fixture
def sim_client(engine, local, endpoint, notices):
    sources = {"local": SimulatedSoilSource("local")}
    app = FastAPI()
    app.dependency_overrides[routes_module.get_engine] = lambda: engine
    app.dependency_overrides[routes_module.get_notices] = lambda: notices
    app.dependency_overrides[routes_module.get_sim_sources] = lambda: sources
    app.include_router(routes_module.router, prefix="/api")
    with TestClient(app) as c:
        yield c, sources


def test_sim_pattern_drives_generated_moisture(sim_client) -> None:
    client, sources = sim_client
    resp = client.post(
        "/api/sim/local/pattern",
        json={"type": "random", "baseline": 70, "amplitude": 0, "noise": 0},
    )
    assert resp.status_code == 200
    assert resp.json()["pattern"]["type"] == "random"

    status = client.get("/api/sim/status").json()["local"]
    assert status["pattern"]["baseline"] == 70
    assert status["manual_value"] is None

    live = asyncio.run(sources["local"].fetch_live("http://sim/"))
    assert live.moisture == 70


def test_sim_pattern_clears_manual_value(sim_client) -> None:
    client, sources = sim_client
    client.post("/api/sim/local/manual", json={"moisture": 12})
    assert client.get("/api/sim/status").json()["local"]["manual_value"] == 12

    client.post("/api/sim/local/pattern", json={"type": "sine", "baseline": 50, "amplitude": 0, "noise": 0})
    status = client.get("/api/sim/status").json()["local"]
    assert status["manual_value"] is None
    assert asyncio.run(sources["local"].fetch_live("http://sim/")).moisture == 50


def test_sim_pattern_rejects_unknown_source_and_type(sim_client) -> None:
    client, _ = sim_client
    assert client.post("/api/sim/nope/pattern", json={"type": "sine"}).status_code == 404
    assert client.post("/api/sim/local/pattern", json={"type": "ramp"}).status_code == 422
