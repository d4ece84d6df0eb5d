from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..core.config import settings
from ..domain.errors import PushDeliveryError
from ..domain.models import DeviceSnapshot, Notice
from ..drivers.source_sim import PatternConfig, SimulatedSoilSource
from ..services.alert_throttle import AlertRequestError, AlertThrottle, validate_alert_request
from ..services.config_reconciler import ConfigReconciler
from ..services.engine import ReconciliationEngine
from ..services.notices import NoticeBus
from .schemas import (
    AlertSettingsRequest,
    BaseUrlRequest,
    CalibrationRequest,
    CooldownRequest,
    SensorNameRequest,
    SimMoistureRequest,
    SimPatternRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# Defined here as placeholders; main.py wires the real ones via app.dependency_overrides.
def get_engine() -> ReconciliationEngine:  # overridden in main
    raise RuntimeError("Engine dependency not configured")

def get_reconciler() -> ConfigReconciler:  # overridden in main
    raise RuntimeError("Reconciler dependency not configured")

def get_notices() -> NoticeBus:  # overridden in main
    raise RuntimeError("Notice bus dependency not configured")

def get_throttle() -> AlertThrottle:  # overridden in main
    raise RuntimeError("Alert throttle dependency not configured")

def get_sim_sources() -> dict[str, SimulatedSoilSource]:  # overridden in main
    raise RuntimeError("Simulated sources dependency not configured")


def snapshot_to_dict(s: DeviceSnapshot) -> dict:
    out = asdict(s)
    out["status"] = s.status.value
    out["live_samples"] = [{"t": x.timestamp_ms, "m": x.moisture} for x in s.live_samples]
    out["history"] = [{"t": p.timestamp, "m": p.moisture} for p in s.history]
    return out


def notice_to_dict(n: Notice) -> dict:
    return {"kind": n.kind, "text": n.text, "ts_utc": n.ts_utc.isoformat()}


def _outcome(n: Notice) -> dict:
    return {"ok": n.kind in ("success", "info"), "message": n.text}


@router.get("/snapshot")
async def get_snapshot(engine: ReconciliationEngine = Depends(get_engine)):
    return {"app": settings.app_name, "mode": settings.mode, **snapshot_to_dict(engine.snapshot)}


@router.get("/notices/recent")
async def recent_notices(bus: NoticeBus = Depends(get_notices)):
    return {"notices": [notice_to_dict(n) for n in bus.recent()]}


@router.get("/notices")
async def stream_notices(request: Request, bus: NoticeBus = Depends(get_notices)):
    async def events():
        async with bus.subscribe() as q:
            while not await request.is_disconnected():
                try:
                    notice = await asyncio.wait_for(q.get(), timeout=15.0)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {json.dumps(notice_to_dict(notice))}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


# --- Config actions ---
@router.post("/config/cooldown")
async def apply_cooldown(req: CooldownRequest, rec: ConfigReconciler = Depends(get_reconciler)):
    return _outcome(await rec.apply_cooldown(req.cooldown_ms))


@router.post("/config/calibration")
async def apply_calibration(req: CalibrationRequest, rec: ConfigReconciler = Depends(get_reconciler)):
    if req.wet is None and req.dry is None:
        raise HTTPException(status_code=400, detail="Nothing to calibrate: give wet and/or dry")
    return _outcome(await rec.apply_calibration(req.wet, req.dry))


@router.post("/config/alerts")
async def apply_alert_settings(req: AlertSettingsRequest, rec: ConfigReconciler = Depends(get_reconciler)):
    notice = await rec.apply_alert_settings(req.enabled, req.low, req.high)
    if notice.kind == "validation":
        raise HTTPException(status_code=400, detail=notice.text)
    return _outcome(notice)


@router.post("/config/name")
async def update_sensor_name(req: SensorNameRequest, rec: ConfigReconciler = Depends(get_reconciler)):
    return _outcome(await rec.update_sensor_name(req.name))


@router.post("/history/clear")
async def clear_history(rec: ConfigReconciler = Depends(get_reconciler)):
    return _outcome(await rec.clear_history())


@router.post("/history/refresh")
async def refresh_history(engine: ReconciliationEngine = Depends(get_engine)):
    ok = await engine.refresh_history_once()
    s = engine.snapshot
    return {"ok": ok, "points": len(s.history), "error": s.error_message}


@router.put("/base-url")
async def save_base_url(req: BaseUrlRequest, rec: ConfigReconciler = Depends(get_reconciler)):
    notice = await rec.save_base_url(req.url)
    return {**_outcome(notice), "base_url": rec.base_url}


# --- Alert dispatch (called by the ingestion side) ---
@router.post("/alert")
async def post_alert(request: Request, throttle: AlertThrottle = Depends(get_throttle)):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    try:
        alert = validate_alert_request(payload, settings.alert_shared_secret)
    except AlertRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    try:
        result = await throttle.try_dispatch(alert.state, alert.moisture)
    except PushDeliveryError as e:
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "push_send_failed", "message": str(e) or "Push send failed"},
        )
    except Exception as e:
        logger.exception("Alert dispatch failed: %s", e)
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "dispatch_failed", "message": str(e) or "Alert dispatch failed"},
        )

    if not result.sent:
        return {"ok": False, "reason": "cooldown", "remainingMs": result.remaining_ms}
    return {"ok": True}


# --- Simulation endpoints ---
def _sim(name: str, sources: dict[str, SimulatedSoilSource]) -> SimulatedSoilSource:
    src = sources.get(name)
    if src is None:
        raise HTTPException(status_code=404, detail=f"Unknown sim source: {name}")
    return src


@router.get("/sim/status")
async def sim_status(sources: dict[str, SimulatedSoilSource] = Depends(get_sim_sources)):
    return {name: src.status() for name, src in sources.items()}


@router.post("/sim/{name}/enable")
async def sim_enable(name: str, sources: dict[str, SimulatedSoilSource] = Depends(get_sim_sources)):
    _sim(name, sources).enable()
    return {"ok": True, "enabled": True}


@router.post("/sim/{name}/disable")
async def sim_disable(name: str, sources: dict[str, SimulatedSoilSource] = Depends(get_sim_sources)):
    _sim(name, sources).disable()
    return {"ok": True, "enabled": False}


@router.post("/sim/{name}/manual")
async def sim_set_manual(
    name: str,
    req: SimMoistureRequest,
    sources: dict[str, SimulatedSoilSource] = Depends(get_sim_sources),
):
    _sim(name, sources).set_manual(req.moisture)
    return {"ok": True, "mode": "manual", "moisture": req.moisture}


@router.post("/sim/{name}/pattern")
async def sim_set_pattern(
    name: str,
    req: SimPatternRequest,
    sources: dict[str, SimulatedSoilSource] = Depends(get_sim_sources),
):
    cfg = PatternConfig(**req.model_dump())
    _sim(name, sources).set_pattern(cfg)
    return {"ok": True, "pattern": cfg.__dict__}
