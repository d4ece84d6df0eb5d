import httpx
import pytest

from soilwatch.domain.errors import SourceError
from soilwatch.domain.models import ConfigUpdate
from soilwatch.drivers.http_source import HttpSourceClient, config_query

LIVE_BODY = {
    "raw": 2100,
    "moisture": 42,
    "time": "2024-01-01T00:00:00Z",
    "ip": "192.168.1.50",
    "wet": 1200,
    "dry": 3000,
    "interval": 1000,
    "maxPoints": 14400,
    "notifCooldown": 20000,
    "alertLow": 30,
    "alertHigh": 80,
    "alertsEnabled": False,
}


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_live_parses_wire_names() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=LIVE_BODY)

    async with make_client(handler) as client:
        src = HttpSourceClient("local", client=client)
        live = await src.fetch_live("http://soil.lan/")

    assert seen == ["http://soil.lan/data"]
    assert live.moisture == 42
    assert live.cooldown_ms == 20000
    assert live.interval_ms == 1000
    assert live.alerts_enabled is False
    assert live.name is None


@pytest.mark.asyncio
async def test_fetch_history_maps_t_and_m() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"maxPoints": 10, "points": [{"t": 5, "m": 40}, {"t": 3, "m": 41}]})

    async with make_client(handler) as client:
        src = HttpSourceClient("remote", client=client)
        hist = await src.fetch_history("https://relay.example/fn/")

    assert hist.max_points == 10
    assert [(p.timestamp, p.moisture) for p in hist.points] == [(5, 40), (3, 41)]


@pytest.mark.asyncio
async def test_http_error_becomes_source_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"ok": False})

    async with make_client(handler) as client:
        src = HttpSourceClient("remote", live_path="latest", client=client)
        with pytest.raises(SourceError) as exc:
            await src.fetch_live("https://relay.example/fn/")

    assert exc.value.message == "remote returned HTTP 500"


@pytest.mark.asyncio
async def test_connect_error_becomes_source_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route to host", request=request)

    async with make_client(handler) as client:
        src = HttpSourceClient("local", client=client)
        with pytest.raises(SourceError):
            await src.fetch_live("http://soil.lan/")


@pytest.mark.asyncio
async def test_malformed_payload_becomes_source_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"raw": 1})

    async with make_client(handler) as client:
        src = HttpSourceClient("local", client=client)
        with pytest.raises(SourceError):
            await src.fetch_live("http://soil.lan/")


@pytest.mark.asyncio
async def test_non_json_body_becomes_source_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>captive portal</html>")

    async with make_client(handler) as client:
        src = HttpSourceClient("local", client=client)
        with pytest.raises(SourceError):
            await src.fetch_history("http://soil.lan/")


@pytest.mark.asyncio
async def test_update_config_sends_sparse_query() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        return httpx.Response(
            200,
            json={"ok": True, "wet": 1200, "dry": 3000, "cooldown": 30000, "alertLow": 30, "alertHigh": 80, "alertsEnabled": True},
        )

    async with make_client(handler) as client:
        src = HttpSourceClient("local", client=client)
        result = await src.update_config("http://soil.lan/", ConfigUpdate(cooldown_ms=30000))

    assert seen == [{"cooldown": "30000"}]
    assert result.cooldown_ms == 30000
    assert result.name is None


@pytest.mark.asyncio
async def test_update_config_not_ok_is_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": False})

    async with make_client(handler) as client:
        src = HttpSourceClient("local", client=client)
        with pytest.raises(SourceError):
            await src.update_config("http://soil.lan/", ConfigUpdate(wet=1))


def test_config_query_encodes_flags() -> None:
    q = config_query(ConfigUpdate(alerts_enabled=False, alert_low=10, alert_high=90, sensor_name="Pot", clear_history=True))
    assert q == {"alerts": 0, "alertLow": 10, "alertHigh": 90, "name": "Pot", "clearHistory": 1}
    assert config_query(ConfigUpdate()) == {}
