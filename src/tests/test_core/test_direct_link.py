import asyncio
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils
from device_link.core.direct_link import DirectLinkClient
from device_link.models.device import Action, DeviceKind, DeviceStatus
from device_link.utils.exceptions import DirectLinkUnreachable


@pytest_asyncio.fixture
async def device():
    """In-process stand-in for the controller's HTTP endpoint"""
    state = {"received": [], "status": {"light": True, "fan": False, "ip": "192.168.4.1", "rssi": -58}}

    async def control(request):
        state["received"].append(await request.json())
        return web.json_response({"ok": True})

    async def status(request):
        return web.json_response(state["status"])

    async def health(request):
        return web.Response(text="OK")

    async def slow(request):
        await asyncio.sleep(0.5)
        return web.json_response({})

    async def broken(request):
        return web.Response(status=500, text="oops")

    async def garbage(request):
        return web.Response(text="<html>not json</html>")

    app = web.Application()
    app.router.add_post("/control", control)
    app.router.add_get("/status", status)
    app.router.add_get("/health", health)
    app.router.add_route("*", "/slow", slow)
    app.router.add_route("*", "/broken", broken)
    app.router.add_get("/garbage", garbage)

    server = test_utils.TestServer(app)
    await server.start_server()
    state["address"] = f"http://{server.host}:{server.port}"
    yield state
    await server.close()


@pytest_asyncio.fixture
async def client(device):
    client = DirectLinkClient({"address": device["address"], "timeout": 0.2})
    await client.start()
    yield client
    await client.stop()


@pytest.mark.asyncio
async def test_send_command_posts_device_and_action(client, device):
    result = await client.send_command(DeviceKind.LIGHT, Action.ON)

    assert result.delivered is True
    assert result.error is None
    assert device["received"] == [{"device": "light", "action": "ON"}]


@pytest.mark.asyncio
async def test_send_command_timeout_is_a_failed_result(device):
    client = DirectLinkClient({
        "address": device["address"],
        "timeout": 0.1,
        "endpoints": {"control": "/slow"},
    })
    await client.start()
    try:
        result = await client.send_command(DeviceKind.FAN, Action.OFF)
    finally:
        await client.stop()

    assert result.delivered is False
    assert result.error


@pytest.mark.asyncio
async def test_send_command_non_2xx_is_a_failed_result(device):
    client = DirectLinkClient({"address": device["address"], "endpoints": {"control": "/broken"}})
    await client.start()
    try:
        result = await client.send_command(DeviceKind.FAN, Action.ON)
    finally:
        await client.stop()

    assert result.delivered is False


@pytest.mark.asyncio
async def test_connection_refused_is_a_failed_result():
    client = DirectLinkClient({"address": "http://127.0.0.1:1", "timeout": 0.5})
    await client.start()
    try:
        result = await client.send_command(DeviceKind.LIGHT, Action.OFF)
        with pytest.raises(DirectLinkUnreachable):
            await client.query_status()
        assert await client.check_health() is False
    finally:
        await client.stop()

    assert result.delivered is False


@pytest.mark.asyncio
async def test_send_command_without_session_is_a_failed_result():
    client = DirectLinkClient({"address": "http://127.0.0.1:1"})

    result = await client.send_command(DeviceKind.LIGHT, Action.ON)

    assert result.delivered is False


@pytest.mark.asyncio
async def test_query_status_returns_live_record(client):
    status = await client.query_status()

    assert status == DeviceStatus(connected=True, light=True, fan=False, ip="192.168.4.1", rssi=-58)


@pytest.mark.asyncio
@pytest.mark.parametrize("endpoint", ["/slow", "/broken", "/garbage"])
async def test_query_status_failures_raise_unreachable(device, endpoint):
    client = DirectLinkClient({
        "address": device["address"],
        "timeout": 0.1,
        "endpoints": {"status": endpoint},
    })
    await client.start()
    try:
        with pytest.raises(DirectLinkUnreachable):
            await client.query_status()
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_query_status_rejects_invalid_record(client, device):
    device["status"] = {"light": "dimmed"}

    with pytest.raises(DirectLinkUnreachable):
        await client.query_status()


@pytest.mark.asyncio
async def test_check_health(client):
    assert await client.check_health() is True
