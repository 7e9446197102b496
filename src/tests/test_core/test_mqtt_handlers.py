import pytest
from device_link.handlers.mqtt_handlers import MQTTMessageHandlers
from device_link.models.device import DeviceStatus
from device_link.storage.cache import StatusCache
from device_link.utils.exceptions import MalformedStatusPayload

STATUS_TOPIC = "neogest/status"


@pytest.fixture
def cache():
    return StatusCache()


@pytest.fixture
def handlers(cache):
    return MQTTMessageHandlers(cache)


@pytest.mark.asyncio
async def test_status_message_updates_cache(handlers, cache):
    await handlers.status_handler(STATUS_TOPIC, {"light": True, "fan": False})

    assert cache.read() == DeviceStatus(connected=True, light=True, fan=False)


@pytest.mark.asyncio
async def test_status_message_sets_connected_even_if_payload_says_otherwise(handlers, cache):
    await handlers.status_handler(
        STATUS_TOPIC,
        {"connected": False, "light": False, "fan": True, "ip": "192.168.4.1", "rssi": -61}
    )

    status = cache.read()
    assert status.connected is True
    assert status.fan is True
    assert status.ip == "192.168.4.1"
    assert status.rssi == -61


@pytest.mark.asyncio
async def test_string_payload_is_parsed(handlers, cache):
    await handlers.status_handler(STATUS_TOPIC, '{"light": true, "fan": true}')

    assert cache.read() == DeviceStatus(connected=True, light=True, fan=True)


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    "not json {",
    b"\xff\xfe",
    [1, 2, 3],
    42,
    {"light": "maybe"},
    {"rssi": "strong"},
])
async def test_malformed_payload_leaves_cache_unchanged(handlers, cache, payload):
    previous = DeviceStatus(connected=True, light=True, fan=False, ip="10.0.0.3", rssi=-70)
    cache.write(previous)

    await handlers.status_handler(STATUS_TOPIC, payload)

    assert cache.read() == previous


def test_parse_status_rejects_non_objects():
    with pytest.raises(MalformedStatusPayload):
        MQTTMessageHandlers.parse_status("[]")


def test_parse_status_ignores_unknown_fields():
    status = MQTTMessageHandlers.parse_status({"light": True, "uptime": 1234})

    assert status == DeviceStatus(connected=True, light=True)


@pytest.mark.asyncio
async def test_rssi_keeps_its_integer_type(handlers, cache):
    await handlers.status_handler(STATUS_TOPIC, '{"light": false, "fan": false, "rssi": -61}')

    rssi = cache.read().rssi
    assert isinstance(rssi, int)
    assert rssi == -61


@pytest.mark.asyncio
async def test_double_encoded_payload_is_rejected(handlers, cache):
    previous = DeviceStatus(connected=True, light=False, fan=False)
    cache.write(previous)

    await handlers.status_handler(STATUS_TOPIC, '"{\\"light\\": true}"')

    assert cache.read() == previous


@pytest.mark.asyncio
async def test_status_callback_sees_every_accepted_record(cache):
    seen = []
    handlers = MQTTMessageHandlers(cache, on_status=seen.append)

    await handlers.status_handler(STATUS_TOPIC, {"light": True, "fan": True})
    await handlers.status_handler(STATUS_TOPIC, "not json {")

    assert seen == [DeviceStatus(connected=True, light=True, fan=True)]
