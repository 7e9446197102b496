import threading
from device_link.models.device import DeviceStatus
from device_link.storage.cache import StatusCache


def test_starts_unknown():
    cache = StatusCache()
    status = cache.read()

    assert status == DeviceStatus()
    assert status.connected is False
    assert cache.updated_at is None
    assert cache.get_stats() == {"connected": False, "updated_at": None}


def test_write_replaces_whole_record():
    cache = StatusCache()
    cache.write(DeviceStatus(connected=True, light=True, fan=True, ip="10.0.0.7", rssi=-40))
    cache.write(DeviceStatus(connected=True, light=False))

    status = cache.read()
    assert status == DeviceStatus(connected=True, light=False, fan=False, ip=None, rssi=None)
    assert cache.updated_at is not None


def test_read_returns_a_copy():
    cache = StatusCache()
    cache.write(DeviceStatus(connected=True, light=True))

    snapshot = cache.read()
    snapshot.light = False

    assert cache.read().light is True


def test_writer_keeps_no_alias_to_cache():
    cache = StatusCache()
    status = DeviceStatus(connected=True, fan=True)
    cache.write(status)
    status.fan = False

    assert cache.read().fan is True


def test_concurrent_reads_never_see_mixed_records():
    cache = StatusCache()
    first = DeviceStatus(connected=True, light=True, fan=False, ip="10.0.0.1", rssi=-10)
    second = DeviceStatus(connected=True, light=False, fan=True, ip="10.0.0.2", rssi=-90)
    stop = threading.Event()
    torn = []

    def writer():
        for i in range(2000):
            cache.write(first if i % 2 else second)
        stop.set()

    def reader():
        while not stop.is_set():
            status = cache.read()
            if status not in (first, second, DeviceStatus()):
                torn.append(status)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()
    writer()
    for thread in readers:
        thread.join()

    assert torn == []
