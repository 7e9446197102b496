from .device import DeviceKind


class BrokerTopics:
    """Static topic names under a fixed namespace, e.g. ``neogest/light``."""

    def __init__(self, namespace: str = "neogest"):
        self.namespace = namespace.strip('/')
        self.light = f"{self.namespace}/light"
        self.fan = f"{self.namespace}/fan"
        self.status = f"{self.namespace}/status"
        self.gateway = f"{self.namespace}/gateway"

    def for_device(self, device: DeviceKind) -> str:
        return {
            DeviceKind.LIGHT: self.light,
            DeviceKind.FAN: self.fan,
        }[device]
