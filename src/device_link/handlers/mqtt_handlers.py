from typing import Any, Callable, Optional
import json
from pydantic import ValidationError
from ..utils.logging import get_logger
from ..utils.exceptions import MalformedStatusPayload
from ..models.device import DeviceStatus
from ..storage.cache import StatusCache

logger = get_logger(__name__)

class MQTTMessageHandlers:
    def __init__(self, status_cache: StatusCache, on_status: Optional[Callable[[DeviceStatus], None]] = None):
        self.status_cache = status_cache
        self.on_status = on_status

    @staticmethod
    def parse_status(payload: Any) -> DeviceStatus:
        """Turn a status topic payload into a DeviceStatus.

        The adapter hands over a dict or list when the payload was a JSON
        object or array and the raw text otherwise.
        """
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode(errors="replace")
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as e:
                raise MalformedStatusPayload(f"Status payload is not JSON: {e}")
        if not isinstance(payload, dict):
            raise MalformedStatusPayload(f"Status payload is not an object: {payload!r}")
        try:
            status = DeviceStatus(**payload)
        except ValidationError as e:
            raise MalformedStatusPayload(f"Invalid status fields: {e}")
        return status.model_copy(update={"connected": True})

    async def status_handler(self, topic: str, payload: Any) -> None:
        """Handle device status reports
        Expected topic format: {namespace}/status
        Expected payload format: {"light": true, "fan": false, "ip": "192.168.4.1", "rssi": -61}
        """
        try:
            status = self.parse_status(payload)
        except MalformedStatusPayload as e:
            logger.error(f"Dropping status message on {topic}: {e}")
            return

        self.status_cache.write(status)
        if self.on_status:
            self.on_status(status)
        logger.info(f"Device status from {topic}: light={status.light} fan={status.fan}")
