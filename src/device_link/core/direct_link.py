from typing import Dict, Any
import asyncio
import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from ..adapters.rest import RestAPIAdapter
from ..models.device import Action, DeviceKind, DeviceStatus, DirectLinkResult
from ..utils.logging import get_logger
from ..utils.exceptions import DirectLinkUnreachable

logger = get_logger(__name__)

# Everything a single device call can fail with
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError, RuntimeError)


class DeviceEndpoints(BaseModel):
    control: str = "/control"
    status: str = "/status"
    health: str = "/health"


class DirectLinkConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str = Field("http://192.168.4.1", description="Base URL of the device")
    timeout: float = Field(3.0, gt=0, description="Per-request timeout in seconds")
    endpoints: DeviceEndpoints = Field(default_factory=DeviceEndpoints)
    wait_for_command: bool = Field(False, description="Hold control requests until the direct call answers")


class DirectLinkClient:
    """Point-to-point calls to the device's own HTTP endpoint.

    No retries: each call is one request that either answers or fails within
    the configured timeout.
    """
    def __init__(self, config: Dict[str, Any]):
        self.config = DirectLinkConfig(**config)
        self.rest = RestAPIAdapter(self.config.address, timeout=self.config.timeout)

    async def start(self) -> None:
        await self.rest.connect()

    async def stop(self) -> None:
        await self.rest.disconnect()

    async def send_command(self, device: DeviceKind, action: Action) -> DirectLinkResult:
        try:
            await self.rest.post(
                self.config.endpoints.control,
                {"device": device.value, "action": action.value}
            )
            logger.debug(f"Direct command {device.value}={action.value} delivered")
            return DirectLinkResult(delivered=True)
        except TRANSPORT_ERRORS as e:
            reason = str(e) or type(e).__name__
            logger.warning(f"Direct command {device.value}={action.value} failed: {reason}")
            return DirectLinkResult(delivered=False, error=reason)

    async def query_status(self) -> DeviceStatus:
        """Ask the device for its current status.

        Raises:
            DirectLinkUnreachable: timeout, refused connection, non-2xx answer
                or a body that is not a status record.
        """
        try:
            body = await self.rest.get(self.config.endpoints.status)
            if not isinstance(body, dict):
                raise ValueError(f"unexpected status body {body!r}")
            status = DeviceStatus(**body)
        except ValidationError as e:
            raise DirectLinkUnreachable(f"Device returned an invalid status: {e}")
        except TRANSPORT_ERRORS as e:
            raise DirectLinkUnreachable(f"Device status query failed: {str(e) or type(e).__name__}")
        return status.model_copy(update={"connected": True})

    async def check_health(self) -> bool:
        try:
            await self.rest.ping(self.config.endpoints.health)
            return True
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Device health check failed: {str(e) or type(e).__name__}")
            return False
