from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict
from ..models.device import DeviceStatus, StatusResolution, StatusSource
from ..storage.cache import StatusCache
from ..utils.logging import get_logger
from ..utils.exceptions import DirectLinkUnreachable
from .direct_link import DirectLinkClient

logger = get_logger(__name__)


class FallbackPolicy(str, Enum):
    RETURN_CACHE = "return_cache"
    RETURN_UNREACHABLE = "return_unreachable"


class Reachability(str, Enum):
    UNKNOWN = "unknown"
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"


class StatusPolicyConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    on_direct_failure: FallbackPolicy = FallbackPolicy.RETURN_UNREACHABLE
    write_through: bool = False


class StatusResolver:
    """Answers status queries from the device first and the cache second.

    A live answer is returned as-is. When the device cannot be reached the
    configured policy decides between the cached record and an unreachable
    error; the same failure always yields the same kind of answer.
    """
    def __init__(self, direct_link: DirectLinkClient, status_cache: StatusCache,
                 config: Optional[Dict[str, Any]] = None):
        self.direct_link = direct_link
        self.status_cache = status_cache
        self.config = StatusPolicyConfig(**(config or {}))
        self.reachability = Reachability.UNKNOWN
        self.last_error: Optional[str] = None

    @property
    def policy(self) -> FallbackPolicy:
        return self.config.on_direct_failure

    async def resolve(self) -> StatusResolution:
        """
        Raises:
            DirectLinkUnreachable: the device did not answer and the policy is
                RETURN_UNREACHABLE.
        """
        try:
            status = await self.direct_link.query_status()
        except DirectLinkUnreachable as e:
            self._transition(Reachability.UNREACHABLE)
            self.last_error = str(e)
            logger.warning(f"Direct status query failed, policy {self.policy.value}: {e}")
            if self.policy == FallbackPolicy.RETURN_CACHE:
                return StatusResolution(status=self.status_cache.read(), source=StatusSource.CACHE)
            raise

        self._transition(Reachability.REACHABLE)
        self.last_error = None
        if self.config.write_through:
            self.status_cache.write(status)
        return StatusResolution(status=status, source=StatusSource.LIVE)

    def _transition(self, state: Reachability) -> None:
        if state != self.reachability:
            logger.info(f"Device {self.reachability.value} -> {state.value}")
        self.reachability = state

    def note_broker_status(self, status: DeviceStatus) -> None:
        """A status report arrived over the broker, so the device is alive."""
        self._transition(Reachability.REACHABLE)
