# adapters/rest.py
from typing import Any, Optional
import aiohttp
from .base import CommunicationAdapter
from ..utils.logging import get_logger

logger = get_logger(__name__)

class RestAPIAdapter(CommunicationAdapter):
    """
    Generic REST API communication adapter.
    One request, one response or one exception: there is no retry here and
    every request is bounded by the session timeout.
    """
    def __init__(self, base_url: str, timeout: float = 3.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def is_connected(self) -> bool:
        return self.session is not None and not self.session.closed

    async def connect(self) -> None:
        if self.is_connected:
            return
        self.session = aiohttp.ClientSession(timeout=self.timeout)
        logger.info(f"Created REST API session for {self.base_url}")

    async def disconnect(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
            logger.info(f"Closed REST API session for {self.base_url}")

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        if not self.is_connected:
            raise RuntimeError("REST API session not created")

        async with self.session.get(self._url(endpoint), params=params) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def post(self, endpoint: str, data: dict) -> int:
        """POST a JSON body and return the status code; the body is not needed by callers."""
        if not self.is_connected:
            raise RuntimeError("REST API session not created")

        async with self.session.post(self._url(endpoint), json=data) as response:
            response.raise_for_status()
            return response.status

    async def ping(self, endpoint: str) -> int:
        """GET an endpoint for its status code only."""
        if not self.is_connected:
            raise RuntimeError("REST API session not created")

        async with self.session.get(self._url(endpoint)) as response:
            response.raise_for_status()
            return response.status
