# Last known device status

from typing import Dict, Any, Optional
from datetime import datetime
import threading
from ..models.device import DeviceStatus
from ..utils.logging import get_logger

logger = get_logger(__name__)

class StatusCache:
    """
    Holds exactly one DeviceStatus for the whole process.

    Writes swap the whole record under a lock and reads hand out a copy, so a
    reader never sees fields from two different writes. The record never
    expires; callers decide how to present a cached value.
    """
    def __init__(self, initial: Optional[DeviceStatus] = None):
        self._status = initial.model_copy(deep=True) if initial else DeviceStatus()
        self._updated_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def read(self) -> DeviceStatus:
        """Return a snapshot of the current record."""
        with self._lock:
            return self._status.model_copy(deep=True)

    def write(self, status: DeviceStatus) -> None:
        """Atomically replace the record."""
        new_status = status.model_copy(deep=True)
        with self._lock:
            self._status = new_status
            self._updated_at = datetime.now()
        logger.debug(f"Status cache updated: {new_status.model_dump()}")

    @property
    def updated_at(self) -> Optional[datetime]:
        with self._lock:
            return self._updated_at

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "connected": self._status.connected,
                "updated_at": self._updated_at.isoformat() if self._updated_at else None,
            }
