from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional, Union
from enum import Enum


class DeviceKind(str, Enum):
    LIGHT = "light"
    FAN = "fan"


class Action(str, Enum):
    ON = "ON"
    OFF = "OFF"


class StatusSource(str, Enum):
    LIVE = "live"
    CACHE = "cache"


class DeviceStatus(BaseModel):
    """Last known operational state of the controller, as reported by the device."""
    model_config = ConfigDict(extra="ignore")

    connected: bool = False
    light: bool = False
    fan: bool = False
    ip: Optional[str] = Field(None, description="Network address reported by the device")
    rssi: Optional[Union[int, float]] = Field(None, description="Wi-Fi signal strength in dBm")


class DeviceCommand(BaseModel):
    """A validated actuation, only alive for the duration of a dispatch."""
    device: DeviceKind
    action: Action


class ControlRequest(BaseModel):
    """Raw control body. Validation into a DeviceCommand is done by the dispatcher
    so that bad values are rejected as InvalidCommand rather than by the framework."""
    device: Any = None
    action: Any = None
    state: Any = None


class DirectLinkResult(BaseModel):
    delivered: bool
    error: Optional[str] = None


class DispatchResult(BaseModel):
    device: DeviceKind
    action: Action
    broker_queued: bool
    direct_delivered: Optional[bool] = None  # None while the direct call runs in the background


class StatusResolution(BaseModel):
    status: DeviceStatus
    source: StatusSource
