# src/device_link/utils/exceptions.py

class DeviceLinkError(Exception):
    """Base exception class for the device link gateway"""
    pass

class ConfigurationError(DeviceLinkError):
    """Raised when there are issues with configuration"""
    pass

class InitializationError(DeviceLinkError):
    """Raised when component initialization fails"""
    pass

class CommunicationError(DeviceLinkError):
    """Raised when communication with the broker or the device fails"""
    pass

class BrokerUnavailable(CommunicationError):
    """Raised when a publish or subscribe on the MQTT broker cannot be carried out"""
    pass

class DirectLinkUnreachable(CommunicationError):
    """Raised when a point-to-point call to the device times out or fails"""
    pass

class InvalidCommand(DeviceLinkError):
    """Raised when a control request names an unknown device or action"""
    pass

class MalformedStatusPayload(DeviceLinkError):
    """Raised when a status message cannot be parsed into a device status"""
    pass
