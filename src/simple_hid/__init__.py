"""Asynchronous HID device lifecycle management and event fan-out.

`SimpleHIDManager` opens devices obtained from a host transport, keeps the set
of devices it holds open, and routes connect, disconnect and input report events
to subscribers. `get_default_transport()` provides a hidapi-backed transport.
"""

from .config import SimpleHIDConfig
from .device_filter import HIDDeviceFilter
from .events import HIDConnectionEvent, HIDEventType, HIDInputReportEvent
from .exceptions import ConfigError, DeviceStateError, HIDCommunicationError, SimpleHIDError
from .hid_manager import SimpleHIDManager
from .logging_setup import configure_logging
from .transport import HIDDeviceInterface, HIDTransportInterface, get_default_transport

__all__ = [
    "ConfigError",
    "DeviceStateError",
    "HIDCommunicationError",
    "HIDConnectionEvent",
    "HIDDeviceFilter",
    "HIDDeviceInterface",
    "HIDEventType",
    "HIDInputReportEvent",
    "HIDTransportInterface",
    "SimpleHIDConfig",
    "SimpleHIDError",
    "SimpleHIDManager",
    "configure_logging",
    "get_default_transport",
]
