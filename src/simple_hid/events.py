"""Event types and the listener plumbing shared by transports and devices."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any

from . import app_config

if TYPE_CHECKING:
    from .transport.base import HIDDeviceInterface

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")


class HIDEventType(str, Enum):
    """Event names emitted by a host transport and its devices."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    INPUT_REPORT = "inputreport"


@dataclass(frozen=True)
class HIDConnectionEvent:
    """A host-level device attach or detach."""

    type: HIDEventType
    device: "HIDDeviceInterface"


@dataclass(frozen=True)
class HIDInputReportEvent:
    """An input report received from an open device."""

    device: "HIDDeviceInterface"
    data: memoryview
    report_id: int | None = None
    type: HIDEventType = field(default=HIDEventType.INPUT_REPORT, init=False)


EventListener = Callable[[Any], Any]


class EventTarget:
    """Minimal add/remove/emit listener registry.

    Adding a listener that is already registered for the same event type is a
    no-op. Bound methods compare equal, so re-registering ``obj.handler`` does
    not subscribe twice.
    """

    def __init__(self) -> None:
        self._event_listeners: dict[HIDEventType, list[EventListener]] = {}

    def add_event_listener(self, event_type: HIDEventType | str, listener: EventListener) -> None:
        listeners = self._event_listeners.setdefault(HIDEventType(event_type), [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, event_type: HIDEventType | str, listener: EventListener) -> None:
        listeners = self._event_listeners.get(HIDEventType(event_type), [])
        if listener in listeners:
            listeners.remove(listener)

    def has_event_listeners(self, event_type: HIDEventType | str) -> bool:
        return bool(self._event_listeners.get(HIDEventType(event_type)))

    def emit(self, event_type: HIDEventType | str, event: Any) -> None:
        """Calls every listener for ``event_type`` in registration order."""
        for listener in list(self._event_listeners.get(HIDEventType(event_type), [])):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed while handling '%s' event", listener, HIDEventType(event_type).value)
