"""The set of devices the manager has opened and not yet closed or forgotten."""

from collections.abc import Iterator
import logging

from . import app_config
from .transport.base import HIDDeviceInterface

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")


class DeviceRegistry:
    """Insertion-ordered set of device handles, unique by ``device.key``."""

    def __init__(self) -> None:
        self._devices: dict[str, HIDDeviceInterface] = {}

    def add(self, device: HIDDeviceInterface) -> bool:
        """Caches ``device``; returns False if it was already present."""
        if device.key in self._devices:
            return False
        self._devices[device.key] = device
        logger.debug("Registry: added %s (%d cached).", device.key, len(self._devices))
        return True

    def discard(self, device: HIDDeviceInterface) -> bool:
        """Removes ``device``; returns False if it was not present."""
        if self._devices.pop(device.key, None) is None:
            return False
        logger.debug("Registry: removed %s (%d cached).", device.key, len(self._devices))
        return True

    def __contains__(self, device: object) -> bool:
        return isinstance(device, HIDDeviceInterface) and device.key in self._devices

    def __iter__(self) -> Iterator[HIDDeviceInterface]:
        return iter(list(self._devices.values()))

    def __len__(self) -> int:
        return len(self._devices)
