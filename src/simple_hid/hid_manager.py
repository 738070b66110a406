import asyncio
from collections.abc import Mapping, Sequence
import logging
from typing import Any

import verboselogs

from . import app_config
from .callbacks import CallbackRegistry, ConnectionCallback, InputReportCallback
from .config import SimpleHIDConfig
from .device_filter import DeviceFilter
from .device_registry import DeviceRegistry
from .events import HIDConnectionEvent, HIDEventType, HIDInputReportEvent
from .hid_communicator import HIDCommunicator
from .transport.base import HIDDeviceInterface, HIDTransportInterface

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")


class SimpleHIDManager:
    """Acquires, opens and releases HID devices and fans out their events.

    Every operation is best effort: failures are logged and reported through a
    neutral return value (None, False or an empty list), never raised.

    Known race: an input report that arrives between the transport opening a
    device and ``open_device`` subscribing to it is not delivered.
    """

    def __init__(
        self,
        transport: HIDTransportInterface | None,
        config: SimpleHIDConfig | Mapping[str, Any] | None = None,
    ) -> None:
        """Initializes the SimpleHIDManager.

        Args:
            transport: The host HID capability. ``None`` leaves the manager inert.
            config: Options as a SimpleHIDConfig or an ``{"autoRequest", "filters"}`` mapping.
        """
        if config is None:
            config = SimpleHIDConfig()
        elif isinstance(config, Mapping):
            config = SimpleHIDConfig.from_mapping(config)
        self.config: SimpleHIDConfig = config
        self.transport = transport
        self.registry = DeviceRegistry()
        self.callbacks = CallbackRegistry()
        self.communicator = HIDCommunicator()
        self.init_task: asyncio.Task | None = None

        if self.transport is None:
            logger.error("HID transport is not available; the manager will stay inert.")
            return

        self.transport.add_event_listener(HIDEventType.CONNECT, self._on_connection_event)
        self.transport.add_event_listener(HIDEventType.DISCONNECT, self._on_connection_event)

        if self.config.auto_request:
            self._start_auto_request()
        logger.debug("SimpleHIDManager initialized (autoRequest=%s).", self.config.auto_request)

    @property
    def devices(self) -> tuple[HIDDeviceInterface, ...]:
        """Snapshot of the devices this manager currently holds open."""
        return tuple(self.registry)

    def _start_auto_request(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("autoRequest is set but no event loop is running; await initialize() to acquire a device.")
            return
        self.init_task = loop.create_task(self.request_device(self.config.filters), name="simple-hid-auto-request")

    async def initialize(self) -> HIDDeviceInterface | None:
        """Waits for the autoRequest acquisition, starting it if construction could not."""
        if self.init_task is None:
            if self.transport is None or not self.config.auto_request:
                return None
            self.init_task = asyncio.ensure_future(self.request_device(self.config.filters))
        return await self.init_task

    # Lifecycle

    async def request_device(self, filters: Sequence[DeviceFilter] | None = None) -> HIDDeviceInterface | None:
        """Acquires one matching device from the transport and opens it."""
        if self.transport is None:
            logger.debug("request_device ignored: no HID transport.")
            return None
        filters = self.config.filters if filters is None else tuple(filters)
        try:
            devices = await self.transport.request_device(filters)
        except Exception:
            logger.exception("Request device error")
            return None
        if not devices:
            logger.warning("Request device: no device was selected.")
            return None
        device = devices[0]
        await self.open_device(device)
        return device

    async def get_devices(self, filters: Sequence[DeviceFilter] | None = None) -> list[HIDDeviceInterface]:
        """Returns the transport's authorized devices, requesting one first if none are cached.

        The returned list is the transport's, not the registry: it can contain devices
        that are authorized but not open.
        """
        if self.transport is None:
            logger.debug("get_devices ignored: no HID transport.")
            return []
        if not len(self.registry):
            await self.request_device(filters)
        try:
            return list(await self.transport.get_devices())
        except Exception:
            logger.exception("Get devices error")
            return []

    async def open_device(self, device: HIDDeviceInterface) -> bool:
        """Opens ``device``, caches it and subscribes to its input reports."""
        if self.transport is None:
            logger.debug("open_device ignored: no HID transport.")
            return False
        if not device.opened:
            try:
                await device.open()
            except Exception:
                logger.exception("Open device error for %s", device)
                return False
            if not device.opened:
                logger.error("Open device failed: %s did not report an open state.", device)
                return False

        if self.registry.add(device):
            logger.log(verboselogs.NOTICE, "Opened HID device %s", device)
        # Listeners are per handle; EventTarget ignores a repeated registration.
        device.add_event_listener(HIDEventType.INPUT_REPORT, self._on_input_report)
        return True

    async def close_device(self, device: HIDDeviceInterface) -> bool:
        """Closes ``device`` and drops it from the registry once it reports closed."""
        if self.transport is None:
            logger.debug("close_device ignored: no HID transport.")
            return False
        try:
            await device.close()
        except Exception:
            logger.exception("Close device error for %s", device)
            return False
        return self._uncache_if_closed(device, "Closed")

    async def forget_device(self, device: HIDDeviceInterface) -> bool:
        """Closes ``device``, revokes its authorization and drops it from the registry."""
        if self.transport is None:
            logger.debug("forget_device ignored: no HID transport.")
            return False
        try:
            await device.forget()
        except Exception:
            logger.exception("Forget device error for %s", device)
            return False
        return self._uncache_if_closed(device, "Forgot")

    def _uncache_if_closed(self, device: HIDDeviceInterface, action: str) -> bool:
        if device.opened:
            logger.warning("%s %s but it still reports an open state; keeping it cached.", action, device)
            return False
        if self.registry.discard(device):
            logger.log(verboselogs.NOTICE, "%s HID device %s", action, device)
        return True

    # Subscriptions

    def on_connect(self, callback: ConnectionCallback) -> None:
        self.callbacks.add_connect_callback(callback)

    def on_disconnect(self, callback: ConnectionCallback) -> None:
        self.callbacks.add_disconnect_callback(callback)

    def on_input_report(self, device: HIDDeviceInterface, callback: InputReportCallback) -> None:
        """Subscribes ``callback`` to reports from ``device``; ignored unless the device is open here."""
        if device not in self.registry:
            logger.debug("on_input_report ignored: %s was not opened by this manager.", device)
            return
        self.callbacks.add_input_report_callback(device.key, callback)

    def _on_connection_event(self, event: HIDConnectionEvent) -> None:
        self.callbacks.dispatch_connection(event)

    def _on_input_report(self, event: HIDInputReportEvent) -> None:
        self.callbacks.dispatch_input_report(event)

    # Report I/O

    async def send_report(self, device: HIDDeviceInterface, report_id: int, data: Any) -> bool:
        if self.transport is None:
            return False
        return await self.communicator.send_report(device, report_id, data)

    async def send_feature_report(self, device: HIDDeviceInterface, report_id: int, data: Any) -> bool:
        if self.transport is None:
            return False
        return await self.communicator.send_feature_report(device, report_id, data)

    async def receive_feature_report(self, device: HIDDeviceInterface, report_id: int) -> memoryview | None:
        if self.transport is None:
            return None
        return await self.communicator.receive_feature_report(device, report_id)
