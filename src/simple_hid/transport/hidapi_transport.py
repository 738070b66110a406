"""hidapi-backed host transport.

Blocking hidapi calls run in worker threads through ``asyncio.to_thread`` so the
event loop never blocks. Input reports are read by one task per open device and
host connect/disconnect events come from periodically diffing ``hid.enumerate()``.
"""

import asyncio
from collections.abc import Sequence
import logging
from typing import Any

import hid
import verboselogs

from .. import app_config
from ..device_filter import DeviceFilter, matches_any
from ..events import HIDConnectionEvent, HIDEventType, HIDInputReportEvent
from ..exceptions import DeviceStateError, HIDCommunicationError
from .base import HIDDeviceInterface, HIDTransportInterface

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")


def device_key(device_info: dict[str, Any]) -> str:
    """Derives a stable key from hidapi device info.

    Serial-numbered devices keep their key across re-plugs; others fall back to the OS path.
    """
    serial = device_info.get("serial_number")
    if serial:
        return "{:04x}:{:04x}:{}:{}:{:04x}:{:04x}".format(
            device_info.get("vendor_id", 0),
            device_info.get("product_id", 0),
            serial,
            device_info.get("interface_number", -1),
            device_info.get("usage_page", 0),
            device_info.get("usage", 0),
        )
    return _path_str(device_info)


def _path_str(device_info: dict[str, Any]) -> str:
    path = device_info.get("path", b"N/A")
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return str(path)


class HidapiDevice(HIDDeviceInterface):
    """A single HID interface reachable through hidapi."""

    def __init__(
        self,
        device_info: dict[str, Any],
        transport: "HidapiTransport",
    ) -> None:
        super().__init__()
        self.device_info = device_info
        self._transport = transport
        self._handle: hid.Device | None = None
        self._reader_task: asyncio.Task | None = None
        self._close_task: asyncio.Task | None = None
        self._open_lock = asyncio.Lock()

    @property
    def key(self) -> str:
        return device_key(self.device_info)

    @property
    def path(self) -> str:
        return _path_str(self.device_info)

    @property
    def opened(self) -> bool:
        return self._handle is not None

    @property
    def vendor_id(self) -> int:
        return self.device_info.get("vendor_id", 0)

    @property
    def product_id(self) -> int:
        return self.device_info.get("product_id", 0)

    @property
    def product_name(self) -> str:
        return self.device_info.get("product_string") or ""

    async def open(self) -> None:
        # Overlapping opens wait here so only one hid.Device is created.
        async with self._open_lock:
            if self._handle is not None:
                logger.debug("open: %s is already open.", self)
                return

            logger.info("Opening HID device %s at path %s", self, self.path)
            try:
                handle = await asyncio.to_thread(hid.Device, path=self.device_info["path"])
            except hid.HIDException as e:
                raise HIDCommunicationError(f"Failed to open HID device path {self.path}: {e}") from e

            self._handle = handle
            self._reader_task = asyncio.get_running_loop().create_task(
                self._read_loop(handle), name=f"hid-reader-{self.path}",
            )

    async def close(self) -> None:
        handle, reader = self._detach()
        if handle is None:
            logger.debug("Close called, but %s was not open.", self)
            return
        await self._release(handle, reader)

    async def forget(self) -> None:
        await self.close()
        self._transport.revoke(self)

    async def send_report(self, report_id: int, data: memoryview) -> None:
        handle = self._require_handle()
        payload = bytes([report_id]) + bytes(data)
        logger.log(verboselogs.SPAM, "Writing output report to %s: %s", self.path, payload.hex())
        try:
            bytes_written = await asyncio.to_thread(handle.write, payload)
        except hid.HIDException as e:
            raise HIDCommunicationError(f"HID write error on device {self}: {e}") from e
        if bytes_written is not None and bytes_written <= 0:
            raise HIDCommunicationError(f"HID write returned {bytes_written} on device {self}")

    async def send_feature_report(self, report_id: int, data: memoryview) -> None:
        handle = self._require_handle()
        payload = bytes([report_id]) + bytes(data)
        logger.log(verboselogs.SPAM, "Writing feature report to %s: %s", self.path, payload.hex())
        try:
            await asyncio.to_thread(handle.send_feature_report, payload)
        except hid.HIDException as e:
            raise HIDCommunicationError(f"HID feature write error on device {self}: {e}") from e

    async def receive_feature_report(self, report_id: int) -> memoryview:
        handle = self._require_handle()
        try:
            response = await asyncio.to_thread(
                handle.get_feature_report, report_id, self._transport.feature_report_size + 1,
            )
        except hid.HIDException as e:
            raise HIDCommunicationError(f"HID feature read error on device {self}: {e}") from e
        logger.log(verboselogs.SPAM, "Feature report %s from %s: %s", report_id, self.path, bytes(response).hex())
        return memoryview(bytes(response)).toreadonly()

    def mark_disconnected(self) -> None:
        """Drops the handle of a device that vanished from enumeration.

        The device reports closed immediately; the reader and the OS handle are
        shut down by a background task.
        """
        handle, reader = self._detach()
        if handle is not None:
            logger.warning("Open device %s disconnected; marking it closed.", self)
            self._close_task = asyncio.get_running_loop().create_task(self._release_quietly(handle, reader))

    def _require_handle(self) -> "hid.Device":
        if self._handle is None:
            raise DeviceStateError(f"HID device {self} is not open")
        return self._handle

    def _detach(self) -> tuple["hid.Device | None", asyncio.Task | None]:
        handle, self._handle = self._handle, None
        reader, self._reader_task = self._reader_task, None
        return handle, reader

    async def _release(self, handle: "hid.Device", reader: asyncio.Task | None) -> None:
        # The reader notices the cleared handle once its timed read returns;
        # closing earlier would free the handle under the worker thread.
        if reader is not None and reader is not asyncio.current_task():
            await reader

        logger.info("Closing HID device: %s", self.path)
        try:
            await asyncio.to_thread(handle.close)
        except hid.HIDException as e:
            raise HIDCommunicationError(f"Failed to close HID device path {self.path}: {e}") from e

    async def _release_quietly(self, handle: "hid.Device", reader: asyncio.Task | None) -> None:
        try:
            await self._release(handle, reader)
        except Exception:
            logger.exception("Error closing HID device %s", self)

    async def _read_loop(self, handle: "hid.Device") -> None:
        read_size = self._transport.read_size
        timeout_ms = self._transport.read_timeout_ms
        logger.debug("Input report reader started for %s", self.path)
        while self._handle is handle:
            try:
                data = await asyncio.to_thread(handle.read, read_size, timeout_ms)
            except hid.HIDException:
                logger.exception("HID read error on device %s (%s)", self, self.path)
                if self._handle is handle:
                    await self._release_quietly(*self._detach())
                break
            if not data or self._handle is not handle:
                continue
            self._emit_input_report(bytes(data))
        logger.debug("Input report reader stopped for %s", self.path)

    def _emit_input_report(self, raw: bytes) -> None:
        report_id: int | None = None
        if self._transport.numbered_reports:
            report_id, raw = raw[0], raw[1:]
        logger.log(verboselogs.SPAM, "Input report %s from %s: %s", report_id, self.path, raw.hex())
        event = HIDInputReportEvent(device=self, data=memoryview(raw).toreadonly(), report_id=report_id)
        self.emit(HIDEventType.INPUT_REPORT, event)


class HidapiTransport(HIDTransportInterface):
    """Host HID capability backed by the hidapi library."""

    def __init__(
        self,
        *,
        numbered_reports: bool = False,
        read_size: int = app_config.HID_INPUT_REPORT_READ_SIZE,
        read_timeout_ms: int = app_config.HID_READ_TIMEOUT_MS,
        feature_report_size: int = app_config.HID_FEATURE_REPORT_SIZE,
        poll_interval: float = app_config.MONITOR_POLL_INTERVAL_S,
    ) -> None:
        """Initializes the HidapiTransport.

        Args:
            numbered_reports: Treat the first byte of every input report as its report ID.
            read_size: Maximum input report length requested from hidapi.
            read_timeout_ms: Timeout of each blocking read; bounds how long close() waits.
            feature_report_size: Feature report length requested, excluding the report ID.
            poll_interval: Seconds between enumerations used to detect connect/disconnect.
        """
        super().__init__()
        self.numbered_reports = numbered_reports
        self.read_size = read_size
        self.read_timeout_ms = read_timeout_ms
        self.feature_report_size = feature_report_size
        self.poll_interval = poll_interval
        self._devices: dict[str, HidapiDevice] = {}
        self._authorized: set[str] = set()
        self._forgotten: set[str] = set()
        self._present: set[str] | None = None
        self._monitor_task: asyncio.Task | None = None
        logger.debug("HidapiTransport initialized.")

    def add_event_listener(self, event_type: HIDEventType | str, listener: Any) -> None:
        super().add_event_listener(event_type, listener)
        if HIDEventType(event_type) in (HIDEventType.CONNECT, HIDEventType.DISCONNECT):
            self._ensure_monitor()

    async def enumerate_devices(self) -> list[dict[str, Any]]:
        """Returns hidapi device info for every attached HID interface."""
        try:
            devices_enum = await asyncio.to_thread(hid.enumerate)
        except hid.HIDException as e:
            raise HIDCommunicationError(f"Error enumerating HID devices: {e}") from e
        logger.debug("Found %s HID interfaces during enumeration.", len(devices_enum))
        for dev_info in devices_enum:
            logger.log(
                verboselogs.SPAM,
                "  Enumerated device: VID=0x%04x, PID=0x%04x, Interface=%s, UsagePage=0x%04x, Usage=0x%04x, Path=%s, Product='%s'",
                dev_info.get("vendor_id", 0),
                dev_info.get("product_id", 0),
                dev_info.get("interface_number", "N/A"),
                dev_info.get("usage_page", 0),
                dev_info.get("usage", 0),
                _path_str(dev_info),
                dev_info.get("product_string", "N/A"),
            )
        return devices_enum

    async def request_device(self, filters: Sequence[DeviceFilter]) -> list[HIDDeviceInterface]:
        self._ensure_monitor()
        for dev_info in await self.enumerate_devices():
            key = device_key(dev_info)
            if key in self._forgotten:
                logger.debug("  Skipping forgotten device %s", key)
                continue
            if not matches_any(filters, dev_info):
                continue
            device = self._device_for(dev_info)
            self._authorized.add(key)
            logger.info("Granted access to HID device %s (%s)", device, device.path)
            return [device]
        logger.info("No HID device matched %d filter(s).", len(filters))
        return []

    async def get_devices(self) -> list[HIDDeviceInterface]:
        self._ensure_monitor()
        attached = []
        for dev_info in await self.enumerate_devices():
            key = device_key(dev_info)
            if key in self._authorized:
                attached.append(self._device_for(dev_info))
        return attached

    def revoke(self, device: HidapiDevice) -> None:
        """Withdraws authorization for ``device`` for the lifetime of this transport."""
        self._authorized.discard(device.key)
        self._forgotten.add(device.key)
        logger.info("Authorization revoked for HID device %s", device)

    def stop_monitoring(self) -> None:
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            self._monitor_task = None
            logger.debug("Connection monitor stopped.")

    def _device_for(self, dev_info: dict[str, Any]) -> HidapiDevice:
        key = device_key(dev_info)
        device = self._devices.get(key)
        if device is None:
            device = HidapiDevice(dev_info, self)
            self._devices[key] = device
        elif not device.opened:
            device.device_info = dev_info  # Path may change after a re-plug
        return device

    def _ensure_monitor(self) -> None:
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        if not (self.has_event_listeners(HIDEventType.CONNECT) or self.has_event_listeners(HIDEventType.DISCONNECT)):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop yet; connection monitor deferred.")
            return
        self._monitor_task = loop.create_task(self._monitor_connections(), name="hid-connection-monitor")

    async def _monitor_connections(self) -> None:
        logger.debug("Connection monitor started with interval %ss.", self.poll_interval)
        while True:
            try:
                current = {device_key(info): info for info in await self.enumerate_devices()}
            except HIDCommunicationError:
                logger.exception("Connection monitor failed to enumerate HID devices")
            else:
                if self._present is not None:
                    self._emit_changes(current)
                self._present = set(current)
            await asyncio.sleep(self.poll_interval)

    def _emit_changes(self, current: dict[str, dict[str, Any]]) -> None:
        for key in sorted(current.keys() - self._present):
            if key in self._authorized:
                device = self._device_for(current[key])
                logger.info("HID device connected: %s", device)
                self.emit(HIDEventType.CONNECT, HIDConnectionEvent(HIDEventType.CONNECT, device))
        for key in sorted(self._present - current.keys()):
            device = self._devices.get(key)
            if key in self._authorized and device is not None:
                device.mark_disconnected()
                logger.info("HID device disconnected: %s", device)
                self.emit(HIDEventType.DISCONNECT, HIDConnectionEvent(HIDEventType.DISCONNECT, device))
