"""Tests for the hidapi-backed transport and device.

hidapi calls are patched; the suite is skipped if the hidapi native library
cannot be loaded.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path
import sys
import time
from typing import Any
import unittest
from unittest.mock import MagicMock, patch

import pytest

hid = pytest.importorskip("hid")

sys.path.insert(0, str((Path(__file__).parent / ".." / "src").resolve()))

from simple_hid.device_filter import HIDDeviceFilter
from simple_hid.events import HIDEventType
from simple_hid.exceptions import DeviceStateError, HIDCommunicationError
from simple_hid.transport.hidapi_transport import HidapiDevice, HidapiTransport, device_key

STEELSERIES_VID = 0x1038
ARCTIS_NOVA_7_PID = 0x2202


def create_mock_device_info(
    pid: int = ARCTIS_NOVA_7_PID,
    path: bytes = b"/dev/hidraw3",
    serial: str = "",
    interface_number: int = 3,
) -> dict[str, Any]:
    """Helper function to create hidapi-style device info dictionaries for tests."""
    return {
        "vendor_id": STEELSERIES_VID,
        "product_id": pid,
        "serial_number": serial,
        "interface_number": interface_number,
        "usage_page": 0xFFC0,
        "usage": 0x0001,
        "path": path,
        "product_string": f"MockDevice PID {pid:04x}",
    }


def create_mock_handle(reads: list[bytes] | None = None) -> MagicMock:
    """A hid.Device stand-in whose read() drains ``reads`` then times out."""
    pending = list(reads or [])
    handle = MagicMock(spec=hid.Device)

    def read(size: int, timeout: int | None = None) -> bytes:
        time.sleep(0.001)
        return pending.pop(0) if pending else b""

    handle.read.side_effect = read
    handle.write.side_effect = lambda data: len(data)
    return handle


async def wait_until(condition: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def test_device_key_prefers_serial_number() -> None:
    with_serial = create_mock_device_info(serial="ABC123")
    assert device_key(with_serial) == "1038:2202:ABC123:3:ffc0:0001"
    assert device_key(create_mock_device_info(path=b"/dev/hidraw7")) == "/dev/hidraw7"


class TestHidapiTransportDiscovery(unittest.IsolatedAsyncioTestCase):
    """Tests request_device, get_devices and forget against a patched hid.enumerate."""

    def setUp(self) -> None:
        self.attached = [
            create_mock_device_info(pid=0x12DD, path=b"/dev/hidraw1"),
            create_mock_device_info(path=b"/dev/hidraw3"),
        ]
        self.enumerate_patcher = patch(
            "simple_hid.transport.hidapi_transport.hid.enumerate",
            side_effect=lambda *args: list(self.attached),
        )
        self.mock_enumerate = self.enumerate_patcher.start()
        self.addCleanup(self.enumerate_patcher.stop)
        self.transport = HidapiTransport()
        self.addCleanup(self.transport.stop_monitoring)

    async def test_request_device_returns_first_match(self) -> None:
        devices = await self.transport.request_device([HIDDeviceFilter(product_id=ARCTIS_NOVA_7_PID)])

        assert len(devices) == 1
        assert devices[0].path == "/dev/hidraw3"
        assert not devices[0].opened

    async def test_request_device_without_filters_takes_first_enumerated(self) -> None:
        devices = await self.transport.request_device([])
        assert [d.path for d in devices] == ["/dev/hidraw1"]

    async def test_request_device_no_match(self) -> None:
        assert await self.transport.request_device([HIDDeviceFilter(vendor_id=0x046D)]) == []

    async def test_request_device_enumeration_error(self) -> None:
        self.mock_enumerate.side_effect = hid.HIDException("Enumeration failed")

        with pytest.raises(HIDCommunicationError):
            await self.transport.request_device([])

    async def test_get_devices_lists_only_authorized_attached_devices(self) -> None:
        assert await self.transport.get_devices() == []

        [granted] = await self.transport.request_device([HIDDeviceFilter(product_id=ARCTIS_NOVA_7_PID)])
        assert await self.transport.get_devices() == [granted]

        self.attached = []
        assert await self.transport.get_devices() == []

    async def test_same_device_yields_same_handle(self) -> None:
        [first] = await self.transport.request_device([])
        [second] = await self.transport.request_device([])
        assert first is second

    async def test_forget_revokes_authorization(self) -> None:
        [device] = await self.transport.request_device([HIDDeviceFilter(product_id=ARCTIS_NOVA_7_PID)])

        await device.forget()

        assert await self.transport.get_devices() == []
        assert await self.transport.request_device([HIDDeviceFilter(product_id=ARCTIS_NOVA_7_PID)]) == []

    async def test_monitor_emits_events_for_authorized_devices(self) -> None:
        transport = HidapiTransport(poll_interval=0.01)
        self.addCleanup(transport.stop_monitoring)
        [device] = await transport.request_device([HIDDeviceFilter(product_id=ARCTIS_NOVA_7_PID)])
        connected: list[Any] = []
        disconnected: list[Any] = []
        transport.add_event_listener(HIDEventType.CONNECT, lambda event: connected.append(event.device))
        transport.add_event_listener(HIDEventType.DISCONNECT, lambda event: disconnected.append(event.device))

        await wait_until(lambda: transport._present is not None)  # noqa: SLF001
        self.attached = []
        await wait_until(lambda: bool(disconnected))
        self.attached = [create_mock_device_info(path=b"/dev/hidraw3")]
        await wait_until(lambda: bool(connected))

        assert disconnected == [device]  # The unauthorized 0x12dd interface is not reported
        assert connected == [device]


class TestHidapiDeviceIO(unittest.IsolatedAsyncioTestCase):
    """Tests opening, reading, writing and closing a HidapiDevice."""

    def setUp(self) -> None:
        self.logger_patcher = patch("simple_hid.transport.hidapi_transport.logger")
        self.mock_logger = self.logger_patcher.start()
        self.addCleanup(self.logger_patcher.stop)

        self.transport = HidapiTransport(read_timeout_ms=5)
        self.device_info = create_mock_device_info()
        self.device = HidapiDevice(self.device_info, self.transport)

    async def open_with(self, handle: MagicMock) -> MagicMock:
        with patch("simple_hid.transport.hidapi_transport.hid.Device", return_value=handle) as mock_device_class:
            await self.device.open()
        self.addAsyncCleanup(self.device.close)
        return mock_device_class

    async def test_open_uses_device_path(self) -> None:
        mock_device_class = await self.open_with(create_mock_handle())

        mock_device_class.assert_called_once_with(path=b"/dev/hidraw3")
        assert self.device.opened

    async def test_open_error_is_wrapped(self) -> None:
        with patch(
            "simple_hid.transport.hidapi_transport.hid.Device",
            side_effect=hid.HIDException("Permission denied"),
        ), pytest.raises(HIDCommunicationError):
            await self.device.open()
        assert not self.device.opened

    async def test_input_reports_are_emitted(self) -> None:
        received: list[Any] = []
        self.device.add_event_listener(HIDEventType.INPUT_REPORT, received.append)

        await self.open_with(create_mock_handle(reads=[b"\x01\x02"]))
        await wait_until(lambda: bool(received))

        event = received[0]
        assert event.device is self.device
        assert event.report_id is None
        assert event.data.tobytes() == b"\x01\x02"

    async def test_numbered_reports_split_report_id(self) -> None:
        self.transport.numbered_reports = True
        received: list[Any] = []
        self.device.add_event_listener(HIDEventType.INPUT_REPORT, received.append)

        await self.open_with(create_mock_handle(reads=[b"\x03\x01\x02"]))
        await wait_until(lambda: bool(received))

        assert received[0].report_id == 3
        assert received[0].data.tobytes() == b"\x01\x02"

    async def test_close_stops_reader_and_closes_handle(self) -> None:
        handle = create_mock_handle()
        await self.open_with(handle)

        await self.device.close()

        assert not self.device.opened
        handle.close.assert_called_once_with()

    async def test_read_error_closes_device(self) -> None:
        handle = create_mock_handle()
        handle.read.side_effect = hid.HIDException("device disconnected")

        await self.open_with(handle)
        await wait_until(lambda: not self.device.opened)

        handle.close.assert_called_once_with()

    async def test_concurrent_opens_create_a_single_handle(self) -> None:
        handles: list[MagicMock] = []

        def slow_open(**_kwargs: Any) -> MagicMock:
            time.sleep(0.05)
            handles.append(create_mock_handle())
            return handles[-1]

        with patch("simple_hid.transport.hidapi_transport.hid.Device", side_effect=slow_open):
            await asyncio.gather(self.device.open(), self.device.open())
        await self.device.close()

        assert len(handles) == 1
        handles[0].close.assert_called_once_with()

    async def test_mark_disconnected_closes_open_device(self) -> None:
        handle = create_mock_handle()
        await self.open_with(handle)

        self.device.mark_disconnected()

        assert not self.device.opened  # Cleared before the close task runs
        await wait_until(lambda: handle.close.called)

    async def test_disconnect_listeners_see_device_closed(self) -> None:
        handle = create_mock_handle()
        await self.open_with(handle)
        key = self.device.key
        self.transport._devices[key] = self.device  # noqa: SLF001
        self.transport._authorized.add(key)  # noqa: SLF001
        self.transport._present = {key}  # noqa: SLF001
        opened_during_event: list[bool] = []
        with patch.object(self.transport, "_ensure_monitor"):
            self.transport.add_event_listener(
                HIDEventType.DISCONNECT, lambda event: opened_during_event.append(event.device.opened),
            )

        self.transport._emit_changes({})  # noqa: SLF001

        assert opened_during_event == [False]
        await wait_until(lambda: handle.close.called)

    async def test_background_close_failure_is_logged(self) -> None:
        handle = create_mock_handle()
        handle.close.side_effect = RuntimeError("handle already freed")
        await self.open_with(handle)

        self.device.mark_disconnected()
        await self.device._close_task  # noqa: SLF001

        self.mock_logger.exception.assert_called_once_with("Error closing HID device %s", self.device)

    async def test_send_report_prefixes_report_id(self) -> None:
        handle = create_mock_handle()
        await self.open_with(handle)

        await self.device.send_report(0x00, memoryview(b"\x06\xb0"))

        handle.write.assert_called_once_with(b"\x00\x06\xb0")

    async def test_send_report_zero_bytes_written_raises(self) -> None:
        handle = create_mock_handle()
        handle.write.side_effect = None
        handle.write.return_value = 0
        await self.open_with(handle)

        with pytest.raises(HIDCommunicationError):
            await self.device.send_report(0x01, memoryview(b"\x02"))

    async def test_send_feature_report(self) -> None:
        handle = create_mock_handle()
        await self.open_with(handle)

        await self.device.send_feature_report(0x05, memoryview(b"\x01"))

        handle.send_feature_report.assert_called_once_with(b"\x05\x01")

    async def test_receive_feature_report(self) -> None:
        handle = create_mock_handle()
        handle.get_feature_report.return_value = b"\x05\xaa"
        await self.open_with(handle)

        data = await self.device.receive_feature_report(0x05)

        handle.get_feature_report.assert_called_once_with(0x05, self.transport.feature_report_size + 1)
        assert data.tobytes() == b"\x05\xaa"
        assert data.readonly

    async def test_io_on_closed_device_raises_state_error(self) -> None:
        with pytest.raises(DeviceStateError):
            await self.device.send_report(0x01, memoryview(b"\x00"))
        with pytest.raises(DeviceStateError):
            await self.device.send_feature_report(0x01, memoryview(b"\x00"))
        with pytest.raises(DeviceStateError):
            await self.device.receive_feature_report(0x01)


if __name__ == "__main__":
    unittest.main()
