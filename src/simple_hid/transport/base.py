import abc
from collections.abc import Sequence

from ..device_filter import DeviceFilter
from ..events import EventTarget


class HIDDeviceInterface(EventTarget, abc.ABC):
    """Abstract base class for a device handle supplied by a host transport.

    The open/closed state is owned by the transport; the manager only observes it.
    Devices emit ``inputreport`` events while open.
    """

    @property
    @abc.abstractmethod
    def key(self) -> str:
        """Stable identifier; two handles with equal keys refer to the same device."""

    @property
    @abc.abstractmethod
    def opened(self) -> bool:
        """True while the host holds an open channel to the device."""

    @property
    @abc.abstractmethod
    def vendor_id(self) -> int:
        """USB/Bluetooth vendor ID."""

    @property
    @abc.abstractmethod
    def product_id(self) -> int:
        """USB/Bluetooth product ID."""

    @property
    @abc.abstractmethod
    def product_name(self) -> str:
        """Human readable product string, empty if the device reports none."""

    @abc.abstractmethod
    async def open(self) -> None:
        """Opens the channel to the device."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Closes the channel to the device."""

    @abc.abstractmethod
    async def forget(self) -> None:
        """Closes the device and revokes the host's authorization to use it."""

    @abc.abstractmethod
    async def send_report(self, report_id: int, data: memoryview) -> None:
        """Sends an output report."""

    @abc.abstractmethod
    async def send_feature_report(self, report_id: int, data: memoryview) -> None:
        """Sends a feature report."""

    @abc.abstractmethod
    async def receive_feature_report(self, report_id: int) -> memoryview:
        """Reads a feature report."""

    def __str__(self) -> str:
        return f"{self.product_name or 'Unknown Product'} ({self.vendor_id:04x}:{self.product_id:04x})"


class HIDTransportInterface(EventTarget, abc.ABC):
    """Abstract base class for the host HID capability.

    Emits host-level ``connect`` and ``disconnect`` events carrying an
    ``HIDConnectionEvent``.
    """

    @abc.abstractmethod
    async def request_device(self, filters: Sequence[DeviceFilter]) -> list[HIDDeviceInterface]:
        """Asks the host to grant access to a device matching ``filters``.

        Returns a list holding the granted device, or an empty list if nothing was chosen.
        """

    @abc.abstractmethod
    async def get_devices(self) -> list[HIDDeviceInterface]:
        """Returns the devices the host has already authorized."""
