"""Guards report I/O behind the device's open state."""

import logging
from typing import Any

import verboselogs

from . import app_config
from .report_data import to_report_view
from .transport.base import HIDDeviceInterface

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")


class HIDCommunicator:
    """Sends and receives reports on open devices.

    A closed device turns every call into a no-op that never reaches the
    transport. Transport failures are logged and reported as False/None.
    """

    async def send_report(self, device: HIDDeviceInterface, report_id: int, data: Any) -> bool:
        """Sends an output report; returns True if the transport accepted it."""
        if not device.opened:
            logger.debug("send_report skipped: %s is not open.", device)
            return False
        try:
            view = to_report_view(data)
            logger.log(
                verboselogs.SPAM,
                "Sending report: ID=%s, Data=%s to device %s",
                report_id,
                view.hex(),
                device,
            )
            await device.send_report(report_id, view)
        except Exception:
            logger.exception("Send report error on device %s (report ID %s)", device, report_id)
            return False
        return True

    async def send_feature_report(self, device: HIDDeviceInterface, report_id: int, data: Any) -> bool:
        """Sends a feature report; returns True if the transport accepted it."""
        if not device.opened:
            logger.debug("send_feature_report skipped: %s is not open.", device)
            return False
        try:
            view = to_report_view(data)
            logger.log(
                verboselogs.SPAM,
                "Sending feature report: ID=%s, Data=%s to device %s",
                report_id,
                view.hex(),
                device,
            )
            await device.send_feature_report(report_id, view)
        except Exception:
            logger.exception("Send feature report error on device %s (report ID %s)", device, report_id)
            return False
        return True

    async def receive_feature_report(self, device: HIDDeviceInterface, report_id: int) -> memoryview | None:
        """Reads a feature report; returns None if the device is closed or the read fails."""
        if not device.opened:
            logger.debug("receive_feature_report skipped: %s is not open.", device)
            return None
        try:
            data = await device.receive_feature_report(report_id)
            if data is None:
                logger.warning("No data received for feature report %s from %s.", report_id, device)
                return None
            view = to_report_view(data)
        except Exception:
            logger.exception("Receive feature report error on device %s (report ID %s)", device, report_id)
            return None
        logger.log(verboselogs.SPAM, "Feature report %s read from %s: %s", report_id, device, view.hex())
        return view
