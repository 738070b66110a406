"""Host HID transports.

`base` defines the capability the manager consumes; `hidapi_transport` provides
the default implementation on top of the hidapi library.
"""

import logging

from .. import app_config
from .base import HIDDeviceInterface, HIDTransportInterface

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")


def get_default_transport(**options: object) -> HIDTransportInterface | None:
    """Returns a HidapiTransport, or None if the hidapi native library is unavailable."""
    try:
        from .hidapi_transport import HidapiTransport
    except ImportError:
        logger.exception("hidapi is not available; HID devices cannot be accessed.")
        return None
    return HidapiTransport(**options)


__all__ = ["HIDDeviceInterface", "HIDTransportInterface", "get_default_transport"]
