"""Custom exceptions for the SimpleHID package."""

class SimpleHIDError(Exception):
    """Base exception for simple_hid errors."""
    def __init__(self, message: str | None = None, *args: object) -> None:
        if message is not None:
            super().__init__(message, *args)
        else:
            # Subclasses may provide a default_message
            super().__init__(self.default_message if hasattr(self, 'default_message') else "An unspecified error occurred.", *args)


class ConfigError(SimpleHIDError):
    """Custom error for invalid manager options."""
    default_message = "Invalid SimpleHID configuration."

    def __init__(self, message: str | None = None, option: str | None = None) -> None:
        if option is not None and message is None:
            message = f"Invalid value for option '{option}'"
        super().__init__(message)


class HIDCommunicationError(SimpleHIDError):
    """Custom error for failures reported by the host HID library."""
    default_message = "HID communication failed."


class DeviceStateError(SimpleHIDError):
    """Raised by a transport when I/O is attempted on a device that is not open."""
    default_message = "The HID device is not open."
