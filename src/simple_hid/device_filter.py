"""Device-matching filters handed to a transport's discovery operation."""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
import logging
from typing import Any, Union

from . import app_config
from .exceptions import ConfigError

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")

# Keys accepted by HIDDeviceFilter.from_mapping, camelCase first as used by WebHID
_FILTER_KEYS = {
    "vendorId": "vendor_id",
    "productId": "product_id",
    "usagePage": "usage_page",
    "usage": "usage",
    "vendor_id": "vendor_id",
    "product_id": "product_id",
    "usage_page": "usage_page",
}


@dataclass(frozen=True)
class HIDDeviceFilter:
    """Matches devices whose info carries every field that is set on the filter."""

    vendor_id: int | None = None
    product_id: int | None = None
    usage_page: int | None = None
    usage: int | None = None

    def __post_init__(self) -> None:
        for name in ("vendor_id", "product_id", "usage_page", "usage"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 0xFFFF):
                raise ConfigError(f"HIDDeviceFilter.{name} must be a 16-bit integer, got {value!r}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "HIDDeviceFilter":
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            field_name = _FILTER_KEYS.get(key)
            if field_name is None:
                raise ConfigError(f"Unknown device filter key '{key}'")
            kwargs[field_name] = value
        return cls(**kwargs)

    def __call__(self, device_info: Mapping[str, Any]) -> bool:
        return self.matches(device_info)

    def matches(self, device_info: Mapping[str, Any]) -> bool:
        """Returns True if every set field equals the corresponding device info entry."""
        return all(
            expected is None or device_info.get(name) == expected
            for name, expected in (
                ("vendor_id", self.vendor_id),
                ("product_id", self.product_id),
                ("usage_page", self.usage_page),
                ("usage", self.usage),
            )
        )


# A filter is either an HIDDeviceFilter or any predicate over hidapi-style device info
DeviceFilter = Union[HIDDeviceFilter, Callable[[Mapping[str, Any]], bool]]


def coerce_filter(value: Any) -> DeviceFilter:
    """Turns a filter-like option value into a DeviceFilter."""
    if isinstance(value, HIDDeviceFilter):
        return value
    if isinstance(value, Mapping):
        return HIDDeviceFilter.from_mapping(value)
    if callable(value):
        return value
    raise ConfigError(f"Unsupported device filter {value!r}; expected a mapping or a predicate")


def matches_any(filters: Iterable[DeviceFilter], device_info: Mapping[str, Any]) -> bool:
    """Returns True if the device satisfies at least one filter (or no filters are given)."""
    filters = tuple(filters)
    if not filters:
        return True
    for device_filter in filters:
        try:
            if device_filter(device_info):
                return True
        except Exception:  # A faulty predicate only disqualifies itself
            logger.exception("Device filter %r raised while matching %s", device_filter, device_info.get("path"))
    return False
