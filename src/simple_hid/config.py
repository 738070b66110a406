import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from . import app_config
from .device_filter import DeviceFilter, coerce_filter
from .exceptions import ConfigError

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")

# Option names as accepted by from_mapping, mapped to dataclass fields
_OPTION_NAMES = {
    "autoRequest": "auto_request",
    "auto_request": "auto_request",
    "filters": "filters",
}


@dataclass(frozen=True)
class SimpleHIDConfig:
    """Immutable manager options, read once at construction."""

    auto_request: bool = False
    filters: tuple[DeviceFilter, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.auto_request, bool):
            raise ConfigError(option="autoRequest")
        if isinstance(self.filters, (str, bytes, Mapping)) or not hasattr(self.filters, "__iter__"):
            raise ConfigError(option="filters")
        object.__setattr__(self, "filters", tuple(coerce_filter(f) for f in self.filters))

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "SimpleHIDConfig":
        """Builds a config from ``{"autoRequest": ..., "filters": [...]}`` style options."""
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            field_name = _OPTION_NAMES.get(key)
            if field_name is None:
                logger.warning("Ignoring unknown SimpleHID option '%s'.", key)
                continue
            kwargs[field_name] = value
        return cls(**kwargs)
