"""Process-wide logging configuration for applications embedding simple_hid."""

import logging
import os
import sys

import verboselogs

from . import app_config


def configure_logging(level: str | int | None = None) -> int:
    """Installs verboselogs levels and configures the root handler.

    Args:
        level: A level name (``"DEBUG"``, ``"SPAM"``, ...) or number. When omitted,
            the ``LOG_LEVEL`` environment variable is used, falling back to INFO.

    Returns:
        The numeric level applied to the package logger.
    """
    # Loggers created from here on are VerboseLogger instances (spam/verbose/notice/success).
    verboselogs.install()

    if level is None:
        level = os.environ.get(app_config.LOG_LEVEL_ENV_VAR, app_config.DEFAULT_LOG_LEVEL)

    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    else:
        resolved = int(level)

    logging.basicConfig(
        level=resolved,
        format=app_config.LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],  # Output to console
    )
    logging.getLogger(app_config.APP_NAME).setLevel(resolved)
    logging.getLogger(app_config.APP_NAME).debug(
        "Logging configured with level %s", logging.getLevelName(resolved),
    )
    return resolved
