"""Subscriber lists and fan-out of connection and input report events."""

import asyncio
from collections.abc import Callable
import inspect
import logging
from typing import Any

import verboselogs

from . import app_config
from .events import HIDConnectionEvent, HIDEventType, HIDInputReportEvent
from .transport.base import HIDDeviceInterface

logger = logging.getLogger(f"{app_config.APP_NAME}.{__name__}")

ConnectionCallback = Callable[[HIDDeviceInterface, HIDConnectionEvent], Any]
InputReportCallback = Callable[[memoryview, int | None, HIDDeviceInterface, HIDInputReportEvent], Any]


class CallbackRegistry:
    """Append-only subscriber lists, invoked in registration order.

    A failing subscriber is logged and skipped. Coroutine subscribers are
    scheduled on the running loop and do not delay their siblings.
    """

    def __init__(self) -> None:
        self.connect_callbacks: list[ConnectionCallback] = []
        self.disconnect_callbacks: list[ConnectionCallback] = []
        self.input_report_callbacks: dict[str, list[InputReportCallback]] = {}
        self._pending: set[asyncio.Future] = set()

    def add_connect_callback(self, callback: ConnectionCallback) -> None:
        self.connect_callbacks.append(callback)

    def add_disconnect_callback(self, callback: ConnectionCallback) -> None:
        self.disconnect_callbacks.append(callback)

    def add_input_report_callback(self, device_key: str, callback: InputReportCallback) -> None:
        self.input_report_callbacks.setdefault(device_key, []).append(callback)

    def dispatch_connection(self, event: HIDConnectionEvent) -> None:
        if event.type is HIDEventType.CONNECT:
            callbacks = self.connect_callbacks
        elif event.type is HIDEventType.DISCONNECT:
            callbacks = self.disconnect_callbacks
        else:
            logger.warning("Ignoring connection event of unexpected type %s", event.type)
            return
        logger.debug("Dispatching %s for %s to %d subscriber(s).", event.type.value, event.device, len(callbacks))
        for callback in list(callbacks):
            self._invoke(callback, event.device, event)

    def dispatch_input_report(self, event: HIDInputReportEvent) -> None:
        callbacks = list(self.input_report_callbacks.get(event.device.key, ()))
        logger.log(
            verboselogs.SPAM,
            "Dispatching input report %s (%d bytes) from %s to %d subscriber(s).",
            event.report_id,
            event.data.nbytes,
            event.device,
            len(callbacks),
        )
        for callback in callbacks:
            self._invoke(callback, event.data, event.report_id, event.device, event)

    async def drain(self) -> None:
        """Waits for coroutine subscribers scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _invoke(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            result = callback(*args)
        except Exception:
            logger.exception("Subscriber %r raised; continuing with remaining subscribers.", callback)
            return
        if inspect.isawaitable(result):
            self._schedule(callback, result)

    def _schedule(self, callback: Callable[..., Any], awaitable: Any) -> None:
        try:
            future = asyncio.ensure_future(awaitable, loop=asyncio.get_running_loop())
        except RuntimeError:
            logger.error("Subscriber %r returned an awaitable but no event loop is running.", callback)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        self._pending.add(future)
        future.add_done_callback(lambda done: self._finish(callback, done))

    def _finish(self, callback: Callable[..., Any], future: asyncio.Future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Async subscriber %r failed", callback, exc_info=exc)
