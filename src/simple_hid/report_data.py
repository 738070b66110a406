"""Normalization of outgoing report payloads into raw byte views."""

from collections.abc import Iterable
from typing import Any, Union
import array

# Anything exposing the buffer protocol, or a plain sequence of byte values
ReportData = Union[bytes, bytearray, memoryview, array.array, Iterable[int]]


def to_report_view(data: Any) -> memoryview:
    """Returns a read-only, byte-formatted view over ``data``.

    Typed buffers (``array.array('H', ...)``, ``memoryview`` casts, numpy arrays)
    are reinterpreted as their underlying bytes; element values are never inspected.

    Raises:
        TypeError: If ``data`` is neither a buffer nor an iterable of integers.
        ValueError: If an iterable contains values outside 0..255.
    """
    if isinstance(data, str):
        raise TypeError("Report data must be binary, not str")
    try:
        view = memoryview(data)
    except TypeError:
        if not isinstance(data, Iterable):
            raise TypeError(f"Unsupported report data type: {type(data).__name__}") from None
        view = memoryview(bytes(data))  # ValueError for out-of-range ints

    if view.format != "B" or view.ndim != 1 or not view.c_contiguous:
        # tobytes() flattens in C order regardless of element size or stride
        view = memoryview(view.tobytes())
    return view.toreadonly()
