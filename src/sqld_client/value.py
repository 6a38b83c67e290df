"""Cell values.

A value is one of ``None``, ``int``, ``float``, ``str`` or ``bytes``; the
Python type is the tag. ``bool`` is accepted on input and bound as 0/1.
"""

from __future__ import annotations

import base64
import binascii
from typing import TypeAlias

Value: TypeAlias = None | int | float | str | bytes

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def check_value(value: object) -> None:
    """Raise TypeError unless ``value`` can be bound as a parameter."""
    if value is None or isinstance(value, (str, bytes, float)):
        return
    if isinstance(value, int):
        if not INT64_MIN <= value <= INT64_MAX:
            raise TypeError(f"Integer {value} does not fit in 64 bits")
        return
    raise TypeError(f"Unsupported value type: {type(value).__name__}")


def b64encode(data: bytes) -> str:
    """Standard base64 without padding, as the hrana protocol writes it."""
    return base64.b64encode(data).decode("ascii").rstrip("=")


def b64decode(text: str) -> bytes:
    """Decode standard base64 with or without padding.

    Raises ValueError on malformed input.
    """
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64: {e}") from e
