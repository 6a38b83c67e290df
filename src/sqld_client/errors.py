"""Error hierarchy shared by every backend.

Backend-specific failures (httpx, aiohttp, sqlite) are mapped into one of
these at the edge, so callers only ever catch ``ClientError`` subclasses.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classification of client failures."""

    MISUSE = "misuse"
    DECODE = "decode"
    STATEMENT = "statement"
    TRANSPORT = "transport"


class ClientError(Exception):
    """Base class for all sqld-client errors."""

    kind: ErrorKind


class MisuseError(ClientError):
    """Caller-side contract violation: bad config, unknown scheme, dead transaction."""

    kind = ErrorKind.MISUSE


class DecodeError(ClientError):
    """A response did not have the shape the protocol requires."""

    kind = ErrorKind.DECODE


class RowDecodeError(DecodeError):
    """A row could not be mapped onto a record type."""

    def __init__(self, field: str, reason: str) -> None:
        """Initialize with the offending field name and the reason."""
        self.field = field
        self.reason = reason
        super().__init__(f"field {field!r}: {reason}")


class StatementError(ClientError):
    """The database rejected a statement."""

    kind = ErrorKind.STATEMENT

    def __init__(self, message: str, code: str | None = None) -> None:
        """Initialize with the server message and optional error code."""
        self.message = message
        self.code = code
        super().__init__(message if code is None else f"{message} ({code})")


class TransportError(ClientError):
    """The request never produced a usable response (network, HTTP status, timeout)."""

    kind = ErrorKind.TRANSPORT
