"""Legacy JSON pipeline backend (``POST /`` with a statements array).

The legacy endpoint is stateless and has no session token, so only
batches and single statements are available.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqld_client.backends.http import HttpTransport, HttpxTransport
from sqld_client.errors import DecodeError, MisuseError, StatementError
from sqld_client.proto import legacy
from sqld_client.result import BatchResult, ResultSet
from sqld_client.statement import Statement

_NO_TRANSACTIONS = (
    "Interactive transactions are not supported by the legacy HTTP backend; use batch()"
)


class LegacyHttpBackend:
    """Backend for sqld's original JSON HTTP API."""

    def __init__(
        self, url: str, auth_token: str | None = None, transport: HttpTransport | None = None
    ) -> None:
        """Initialize with the endpoint URL, token and transport."""
        self.url = url
        self._auth = f"Bearer {auth_token}" if auth_token else None
        self._transport = transport if transport is not None else HttpxTransport()

    async def raw_batch(self, stmts: Sequence[Statement]) -> BatchResult:
        """POST every statement in one request."""
        stmts = list(stmts)
        data = await self._transport.send(self.url, self._auth, legacy.encode_request(stmts))
        return legacy.decode_response(data, stmts)

    async def execute(self, stmt: Statement) -> ResultSet:
        """Execute a single statement."""
        result = await self.raw_batch([stmt])
        error = result.step_errors[0]
        if error is not None:
            raise StatementError(error.message, error.code)
        result_set = result.step_results[0]
        if result_set is None:
            raise DecodeError("Unexpected missing result set")
        return result_set

    def has_session(self, tx_id: int) -> bool:
        """There are never sessions here."""
        return False

    async def begin_transaction(self, tx_id: int) -> None:
        """Not supported."""
        raise MisuseError(_NO_TRANSACTIONS)

    async def execute_in_transaction(self, tx_id: int, stmt: Statement) -> ResultSet:
        """Not supported."""
        raise MisuseError(_NO_TRANSACTIONS)

    async def commit_transaction(self, tx_id: int) -> None:
        """Not supported."""
        raise MisuseError(_NO_TRANSACTIONS)

    async def rollback_transaction(self, tx_id: int) -> None:
        """Not supported."""
        raise MisuseError(_NO_TRANSACTIONS)

    async def close(self) -> None:
        """Close the transport."""
        await self._transport.close()
