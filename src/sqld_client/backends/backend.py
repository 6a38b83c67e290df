"""Backend protocol: the capability set every transport implementation provides.

The client programs against this protocol. Each backend (local file, HTTP
pipeline, WebSocket, legacy JSON) supplies a concrete implementation and
owns whatever session state its transport needs.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from sqld_client.result import BatchResult, ResultSet
from sqld_client.statement import Statement


@runtime_checkable
class Backend(Protocol):
    """Async database backend."""

    async def raw_batch(self, stmts: Sequence[Statement]) -> BatchResult:
        """Execute independent statements, reporting each outcome separately."""
        ...

    async def execute(self, stmt: Statement) -> ResultSet:
        """Execute a single statement outside any transaction."""
        ...

    def has_session(self, tx_id: int) -> bool:
        """True while ``tx_id`` still has a live session on this backend."""
        ...

    async def begin_transaction(self, tx_id: int) -> None:
        """Open the session for ``tx_id`` and issue BEGIN on it."""
        ...

    async def execute_in_transaction(self, tx_id: int, stmt: Statement) -> ResultSet:
        """Execute a statement on the session of an active transaction."""
        ...

    async def commit_transaction(self, tx_id: int) -> None:
        """Issue COMMIT and release the session."""
        ...

    async def rollback_transaction(self, tx_id: int) -> None:
        """Issue ROLLBACK and release the session."""
        ...

    async def close(self) -> None:
        """Release connections and any sessions still open."""
        ...
