"""Interactive transactions."""

from __future__ import annotations

import logging
from enum import StrEnum
from types import TracebackType

from sqld_client.backends.backend import Backend
from sqld_client.errors import DecodeError, MisuseError, TransportError
from sqld_client.result import ResultSet
from sqld_client.statement import StatementLike, to_statement

logger = logging.getLogger(__name__)


class TransactionState(StrEnum):
    """Lifecycle of an interactive transaction."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction:
    """A sequence of statements executed atomically on one backend session.

    Obtain one from ``Client.transaction()``. Statements must be issued one
    at a time; the handle is not safe for concurrent use. Exactly one of
    ``commit`` or ``rollback`` ends it, after which every call raises
    MisuseError.

    Used as an async context manager it commits on a clean exit and rolls
    back when the block raises.
    """

    def __init__(self, backend: Backend, tx_id: int) -> None:
        """Initialize an unstarted transaction; call ``begin`` to start it."""
        self._backend = backend
        self.id = tx_id
        self._state = TransactionState.UNINITIALIZED

    @property
    def state(self) -> TransactionState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_active(self) -> bool:
        """True between BEGIN and COMMIT/ROLLBACK."""
        return self._state is TransactionState.ACTIVE

    async def begin(self) -> None:
        """Send BEGIN and move to ACTIVE."""
        if self._state is not TransactionState.UNINITIALIZED:
            raise MisuseError(f"Transaction {self.id} was already started")
        await self._backend.begin_transaction(self.id)
        self._state = TransactionState.ACTIVE
        logger.debug("Transaction %d started", self.id)

    def _check_active(self) -> None:
        if self._state is not TransactionState.ACTIVE:
            raise MisuseError(f"Transaction {self.id} is {self._state.value}")

    async def execute(self, stmt: StatementLike) -> ResultSet:
        """Execute a statement within this transaction.

        A transport or decode failure that cost the backend its session
        leaves the transaction ROLLED_BACK.
        """
        self._check_active()
        try:
            return await self._backend.execute_in_transaction(self.id, to_statement(stmt))
        except (TransportError, DecodeError):
            if not self._backend.has_session(self.id):
                logger.debug("Transaction %d lost its session", self.id)
                self._state = TransactionState.ROLLED_BACK
            raise

    async def commit(self) -> None:
        """Commit the transaction.

        If COMMIT itself fails the server-side session is discarded, which
        rolls the transaction back; the handle ends up ROLLED_BACK and the
        error is raised.
        """
        self._check_active()
        self._state = TransactionState.ROLLED_BACK
        await self._backend.commit_transaction(self.id)
        self._state = TransactionState.COMMITTED

    async def rollback(self) -> None:
        """Roll back the transaction, cancelling its side-effects."""
        self._check_active()
        self._state = TransactionState.ROLLED_BACK
        await self._backend.rollback_transaction(self.id)

    async def __aenter__(self) -> Transaction:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self.is_active:
            return
        if exc_type is None:
            await self.commit()
            return
        try:
            await self.rollback()
        except Exception:
            logger.warning("Rollback of transaction %d failed", self.id, exc_info=True)
