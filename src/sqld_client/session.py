"""Transaction-id to session bookkeeping.

Each interactive transaction is pinned to one backend session: a baton
cookie for the HTTP pipeline, an open stream for WebSocket. The manager
hands out the session for an id, refreshes its token after each statement,
and forgets it exactly once on commit or rollback.

Entries are never reaped on their own. A transaction that is abandoned
without commit or rollback keeps its slot until ``release`` or
``release_all`` is called.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqld_client.errors import MisuseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionIds:
    """Monotonic transaction id generator owned by one client."""

    def __init__(self, start: int = 1) -> None:
        """Initialize so the first id handed out is ``start``."""
        self._lock = threading.Lock()
        self._counter = itertools.count(start)
        self._last = start - 1

    def next(self) -> int:
        """Allocate the next id."""
        with self._lock:
            self._last = next(self._counter)
            return self._last

    @property
    def last(self) -> int:
        """The most recently allocated id (``start - 1`` before the first)."""
        return self._last


@dataclass
class Session(Generic[T]):
    """A live session: the transaction id and its current continuation token."""

    tx_id: int
    token: T


class SessionManager(Generic[T]):
    """Slot map from transaction id to session.

    ``opener`` creates a fresh token for a new session; ``closer`` disposes
    of a token that lost an insert race. The lock only guards dict access;
    opening happens outside it so unrelated transactions never wait on
    each other's I/O.
    """

    def __init__(
        self,
        opener: Callable[[], Awaitable[T]],
        closer: Callable[[T], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize with the token factory and optional disposer."""
        self._opener = opener
        self._closer = closer
        self._sessions: dict[int, Session[T]] = {}
        self._lock = threading.Lock()

    async def acquire(self, tx_id: int) -> Session[T]:
        """Return the session for ``tx_id``, opening one if needed."""
        # Fast path: transaction already has a session
        with self._lock:
            session = self._sessions.get(tx_id)
        if session is not None:
            logger.debug("Found session for transaction %d", tx_id)
            return session

        token = await self._opener()
        with self._lock:
            existing = self._sessions.get(tx_id)
            if existing is None:
                session = Session(tx_id, token)
                self._sessions[tx_id] = session
        if existing is not None:
            # Someone else inserted first; keep theirs and drop ours
            logger.debug("Discarding duplicate session for transaction %d", tx_id)
            await self._dispose(token)
            return existing
        logger.debug("Opened session for transaction %d", tx_id)
        return session

    def get(self, tx_id: int) -> Session[T]:
        """Return the live session for ``tx_id``.

        Raises MisuseError if the transaction was never begun or has
        already been committed or rolled back.
        """
        with self._lock:
            session = self._sessions.get(tx_id)
        if session is None:
            raise MisuseError(f"No active session for transaction {tx_id}")
        return session

    def update(self, tx_id: int, token: T) -> None:
        """Store the continuation token returned by the last statement."""
        with self._lock:
            session = self._sessions.get(tx_id)
            if session is None:
                raise MisuseError(f"No active session for transaction {tx_id}")
            session.token = token

    def release(self, tx_id: int) -> Session[T] | None:
        """Forget the session for ``tx_id`` and return it, if there was one."""
        with self._lock:
            session = self._sessions.pop(tx_id, None)
        if session is not None:
            logger.debug("Released session for transaction %d", tx_id)
        return session

    def release_all(self) -> list[Session[T]]:
        """Forget every session and return them."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        return sessions

    def __contains__(self, tx_id: object) -> bool:
        with self._lock:
            return tx_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    async def _dispose(self, token: T) -> None:
        if self._closer is None:
            return
        try:
            await self._closer(token)
        except Exception:
            logger.warning("Failed to close duplicate session", exc_info=True)
