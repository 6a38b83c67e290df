"""Local-file backend on an embedded SQLite connection.

There are no sessions here: transaction ids are accepted and ignored, and
BEGIN/COMMIT/ROLLBACK run as ordinary statements on the one shared
connection. Every statement goes through a single lock because the
connection must not be used by two callers at once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

import aiosqlite

from sqld_client.errors import StatementError
from sqld_client.result import BatchResult, Column, ResultSet, StepError
from sqld_client.statement import Statement

logger = logging.getLogger(__name__)


class LocalBackend:
    """Backend over an aiosqlite connection in autocommit mode.

    Autocommit (``isolation_level=None``) keeps the sqlite3 module from
    opening implicit transactions, so the explicit BEGIN/END sent by batches
    and interactive transactions are the only ones.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        """Initialize with an aiosqlite connection."""
        self._conn = conn
        self._lock = asyncio.Lock()

    @classmethod
    async def create(cls, path: Path | str) -> LocalBackend:
        """Open the database at ``path`` (``":memory:"`` for a private in-memory one)."""
        path = str(path)
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(path, isolation_level=None)
        logger.debug("Opened local database %s", path)
        return cls(conn)

    async def _run(self, stmt: Statement) -> ResultSet:
        cursor = await self._conn.execute(stmt.sql, stmt.args)
        try:
            rows = await cursor.fetchall()
            columns = [Column(name=d[0]) for d in cursor.description or ()]
            return ResultSet.build(
                stmt.sql,
                columns,
                rows,
                affected_row_count=cursor.rowcount,
                last_insert_rowid=cursor.lastrowid,
            )
        finally:
            await cursor.close()

    async def raw_batch(self, stmts: Sequence[Statement]) -> BatchResult:
        """Execute each statement in turn; a failing one does not stop the rest."""
        result = BatchResult()
        async with self._lock:
            for stmt in stmts:
                try:
                    result.step_results.append(await self._run(stmt))
                    result.step_errors.append(None)
                except aiosqlite.Error as e:
                    result.step_results.append(None)
                    result.step_errors.append(StepError(message=str(e)))
        return result

    async def execute(self, stmt: Statement) -> ResultSet:
        """Execute a single statement."""
        async with self._lock:
            try:
                return await self._run(stmt)
            except aiosqlite.Error as e:
                raise StatementError(str(e)) from e

    def has_session(self, tx_id: int) -> bool:
        """The shared connection serves every transaction."""
        return True

    async def begin_transaction(self, tx_id: int) -> None:
        """Send BEGIN."""
        logger.debug("Transaction %d begin", tx_id)
        await self.execute(Statement("BEGIN"))

    async def execute_in_transaction(self, tx_id: int, stmt: Statement) -> ResultSet:
        """Execute on the shared connection."""
        return await self.execute(stmt)

    async def commit_transaction(self, tx_id: int) -> None:
        """Send COMMIT; if it fails, roll back so the connection is not left mid-transaction."""
        logger.debug("Transaction %d commit", tx_id)
        try:
            await self.execute(Statement("COMMIT"))
        except StatementError:
            await self._rollback_quietly(tx_id)
            raise

    async def rollback_transaction(self, tx_id: int) -> None:
        """Send ROLLBACK."""
        logger.debug("Transaction %d rollback", tx_id)
        await self.execute(Statement("ROLLBACK"))

    async def _rollback_quietly(self, tx_id: int) -> None:
        try:
            await self.execute(Statement("ROLLBACK"))
        except StatementError:
            logger.warning("Rollback after failed commit of transaction %d failed", tx_id)

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()
