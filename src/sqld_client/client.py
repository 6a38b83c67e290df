"""Client facade: backend selection, batches and transactions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from types import TracebackType

from sqld_client.backends.backend import Backend
from sqld_client.backends.hrana import HranaBackend
from sqld_client.backends.http import HttpBackend, HttpxTransport
from sqld_client.backends.legacy_http import LegacyHttpBackend
from sqld_client.backends.local import LocalBackend
from sqld_client.config import Config, local_path, pop_query_param, replace_scheme
from sqld_client.errors import DecodeError, MisuseError, StatementError
from sqld_client.result import BatchResult, ResultSet
from sqld_client.session import TransactionIds
from sqld_client.statement import Statement, StatementLike, to_statement, to_statements
from sqld_client.transaction import Transaction

logger = logging.getLogger(__name__)

BackendFactory = Callable[[Config], Awaitable[Backend]]


def _network_url(config: Config, secure: str, plain: str) -> tuple[str, str | None]:
    """Normalise the scheme for a network backend and pull out ``authToken``."""
    url, token = pop_query_param(config.url, "authToken")
    scheme = config.scheme
    if scheme in ("libsql", "https", "wss"):
        url = replace_scheme(url, secure)
    elif scheme in ("http", "ws"):
        url = replace_scheme(url, plain)
    return url, config.auth_token or token


async def _create_local(config: Config) -> Backend:
    return await LocalBackend.create(local_path(config.url))


async def _create_http(config: Config) -> Backend:
    url, token = _network_url(config, "https", "http")
    return HttpBackend(url, token, HttpxTransport(timeout=config.timeout))


async def _create_hrana(config: Config) -> Backend:
    url, token = _network_url(config, "wss", "ws")
    return await HranaBackend.create(url, token, timeout=config.timeout)


async def _create_legacy_http(config: Config) -> Backend:
    url, token = _network_url(config, "https", "http")
    return LegacyHttpBackend(url, token, HttpxTransport(timeout=config.timeout))


BACKENDS: dict[str, BackendFactory] = {
    "local": _create_local,
    "http": _create_http,
    "hrana": _create_hrana,
    "legacy_http": _create_legacy_http,
}

SCHEMES: dict[str, str] = {
    "file": "local",
    "http": "http",
    "https": "http",
    "libsql": "http",
    "ws": "hrana",
    "wss": "hrana",
}


class Client:
    """Database client over one backend.

    Build one with ``from_config``, ``from_env`` or ``in_memory``. The
    backend is chosen once, from ``Config.backend`` if set and otherwise
    from the URL scheme. Transaction ids come from a generator owned by
    this client.
    """

    def __init__(self, backend: Backend, *, tx_ids: TransactionIds | None = None) -> None:
        """Initialize with a ready backend."""
        self.backend = backend
        self.tx_ids = tx_ids if tx_ids is not None else TransactionIds()

    @classmethod
    async def from_config(cls, config: Config) -> Client:
        """Connect using ``config``."""
        name = config.backend or SCHEMES.get(config.scheme)
        if name is None:
            raise MisuseError(
                f"Unknown scheme: {config.scheme}. Expected one of {', '.join(sorted(SCHEMES))}"
            )
        logger.debug("Using %s backend for %s", name, config.scheme)
        return cls(await BACKENDS[name](config))

    @classmethod
    async def from_env(cls) -> Client:
        """Connect using LIBSQL_CLIENT_URL and LIBSQL_CLIENT_TOKEN."""
        return await cls.from_config(Config.from_env())

    @classmethod
    async def in_memory(cls) -> Client:
        """Open a private in-memory local database."""
        return cls(await LocalBackend.create(":memory:"))

    async def raw_batch(self, stmts: Iterable[StatementLike]) -> BatchResult:
        """Execute independent statements.

        Each statement succeeds or fails on its own; failures are reported
        in ``step_errors`` and do not raise. For all-or-nothing semantics
        use ``batch``.
        """
        return await self.backend.raw_batch(to_statements(stmts))

    async def batch(self, stmts: Iterable[StatementLike]) -> list[ResultSet]:
        """Execute statements in one transaction.

        The statements are wrapped in BEGIN and END. Returns one result per
        statement, or raises StatementError with the first failure.
        """
        wrapped = [Statement("BEGIN"), *to_statements(stmts), Statement("END")]
        result = await self.backend.raw_batch(wrapped)
        if len(result) != len(wrapped):
            raise DecodeError(f"Batch of {len(wrapped)} statements got {len(result)} results")

        # BEGIN's own outcome is not reported
        failure = result.first_error(start=1)
        if failure is not None:
            index, error = failure
            logger.debug("Batch failed at step %d: %s", index, error.message)
            raise StatementError(error.message, error.code)

        results = []
        for result_set in result.step_results[1:-1]:
            if result_set is None:
                raise DecodeError("Unexpected missing result set")
            results.append(result_set)
        return results

    async def execute(self, stmt: StatementLike) -> ResultSet:
        """Execute a single statement."""
        return await self.backend.execute(to_statement(stmt))

    async def transaction(self) -> Transaction:
        """Start an interactive transaction."""
        tx = Transaction(self.backend, self.tx_ids.next())
        await tx.begin()
        return tx

    async def close(self) -> None:
        """Close the backend."""
        await self.backend.close()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


class SyncTransaction:
    """Blocking flavour of Transaction."""

    def __init__(self, tx: Transaction, loop: asyncio.AbstractEventLoop) -> None:
        """Initialize with the async transaction and the loop driving it."""
        self._tx = tx
        self._loop = loop

    @property
    def id(self) -> int:
        """Transaction id."""
        return self._tx.id

    @property
    def is_active(self) -> bool:
        """True between BEGIN and COMMIT/ROLLBACK."""
        return self._tx.is_active

    def execute(self, stmt: StatementLike) -> ResultSet:
        """Execute a statement within this transaction."""
        return self._loop.run_until_complete(self._tx.execute(stmt))

    def commit(self) -> None:
        """Commit the transaction."""
        self._loop.run_until_complete(self._tx.commit())

    def rollback(self) -> None:
        """Roll back the transaction."""
        self._loop.run_until_complete(self._tx.rollback())


class SyncClient:
    """Blocking flavour of Client for code without an event loop.

    Runs the async client on a private event loop, so it must not be used
    from inside a running loop.
    """

    def __init__(self, client: Client, loop: asyncio.AbstractEventLoop) -> None:
        """Initialize with an async client and the loop it was created on."""
        self._client = client
        self._loop = loop

    @classmethod
    def _connect(cls, factory: Callable[[], Awaitable[Client]]) -> SyncClient:
        loop = asyncio.new_event_loop()
        try:
            client = loop.run_until_complete(factory())
        except BaseException:
            loop.close()
            raise
        return cls(client, loop)

    @classmethod
    def from_config(cls, config: Config) -> SyncClient:
        """Connect using ``config``."""
        return cls._connect(lambda: Client.from_config(config))

    @classmethod
    def from_env(cls) -> SyncClient:
        """Connect using LIBSQL_CLIENT_URL and LIBSQL_CLIENT_TOKEN."""
        return cls._connect(Client.from_env)

    @classmethod
    def in_memory(cls) -> SyncClient:
        """Open a private in-memory local database."""
        return cls._connect(Client.in_memory)

    def raw_batch(self, stmts: Iterable[StatementLike]) -> BatchResult:
        """Execute independent statements."""
        return self._loop.run_until_complete(self._client.raw_batch(stmts))

    def batch(self, stmts: Iterable[StatementLike]) -> list[ResultSet]:
        """Execute statements in one transaction."""
        return self._loop.run_until_complete(self._client.batch(stmts))

    def execute(self, stmt: StatementLike) -> ResultSet:
        """Execute a single statement."""
        return self._loop.run_until_complete(self._client.execute(stmt))

    def transaction(self) -> SyncTransaction:
        """Start an interactive transaction."""
        tx = self._loop.run_until_complete(self._client.transaction())
        return SyncTransaction(tx, self._loop)

    def close(self) -> None:
        """Close the client and its event loop."""
        if self._loop.is_closed():
            return
        try:
            self._loop.run_until_complete(self._client.close())
        finally:
            self._loop.close()

    def __enter__(self) -> SyncClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
