"""WebSocket backend speaking hrana.

One WebSocket connection carries many streams; each stream is an
independent SQL connection on the server. Interactive transactions pin one
stream for their whole life; batches and single statements get a
short-lived stream of their own.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence
from typing import Any

import aiohttp

from sqld_client.errors import DecodeError, StatementError, TransportError
from sqld_client.proto import ws
from sqld_client.proto.convert import (
    batch_result_from_proto,
    batch_to_proto,
    result_set_from_proto,
    stmt_to_proto,
)
from sqld_client.result import BatchResult, ResultSet
from sqld_client.session import SessionManager
from sqld_client.statement import Statement

logger = logging.getLogger(__name__)


class HranaConnection:
    """A hrana WebSocket connection with request-id multiplexing.

    A background task reads server messages and resolves the future of the
    matching request. When the socket goes away every pending request fails
    with TransportError.
    """

    def __init__(
        self,
        url: str,
        jwt: str | None = None,
        *,
        http_session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize with the ws:// or wss:// URL and an optional token."""
        self.url = url
        self.jwt = jwt
        self._session = http_session
        self._owns_session = http_session is None
        self.timeout = timeout
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._request_ids = itertools.count(1)
        self._stream_ids = itertools.count(1)
        self._closed = True

    @property
    def is_open(self) -> bool:
        """True while the socket is connected and the handshake succeeded."""
        return not self._closed

    async def connect(self) -> None:
        """Open the socket and perform the hello handshake."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url, protocols=ws.SUBPROTOCOLS)
            await self._ws.send_json(ws.HelloMsg(jwt=self.jwt).to_json(keep_none=True))
            msg = await asyncio.wait_for(self._ws.receive(), self.timeout)
        except (aiohttp.ClientError, ConnectionError, TimeoutError) as e:
            await self.close()
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e

        if msg.type != aiohttp.WSMsgType.TEXT:
            await self.close()
            raise TransportError(f"Connection closed during handshake ({msg.type.name})")
        try:
            hello = ws.decode_server_msg(msg.json())
        except ValueError as e:
            await self.close()
            raise DecodeError(f"Malformed hello response: {e}") from e
        except DecodeError:
            await self.close()
            raise
        if isinstance(hello, ws.HelloErrorMsg):
            await self.close()
            raise TransportError(f"Server rejected hello: {hello.error.message}")
        if not isinstance(hello, ws.HelloOkMsg):
            await self.close()
            raise DecodeError(f"Expected hello_ok, got {hello.type!r}")

        self._closed = False
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        logger.debug("Connected to %s (%s)", self.url, self._ws.protocol)

    async def _read_loop(self, socket: aiohttp.ClientWebSocketResponse) -> None:
        error: Exception = TransportError("WebSocket connection closed")
        try:
            async for msg in socket:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    error = TransportError(f"Unexpected WebSocket frame: {msg.type.name}")
                    break
                try:
                    server_msg = ws.decode_server_msg(msg.json())
                except (ValueError, DecodeError) as e:
                    error = DecodeError(f"Malformed server message: {e}")
                    break
                self._dispatch(server_msg)
        finally:
            self._closed = True
            self._fail_pending(error)

    def _dispatch(self, msg: Any) -> None:
        if isinstance(msg, (ws.ResponseOkMsg, ws.ResponseErrorMsg)):
            future = self._pending.pop(msg.request_id, None)
            if future is None:
                logger.warning("Response for unknown request %d", msg.request_id)
            elif not future.done():
                future.set_result(msg)
        else:
            logger.warning("Ignoring unexpected %s message", msg.type)

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def request(self, request: Any) -> Any:
        """Send a request and return the matching response payload.

        Raises StatementError when the server answers with response_error.
        """
        if self._closed or self._ws is None:
            raise TransportError("WebSocket connection is closed")
        request_id = next(self._request_ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send_json(
                ws.RequestMsg(request_id=request_id, request=request).to_json()
            )
            msg = await asyncio.wait_for(future, self.timeout)
        except (aiohttp.ClientError, ConnectionError) as e:
            raise TransportError(f"WebSocket send failed: {e}") from e
        except TimeoutError as e:
            raise TransportError(f"Request {request_id} timed out") from e
        finally:
            self._pending.pop(request_id, None)
        if isinstance(msg, ws.ResponseErrorMsg):
            raise StatementError(msg.error.message, msg.error.code)
        return msg.response

    async def open_stream(self) -> HranaStream:
        """Open a new stream on this connection."""
        stream_id = next(self._stream_ids)
        response = await self.request(ws.OpenStreamReq(stream_id=stream_id))
        if not isinstance(response, ws.OpenStreamResp):
            raise DecodeError(f"Expected open_stream response, got {response.type!r}")
        logger.debug("Opened stream %d", stream_id)
        return HranaStream(self, stream_id)

    async def close(self) -> None:
        """Close the socket and, if we created it, the HTTP session."""
        self._closed = True
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._reader is not None:
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        self._fail_pending(TransportError("WebSocket connection closed"))
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None


class HranaStream:
    """One server-side SQL connection within a hrana WebSocket."""

    def __init__(self, conn: HranaConnection, stream_id: int) -> None:
        """Initialize with the owning connection and the stream id."""
        self._conn = conn
        self.stream_id = stream_id

    async def execute(self, stmt: Statement) -> ResultSet:
        """Execute one statement on this stream."""
        response = await self._conn.request(
            ws.ExecuteReq(stream_id=self.stream_id, stmt=stmt_to_proto(stmt))
        )
        if not isinstance(response, ws.ExecuteResp):
            raise DecodeError(f"Expected execute response, got {response.type!r}")
        return result_set_from_proto(response.result, stmt.sql)

    async def batch(self, stmts: Sequence[Statement]) -> BatchResult:
        """Execute statements as one batch on this stream."""
        response = await self._conn.request(
            ws.BatchReq(stream_id=self.stream_id, batch=batch_to_proto(stmts))
        )
        if not isinstance(response, ws.BatchResp):
            raise DecodeError(f"Expected batch response, got {response.type!r}")
        return batch_result_from_proto(response.result, stmts)

    async def close(self) -> None:
        """Close the stream on the server."""
        await self._conn.request(ws.CloseStreamReq(stream_id=self.stream_id))
        logger.debug("Closed stream %d", self.stream_id)


class HranaBackend:
    """Backend over a hrana WebSocket connection."""

    def __init__(self, conn: HranaConnection) -> None:
        """Initialize with a connected HranaConnection."""
        self._conn = conn
        self.streams: SessionManager[HranaStream] = SessionManager(
            self._open_stream, self._close_stream
        )

    @classmethod
    async def create(
        cls, url: str, auth_token: str | None = None, *, timeout: float = 30.0
    ) -> HranaBackend:
        """Connect to ``url`` and return a ready backend."""
        conn = HranaConnection(url, auth_token, timeout=timeout)
        await conn.connect()
        return cls(conn)

    async def _open_stream(self) -> HranaStream:
        return await self._conn.open_stream()

    async def _close_stream(self, stream: HranaStream) -> None:
        try:
            await stream.close()
        except Exception:
            logger.warning("Failed to close stream %d", stream.stream_id, exc_info=True)

    async def reconnect(self) -> None:
        """Replace the connection. Open transactions are lost."""
        dropped = self.streams.release_all()
        if dropped:
            logger.warning("Reconnecting drops %d open transaction(s)", len(dropped))
        await self._conn.close()
        self._conn = HranaConnection(self._conn.url, self._conn.jwt, timeout=self._conn.timeout)
        await self._conn.connect()

    async def raw_batch(self, stmts: Sequence[Statement]) -> BatchResult:
        """Run the batch on a fresh stream."""
        stmts = list(stmts)
        stream = await self._conn.open_stream()
        try:
            return await stream.batch(stmts)
        finally:
            await self._close_stream(stream)

    async def execute(self, stmt: Statement) -> ResultSet:
        """Run one statement on a fresh stream."""
        stream = await self._conn.open_stream()
        try:
            return await stream.execute(stmt)
        finally:
            await self._close_stream(stream)

    def has_session(self, tx_id: int) -> bool:
        """True while ``tx_id`` has a pinned stream."""
        return tx_id in self.streams

    async def begin_transaction(self, tx_id: int) -> None:
        """Pin a stream to ``tx_id`` and send BEGIN on it."""
        session = await self.streams.acquire(tx_id)
        try:
            await session.token.execute(Statement("BEGIN"))
        except Exception:
            self.streams.release(tx_id)
            await self._close_stream(session.token)
            raise

    async def execute_in_transaction(self, tx_id: int, stmt: Statement) -> ResultSet:
        """Execute on the stream pinned to ``tx_id``."""
        stream = self.streams.get(tx_id).token
        logger.debug("Transaction %d executing %s", tx_id, stmt)
        try:
            return await stream.execute(stmt)
        except TransportError:
            # The stream died with the socket
            self.streams.release(tx_id)
            raise

    async def _finish(self, tx_id: int, sql: str) -> None:
        stream = self.streams.get(tx_id).token
        self.streams.release(tx_id)
        logger.debug("Transaction %d %s", tx_id, sql.lower())
        try:
            await stream.execute(Statement(sql))
        finally:
            if self._conn.is_open:
                await self._close_stream(stream)

    async def commit_transaction(self, tx_id: int) -> None:
        """Send COMMIT on the pinned stream and close it."""
        await self._finish(tx_id, "COMMIT")

    async def rollback_transaction(self, tx_id: int) -> None:
        """Send ROLLBACK on the pinned stream and close it."""
        await self._finish(tx_id, "ROLLBACK")

    async def close(self) -> None:
        """Shut the connection down; open streams die with it."""
        self.streams.release_all()
        await self._conn.close()
