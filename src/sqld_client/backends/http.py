"""HTTP pipeline backend (hrana over HTTP, ``POST /v2/pipeline``).

HTTP is stateless, so an interactive transaction is carried by a baton:
every response hands back a token that the next request of the same
transaction must present, optionally together with a new base URL the
server wants that request sent to.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from sqld_client.errors import DecodeError, StatementError, TransportError
from sqld_client.proto import pipeline
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


class HttpTransport(Protocol):
    """Sends one JSON request body and returns the decoded JSON response."""

    async def send(self, url: str, auth: str | None, body: dict[str, Any]) -> Any:
        """POST ``body`` to ``url``. Raises TransportError or DecodeError."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...


class HttpxTransport:
    """HttpTransport over an httpx.AsyncClient."""

    def __init__(self, http_client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        """Initialize with an optional HTTP client."""
        self._http = http_client
        self._timeout = timeout

    async def send(self, url: str, auth: str | None, body: dict[str, Any]) -> Any:
        """POST ``body`` to ``url`` and decode the JSON reply."""
        headers = {"Authorization": auth} if auth else {}
        try:
            resp = await self._get_client().post(
                url, json=body, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        if resp.status_code != 200:
            raise TransportError(f"{resp.status_code}: {resp.text}")
        try:
            return resp.json()
        except ValueError as e:
            raise DecodeError(f"Response from {url} is not valid JSON: {e}") from e

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None


@dataclass
class Cookie:
    """Session state for one transaction: the last baton and the URL to use next."""

    baton: str | None = None
    base_url: str | None = None


async def _new_cookie() -> Cookie:
    return Cookie()


class HttpBackend:
    """Backend speaking the hrana pipeline protocol over an HttpTransport."""

    def __init__(
        self, url: str, auth_token: str | None = None, transport: HttpTransport | None = None
    ) -> None:
        """Initialize with the database base URL, token and transport."""
        if "://" not in url:
            url = f"https://{url}"
        self.base_url = url
        self.url_for_queries = pipeline.pipeline_url(url)
        self._auth = f"Bearer {auth_token}" if auth_token else None
        self._transport = transport if transport is not None else HttpxTransport()
        self.cookies: SessionManager[Cookie] = SessionManager(_new_cookie)

    async def _send(
        self, url: str, baton: str | None, requests: list[Any]
    ) -> pipeline.PipelineResponse:
        body = pipeline.PipelineRequest(baton=baton, requests=requests).to_json()
        data = await self._transport.send(url, self._auth, body)
        response = pipeline.decode_pipeline_response(data)
        if not response.results:
            raise DecodeError("Unexpected empty response from server")
        if len(response.results) > len(requests):
            raise DecodeError(
                f"Unexpected {len(response.results)} responses for {len(requests)} requests"
            )
        return response

    def _url_for(self, cookie: Cookie) -> str:
        if cookie.base_url:
            return pipeline.pipeline_url(cookie.base_url)
        return self.url_for_queries

    @staticmethod
    def _first_ok(response: pipeline.PipelineResponse) -> pipeline.StreamResponse:
        first = response.results[0]
        if isinstance(first, pipeline.StreamResultError):
            raise StatementError(first.error.message, first.error.code)
        return first.response

    async def raw_batch(self, stmts: Sequence[Statement]) -> BatchResult:
        """Send every statement as one batch on a throwaway stream."""
        stmts = list(stmts)
        requests = [
            pipeline.BatchStreamReq(batch=batch_to_proto(stmts)),
            pipeline.CloseStreamReq(),
        ]
        response = await self._send(self.url_for_queries, None, requests)
        result = self._first_ok(response)
        if not isinstance(result, pipeline.BatchStreamResp):
            raise DecodeError(f"Expected a batch response, got {result.type!r}")
        return batch_result_from_proto(result.result, stmts)

    async def execute(self, stmt: Statement) -> ResultSet:
        """Execute one statement on a throwaway stream."""
        requests = [
            pipeline.ExecuteStreamReq(stmt=stmt_to_proto(stmt)),
            pipeline.CloseStreamReq(),
        ]
        response = await self._send(self.url_for_queries, None, requests)
        return self._execute_result(response, stmt)

    def _execute_result(
        self, response: pipeline.PipelineResponse, stmt: Statement
    ) -> ResultSet:
        result = self._first_ok(response)
        if not isinstance(result, pipeline.ExecuteStreamResp):
            raise DecodeError(f"Expected an execute response, got {result.type!r}")
        return result_set_from_proto(result.result, stmt.sql)

    def has_session(self, tx_id: int) -> bool:
        """True while ``tx_id`` holds a baton."""
        return tx_id in self.cookies

    async def begin_transaction(self, tx_id: int) -> None:
        """Start a cookie for ``tx_id`` and send BEGIN."""
        await self.cookies.acquire(tx_id)
        try:
            await self.execute_in_transaction(tx_id, Statement("BEGIN"))
        except Exception:
            await self._close_stream_for(tx_id)
            raise

    async def execute_in_transaction(self, tx_id: int, stmt: Statement) -> ResultSet:
        """Execute ``stmt`` continuing the stream of ``tx_id``."""
        cookie = self.cookies.get(tx_id).token
        requests = [pipeline.ExecuteStreamReq(stmt=stmt_to_proto(stmt))]
        logger.debug("Transaction %d executing %s", tx_id, stmt)
        try:
            response = await self._send(self._url_for(cookie), cookie.baton, requests)
        except (TransportError, DecodeError):
            # The server may or may not have seen the request; the baton is gone either way
            self.cookies.release(tx_id)
            raise
        if response.baton is None:
            self.cookies.release(tx_id)
            raise DecodeError("Stream closed: server returned empty baton")
        self.cookies.update(tx_id, Cookie(baton=response.baton, base_url=response.base_url))
        return self._execute_result(response, stmt)

    async def _close_stream_for(self, tx_id: int) -> None:
        session = self.cookies.release(tx_id)
        if session is None or session.token.baton is None:
            return
        cookie = session.token
        try:
            await self._send(self._url_for(cookie), cookie.baton, [pipeline.CloseStreamReq()])
        except Exception:
            logger.warning("Failed to close stream for transaction %d", tx_id, exc_info=True)

    async def _finish(self, tx_id: int, sql: str) -> None:
        try:
            await self.execute_in_transaction(tx_id, Statement(sql))
        finally:
            await self._close_stream_for(tx_id)

    async def commit_transaction(self, tx_id: int) -> None:
        """Send COMMIT, then close the stream."""
        self.cookies.get(tx_id)
        await self._finish(tx_id, "COMMIT")

    async def rollback_transaction(self, tx_id: int) -> None:
        """Send ROLLBACK, then close the stream."""
        self.cookies.get(tx_id)
        await self._finish(tx_id, "ROLLBACK")

    async def close(self) -> None:
        """Close the streams of abandoned transactions and the transport."""
        for session in self.cookies.release_all():
            if session.token.baton is None:
                continue
            try:
                await self._send(
                    self._url_for(session.token), session.token.baton, [pipeline.CloseStreamReq()]
                )
            except Exception:
                logger.warning(
                    "Failed to close stream for transaction %d", session.tx_id, exc_info=True
                )
        await self._transport.close()