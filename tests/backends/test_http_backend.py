"""Tests for the HTTP pipeline backend (mocked HTTP)."""

import httpx
import pytest

from sqld_client.backends.http import HttpBackend, HttpxTransport
from sqld_client.errors import DecodeError, MisuseError, StatementError, TransportError
from sqld_client.statement import Statement


def _backend(handler, url="https://db.example", token="secret") -> HttpBackend:
    transport = HttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return HttpBackend(url, token, transport)


def test_url_without_scheme_defaults_to_https():
    backend = HttpBackend("db.example")
    assert backend.url_for_queries == "https://db.example/v2/pipeline"


@pytest.mark.asyncio
async def test_execute_sends_execute_and_close(pipeline_server):
    backend = _backend(pipeline_server.handle)
    try:
        result = await backend.execute(Statement.of("SELECT ? AS n", 7))
    finally:
        await backend.close()
    assert result.rows[0]["n"] == 7
    url, auth, body = pipeline_server.requests[0]
    assert url == "https://db.example/v2/pipeline"
    assert auth == "Bearer secret"
    assert "baton" not in body
    assert [r["type"] for r in body["requests"]] == ["execute", "close"]


@pytest.mark.asyncio
async def test_no_token_sends_no_authorization(pipeline_server):
    backend = _backend(pipeline_server.handle, token=None)
    try:
        await backend.execute(Statement("SELECT 1"))
    finally:
        await backend.close()
    assert pipeline_server.requests[0][1] is None


@pytest.mark.asyncio
async def test_raw_batch_isolates_failures(pipeline_server):
    backend = _backend(pipeline_server.handle)
    try:
        result = await backend.raw_batch(
            [
                Statement("CREATE TABLE t(id)"),
                Statement("INSERT INTO missing VALUES (1)"),
                Statement("INSERT INTO t VALUES (1)"),
            ]
        )
    finally:
        await backend.close()
    assert result.step_errors[0] is None
    assert result.step_results[1] is None
    assert "no such table" in result.step_errors[1].message
    assert result.step_results[2].affected_row_count == 1
    body = pipeline_server.requests[0][2]
    assert [r["type"] for r in body["requests"]] == ["batch", "close"]


@pytest.mark.asyncio
async def test_execute_error_raises_statement_error(pipeline_server):
    backend = _backend(pipeline_server.handle)
    try:
        with pytest.raises(StatementError, match="no such table"):
            await backend.execute(Statement("SELECT * FROM missing"))
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_transaction_threads_batons(pipeline_server):
    backend = _backend(pipeline_server.handle)
    try:
        await backend.execute(Statement("CREATE TABLE t(id)"))
        await backend.begin_transaction(1)
        await backend.begin_transaction(2)
        await backend.execute_in_transaction(1, Statement("INSERT INTO t VALUES (1)"))
        seen = await backend.execute_in_transaction(2, Statement("SELECT count(*) FROM t"))
        assert seen.rows[0][0] == 0
        await backend.commit_transaction(2)
        await backend.commit_transaction(1)
        result = await backend.execute(Statement("SELECT count(*) FROM t"))
        assert result.rows[0][0] == 1
    finally:
        await backend.close()

    # Each transaction presents the baton it was last handed, never the other one's
    presented = [body.get("baton") for _, _, body in pipeline_server.requests]
    assert presented == [
        None,  # CREATE
        None,  # BEGIN 1
        None,  # BEGIN 2
        "baton-1",  # INSERT in 1
        "baton-2",  # SELECT in 2
        "baton-4",  # COMMIT 2
        "baton-5",  # close 2
        "baton-3",  # COMMIT 1
        "baton-6",  # close 1
        None,  # SELECT
    ]
    assert len(backend.cookies) == 0


@pytest.mark.asyncio
async def test_transaction_rollback_discards(pipeline_server):
    backend = _backend(pipeline_server.handle)
    try:
        await backend.execute(Statement("CREATE TABLE t(id)"))
        await backend.begin_transaction(1)
        await backend.execute_in_transaction(1, Statement("INSERT INTO t VALUES (1)"))
        await backend.rollback_transaction(1)
        result = await backend.execute(Statement("SELECT count(*) FROM t"))
        assert result.rows[0][0] == 0
    finally:
        await backend.close()
    assert pipeline_server.streams == {}


@pytest.mark.asyncio
async def test_base_url_redirects_next_request(pipeline_server):
    pipeline_server.base_url = "https://replica.example"
    backend = _backend(pipeline_server.handle)
    try:
        await backend.begin_transaction(1)
        await backend.execute_in_transaction(1, Statement("SELECT 1"))
        await backend.commit_transaction(1)
    finally:
        await backend.close()
    urls = [url for url, _, _ in pipeline_server.requests]
    assert urls[0] == "https://db.example/v2/pipeline"
    assert all(url == "https://replica.example/v2/pipeline" for url in urls[1:])


@pytest.mark.asyncio
async def test_missing_baton_ends_transaction():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "baton": None,
                "results": [
                    {
                        "type": "ok",
                        "response": {"type": "execute", "result": {"cols": [], "rows": []}},
                    }
                ],
            },
        )

    backend = _backend(handler)
    try:
        with pytest.raises(DecodeError, match="empty baton"):
            await backend.begin_transaction(1)
        with pytest.raises(MisuseError):
            await backend.execute_in_transaction(1, Statement("SELECT 1"))
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_commit_succeeds_when_close_fails(pipeline_server):
    def handler(request: httpx.Request) -> httpx.Response:
        response = pipeline_server.handle(request)
        body = pipeline_server.requests[-1][2]
        if [r["type"] for r in body["requests"]] == ["close"]:
            return httpx.Response(503, text="unavailable")
        return response

    backend = _backend(handler)
    try:
        await backend.begin_transaction(1)
        await backend.commit_transaction(1)
        assert 1 not in backend.cookies
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_commit_after_commit_is_misuse(pipeline_server):
    backend = _backend(pipeline_server.handle)
    try:
        await backend.begin_transaction(1)
        await backend.commit_transaction(1)
        with pytest.raises(MisuseError):
            await backend.commit_transaction(1)
        with pytest.raises(MisuseError):
            await backend.rollback_transaction(1)
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_http_error_status_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="Unauthorized")

    backend = _backend(handler)
    try:
        with pytest.raises(TransportError, match="401: Unauthorized"):
            await backend.execute(Statement("SELECT 1"))
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_network_failure_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    backend = _backend(handler)
    try:
        with pytest.raises(TransportError):
            await backend.execute(Statement("SELECT 1"))
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_transport_failure_in_transaction_drops_session(pipeline_server):
    fail = False

    def handler(request: httpx.Request) -> httpx.Response:
        if fail:
            raise httpx.ReadTimeout("timed out")
        return pipeline_server.handle(request)

    backend = _backend(handler)
    try:
        await backend.begin_transaction(1)
        fail = True
        with pytest.raises(TransportError):
            await backend.execute_in_transaction(1, Statement("SELECT 1"))
        assert 1 not in backend.cookies
    finally:
        fail = False
        await backend.close()


@pytest.mark.asyncio
async def test_too_many_results_is_decode_error():
    def handler(request: httpx.Request) -> httpx.Response:
        ok = {"type": "ok", "response": {"type": "close"}}
        return httpx.Response(200, json={"baton": None, "results": [ok, ok, ok]})

    backend = _backend(handler)
    try:
        with pytest.raises(DecodeError):
            await backend.execute(Statement("SELECT 1"))
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_empty_results_is_decode_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"baton": None, "results": []})

    backend = _backend(handler)
    try:
        with pytest.raises(DecodeError):
            await backend.execute(Statement("SELECT 1"))
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_close_closes_abandoned_streams(pipeline_server):
    backend = _backend(pipeline_server.handle)
    await backend.begin_transaction(1)
    assert len(pipeline_server.streams) == 1
    await backend.close()
    assert pipeline_server.streams == {}
