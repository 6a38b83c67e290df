"""Shared test fixtures."""

import base64
import itertools
import json
import sqlite3

import httpx
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from sqld_client.backends.local import LocalBackend
from sqld_client.client import Client


class FakeDatabase:
    """A sqlite file answering hrana-shaped statements.

    Each server-side stream gets its own sqlite3 connection to the same
    file, so transactions on different streams are isolated the way they
    are on a real sqld.
    """

    def __init__(self, path):
        self.path = str(path)

    def connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path, isolation_level=None, timeout=1.0)

    @staticmethod
    def decode_value(value):
        kind = value["type"]
        if kind == "null":
            return None
        if kind == "integer":
            return int(value["value"])
        if kind == "blob":
            data = value["base64"]
            return base64.b64decode(data + "=" * (-len(data) % 4))
        return value["value"]

    @staticmethod
    def encode_value(value):
        if value is None:
            return {"type": "null"}
        if isinstance(value, int):
            return {"type": "integer", "value": str(value)}
        if isinstance(value, float):
            return {"type": "float", "value": value}
        if isinstance(value, bytes):
            return {"type": "blob", "base64": base64.b64encode(value).decode().rstrip("=")}
        return {"type": "text", "value": value}

    def execute(self, conn: sqlite3.Connection, stmt):
        """Run a statement; return ``(result, None)`` or ``(None, error)``."""
        args = [self.decode_value(v) for v in stmt.get("args", [])]
        try:
            cursor = conn.execute(stmt["sql"], args)
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            return None, {"message": str(e)}
        cols = [{"name": d[0], "decltype": None} for d in cursor.description or ()]
        result = {
            "cols": cols,
            "rows": [[self.encode_value(v) for v in row] for row in rows],
            "affected_row_count": max(cursor.rowcount, 0),
            "last_insert_rowid": str(cursor.lastrowid) if cursor.lastrowid else None,
        }
        return result, None

    def batch(self, conn: sqlite3.Connection, batch):
        step_results, step_errors = [], []
        for step in batch["steps"]:
            result, error = self.execute(conn, step["stmt"])
            step_results.append(result)
            step_errors.append(error)
        return {"step_results": step_results, "step_errors": step_errors}


class FakePipelineServer:
    """In-process ``/v2/pipeline`` endpoint for httpx.MockTransport.

    Every request and its URL is recorded. A stream stays open under a
    fresh baton until a ``close`` request arrives.
    """

    def __init__(self, db: FakeDatabase, base_url=None):
        self.db = db
        self.base_url = base_url
        self.requests = []
        self.streams = {}
        self._batons = itertools.count(1)

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((str(request.url), request.headers.get("authorization"), body))
        baton = body.get("baton")
        if baton is None:
            conn = self.db.connect()
        elif baton in self.streams:
            conn = self.streams.pop(baton)
        else:
            return httpx.Response(400, text="Invalid baton")

        results = []
        closed = False
        for req in body["requests"]:
            if req["type"] == "execute":
                result, error = self.db.execute(conn, req["stmt"])
                if error is not None:
                    results.append({"type": "error", "error": error})
                else:
                    results.append(
                        {"type": "ok", "response": {"type": "execute", "result": result}}
                    )
            elif req["type"] == "batch":
                result = self.db.batch(conn, req["batch"])
                results.append({"type": "ok", "response": {"type": "batch", "result": result}})
            elif req["type"] == "close":
                closed = True
                results.append({"type": "ok", "response": {"type": "close"}})

        new_baton = None
        if closed:
            conn.close()
        else:
            new_baton = f"baton-{next(self._batons)}"
            self.streams[new_baton] = conn
        return httpx.Response(
            200, json={"baton": new_baton, "base_url": self.base_url, "results": results}
        )


class FakeHranaServer:
    """aiohttp WebSocket handler speaking hrana over a FakeDatabase."""

    def __init__(self, db: FakeDatabase, jwt=None):
        self.db = db
        self.jwt = jwt
        self.requests = []
        self.sockets = []

    async def disconnect(self):
        """Drop every client connection, as a crashing server would."""
        for ws in list(self.sockets):
            await ws.close()

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(protocols=("hrana2", "hrana1"))
        await ws.prepare(request)
        self.sockets.append(ws)
        streams = {}
        try:
            async for msg in ws:
                data = msg.json()
                if data["type"] == "hello":
                    if self.jwt is not None and data.get("jwt") != self.jwt:
                        await ws.send_json(
                            {"type": "hello_error", "error": {"message": "Invalid token"}}
                        )
                        break
                    await ws.send_json({"type": "hello_ok"})
                elif data["type"] == "request":
                    self.requests.append(data["request"])
                    await ws.send_json(self._respond(streams, data["request_id"], data["request"]))
        finally:
            self.sockets.remove(ws)
            for conn in streams.values():
                conn.close()
        await ws.close()
        return ws

    def _respond(self, streams, request_id, req):
        kind = req["type"]
        if kind == "open_stream":
            streams[req["stream_id"]] = self.db.connect()
            return {"type": "response_ok", "request_id": request_id, "response": {"type": kind}}
        if kind == "close_stream":
            streams.pop(req["stream_id"]).close()
            return {"type": "response_ok", "request_id": request_id, "response": {"type": kind}}
        conn = streams[req["stream_id"]]
        if kind == "execute":
            result, error = self.db.execute(conn, req["stmt"])
            if error is not None:
                return {"type": "response_error", "request_id": request_id, "error": error}
            return {
                "type": "response_ok",
                "request_id": request_id,
                "response": {"type": "execute", "result": result},
            }
        result = self.db.batch(conn, req["batch"])
        return {
            "type": "response_ok",
            "request_id": request_id,
            "response": {"type": "batch", "result": result},
        }


@pytest.fixture
def fake_db(tmp_path):
    """Fake server-side database in a temporary file."""
    return FakeDatabase(tmp_path / "server.db")


@pytest.fixture
def pipeline_server(fake_db):
    """Fake hrana-over-HTTP server."""
    return FakePipelineServer(fake_db)


@pytest_asyncio.fixture
async def hrana_server(fake_db):
    """Fake hrana WebSocket server; yields ``(server, ws_url)``."""
    fake = FakeHranaServer(fake_db)
    app = web.Application()
    app.router.add_get("/", fake.handle)
    server = TestServer(app)
    await server.start_server()
    yield fake, str(server.make_url("/").with_scheme("ws"))
    await server.close()


@pytest_asyncio.fixture
async def local_backend():
    """Local backend over a private in-memory database."""
    backend = await LocalBackend.create(":memory:")
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def client():
    """Client over a private in-memory database."""
    c = await Client.in_memory()
    yield c
    await c.close()
