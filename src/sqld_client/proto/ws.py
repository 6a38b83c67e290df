"""Hrana-over-WebSocket messages."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, ValidationError

from sqld_client.errors import DecodeError
from sqld_client.proto.hrana import Batch, BatchResult, ProtoError, ProtoModel, Stmt, StmtResult

SUBPROTOCOLS = ("hrana2", "hrana1")


class HelloMsg(ProtoModel):
    type: Literal["hello"] = "hello"
    jwt: str | None = None


class OpenStreamReq(ProtoModel):
    type: Literal["open_stream"] = "open_stream"
    stream_id: int


class CloseStreamReq(ProtoModel):
    type: Literal["close_stream"] = "close_stream"
    stream_id: int


class ExecuteReq(ProtoModel):
    type: Literal["execute"] = "execute"
    stream_id: int
    stmt: Stmt


class BatchReq(ProtoModel):
    type: Literal["batch"] = "batch"
    stream_id: int
    batch: Batch


Request = Annotated[
    OpenStreamReq | CloseStreamReq | ExecuteReq | BatchReq, Field(discriminator="type")
]


class RequestMsg(ProtoModel):
    type: Literal["request"] = "request"
    request_id: int
    request: Request


class OpenStreamResp(ProtoModel):
    type: Literal["open_stream"] = "open_stream"


class CloseStreamResp(ProtoModel):
    type: Literal["close_stream"] = "close_stream"


class ExecuteResp(ProtoModel):
    type: Literal["execute"] = "execute"
    result: StmtResult


class BatchResp(ProtoModel):
    type: Literal["batch"] = "batch"
    result: BatchResult


Response = Annotated[
    OpenStreamResp | CloseStreamResp | ExecuteResp | BatchResp, Field(discriminator="type")
]


class HelloOkMsg(ProtoModel):
    type: Literal["hello_ok"] = "hello_ok"


class HelloErrorMsg(ProtoModel):
    type: Literal["hello_error"] = "hello_error"
    error: ProtoError


class ResponseOkMsg(ProtoModel):
    type: Literal["response_ok"] = "response_ok"
    request_id: int
    response: Response


class ResponseErrorMsg(ProtoModel):
    type: Literal["response_error"] = "response_error"
    request_id: int
    error: ProtoError


ServerMsg = Annotated[
    HelloOkMsg | HelloErrorMsg | ResponseOkMsg | ResponseErrorMsg, Field(discriminator="type")
]

_server_msg: TypeAdapter[Any] = TypeAdapter(ServerMsg)


def decode_server_msg(data: Any) -> HelloOkMsg | HelloErrorMsg | ResponseOkMsg | ResponseErrorMsg:
    """Validate a decoded JSON frame as a server message."""
    try:
        return _server_msg.validate_python(data)
    except ValidationError as e:
        raise DecodeError(f"Malformed server message: {e}") from e
