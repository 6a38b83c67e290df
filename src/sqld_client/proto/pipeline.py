"""Hrana-over-HTTP pipeline messages (``POST /v2/pipeline``)."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field, ValidationError

from sqld_client.errors import DecodeError
from sqld_client.proto.hrana import Batch, BatchResult, ProtoError, ProtoModel, Stmt, StmtResult

PIPELINE_PATH = "v2/pipeline"


class ExecuteStreamReq(ProtoModel):
    type: Literal["execute"] = "execute"
    stmt: Stmt


class BatchStreamReq(ProtoModel):
    type: Literal["batch"] = "batch"
    batch: Batch


class CloseStreamReq(ProtoModel):
    type: Literal["close"] = "close"


StreamRequest = Annotated[
    ExecuteStreamReq | BatchStreamReq | CloseStreamReq, Field(discriminator="type")
]


class PipelineRequest(ProtoModel):
    """Request body: an optional baton continuing a stream, plus the requests."""

    baton: str | None = None
    requests: list[StreamRequest]


class ExecuteStreamResp(ProtoModel):
    type: Literal["execute"] = "execute"
    result: StmtResult


class BatchStreamResp(ProtoModel):
    type: Literal["batch"] = "batch"
    result: BatchResult


class CloseStreamResp(ProtoModel):
    type: Literal["close"] = "close"


StreamResponse = Annotated[
    ExecuteStreamResp | BatchStreamResp | CloseStreamResp, Field(discriminator="type")
]


class StreamResultOk(ProtoModel):
    type: Literal["ok"] = "ok"
    response: StreamResponse


class StreamResultError(ProtoModel):
    type: Literal["error"] = "error"
    error: ProtoError


StreamResult = Annotated[StreamResultOk | StreamResultError, Field(discriminator="type")]


class PipelineResponse(ProtoModel):
    """Response body.

    ``baton`` continues the stream on the next request; ``base_url``, when
    set, is where that next request has to go.
    """

    baton: str | None = None
    base_url: str | None = None
    results: list[StreamResult]


def decode_pipeline_response(data: Any) -> PipelineResponse:
    """Validate a decoded JSON body as a pipeline response."""
    try:
        return PipelineResponse.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"Malformed pipeline response: {e}") from e


def pipeline_url(base_url: str) -> str:
    """Append the pipeline endpoint to a base URL."""
    return f"{base_url.rstrip('/')}/{PIPELINE_PATH}"
