"""Hrana JSON structures shared by the pipeline and WebSocket protocols."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ProtoModel(BaseModel):
    """Base for wire structures; unknown fields from newer servers are ignored."""

    model_config = ConfigDict(extra="ignore")

    def to_json(self, *, keep_none: bool = False) -> dict[str, Any]:
        """Dump to a JSON-ready dict. Absent optionals are omitted unless ``keep_none``."""
        return self.model_dump(mode="json", exclude_none=not keep_none)


# -- Values --


class NullValue(ProtoModel):
    type: Literal["null"] = "null"


class IntegerValue(ProtoModel):
    type: Literal["integer"] = "integer"
    # Carried as a decimal string so 64-bit values survive JSON number parsing
    value: str | int


class FloatValue(ProtoModel):
    type: Literal["float"] = "float"
    value: float


class TextValue(ProtoModel):
    type: Literal["text"] = "text"
    value: str


class BlobValue(ProtoModel):
    type: Literal["blob"] = "blob"
    base64: str


ProtoValue = Annotated[
    NullValue | IntegerValue | FloatValue | TextValue | BlobValue,
    Field(discriminator="type"),
]


# -- Statements and results --


class Stmt(ProtoModel):
    """A statement with positional arguments."""

    sql: str
    args: list[ProtoValue] = Field(default_factory=list)
    want_rows: bool = True


class Col(ProtoModel):
    name: str | None = None
    decltype: str | None = None


class StmtResult(ProtoModel):
    """Rows and counters produced by one statement."""

    cols: list[Col]
    rows: list[list[ProtoValue]]
    affected_row_count: int = 0
    last_insert_rowid: str | int | None = None


class ProtoError(ProtoModel):
    message: str
    code: str | None = None


class BatchStep(ProtoModel):
    """One batch step. Steps are unconditional; ``condition`` is always null."""

    condition: dict[str, Any] | None = None
    stmt: Stmt


class Batch(ProtoModel):
    steps: list[BatchStep]


class BatchResult(ProtoModel):
    """Per-step results as sent by the server."""

    step_results: list[StmtResult | None]
    step_errors: list[ProtoError | None]
