"""Codec for the legacy JSON pipeline (``POST /`` with a statements array).

The response is a JSON array with one entry per statement, each either
``{"results": {"columns": [...], "rows": [[...]]}}`` or
``{"error": {"message": "..."}}``. Cells are plain JSON, except blobs which
travel as ``{"base64": "..."}``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqld_client.errors import DecodeError
from sqld_client.result import BatchResult, Column, ResultSet, StepError
from sqld_client.statement import Statement
from sqld_client.value import Value, b64decode, b64encode


def encode_value(value: Value) -> Any:
    """Encode a parameter as a plain JSON value."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, bytes):
        return {"base64": b64encode(value)}
    return value


def encode_request(stmts: Sequence[Statement]) -> dict[str, Any]:
    """Build the request body for ``stmts``."""
    return {
        "statements": [
            {"q": stmt.sql, "params": [encode_value(arg) for arg in stmt.args]} for stmt in stmts
        ]
    }


def decode_cell(cell: Any, where: str) -> Value:
    """Decode one JSON cell. ``where`` locates it in error messages."""
    if cell is None:
        return None
    # bool is an int subclass but JSON true/false is not a valid cell
    if isinstance(cell, bool):
        raise DecodeError(f"Unsupported boolean value at {where}")
    if isinstance(cell, (int, float, str)):
        return cell
    if isinstance(cell, dict) and set(cell) == {"base64"} and isinstance(cell["base64"], str):
        try:
            return b64decode(cell["base64"])
        except ValueError as e:
            raise DecodeError(f"Invalid blob at {where}: {e}") from e
    raise DecodeError(f"Unsupported value {cell!r} at {where}")


def _decode_results(results: Any, stmt: Statement, index: int) -> ResultSet:
    if not isinstance(results, dict):
        raise DecodeError(f"Result {index}: 'results' must be an object")
    raw_columns = results.get("columns")
    raw_rows = results.get("rows")
    if not isinstance(raw_columns, list):
        raise DecodeError(f"Result {index}: 'columns' must be an array")
    if not isinstance(raw_rows, list):
        raise DecodeError(f"Result {index}: 'rows' must be an array")

    columns = []
    for c, name in enumerate(raw_columns):
        if not isinstance(name, str):
            raise DecodeError(f"Result {index}: column {c} name must be a string, got {name!r}")
        columns.append(Column(name=name))

    rows = []
    for r, raw_row in enumerate(raw_rows):
        if not isinstance(raw_row, list):
            raise DecodeError(f"Result {index}: row {r} must be an array")
        if len(raw_row) != len(columns):
            raise DecodeError(
                f"Result {index}: row {r} has {len(raw_row)} cells, expected {len(columns)}"
            )
        rows.append(
            [
                decode_cell(cell, f"result {index}, row {r}, cell {c}")
                for c, cell in enumerate(raw_row)
            ]
        )

    affected = results.get("affected_row_count", 0)
    last_rowid = results.get("last_insert_rowid")
    if not isinstance(affected, int) or isinstance(affected, bool):
        raise DecodeError(f"Result {index}: 'affected_row_count' must be an integer")
    if last_rowid is not None and (not isinstance(last_rowid, int) or isinstance(last_rowid, bool)):
        raise DecodeError(f"Result {index}: 'last_insert_rowid' must be an integer")
    return ResultSet.build(stmt.sql, columns, rows, affected, last_rowid)


def _decode_error(error: Any, index: int) -> StepError:
    if not isinstance(error, dict) or not isinstance(error.get("message"), str):
        raise DecodeError(f"Result {index}: 'error' must be an object with a string 'message'")
    return StepError(message=error["message"])


def decode_response(data: Any, stmts: Sequence[Statement]) -> BatchResult:
    """Decode the response array for ``stmts`` into a batch result."""
    if not isinstance(data, list):
        raise DecodeError(f"Expected a JSON array response, got {type(data).__name__}")
    if len(data) != len(stmts):
        raise DecodeError(f"Response has {len(data)} results for {len(stmts)} statements")

    step_results: list[ResultSet | None] = []
    step_errors: list[StepError | None] = []
    for i, (entry, stmt) in enumerate(zip(data, stmts, strict=True)):
        if not isinstance(entry, dict):
            raise DecodeError(f"Result {i} must be an object")
        if "error" in entry:
            step_results.append(None)
            step_errors.append(_decode_error(entry["error"], i))
        elif "results" in entry:
            step_results.append(_decode_results(entry["results"], stmt, i))
            step_errors.append(None)
        else:
            raise DecodeError(f"Result {i} has neither 'results' nor 'error'")
    return BatchResult(step_results=step_results, step_errors=step_errors)
