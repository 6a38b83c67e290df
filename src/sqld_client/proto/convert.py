"""Translation between the hrana wire structures and the client model."""

from __future__ import annotations

from collections.abc import Sequence

from sqld_client.errors import DecodeError
from sqld_client.proto import hrana
from sqld_client.result import BatchResult, Column, ResultSet, StepError
from sqld_client.statement import Statement
from sqld_client.value import Value, b64decode, b64encode


def value_to_proto(value: Value) -> hrana.ProtoValue:
    """Encode a cell value."""
    if value is None:
        return hrana.NullValue()
    if isinstance(value, int):
        return hrana.IntegerValue(value=str(int(value)))
    if isinstance(value, float):
        return hrana.FloatValue(value=value)
    if isinstance(value, str):
        return hrana.TextValue(value=value)
    if isinstance(value, bytes):
        return hrana.BlobValue(base64=b64encode(value))
    raise TypeError(f"Unsupported value type: {type(value).__name__}")


def value_from_proto(value: hrana.ProtoValue) -> Value:
    """Decode a cell value."""
    if isinstance(value, hrana.NullValue):
        return None
    if isinstance(value, hrana.IntegerValue):
        try:
            return int(value.value)
        except ValueError as e:
            raise DecodeError(f"Invalid integer value {value.value!r}") from e
    if isinstance(value, hrana.FloatValue):
        return float(value.value)
    if isinstance(value, hrana.TextValue):
        return value.value
    try:
        return b64decode(value.base64)
    except ValueError as e:
        raise DecodeError(f"Invalid blob value: {e}") from e


def stmt_to_proto(stmt: Statement, *, want_rows: bool = True) -> hrana.Stmt:
    """Encode a statement with its positional arguments."""
    return hrana.Stmt(
        sql=stmt.sql,
        args=[value_to_proto(arg) for arg in stmt.args],
        want_rows=want_rows,
    )


def batch_to_proto(stmts: Sequence[Statement]) -> hrana.Batch:
    """Encode statements as unconditional batch steps, one per statement."""
    return hrana.Batch(steps=[hrana.BatchStep(stmt=stmt_to_proto(s)) for s in stmts])


def result_set_from_proto(result: hrana.StmtResult, sql: str) -> ResultSet:
    """Decode a statement result; ``sql`` decides whether counters are kept."""
    columns = [Column(name=c.name, decltype=c.decltype) for c in result.cols]
    rows = []
    for i, row in enumerate(result.rows):
        if len(row) != len(columns):
            raise DecodeError(
                f"Row {i} has {len(row)} values but the result has {len(columns)} columns"
            )
        rows.append([value_from_proto(v) for v in row])
    last_insert_rowid = None
    if result.last_insert_rowid is not None:
        try:
            last_insert_rowid = int(result.last_insert_rowid)
        except ValueError as e:
            raise DecodeError(f"Invalid last_insert_rowid {result.last_insert_rowid!r}") from e
    return ResultSet.build(
        sql,
        columns,
        rows,
        affected_row_count=result.affected_row_count,
        last_insert_rowid=last_insert_rowid,
    )


def error_from_proto(error: hrana.ProtoError) -> StepError:
    """Decode a statement error."""
    return StepError(message=error.message, code=error.code)


def batch_result_from_proto(
    result: hrana.BatchResult, stmts: Sequence[Statement]
) -> BatchResult:
    """Decode a batch result for the statements that produced it.

    Both sequences must match the batch length and every step must carry
    exactly one of result or error.
    """
    if len(result.step_results) != len(stmts) or len(result.step_errors) != len(stmts):
        raise DecodeError(
            f"Batch of {len(stmts)} statements got {len(result.step_results)} results"
            f" and {len(result.step_errors)} errors"
        )
    step_results: list[ResultSet | None] = []
    step_errors: list[StepError | None] = []
    for i, (stmt, res, err) in enumerate(
        zip(stmts, result.step_results, result.step_errors, strict=True)
    ):
        if (res is None) == (err is None):
            raise DecodeError(f"Batch step {i} must have exactly one of result or error")
        step_results.append(result_set_from_proto(res, stmt.sql) if res is not None else None)
        step_errors.append(error_from_proto(err) if err is not None else None)
    return BatchResult(step_results=step_results, step_errors=step_errors)
