"""SQL statements with positional parameters."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqld_client.value import Value, b64encode, check_value


@dataclass(frozen=True)
class Statement:
    """An SQL string plus positionally bound arguments.

    The number of arguments is not checked against the ``?`` placeholders;
    a mismatch comes back from the database as a statement error.
    """

    sql: str
    args: tuple[Value, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if isinstance(self.args, (str, bytes)):
            raise TypeError("args must be a sequence of values, not a single str or bytes")
        args = tuple(self.args)
        for arg in args:
            check_value(arg)
        object.__setattr__(self, "args", args)

    @classmethod
    def of(cls, sql: str, *args: Value) -> Statement:
        """Build a statement from SQL and inline arguments."""
        return cls(sql, args)

    def __str__(self) -> str:
        rendered = []
        for arg in self.args:
            if isinstance(arg, bytes):
                rendered.append(json.dumps({"base64": b64encode(arg)}))
            else:
                rendered.append(json.dumps(arg))
        return f'{{"sql": {json.dumps(self.sql)}, "args": [{",".join(rendered)}]}}'


StatementLike = Statement | str


def to_statement(stmt: StatementLike) -> Statement:
    """Coerce a plain SQL string into a Statement."""
    if isinstance(stmt, Statement):
        return stmt
    if isinstance(stmt, str):
        return Statement(stmt)
    raise TypeError(f"Expected Statement or str, got {type(stmt).__name__}")


def to_statements(stmts: Iterable[StatementLike]) -> list[Statement]:
    """Coerce every element of ``stmts``."""
    if isinstance(stmts, (str, Statement)):
        raise TypeError("Expected an iterable of statements, got a single statement")
    return [to_statement(s) for s in stmts]
