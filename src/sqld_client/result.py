"""Result containers: columns, rows, result sets and batch results."""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqld_client.value import Value

_WRITE_KEYWORD_RE = re.compile(r"\s*(\w+)")
_WRITE_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE"})


def is_write_statement(sql: str) -> bool:
    """Return True if ``sql`` starts with INSERT, UPDATE or DELETE.

    Only the leading keyword is inspected. Statements hidden behind a
    comment, a CTE or a multi-statement string are not recognised.
    """
    match = _WRITE_KEYWORD_RE.match(sql)
    return match is not None and match.group(1).upper() in _WRITE_KEYWORDS


@dataclass(frozen=True)
class Column:
    """A result column. The name may be missing on some protocol paths."""

    name: str | None
    decltype: str | None = None


class Row:
    """A database row supporting both named and positional access.

    The name map is built once from the columns; when two columns share a
    name the later one wins, positional access still reaches both.
    """

    __slots__ = ("_values", "_value_map")

    def __init__(self, values: Sequence[Value], columns: Sequence[str | None] = ()) -> None:
        """Initialize from cell values and the column names they line up with."""
        self._values: tuple[Value, ...] = tuple(values)
        self._value_map: dict[str, Value] = {
            name: value for name, value in zip(columns, self._values) if name is not None
        }

    @property
    def values(self) -> tuple[Value, ...]:
        """Cell values in column order."""
        return self._values

    @property
    def value_map(self) -> dict[str, Value]:
        """Column name to value mapping."""
        return dict(self._value_map)

    def __getitem__(self, key: str | int) -> Value:
        """Get a column value by name or position."""
        if isinstance(key, str):
            return self._value_map[key]
        return self._values[key]

    def get(self, name: str, default: Any = None) -> Any:
        """Get a column value by name, or ``default``."""
        return self._value_map.get(name, default)

    def keys(self) -> list[str]:
        """Return column names."""
        return list(self._value_map)

    def as_dict(self) -> dict[str, Value]:
        """Return the row as a plain dict."""
        return dict(self._value_map)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Value]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._values == other._values and self._value_map == other._value_map
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._values)

    def __repr__(self) -> str:
        return f"Row({list(self._values)!r})"


@dataclass
class ResultSet:
    """Outcome of one statement.

    ``affected_row_count`` and ``last_insert_rowid`` are only set for
    INSERT/UPDATE/DELETE statements; everything else reports 0 and None.
    """

    columns: list[Column] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)
    affected_row_count: int = 0
    last_insert_rowid: int | None = None

    @classmethod
    def build(
        cls,
        sql: str,
        columns: Sequence[Column],
        rows: Sequence[Sequence[Value]],
        affected_row_count: int = 0,
        last_insert_rowid: int | None = None,
    ) -> ResultSet:
        """Assemble a result set, applying the write-statement rule to the counters."""
        names = [c.name for c in columns]
        if not is_write_statement(sql):
            affected_row_count, last_insert_rowid = 0, None
        return cls(
            columns=list(columns),
            rows=[Row(values, names) for values in rows],
            affected_row_count=max(affected_row_count, 0),
            last_insert_rowid=last_insert_rowid,
        )

    @property
    def column_names(self) -> list[str | None]:
        """Column names in order."""
        return [c.name for c in self.columns]


@dataclass(frozen=True)
class StepError:
    """An error the database reported for a single statement."""

    message: str
    code: str | None = None


@dataclass
class BatchResult:
    """Per-statement outcomes of a batch.

    For every index exactly one of ``step_results[i]`` and ``step_errors[i]``
    is set, and both lists are as long as the submitted batch.
    """

    step_results: list[ResultSet | None] = field(default_factory=list)
    step_errors: list[StepError | None] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.step_results) != len(self.step_errors):
            raise ValueError(
                f"Batch has {len(self.step_results)} results but {len(self.step_errors)} errors"
            )

    def __len__(self) -> int:
        return len(self.step_results)

    def first_error(self, start: int = 0) -> tuple[int, StepError] | None:
        """Return ``(index, error)`` of the first failed step at or after ``start``."""
        for i in range(start, len(self.step_errors)):
            error = self.step_errors[i]
            if error is not None:
                return i, error
        return None
