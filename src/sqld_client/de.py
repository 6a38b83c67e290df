"""Map rows onto record types.

``from_row`` fills a dataclass or pydantic model from a row, matching
fields to columns by name in any order. Supported field types are ``str``,
``bytes``, ``int``, ``float``, ``bool``, ``None`` and ``X | None`` of
those. Integers are accepted for ``float`` fields; ``bool`` only accepts
the integers 0 and 1. Every field must have a column of the same name.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from typing import Any, TypeVar

from pydantic import BaseModel

from sqld_client.errors import RowDecodeError
from sqld_client.result import Row

T = TypeVar("T")

_NONE_TYPE = type(None)


def _record_fields(cls: type[Any]) -> dict[str, Any]:
    if isinstance(cls, type) and issubclass(cls, BaseModel):
        return {name: info.annotation for name, info in cls.model_fields.items()}
    if dataclasses.is_dataclass(cls):
        hints = typing.get_type_hints(cls)
        return {f.name: hints[f.name] for f in dataclasses.fields(cls) if f.init}
    raise TypeError(f"from_row expects a dataclass or pydantic model, got {cls!r}")


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def _convert(value: Any, target: Any, field: str) -> Any:
    origin = typing.get_origin(target)
    if origin is typing.Union or origin is types.UnionType:
        args = typing.get_args(target)
        rest = [a for a in args if a is not _NONE_TYPE]
        if len(rest) != 1 or len(args) != 2:
            raise RowDecodeError(field, f"unsupported union type {target!r}")
        if value is None:
            return None
        return _convert(value, rest[0], field)

    if target is _NONE_TYPE or target is None:
        if value is None:
            return None
        raise RowDecodeError(field, f"expected null, got {_type_name(value)}")

    is_int = isinstance(value, int) and not isinstance(value, bool)
    if target is bool:
        if is_int and value in (0, 1):
            return bool(value)
        raise RowDecodeError(field, f"expected integer 0 or 1 for bool, got {value!r}")
    if target is int:
        if is_int:
            return value
        raise RowDecodeError(field, f"expected integer, got {_type_name(value)}")
    if target is float:
        if is_int or isinstance(value, float):
            return float(value)
        raise RowDecodeError(field, f"expected float, got {_type_name(value)}")
    if target is str:
        if isinstance(value, str):
            return value
        raise RowDecodeError(field, f"expected text, got {_type_name(value)}")
    if target is bytes:
        if isinstance(value, bytes):
            return value
        raise RowDecodeError(field, f"expected blob, got {_type_name(value)}")
    raise RowDecodeError(field, f"unsupported field type {target!r}")


def from_row(row: Row, cls: type[T]) -> T:
    """Build a ``cls`` instance from ``row``."""
    fields = _record_fields(cls)
    values = row.value_map
    kwargs = {}
    for name, target in fields.items():
        if name not in values:
            raise RowDecodeError(name, "no column with this name")
        kwargs[name] = _convert(values[name], target, name)
    return cls(**kwargs)
