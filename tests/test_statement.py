"""Tests for statements and cell values."""

import pytest

from sqld_client.statement import Statement, to_statement, to_statements
from sqld_client.value import b64decode, b64encode


def test_statement_of_collects_args():
    stmt = Statement.of("SELECT ?, ?", 1, "a")
    assert stmt.sql == "SELECT ?, ?"
    assert stmt.args == (1, "a")


def test_statement_list_args_become_tuple():
    stmt = Statement("SELECT ?", [1])
    assert stmt.args == (1,)
    assert hash(stmt) == hash(Statement("SELECT ?", (1,)))


def test_statement_rejects_unsupported_arg():
    with pytest.raises(TypeError):
        Statement.of("SELECT ?", object())


def test_statement_rejects_int_overflow():
    with pytest.raises(TypeError):
        Statement.of("SELECT ?", 2**63)


def test_statement_str_is_json():
    stmt = Statement.of("SELECT ?, ?, ?", None, 1.5, b"\x00\x01")
    assert str(stmt) == '{"sql": "SELECT ?, ?, ?", "args": [null,1.5,{"base64": "AAE"}]}'


def test_to_statement_coerces_str():
    assert to_statement("SELECT 1") == Statement("SELECT 1")


def test_to_statements_rejects_single_string():
    with pytest.raises(TypeError):
        to_statements("SELECT 1")


def test_base64_without_padding():
    assert b64encode(b"ab") == "YWI"
    assert b64decode("YWI") == b"ab"
    assert b64decode("YWI=") == b"ab"


def test_base64_rejects_garbage():
    with pytest.raises(ValueError):
        b64decode("!!!")


@pytest.mark.parametrize("args", ["abc", b"abc"])
def test_statement_rejects_bare_str_or_bytes_args(args):
    with pytest.raises(TypeError, match="single str or bytes"):
        Statement("SELECT ?", args)
