"""Tests for configuration."""

import pytest

from sqld_client.config import (
    Config,
    get_log_level,
    get_timeout,
    local_path,
    pop_query_param,
    replace_scheme,
)
from sqld_client.errors import MisuseError


def test_defaults(monkeypatch):
    monkeypatch.delenv("LIBSQL_CLIENT_TIMEOUT", raising=False)
    monkeypatch.delenv("LIBSQL_CLIENT_LOG_LEVEL", raising=False)
    assert get_timeout() == 30.0
    assert get_log_level() == "WARNING"


def test_from_env(monkeypatch):
    monkeypatch.setenv("LIBSQL_CLIENT_URL", "https://db.example")
    monkeypatch.setenv("LIBSQL_CLIENT_TOKEN", "tok")
    monkeypatch.setenv("LIBSQL_CLIENT_BACKEND", "legacy_http")
    monkeypatch.setenv("LIBSQL_CLIENT_TIMEOUT", "5")
    config = Config.from_env()
    assert config == Config("https://db.example", "tok", "legacy_http", 5.0)


def test_from_env_requires_url(monkeypatch):
    monkeypatch.delenv("LIBSQL_CLIENT_URL", raising=False)
    with pytest.raises(MisuseError, match="LIBSQL_CLIENT_URL"):
        Config.from_env()


def test_empty_token_is_none(monkeypatch):
    monkeypatch.setenv("LIBSQL_CLIENT_URL", "file::memory:")
    monkeypatch.setenv("LIBSQL_CLIENT_TOKEN", "")
    monkeypatch.delenv("LIBSQL_CLIENT_BACKEND", raising=False)
    assert Config.from_env().auth_token is None


def test_url_without_scheme_is_misuse():
    with pytest.raises(MisuseError):
        Config("just-a-name")


def test_unknown_backend_is_misuse():
    with pytest.raises(MisuseError, match="Unknown backend"):
        Config("https://db.example", backend="carrier-pigeon")


def test_scheme_is_lowercased():
    assert Config("LIBSQL://db.example").scheme == "libsql"


def test_with_auth_token():
    config = Config("https://db.example", backend="http", timeout=2.0)
    assert config.with_auth_token("t") == Config("https://db.example", "t", "http", 2.0)


def test_pop_query_param():
    url, token = pop_query_param("libsql://db.example/?authToken=abc&tls=1", "authToken")
    assert token == "abc"
    assert url == "libsql://db.example/?tls=1"


def test_pop_query_param_absent():
    assert pop_query_param("libsql://db.example", "authToken") == ("libsql://db.example", None)


def test_replace_scheme():
    assert replace_scheme("libsql://db.example/x", "wss") == "wss://db.example/x"


@pytest.mark.parametrize(
    "url, path",
    [
        ("file:///tmp/x.db", "/tmp/x.db"),
        ("file:////tmp/x.db", "/tmp/x.db"),
        ("file:relative.db", "relative.db"),
        ("file::memory:", ":memory:"),
    ],
)
def test_local_path(url, path):
    assert local_path(url) == path


def test_local_path_rejects_other_schemes():
    with pytest.raises(MisuseError):
        local_path("https://db.example")
