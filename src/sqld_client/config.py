"""Environment-variable-based configuration and URL helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqld_client.errors import MisuseError

BACKEND_NAMES = ("local", "http", "hrana", "legacy_http")


def get_database_url() -> str | None:
    """Return the database URL from LIBSQL_CLIENT_URL."""
    return os.environ.get("LIBSQL_CLIENT_URL")


def get_auth_token() -> str | None:
    """Return the bearer token from LIBSQL_CLIENT_TOKEN."""
    return os.environ.get("LIBSQL_CLIENT_TOKEN") or None


def get_backend() -> str | None:
    """Return the explicit backend override from LIBSQL_CLIENT_BACKEND."""
    return os.environ.get("LIBSQL_CLIENT_BACKEND") or None


def get_timeout() -> float:
    """Return the network timeout in seconds from LIBSQL_CLIENT_TIMEOUT."""
    return float(os.environ.get("LIBSQL_CLIENT_TIMEOUT", "30.0"))


def get_log_level() -> str:
    """Return the logging level from LIBSQL_CLIENT_LOG_LEVEL."""
    return os.environ.get("LIBSQL_CLIENT_LOG_LEVEL", "WARNING")


@dataclass
class Config:
    """Connection descriptor handed to ``Client.from_config``.

    ``backend`` overrides scheme-based selection; it is the only way to
    reach the legacy JSON pipeline since that shares the ``http`` schemes.
    """

    url: str
    auth_token: str | None = None
    backend: str | None = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        parts = urlsplit(self.url)
        if not parts.scheme:
            raise MisuseError(f"Failed to parse url: {self.url!r} has no scheme")
        if self.backend is not None and self.backend not in BACKEND_NAMES:
            raise MisuseError(
                f"Unknown backend: {self.backend}. Expected one of {', '.join(BACKEND_NAMES)}"
            )

    @property
    def scheme(self) -> str:
        """Lower-cased URL scheme."""
        return urlsplit(self.url).scheme.lower()

    def with_auth_token(self, token: str) -> Config:
        """Return a copy carrying ``token``."""
        return Config(self.url, auth_token=token, backend=self.backend, timeout=self.timeout)

    @classmethod
    def from_env(cls) -> Config:
        """Build a config from LIBSQL_CLIENT_* variables."""
        url = get_database_url()
        if not url:
            raise MisuseError(
                "LIBSQL_CLIENT_URL variable should point to your libSQL/sqld database"
            )
        return cls(
            url=url,
            auth_token=get_auth_token(),
            backend=get_backend(),
            timeout=get_timeout(),
        )


def pop_query_param(url: str, param: str) -> tuple[str, str | None]:
    """Remove ``param`` from the query string of ``url``.

    Returns the rewritten URL and the popped value (None if absent, in which
    case the URL comes back untouched).
    """
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    value = None
    kept = []
    for key, val in pairs:
        if key == param and value is None:
            value = val
        else:
            kept.append((key, val))
    if value is None:
        return url, None
    return urlunsplit(parts._replace(query=urlencode(kept))), value


def replace_scheme(url: str, scheme: str) -> str:
    """Swap the scheme of ``url``, keeping everything else."""
    return urlunsplit(urlsplit(url)._replace(scheme=scheme))


def local_path(url: str) -> str:
    """Turn a ``file:`` URL into a filesystem path for sqlite."""
    parts = urlsplit(url)
    if parts.scheme.lower() != "file":
        raise MisuseError(f"Local URL needs to start with file:, got {url!r}")
    path = parts.netloc + parts.path
    if not path:
        raise MisuseError(f"Local URL {url!r} has no path")
    # file:////tmp/x.db is accepted as well as file:///tmp/x.db
    if path.startswith("//"):
        path = path[1:]
    return path
