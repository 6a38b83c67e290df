"""Backend implementations."""

from sqld_client.backends.backend import Backend
from sqld_client.backends.hrana import HranaBackend
from sqld_client.backends.http import HttpBackend, HttpTransport, HttpxTransport
from sqld_client.backends.legacy_http import LegacyHttpBackend
from sqld_client.backends.local import LocalBackend

__all__ = [
    "Backend",
    "HranaBackend",
    "HttpBackend",
    "HttpTransport",
    "HttpxTransport",
    "LegacyHttpBackend",
    "LocalBackend",
]
