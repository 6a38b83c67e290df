"""Async client for libSQL and sqld databases."""

from sqld_client.client import Client, SyncClient, SyncTransaction
from sqld_client.config import Config
from sqld_client.de import from_row
from sqld_client.errors import (
    ClientError,
    DecodeError,
    ErrorKind,
    MisuseError,
    RowDecodeError,
    StatementError,
    TransportError,
)
from sqld_client.result import BatchResult, Column, ResultSet, Row, StepError
from sqld_client.statement import Statement
from sqld_client.transaction import Transaction, TransactionState
from sqld_client.value import Value

__all__ = [
    "BatchResult",
    "Client",
    "ClientError",
    "Column",
    "Config",
    "DecodeError",
    "ErrorKind",
    "MisuseError",
    "ResultSet",
    "Row",
    "RowDecodeError",
    "Statement",
    "StatementError",
    "StepError",
    "SyncClient",
    "SyncTransaction",
    "Transaction",
    "TransactionState",
    "TransportError",
    "Value",
    "from_row",
]
