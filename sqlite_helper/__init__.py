"""SQLite access helper: scalar, reader, table, non-query and transaction calls, blocking and async.

Keep call sites thin: construct one SQLiteHelper per database and let it
scope connections per call.
"""
from __future__ import annotations

from .helper import SQLiteHelper
from .params import DbType, SQLiteParameter
from .reader import AsyncDataReader, DataReader
from .transaction import AsyncTransaction, Transaction, TransactionStateError

__all__ = [
    "SQLiteHelper",
    "SQLiteParameter",
    "DbType",
    "DataReader",
    "AsyncDataReader",
    "Transaction",
    "AsyncTransaction",
    "TransactionStateError",
]

__version__ = "0.1.0"
