"""
SQLiteHelper: one object per logical database, exposing scalar / reader /
table / non-query / transaction calls in blocking and async forms.

Scoped calls (scalar, table, non-query) open a fresh connection and always
close it before returning. execute_reader and begin_transaction hand their
connection to the returned handle, which closes it when finished.
Driver errors propagate unchanged.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Optional

import pandas as pd

from . import db
from .logs import StatementLog
from .params import bind_parameters
from .reader import AsyncDataReader, DataReader
from .transaction import AsyncTransaction, Transaction, begin, begin_async, normalize_mode

logger = logging.getLogger(__name__)


def _bound_connection(transaction, expected: type):
    if not isinstance(transaction, expected):
        raise TypeError(f"expected {expected.__name__}, got {type(transaction).__name__}")
    transaction.ensure_active()
    return transaction.connection


def _affected(rowcount: int) -> int:
    # sqlite3 reports -1 for DDL and SELECT
    return rowcount if rowcount >= 0 else 0


def _to_frame(rows, description) -> pd.DataFrame:
    columns = [d[0] for d in description] if description else []
    # object first, then nullable dtypes: INTEGER + NULL stays Int64 instead of lossy float64
    df = pd.DataFrame([tuple(r) for r in rows], columns=columns, dtype=object)
    return df.convert_dtypes()


class SQLiteHelper:
    def __init__(self, connection_string: Optional[str] = None, timeout: Optional[float] = None,
                 foreign_keys: Optional[bool] = None):
        self._connection_string = connection_string or db.get_db_path()
        self._options = db.get_connect_options(timeout=timeout, foreign_keys=foreign_keys)

    @property
    def connection_string(self) -> str:
        return self._connection_string

    def __repr__(self) -> str:
        return f"SQLiteHelper({self._connection_string!r})"

    # ---------------- connection scoping ----------------

    def _create_connection(self):
        return db.connect(self._connection_string, **self._options)

    async def _create_connection_async(self):
        return await db.connect_async(self._connection_string, **self._options)

    @contextmanager
    def _scope(self, transaction: Optional[Transaction]):
        if transaction is not None:
            yield _bound_connection(transaction, Transaction)
            return
        with db.get_conn(self._connection_string, **self._options) as conn:
            yield conn

    @asynccontextmanager
    async def _scope_async(self, transaction: Optional[AsyncTransaction]):
        if transaction is not None:
            yield _bound_connection(transaction, AsyncTransaction)
            return
        async with db.get_async_conn(self._connection_string, **self._options) as conn:
            yield conn

    @staticmethod
    def _execute(conn, command_text: str, parameters):
        bound = bind_parameters(parameters)
        if bound is None:
            return conn.execute(command_text)
        return conn.execute(command_text, bound)

    @staticmethod
    async def _execute_async(conn, command_text: str, parameters):
        return await conn.execute(command_text, bind_parameters(parameters))

    # ---------------- scalar ----------------

    def execute_scalar(self, command_text: str, *parameters, transaction: Optional[Transaction] = None,
                       default: Any = None) -> Any:
        """Column 0 of row 0, or `default` when the query yields no rows."""
        with StatementLog("execute_scalar", command_text) as log, self._scope(transaction) as conn:
            cur = self._execute(conn, command_text, parameters)
            try:
                row = cur.fetchone()
            finally:
                cur.close()
            value = default if row is None else row[0]
            log.set_result(value)
            return value

    async def execute_scalar_async(self, command_text: str, *parameters,
                                   transaction: Optional[AsyncTransaction] = None, default: Any = None) -> Any:
        with StatementLog("execute_scalar_async", command_text) as log:
            async with self._scope_async(transaction) as conn:
                cur = await self._execute_async(conn, command_text, parameters)
                try:
                    row = await cur.fetchone()
                finally:
                    await cur.close()
                value = default if row is None else row[0]
                log.set_result(value)
                return value

    # ---------------- reader ----------------

    def execute_reader(self, command_text: str, *parameters,
                       transaction: Optional[Transaction] = None) -> DataReader:
        """
        Forward-only reader. Without a transaction the reader owns a new
        connection and closes it on close() or exhaustion; the caller must
        close (or fully consume) it.
        """
        with StatementLog("execute_reader", command_text):
            if transaction is not None:
                conn = _bound_connection(transaction, Transaction)
                return DataReader(self._execute(conn, command_text, parameters), conn, owns_connection=False)
            conn = self._create_connection()
            try:
                cur = self._execute(conn, command_text, parameters)
            except Exception:
                db.close(conn)
                raise
            return DataReader(cur, conn)

    async def execute_reader_async(self, command_text: str, *parameters,
                                   transaction: Optional[AsyncTransaction] = None) -> AsyncDataReader:
        with StatementLog("execute_reader_async", command_text):
            if transaction is not None:
                conn = _bound_connection(transaction, AsyncTransaction)
                cur = await self._execute_async(conn, command_text, parameters)
                return AsyncDataReader(cur, conn, owns_connection=False)
            conn = await self._create_connection_async()
            try:
                cur = await self._execute_async(conn, command_text, parameters)
            except Exception:
                await db.close_async(conn)
                raise
            return AsyncDataReader(cur, conn)

    # ---------------- data table ----------------

    def execute_data_table(self, command_text: str, *parameters,
                           transaction: Optional[Transaction] = None) -> pd.DataFrame:
        with StatementLog("execute_data_table", command_text) as log, self._scope(transaction) as conn:
            cur = self._execute(conn, command_text, parameters)
            try:
                df = _to_frame(cur.fetchall(), cur.description)
            finally:
                cur.close()
            log.set_result(f"{len(df)} rows")
            return df

    async def execute_data_table_async(self, command_text: str, *parameters,
                                       transaction: Optional[AsyncTransaction] = None) -> pd.DataFrame:
        with StatementLog("execute_data_table_async", command_text) as log:
            async with self._scope_async(transaction) as conn:
                cur = await self._execute_async(conn, command_text, parameters)
                try:
                    df = _to_frame(await cur.fetchall(), cur.description)
                finally:
                    await cur.close()
                log.set_result(f"{len(df)} rows")
                return df

    # ---------------- non-query ----------------

    def execute_non_query(self, command_text: str, *parameters,
                          transaction: Optional[Transaction] = None) -> int:
        """Number of rows changed by the statement (0 for DDL)."""
        with StatementLog("execute_non_query", command_text) as log, self._scope(transaction) as conn:
            cur = self._execute(conn, command_text, parameters)
            try:
                n = _affected(cur.rowcount)
            finally:
                cur.close()
            log.set_result(n)
            return n

    async def execute_non_query_async(self, command_text: str, *parameters,
                                      transaction: Optional[AsyncTransaction] = None) -> int:
        with StatementLog("execute_non_query_async", command_text) as log:
            async with self._scope_async(transaction) as conn:
                cur = await self._execute_async(conn, command_text, parameters)
                try:
                    n = _affected(cur.rowcount)
                finally:
                    await cur.close()
                log.set_result(n)
                return n

    # ---------------- transactions ----------------

    def begin_transaction(self, mode: Optional[str] = None) -> Transaction:
        """Open a new connection and begin a transaction on it; finish with commit or rollback."""
        mode = normalize_mode(mode)
        with StatementLog("begin_transaction", f"BEGIN {mode}"):
            conn = self._create_connection()
            try:
                return begin(conn, mode)
            except Exception:
                db.close(conn)
                raise

    async def begin_transaction_async(self, mode: Optional[str] = None) -> AsyncTransaction:
        mode = normalize_mode(mode)
        with StatementLog("begin_transaction_async", f"BEGIN {mode}"):
            conn = await self._create_connection_async()
            try:
                return await begin_async(conn, mode)
            except Exception:
                await db.close_async(conn)
                raise

    def commit_transaction(self, transaction: Optional[Transaction]) -> None:
        if transaction is None:
            logger.debug("commit_transaction called without a transaction; nothing to do")
            return
        with StatementLog("commit_transaction"):
            transaction.commit()

    async def commit_transaction_async(self, transaction: Optional[AsyncTransaction]) -> None:
        if transaction is None:
            logger.debug("commit_transaction_async called without a transaction; nothing to do")
            return
        with StatementLog("commit_transaction_async"):
            await transaction.commit()

    def rollback_transaction(self, transaction: Optional[Transaction]) -> None:
        if transaction is None:
            logger.debug("rollback_transaction called without a transaction; nothing to do")
            return
        with StatementLog("rollback_transaction"):
            transaction.rollback()

    async def rollback_transaction_async(self, transaction: Optional[AsyncTransaction]) -> None:
        if transaction is None:
            logger.debug("rollback_transaction_async called without a transaction; nothing to do")
            return
        with StatementLog("rollback_transaction_async"):
            await transaction.rollback()

    # ---------------- disposal ----------------

    def close(self) -> None:
        """Nothing to release: the helper keeps no connection between calls."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()
        return False
