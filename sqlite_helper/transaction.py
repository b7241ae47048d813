from __future__ import annotations

# sqlite_helper/transaction.py
import sqlite3

import aiosqlite

from . import db

MODES = ("DEFERRED", "IMMEDIATE", "EXCLUSIVE")


class TransactionStateError(RuntimeError):
    """Raised when a transaction handle is used after it was finalized or its connection closed."""


def normalize_mode(mode: str | None) -> str:
    m = (mode or "DEFERRED").strip().upper()
    if m not in MODES:
        raise ValueError(f"invalid transaction mode: {mode!r} (expected one of {', '.join(MODES)})")
    return m


class _BaseTransaction:
    def __init__(self, connection, mode: str = "DEFERRED"):
        self._connection = connection
        self.mode = mode
        self._finalized = False

    @property
    def connection(self):
        return self._connection

    @property
    def active(self) -> bool:
        return not self._finalized and db.is_open(self._connection)

    def ensure_active(self) -> None:
        if self._finalized:
            raise TransactionStateError("transaction has already been committed or rolled back")
        if not db.is_open(self._connection):
            # 连接已被外部关闭：只报一次错，不再尝试关闭
            self._finalized = True
            raise TransactionStateError("transaction connection was closed before the transaction was finalized")


class Transaction(_BaseTransaction):
    """A unit of work bound to its own blocking connection until commit or rollback."""

    def _finish(self, op) -> None:
        self.ensure_active()
        self._finalized = True
        try:
            op()
        finally:
            db.close(self._connection)

    def commit(self) -> None:
        self._finish(self._connection.commit)

    def rollback(self) -> None:
        self._finish(self._connection.rollback)

    def close(self) -> None:
        """Roll back if still pending; no-op once finalized."""
        if self.active:
            self.rollback()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.active:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        return False


class AsyncTransaction(_BaseTransaction):
    """Async counterpart of Transaction, bound to an aiosqlite connection."""

    async def _finish(self, op) -> None:
        self.ensure_active()
        self._finalized = True
        try:
            await op()
        finally:
            await db.close_async(self._connection)

    async def commit(self) -> None:
        await self._finish(self._connection.commit)

    async def rollback(self) -> None:
        await self._finish(self._connection.rollback)

    async def close(self) -> None:
        if self.active:
            await self.rollback()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.active:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        return False


async def begin_async(connection: aiosqlite.Connection, mode: str) -> AsyncTransaction:
    await connection.execute(f"BEGIN {mode}")
    return AsyncTransaction(connection, mode)


def begin(connection: sqlite3.Connection, mode: str) -> Transaction:
    connection.execute(f"BEGIN {mode}")
    return Transaction(connection, mode)
