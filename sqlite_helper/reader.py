from __future__ import annotations

# sqlite_helper/reader.py
import sqlite3
from typing import AsyncIterator, Iterator, List, Optional

import aiosqlite

from . import db


def _column_names(description) -> List[str]:
    return [d[0] for d in description] if description else []


class DataReader:
    """
    Forward-only reader over a result set. When it owns its connection,
    closing the reader (or reading past the last row) closes the connection.
    """

    def __init__(self, cursor: sqlite3.Cursor, connection: sqlite3.Connection, owns_connection: bool = True):
        self._cursor = cursor
        self._connection = connection
        self._owns_connection = owns_connection
        self.columns = _column_names(cursor.description)
        self.closed = False

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def fetchone(self) -> Optional[sqlite3.Row]:
        if self.closed:
            return None
        row = self._cursor.fetchone()
        if row is None:
            self.close()
        return row

    def fetchmany(self, size: int = 100) -> List[sqlite3.Row]:
        if self.closed:
            return []
        rows = self._cursor.fetchmany(size)
        if len(rows) < size:
            self.close()
        return rows

    def fetchall(self) -> List[sqlite3.Row]:
        if self.closed:
            return []
        try:
            return self._cursor.fetchall()
        finally:
            self.close()

    def __iter__(self) -> Iterator[sqlite3.Row]:
        while True:
            row = self.fetchone()
            if row is None:
                return
            yield row

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._cursor.close()
        finally:
            if self._owns_connection:
                db.close(self._connection)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class AsyncDataReader:
    """Async counterpart of DataReader, backed by an aiosqlite cursor."""

    def __init__(self, cursor: aiosqlite.Cursor, connection: aiosqlite.Connection, owns_connection: bool = True):
        self._cursor = cursor
        self._connection = connection
        self._owns_connection = owns_connection
        self.columns = _column_names(cursor.description)
        self.closed = False

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._connection

    async def fetchone(self) -> Optional[sqlite3.Row]:
        if self.closed:
            return None
        row = await self._cursor.fetchone()
        if row is None:
            await self.close()
        return row

    async def fetchmany(self, size: int = 100) -> List[sqlite3.Row]:
        if self.closed:
            return []
        rows = list(await self._cursor.fetchmany(size))
        if len(rows) < size:
            await self.close()
        return rows

    async def fetchall(self) -> List[sqlite3.Row]:
        if self.closed:
            return []
        try:
            return list(await self._cursor.fetchall())
        finally:
            await self.close()

    async def __aiter__(self) -> AsyncIterator[sqlite3.Row]:
        while True:
            row = await self.fetchone()
            if row is None:
                return
            yield row

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._cursor.close()
        finally:
            if self._owns_connection:
                await db.close_async(self._connection)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False
