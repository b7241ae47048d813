from __future__ import annotations

# sqlite_helper/params.py
import datetime as dt
from enum import Enum
from typing import Any, Iterable, Optional

_PREFIXES = (":", "@", "$")


class DbType(str, Enum):
    INTEGER = "INTEGER"
    REAL = "REAL"
    TEXT = "TEXT"
    BLOB = "BLOB"
    BOOLEAN = "BOOLEAN"
    DATETIME = "DATETIME"
    NULL = "NULL"


def _to_datetime_text(v) -> str:
    if isinstance(v, (dt.datetime, dt.date)):
        return v.isoformat(sep=" ") if isinstance(v, dt.datetime) else v.isoformat()
    return str(v)


def _to_blob(v) -> bytes:
    if isinstance(v, str):
        return v.encode("utf-8")
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v)
    raise TypeError(f"cannot bind {type(v).__name__} as BLOB")


_BOOL_TEXT = {"true": 1, "false": 0, "1": 1, "0": 0}


def _to_bool_int(v) -> int:
    if isinstance(v, str):
        key = v.strip().lower()
        if key not in _BOOL_TEXT:
            raise ValueError(f"cannot bind {v!r} as BOOLEAN")
        return _BOOL_TEXT[key]
    return int(bool(v))


_COERCE = {
    DbType.INTEGER: int,
    DbType.REAL: float,
    DbType.TEXT: str,
    DbType.BLOB: _to_blob,
    DbType.BOOLEAN: _to_bool_int,
    DbType.DATETIME: _to_datetime_text,
    DbType.NULL: lambda v: None,
}


class SQLiteParameter:
    """A named (or positional, when name is None) statement parameter with an optional type."""

    __slots__ = ("name", "value", "db_type")

    def __init__(self, name: Optional[str], value: Any, db_type: DbType | str | None = None):
        self.name = name
        self.value = value
        self.db_type = DbType(db_type.upper()) if isinstance(db_type, str) else db_type

    @property
    def key(self) -> Optional[str]:
        if self.name is None:
            return None
        name = self.name.strip()
        if name[:1] in _PREFIXES:
            name = name[1:]
        if not name:
            raise ValueError(f"invalid parameter name: {self.name!r}")
        return name

    def bound_value(self) -> Any:
        if self.value is None or self.db_type is None:
            return self.value
        return _COERCE[self.db_type](self.value)

    def __repr__(self) -> str:
        t = f", {self.db_type.value}" if self.db_type else ""
        return f"SQLiteParameter({self.name!r}, {self.value!r}{t})"


def _as_parameter(p) -> SQLiteParameter:
    if isinstance(p, SQLiteParameter):
        return p
    if isinstance(p, tuple) and len(p) in (2, 3):
        return SQLiteParameter(*p)
    raise TypeError(f"expected SQLiteParameter or (name, value[, db_type]) tuple, got {type(p).__name__}")


def bind_parameters(parameters: Iterable | None) -> dict | tuple | None:
    """
    把参数列表转换为 sqlite3 可接受的绑定形式：
    全部具名 -> dict；全部位置参数 -> tuple；无参数 -> None（跳过绑定）。
    """
    if not parameters:
        return None
    params = [_as_parameter(p) for p in parameters]
    keys = [p.key for p in params]
    named = [k for k in keys if k is not None]
    if not named:
        return tuple(p.bound_value() for p in params)
    if len(named) != len(keys):
        raise ValueError("cannot mix named and positional parameters")
    out = {}
    for k, p in zip(keys, params):
        if k in out:
            raise ValueError(f"duplicate parameter name: {k}")
        out[k] = p.bound_value()
    return out
