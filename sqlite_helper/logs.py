from __future__ import annotations

# sqlite_helper/logs.py
import logging
import time
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

_SQL_PREVIEW = 120


def _preview(sql: str) -> str:
    s = " ".join(sql.split())
    return s if len(s) <= _SQL_PREVIEW else s[: _SQL_PREVIEW - 3] + "..."


class StatementLog:
    """
    单次调用的执行日志：记录操作名、SQL 摘要、耗时与结果。
    Used as a (sync) context manager around a driver call; failures are
    logged and re-raised unchanged.
    """

    def __init__(self, action: str, sql: Optional[str] = None):
        self.action = action
        self.sql = sql
        self.request_id = uuid.uuid4().hex[:12]
        self.start = time.perf_counter()
        self.result = None

    def set_result(self, obj): self.result = obj

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.start) * 1000)

    def write(self, result: str = "OK", err: Optional[str] = None):
        sql = f" sql={_preview(self.sql)!r}" if self.sql else ""
        if err is None:
            extra = f" -> {self.result!r}" if self.result is not None else ""
            logger.debug(f"[{self.request_id}] {self.action}{sql} {result} in {self.elapsed_ms()}ms{extra}")
        else:
            logger.warning(f"[{self.request_id}] {self.action}{sql} {result} in {self.elapsed_ms()}ms: {err}")

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None:
            self.write()
        else:
            self.write("ERROR", f"{exc_type.__name__}: {exc}")
        return False
