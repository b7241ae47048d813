from __future__ import annotations

# sqlite_helper/db.py
import logging
import os
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator

import aiosqlite
import yaml

logger = logging.getLogger(__name__)

# 数据库路径解析顺序：
# 1) 环境变量 SQLITE_HELPER_DB_PATH（最高优先级）
# 2) config.yaml 的 test_db_path（当检测到测试环境时）
# 3) config.yaml 的 db_path
# 4) 兜底：项目根 sqlite_helper.db
_PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
_ROOT_DB = os.path.join(_PROJECT_ROOT, "sqlite_helper.db")

DEFAULT_TIMEOUT = 5.0
MEMORY = ":memory:"


def _config_path() -> str:
    return os.environ.get("SQLITE_HELPER_CONFIG") or os.path.join(_PROJECT_ROOT, "config.yaml")


def _read_config_yaml() -> dict:
    cfg_path = _config_path()
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
        return {}
    if not isinstance(cfg, dict):
        logger.warning(f"Ignoring config {cfg_path}: top level is not a mapping")
        return {}
    out = {}
    for k in ("db_path", "test_db_path"):
        v = cfg.get(k)
        if isinstance(v, str) and v.strip():
            out[k] = v.strip()
    if cfg.get("timeout") is not None:
        out["timeout"] = float(cfg["timeout"])
    if cfg.get("foreign_keys") is not None:
        out["foreign_keys"] = bool(cfg["foreign_keys"])
    return out


def get_db_path() -> str:
    env_path = os.environ.get("SQLITE_HELPER_DB_PATH")
    cfg = _read_config_yaml()
    cfg_db = cfg.get("db_path")
    cfg_test = cfg.get("test_db_path")
    is_test = (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)

    if env_path:
        path = env_path
    elif is_test and cfg_test:
        path = cfg_test
    elif cfg_db:
        path = cfg_db
    else:
        path = _ROOT_DB

    if path != MEMORY and not path.startswith("file:"):
        # 确保目录存在
        dirn = os.path.dirname(path) or "."
        os.makedirs(dirn, exist_ok=True)
    return path


def get_connect_options(**overrides) -> dict:
    """Connection options from config.yaml, with explicit overrides applied on top."""
    cfg = _read_config_yaml()
    opts = {
        "timeout": cfg.get("timeout", DEFAULT_TIMEOUT),
        "foreign_keys": cfg.get("foreign_keys", True),
    }
    opts.update({k: v for k, v in overrides.items() if v is not None})
    return opts


def _driver_kwargs(connection_string: str, timeout: float) -> dict:
    return {
        "database": connection_string,
        "timeout": timeout,
        "detect_types": sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        "isolation_level": None,
        "uri": connection_string.startswith("file:"),
    }


def connect(connection_string: str, timeout: float = DEFAULT_TIMEOUT, foreign_keys: bool = True) -> sqlite3.Connection:
    """Open a blocking connection. The caller owns it and must close it."""
    conn = sqlite3.connect(check_same_thread=False, **_driver_kwargs(connection_string, timeout))
    try:
        conn.execute(f"PRAGMA foreign_keys = {'ON' if foreign_keys else 'OFF'};")
        conn.row_factory = sqlite3.Row
    except sqlite3.Error:
        conn.close()
        raise
    logger.debug(f"opened connection to {connection_string}")
    return conn


async def connect_async(
    connection_string: str, timeout: float = DEFAULT_TIMEOUT, foreign_keys: bool = True
) -> aiosqlite.Connection:
    """Open a non-blocking connection. The caller owns it and must close it."""
    conn = await aiosqlite.connect(**_driver_kwargs(connection_string, timeout))
    try:
        await conn.execute(f"PRAGMA foreign_keys = {'ON' if foreign_keys else 'OFF'};")
        conn.row_factory = aiosqlite.Row
    except sqlite3.Error:
        await conn.close()
        raise
    logger.debug(f"opened async connection to {connection_string}")
    return conn


def is_open(conn) -> bool:
    """True while a sqlite3 or aiosqlite connection has not been closed."""
    if conn is None:
        return False
    try:
        conn.in_transaction
    except (sqlite3.ProgrammingError, ValueError):
        # sqlite3 raises ProgrammingError, aiosqlite raises ValueError("no active connection")
        return False
    return True


def close(conn: sqlite3.Connection) -> None:
    conn.close()
    logger.debug("closed connection")


async def close_async(conn: aiosqlite.Connection) -> None:
    await conn.close()
    logger.debug("closed async connection")


@contextmanager
def get_conn(db_path: str | None = None, **options) -> Iterator[sqlite3.Connection]:
    """
    获取 SQLite 连接。优先使用显式传入的 db_path，否则走 get_db_path()。
    打开 foreign_keys，设置 row_factory 为 Row，退出时总是关闭。
    """
    path = db_path or get_db_path()
    conn = connect(path, **get_connect_options(**options))
    try:
        yield conn
    finally:
        close(conn)


@asynccontextmanager
async def get_async_conn(db_path: str | None = None, **options) -> AsyncIterator[aiosqlite.Connection]:
    """Async counterpart of get_conn()."""
    path = db_path or get_db_path()
    conn = await connect_async(path, **get_connect_options(**options))
    try:
        yield conn
    finally:
        await close_async(conn)
