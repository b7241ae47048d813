import sqlite3

import pandas as pd
import pytest

from sqlite_helper import SQLiteHelper, SQLiteParameter, DbType, DataReader
from sqlite_helper import db


def test_fresh_database_scenario(tmp_db_path):
    helper = SQLiteHelper(tmp_db_path)
    assert helper.execute_non_query("CREATE TABLE t(id INTEGER, name TEXT)") == 0
    assert helper.execute_non_query("INSERT INTO t VALUES (1,'a')") == 1
    assert helper.execute_scalar("SELECT name FROM t WHERE id=1") == "a"

    df = helper.execute_data_table("SELECT * FROM t")
    assert list(df.columns) == ["id", "name"]
    assert df.to_dict("records") == [{"id": 1, "name": "a"}]


def test_default_connection_string_comes_from_env(tmp_db_path):
    helper = SQLiteHelper()
    assert helper.connection_string == tmp_db_path


def test_scalar_no_rows_returns_none(helper):
    assert helper.execute_scalar("SELECT name FROM t WHERE id = -1") is None
    assert helper.execute_scalar("SELECT name FROM t WHERE id = -1", default="n/a") == "n/a"


def test_scalar_with_named_and_positional_parameters(helper):
    assert helper.execute_scalar("SELECT name FROM t WHERE id = @id", SQLiteParameter("@id", 2)) == "b"
    assert helper.execute_scalar("SELECT name FROM t WHERE id = :id", ("id", 3)) == "c"
    assert helper.execute_scalar("SELECT name FROM t WHERE id = ?", SQLiteParameter(None, "1", DbType.INTEGER)) == "a"


def test_non_query_counts_changed_rows(helper, count_rows):
    assert helper.execute_non_query("UPDATE t SET name = 'z' WHERE id >= ?", (None, 2)) == 2
    assert count_rows("name = 'z'") == 2
    assert helper.execute_non_query("DELETE FROM t WHERE id = -1") == 0
    assert helper.execute_non_query("DELETE FROM t") == 3
    assert count_rows() == 0


def test_non_query_autocommits(helper, count_rows):
    helper.execute_non_query("INSERT INTO t VALUES (@id, @name)", ("@id", 4), ("@name", "d"))
    assert count_rows("id = 4") == 1


def test_data_table_keeps_row_order_and_empty_columns(helper):
    df = helper.execute_data_table("SELECT id, name FROM t WHERE id > ? ORDER BY id DESC", (None, 1))
    assert df["id"].tolist() == [3, 2]
    assert df["name"].tolist() == ["c", "b"]

    empty = helper.execute_data_table("SELECT id, name FROM t WHERE id < 0")
    assert empty.empty
    assert list(empty.columns) == ["id", "name"]


def test_data_table_keeps_large_integers_next_to_null(helper):
    big = 2**53 + 1
    helper.execute_non_query("INSERT INTO t VALUES (@id, NULL)", ("@id", big))
    helper.execute_non_query("INSERT INTO t VALUES (NULL, 'n')")
    df = helper.execute_data_table("SELECT id, name FROM t WHERE id > 3 OR id IS NULL ORDER BY id IS NULL")
    assert str(df["id"].dtype) == "Int64"
    assert df["id"].iloc[0] == 9007199254740993
    assert pd.isna(df["id"].iloc[1])
    assert pd.isna(df["name"].iloc[0]) and df["name"].iloc[1] == "n"

    ids = helper.execute_data_table("SELECT id FROM t ORDER BY id IS NULL, id")
    assert str(ids["id"].dtype) == "Int64"
    assert ids["id"].iloc[:4].tolist() == [1, 2, 3, 9007199254740993]


def test_reader_iterates_and_closes_connection(helper):
    reader = helper.execute_reader("SELECT id, name FROM t ORDER BY id")
    assert isinstance(reader, DataReader)
    assert reader.columns == ["id", "name"]
    rows = [(r["id"], r["name"]) for r in reader]
    assert rows == [(1, "a"), (2, "b"), (3, "c")]
    assert reader.closed
    assert not db.is_open(reader.connection)


def test_reader_close_before_exhaustion(helper):
    with helper.execute_reader("SELECT id FROM t ORDER BY id") as reader:
        assert reader.fetchone()["id"] == 1
        assert db.is_open(reader.connection)
    assert reader.closed
    assert not db.is_open(reader.connection)
    assert reader.fetchone() is None
    reader.close()


def test_reader_fetchmany_and_fetchall(helper):
    reader = helper.execute_reader("SELECT id FROM t ORDER BY id")
    assert [r[0] for r in reader.fetchmany(2)] == [1, 2]
    assert [r[0] for r in reader.fetchall()] == [3]
    assert not db.is_open(reader.connection)


def test_scoped_calls_leave_no_open_connections(helper, conn_tracker):
    helper.execute_scalar("SELECT COUNT(1) FROM t")
    helper.execute_non_query("UPDATE t SET name = name")
    helper.execute_data_table("SELECT * FROM t")
    assert len(conn_tracker.opened) == 3
    assert conn_tracker.open_count() == 0


def test_failing_calls_leave_no_open_connections(helper, conn_tracker):
    for _ in range(5):
        with pytest.raises(sqlite3.OperationalError):
            helper.execute_scalar("SELEC 1")
        with pytest.raises(sqlite3.OperationalError):
            helper.execute_data_table("SELECT * FROM missing_table")
        with pytest.raises(sqlite3.IntegrityError):
            helper.execute_non_query("INSERT INTO child(id, parent_id) VALUES (1, 999)")
        with pytest.raises(sqlite3.OperationalError):
            helper.execute_reader("SELECT nope FROM t")
    assert len(conn_tracker.opened) == 20
    assert conn_tracker.open_count() == 0


def test_parameter_errors_propagate(helper, conn_tracker):
    with pytest.raises(sqlite3.ProgrammingError):
        helper.execute_scalar("SELECT name FROM t WHERE id = ?")
    with pytest.raises(ValueError):
        helper.execute_scalar("SELECT ?, :x", (None, 1), ("x", 2))
    assert conn_tracker.open_count() == 0


def test_foreign_keys_option(seeded_db_path):
    relaxed = SQLiteHelper(seeded_db_path, foreign_keys=False)
    assert relaxed.execute_non_query("INSERT INTO child(id, parent_id) VALUES (1, 999)") == 1
    assert SQLiteHelper(seeded_db_path).execute_scalar("PRAGMA foreign_keys") == 1


def test_close_is_noop(helper):
    helper.close()
    assert helper.execute_scalar("SELECT 1") == 1
