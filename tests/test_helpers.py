import sqlite3

import pytest

from pdfbook.core.errors import (
    ConstraintError,
    NotFoundError,
    PdfBookError,
    StorageError,
    ValidationError,
    translate_sqlite_error,
)
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.schemas import ProjectCreate
from pdfbook.storage.sqlite.utils import open_db, set_pragmas, transaction

ALLOWED = {"name", "page_format", "id"}


@pytest.fixture
def helpers():
    return ServiceHelpers()


@pytest.fixture
def conn(tmp_path):
    connection = open_db(str(tmp_path / "helpers.db"))
    connection.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT UNIQUE NOT NULL)")
    yield connection
    connection.close()


def test_build_where(helpers):
    assert helpers.build_where(None, ALLOWED) == ("", [])
    assert helpers.build_where({"name": None}, ALLOWED) == ("", [])
    assert helpers.build_where({"name": "a", "id": [1, 2]}, ALLOWED) == (
        "WHERE name = ? AND id IN (?, ?)",
        ["a", 1, 2],
    )
    assert helpers.build_where({"name": "ab%"}, ALLOWED) == ("WHERE name LIKE ?", ["ab%"])
    assert helpers.build_where({"id": []}, ALLOWED) == ("WHERE 1 = 0", [])

    with pytest.raises(ValidationError) as excinfo:
        helpers.build_where({"name": "a", "password": "x"}, ALLOWED)
    assert excinfo.value.fields == ["password"]


def test_build_order_and_pagination(helpers):
    assert helpers.build_order(None, "ASC", ALLOWED) == ""
    assert helpers.build_order("name", "desc", ALLOWED) == "ORDER BY name DESC"
    assert helpers.build_pagination(3, 10) == ("LIMIT ? OFFSET ?", [10, 20])
    assert helpers.build_pagination(None, None) == ("", [])
    with pytest.raises(ValidationError):
        helpers.build_order("created_at", "ASC", ALLOWED)
    with pytest.raises(ValidationError):
        helpers.build_order("name", "SIDEWAYS", ALLOWED)


def test_build_update_appends_timestamp(helpers):
    clause, params = helpers.build_update({"name": "x", "description": None})

    assert clause == "name = ?, updated_at = ?"
    assert params[0] == "x"
    with pytest.raises(ValidationError):
        helpers.build_update({"name": None})


def test_validate_reports_field_messages(helpers):
    with pytest.raises(ValidationError) as excinfo:
        helpers.validate(ProjectCreate, {"page_format": "B5"})

    assert set(excinfo.value.fields) == {"name", "page_format"}
    assert all(message for _, message in excinfo.value.errors)
    assert isinstance(excinfo.value, PdfBookError)

    model = helpers.validate(ProjectCreate, {"name": "ok"})
    assert helpers.validate(ProjectCreate, model) is model


def test_validate_id(helpers):
    assert helpers.validate_id(3) == 3
    for bad in (0, -1, True, 1.5, "2", None):
        with pytest.raises(ValidationError):
            helpers.validate_id(bad)


def test_translate_constraint_errors(conn):
    conn.execute("INSERT INTO items (name) VALUES ('a')")
    try:
        conn.execute("INSERT INTO items (name) VALUES ('a')")
    except sqlite3.IntegrityError as exc:
        unique = translate_sqlite_error(exc)
    try:
        conn.execute("INSERT INTO items (name) VALUES (NULL)")
    except sqlite3.IntegrityError as exc:
        not_null = translate_sqlite_error(exc)

    assert isinstance(unique, ConstraintError) and unique.kind == "unique"
    assert isinstance(not_null, ConstraintError) and not_null.kind == "not_null"


def test_translate_falls_back_to_message_text():
    assert translate_sqlite_error(
        sqlite3.IntegrityError("CHECK constraint failed: page_count >= 0")
    ).kind == "check"
    assert translate_sqlite_error(sqlite3.IntegrityError("something odd")).kind == "constraint"
    assert isinstance(translate_sqlite_error(sqlite3.OperationalError("disk I/O")), StorageError)


def test_translate_passes_other_errors_through():
    own = NotFoundError("Project", 1)
    other = KeyError("x")

    assert translate_sqlite_error(own) is own
    assert translate_sqlite_error(other) is other


def test_guard_translates_and_keeps_taxonomy(helpers, conn):
    with pytest.raises(StorageError):
        with helpers.guard("test"):
            conn.execute("SELECT * FROM missing_table")
    with pytest.raises(NotFoundError):
        with helpers.guard("test"):
            raise NotFoundError("Page", 7)
    with pytest.raises(KeyError):
        with helpers.guard("test"):
            raise KeyError("untouched")


def test_nested_transaction_rolls_back_inner_only(conn):
    with transaction(conn):
        conn.execute("INSERT INTO items (name) VALUES ('outer')")
        with pytest.raises(RuntimeError):
            with transaction(conn):
                conn.execute("INSERT INTO items (name) VALUES ('inner')")
                raise RuntimeError("undo inner")

    names = [row["name"] for row in conn.execute("SELECT name FROM items")]
    assert names == ["outer"]
    assert not conn.in_transaction


def test_failed_transaction_leaves_nothing(conn):
    with pytest.raises(sqlite3.IntegrityError):
        with transaction(conn):
            conn.execute("INSERT INTO items (name) VALUES ('x')")
            conn.execute("INSERT INTO items (name) VALUES ('x')")

    assert conn.execute("SELECT COUNT(*) FROM items").fetchone()[0] == 0


def test_row_to_record_decodes_columns(helpers, conn):
    conn.execute("CREATE TABLE blobs (data TEXT, flag INTEGER, broken TEXT)")
    conn.execute("INSERT INTO blobs VALUES ('{\"a\": 1}', 1, '{oops')")
    row = conn.execute("SELECT * FROM blobs").fetchone()

    record = helpers.row_to_record(row, ("data", "broken"), ("flag",))

    assert record == {"data": {"a": 1}, "flag": True, "broken": "{oops"}
    assert helpers.row_to_record(None) is None


def test_set_pragmas_applies_known_keys(conn):
    set_pragmas(conn, {"synchronous": "full", "busy_timeout_ms": "750", "unknown_pragma": 1})

    assert conn.execute("PRAGMA synchronous").fetchone()[0] == 2
    assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 750
    with pytest.raises(ValueError):
        set_pragmas(conn, {"journal_mode": "wal; DROP TABLE items"})
