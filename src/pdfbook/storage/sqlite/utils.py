"""Connection opening, pragma application and nested transactions."""

from __future__ import annotations

import itertools
import logging
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

__all__ = ["open_db", "set_pragmas", "transaction"]

sql_log = logging.getLogger("pdfbook.sql")

_savepoint_ids = itertools.count(1)


# ---- Connections ------------------------------------------------------------


def open_db(
    path: str,
    *,
    mode: str = "rwc",
    pragmas: Mapping[str, object] | None = None,
    trace: bool = False,
) -> sqlite3.Connection:
    """
    Open a SQLite database with predictable defaults.

    mode: "ro" (read-only), "rw", "rwc" (create if needed). Default: "rwc".
    Connections run in autocommit mode (``isolation_level=None``); use
    :func:`transaction` for atomic units. They may be handed between threads.
    """
    if path == ":memory:":
        conn = sqlite3.connect(":memory:", check_same_thread=False, isolation_level=None)
    else:
        uri = f"file:{path}?mode={mode}"
        conn = sqlite3.connect(uri, uri=True, check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    if pragmas:
        set_pragmas(conn, pragmas)
    if trace:
        conn.set_trace_callback(sql_log.debug)
    return conn


_KEYWORDS = {
    "journal_mode": {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"},
    "synchronous": {"OFF", "NORMAL", "FULL", "EXTRA"},
    "temp_store": {"DEFAULT", "FILE", "MEMORY"},
    "locking_mode": {"NORMAL", "EXCLUSIVE"},
}
_INTEGERS = {"cache_size": "cache_size", "busy_timeout_ms": "busy_timeout"}


def _pragma_value(key: str, value: object) -> str:
    if key == "foreign_keys":
        return "ON" if value else "OFF"
    if key in _INTEGERS:
        return str(int(value))  # type: ignore[call-overload]
    keyword = str(value).upper()
    if keyword not in _KEYWORDS[key]:
        raise ValueError(f"Unsupported {key} value: {value!r}")
    return keyword


def set_pragmas(conn: sqlite3.Connection, opts: Mapping[str, object]) -> None:
    """Apply the connection pragmas named in ``opts``.

    Keys: ``foreign_keys``, ``journal_mode``, ``synchronous``, ``temp_store``,
    ``cache_size``, ``busy_timeout_ms`` and ``locking_mode``. Unknown keys
    are ignored; a keyword pragma with an unknown value raises ``ValueError``.
    """

    norm = {str(key).lower(): value for key, value in opts.items()}
    known = [key for key in norm if key in _KEYWORDS or key in _INTEGERS or key == "foreign_keys"]
    # locking_mode must be set before journal_mode for WAL to honour it
    known.sort(key=lambda key: key != "locking_mode")
    for key in known:
        name = _INTEGERS.get(key, key)
        conn.execute(f"PRAGMA {name}={_pragma_value(key, norm[key])}")


# ---- Transactions -----------------------------------------------------------


@contextmanager
def transaction(
    conn: sqlite3.Connection,
    *,
    begin: str = "BEGIN IMMEDIATE",
) -> Iterator[sqlite3.Connection]:
    """
    Transaction wrapper that commits on success and rolls back on error.

    Uses BEGIN IMMEDIATE by default to reduce write contention. When a
    transaction is already open the block runs in a SAVEPOINT instead, so
    nested units roll back on their own while the outer one decides the
    final outcome.
    """

    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    conn.execute(begin)
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
