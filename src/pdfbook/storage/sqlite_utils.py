"""Shared SQLite maintenance helpers for PDFBook stores."""

from __future__ import annotations

import contextlib
import os
import sqlite3
import tempfile
from pathlib import Path

__all__ = [
    "checkpoint_full",
    "optimize",
    "delete_sidecars",
    "backup_to_file",
]


def checkpoint_full(conn: sqlite3.Connection) -> None:
    """Request a FULL WAL checkpoint, ignoring unsupported configurations."""

    with contextlib.suppress(sqlite3.Error):
        conn.execute("PRAGMA wal_checkpoint(FULL)")


def optimize(conn: sqlite3.Connection) -> None:
    """Run ``PRAGMA optimize`` when available."""

    with contextlib.suppress(sqlite3.Error):
        conn.execute("PRAGMA optimize")


def delete_sidecars(path: str | os.PathLike[str]) -> None:
    """Remove ``-wal``/``-shm`` files adjacent to ``path`` if present."""

    base = str(Path(path))
    for suffix in ("-wal", "-shm"):
        try:
            os.remove(base + suffix)
        except FileNotFoundError:
            continue


def backup_to_file(src: sqlite3.Connection, dst_path: str | os.PathLike[str]) -> Path:
    """Copy the live database behind ``src`` into ``dst_path``.

    Uses the online backup API, so readers and writers on other handles keep
    working. The copy is written next to the destination first and moved in
    place once complete; the result is a single file in DELETE journal mode.
    """

    dst_path = Path(dst_path)
    dst_path.parent.mkdir(parents=True, exist_ok=True)
    checkpoint_full(src)
    with tempfile.NamedTemporaryFile(
        prefix=dst_path.name + ".", suffix=".tmp", dir=dst_path.parent, delete=False
    ) as tmp:
        tmp_path = tmp.name
    try:
        dst = sqlite3.connect(tmp_path, isolation_level=None)
        try:
            src.backup(dst)
            with contextlib.suppress(sqlite3.Error):
                dst.execute("PRAGMA journal_mode=DELETE")
        finally:
            dst.close()
        delete_sidecars(tmp_path)
        os.replace(tmp_path, dst_path)
    finally:
        if os.path.exists(tmp_path):
            with contextlib.suppress(OSError):
                os.remove(tmp_path)
    return dst_path
