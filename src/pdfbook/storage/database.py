"""
Store lifecycle: open, migrate, pool, backup/restore and diagnostics.

``DatabaseManager`` is constructed explicitly and handed to every consumer;
there is no module-level instance.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pdfbook.core.config import DATABASE_FILENAME, StoreConfig
from pdfbook.core.errors import (
    IntegrityCheckError,
    MigrationError,
    StorageError,
    StoreInitError,
    translate_sqlite_error,
)
from pdfbook.core.paths import DirectoryManager, PathProvider
from pdfbook.storage.connection_pool import ConnectionPool
from pdfbook.storage.migration import MigrationManager
from pdfbook.storage.sqlite.utils import open_db
from pdfbook.storage.sqlite_utils import backup_to_file, delete_sidecars, optimize

log = logging.getLogger(__name__)

__all__ = ["DatabaseManager", "STAT_TABLES"]

# Key in get_stats() -> table counted.
STAT_TABLES = {
    "project_count": "projects",
    "page_count": "pages",
    "asset_count": "assets",
    "template_count": "templates",
    "palette_count": "color_palettes",
    "version_count": "project_versions",
}


class DatabaseManager:
    """Own the store file and the connection pool in front of it."""

    def __init__(
        self,
        config: StoreConfig | None = None,
        paths: PathProvider | None = None,
        *,
        migrations: MigrationManager | None = None,
    ) -> None:
        self.config = config or StoreConfig()
        self.paths = paths or DirectoryManager(self.config.app_name)
        self.migrations = migrations or MigrationManager()
        self._pool: ConnectionPool | None = None

    # ---- Paths -------------------------------------------------------------

    @property
    def db_path(self) -> str:
        if self.config.in_memory:
            return ":memory:"
        if self.config.path is not None:
            return str(Path(self.config.path).expanduser())
        return str(self.paths.get_config_dir() / DATABASE_FILENAME)

    def _backups_dir(self) -> Path:
        get_backups_dir = getattr(self.paths, "get_backups_dir", None)
        if callable(get_backups_dir):
            return get_backups_dir()
        return self.paths.get_cache_dir() / "backups"

    # ---- Lifecycle ---------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    def _open(self, *, create: bool) -> sqlite3.Connection:
        pragmas = self.config.pragmas()
        mode = "rwc" if create else "rw"
        if self.config.readonly:
            mode = "ro"
            pragmas.pop("journal_mode", None)
        return open_db(self.db_path, mode=mode, pragmas=pragmas, trace=self.config.verbose)

    def initialize(self, *, apply_migrations: bool = True) -> None:
        """Ensure directories, open the store, migrate it and build the pool.

        With ``apply_migrations=False`` pending migrations are only reported;
        callers that manage the schema themselves (the CLI) use this.

        Raises:
            StoreInitError: the store cannot be opened or migrated
        """

        if self._pool is not None:
            return
        try:
            self.paths.ensure_directories()
        except OSError as exc:
            raise StoreInitError(f"Cannot create application directories: {exc}") from exc

        path = self.db_path
        if not self.config.in_memory:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = self._open(create=True)
        except sqlite3.Error as exc:
            log.error("Failed to open database at %s", path, exc_info=True)
            raise StoreInitError(f"Cannot open database at {path}: {exc}") from exc

        try:
            if self.config.readonly or not apply_migrations:
                pending = self.migrations.get_pending(conn)
                if pending:
                    log.warning("Store has %d pending migration(s); not applying", len(pending))
            else:
                self.migrations.migrate(conn)
        except (MigrationError, sqlite3.Error) as exc:
            conn.close()
            log.error("Failed to migrate database at %s", path, exc_info=True)
            raise StoreInitError(f"Cannot migrate database at {path}: {exc}") from exc

        pool_config = self.config.pool
        if self.config.exclusive or self.config.in_memory:
            if pool_config.max_connections > 1:
                reason = "exclusive locking" if self.config.exclusive else "an in-memory store"
                log.warning("Connection pool capped to a single handle for %s", reason)
            pool_config = replace(pool_config, max_connections=1)

        self._pool = ConnectionPool(
            lambda: self._open(create=False), pool_config, seed=conn
        )
        log.info("Database initialized at: %s", path)

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            raise StorageError("Database not initialized. Call initialize() first.")
        return self._pool

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Borrow a pooled handle for the duration of the block.

        Engine errors raised inside the block leave as typed errors.
        """

        with self.pool.connection() as conn:
            try:
                yield conn
            except sqlite3.Error as exc:
                raise translate_sqlite_error(exc) from exc

    def close(self) -> None:
        if self._pool is not None:
            self._pool.destroy()
            self._pool = None
            log.info("Database connection closed")

    def __enter__(self) -> "DatabaseManager":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---- Schema ------------------------------------------------------------

    def get_version(self) -> str:
        with self.connect() as conn:
            return self.migrations.get_current_version(conn)

    def migrate(self, target_version: str | None = None) -> list[str]:
        with self.connect() as conn:
            return self.migrations.migrate(conn, target_version)

    def rollback(self, target_version: str) -> list[str]:
        with self.connect() as conn:
            return self.migrations.rollback(conn, target_version)

    def status(self) -> dict[str, Any]:
        with self.connect() as conn:
            return {
                "path": self.db_path,
                "current_version": self.migrations.get_current_version(conn),
                "latest_version": self.migrations.get_latest_version(),
                "applied": self.migrations.get_applied_migrations(conn),
                "pending": [m.version for m in self.migrations.get_pending(conn)],
            }

    # ---- Backup / restore --------------------------------------------------

    def create_backup(self, backup_path: str | Path | None = None) -> Path:
        """Copy the live store to ``backup_path`` (default: timestamped file)."""

        if backup_path is None:
            timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
            backup_path = self._backups_dir() / f"backup-{timestamp}.db"
        with self.connect() as conn:
            try:
                target = backup_to_file(conn, backup_path)
            except sqlite3.Error as exc:
                raise translate_sqlite_error(exc) from exc
        log.info("Database backup created: %s", target)
        return target

    def restore_from_backup(self, backup_path: str | Path) -> None:
        """Replace the store with ``backup_path`` and reopen it."""

        source = Path(backup_path)
        if not source.is_file():
            raise StorageError(f"Backup file not found: {source}")
        if self.config.in_memory:
            raise StorageError("Cannot restore into an in-memory database")

        self.close()
        destination = Path(self.db_path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            delete_sidecars(destination)
            shutil.copyfile(source, destination)
        except OSError as exc:
            raise StorageError(f"Cannot restore from {source}: {exc}") from exc
        log.info("Database restored from backup: %s", source)
        self.initialize()

    # ---- Diagnostics -------------------------------------------------------

    def get_stats(self) -> dict[str, int]:
        with self.connect() as conn:
            return {
                key: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for key, table in STAT_TABLES.items()
            }

    def _integrity_problems(self) -> list[str]:
        with self.connect() as conn:
            rows = conn.execute("PRAGMA integrity_check").fetchall()
            problems = [row[0] for row in rows if row[0] != "ok"]
            for row in conn.execute("PRAGMA foreign_key_check").fetchall():
                problems.append(
                    f"foreign key violation in {row[0]} (rowid {row[1]}) -> {row[2]}"
                )
        return problems

    def check_integrity(self) -> bool:
        problems = self._integrity_problems()
        if problems:
            log.error("Database integrity check failed: %s", problems)
        return not problems

    def verify_integrity(self) -> None:
        problems = self._integrity_problems()
        if problems:
            raise IntegrityCheckError(problems)

    def vacuum(self) -> None:
        with self.connect() as conn:
            conn.execute("VACUUM")
            optimize(conn)
        log.info("Database vacuum completed")

    # ---- Raw SQL -----------------------------------------------------------

    def execute_query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self.connect() as conn:
            try:
                return [dict(row) for row in conn.execute(sql, tuple(params)).fetchall()]
            except sqlite3.Error as exc:
                log.error("SQL query error: %s", sql, exc_info=True)
                raise translate_sqlite_error(exc) from exc

    def execute_statement(self, sql: str, params: Sequence[Any] = ()) -> dict[str, int]:
        with self.connect() as conn:
            try:
                cur = conn.execute(sql, tuple(params))
            except sqlite3.Error as exc:
                log.error("SQL execution error: %s", sql, exc_info=True)
                raise translate_sqlite_error(exc) from exc
            return {"changes": cur.rowcount, "last_insert_rowid": cur.lastrowid or 0}
