"""
Versioned schema migrations for the PDFBook store.

Each migration carries a dotted version ("1.0.0"), an ``up`` step and an
optional ``down`` step. Applied versions are recorded in the
``schema_migrations`` ledger; the current version is the numeric maximum
over that ledger. A batch of steps runs inside a single transaction, so a
failing step leaves the store exactly as it was.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import cmp_to_key

from pdfbook.core.errors import MigrationError, ValidationError
from pdfbook.storage.schema import create_initial_schema, drop_initial_schema, seed_defaults
from pdfbook.storage.sqlite.utils import transaction

log = logging.getLogger(__name__)

__all__ = [
    "Migration",
    "MigrationManager",
    "MIGRATIONS",
    "BASE_VERSION",
    "compare_versions",
    "parse_version",
    "require_version",
]

BASE_VERSION = "0.0.0"

MigrationStep = Callable[[sqlite3.Connection], None]


# =============================================================================
# Version arithmetic
# =============================================================================


def parse_version(version: str) -> tuple[int, ...]:
    """Split ``"1.2.3"`` into ``(1, 2, 3)``; non-numeric parts raise ValueError."""

    try:
        return tuple(int(part) for part in str(version).strip().split("."))
    except ValueError:
        raise ValueError(f"Invalid version string: {version!r}") from None


def require_version(version: str, field: str = "target_version") -> str:
    """Return ``version`` unchanged, or raise ValidationError if it does not parse."""

    try:
        parse_version(version)
    except ValueError as exc:
        raise ValidationError([(field, str(exc))]) from None
    return version


def compare_versions(a: str, b: str) -> int:
    """
    Compare dotted versions component-wise as integers.

    Missing trailing components count as 0, so ``"1.0" == "1.0.0"``.

    Returns:
        -1, 0 or 1
    """
    parts_a = parse_version(a)
    parts_b = parse_version(b)
    width = max(len(parts_a), len(parts_b))
    parts_a += (0,) * (width - len(parts_a))
    parts_b += (0,) * (width - len(parts_b))
    if parts_a > parts_b:
        return 1
    if parts_a < parts_b:
        return -1
    return 0


_version_key = cmp_to_key(compare_versions)


# =============================================================================
# Migration definitions
# =============================================================================


@dataclass(frozen=True)
class Migration:
    version: str
    description: str
    up: MigrationStep
    down: MigrationStep | None = None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _initial_up(conn: sqlite3.Connection) -> None:
    create_initial_schema(conn)
    seed_defaults(conn, now=_utc_now())


def _initial_down(conn: sqlite3.Connection) -> None:
    drop_initial_schema(conn)


MIGRATIONS: tuple[Migration, ...] = (
    Migration("1.0.0", "Initial database schema", _initial_up, _initial_down),
)


# =============================================================================
# Manager
# =============================================================================


class MigrationManager:
    """Apply and roll back an ordered list of :class:`Migration` steps."""

    def __init__(self, migrations: Iterable[Migration] | None = None):
        items = list(MIGRATIONS if migrations is None else migrations)
        seen: set[tuple[int, ...]] = set()
        for migration in items:
            key = _normalized(migration.version)
            if key in seen:
                raise ValueError(f"Duplicate migration version: {migration.version}")
            seen.add(key)
        self.migrations: list[Migration] = sorted(items, key=lambda m: _version_key(m.version))

    # ---- Ledger ------------------------------------------------------------

    @staticmethod
    def _ensure_ledger(conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version TEXT NOT NULL UNIQUE,
                applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    @staticmethod
    def _ledger_exists(conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_migrations'"
        ).fetchone()
        return row is not None

    def get_applied_migrations(self, conn: sqlite3.Connection) -> list[str]:
        """Versions recorded in the ledger, ascending by numeric order."""

        if not self._ledger_exists(conn):
            return []
        versions = [row[0] for row in conn.execute("SELECT version FROM schema_migrations")]
        return sorted(versions, key=_version_key)

    def get_current_version(self, conn: sqlite3.Connection) -> str:
        applied = self.get_applied_migrations(conn)
        return applied[-1] if applied else BASE_VERSION

    def get_latest_version(self) -> str:
        if not self.migrations:
            return "1.0.0"
        return self.migrations[-1].version

    def get_pending(self, conn: sqlite3.Connection) -> list[Migration]:
        current = self.get_current_version(conn)
        return [m for m in self.migrations if compare_versions(m.version, current) > 0]

    # ---- Apply / rollback --------------------------------------------------

    def migrate(self, conn: sqlite3.Connection, target_version: str | None = None) -> list[str]:
        """
        Bring the store up to ``target_version`` (default: latest).

        Returns:
            Versions applied, in order. Empty when already up to date.

        Raises:
            ValidationError: ``target_version`` is not a dotted version
            MigrationError: a step failed; nothing was applied.
        """
        if target_version is not None:
            require_version(target_version)
        target = target_version or self.get_latest_version()
        current = self.get_current_version(conn)
        steps = [
            m
            for m in self.migrations
            if compare_versions(m.version, current) > 0
            and compare_versions(m.version, target) <= 0
        ]
        if not steps:
            log.info("Database schema is up to date (version %s)", current)
            try:
                with transaction(conn):
                    self._ensure_ledger(conn)
            except sqlite3.Error as exc:
                raise MigrationError(f"Cannot create the migration ledger: {exc}") from exc
            return []

        log.info("Migrating database from %s to %s", current, target)
        applied: list[str] = []
        running: Migration | None = None
        try:
            with transaction(conn):
                self._ensure_ledger(conn)
                for migration in steps:
                    running = migration
                    log.info("Applying migration %s: %s", migration.version, migration.description)
                    migration.up(conn)
                    conn.execute(
                        "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?) "
                        "ON CONFLICT(version) DO UPDATE SET applied_at = excluded.applied_at",
                        (migration.version, _utc_now()),
                    )
                    applied.append(migration.version)
        except MigrationError:
            raise
        except Exception as exc:
            version = running.version if running else None
            log.error("Migration %s failed: %s", version, exc, exc_info=True)
            raise MigrationError(f"Migration {version} failed: {exc}", version=version) from exc

        log.info("Database migrated to version %s", applied[-1])
        return applied

    def rollback(self, conn: sqlite3.Connection, target_version: str) -> list[str]:
        """
        Undo every applied migration above ``target_version``, newest first.

        Returns:
            Versions rolled back, in the order they were undone.

        Raises:
            ValidationError: ``target_version`` is not a dotted version
            MigrationError: a step has no ``down`` or failed; nothing changed.
        """
        require_version(target_version)
        current = self.get_current_version(conn)
        if compare_versions(current, target_version) <= 0:
            log.info("Already at target version %s", current)
            return []

        steps = [
            m
            for m in reversed(self.migrations)
            if compare_versions(m.version, target_version) > 0
            and compare_versions(m.version, current) <= 0
        ]
        log.info("Rolling back database from %s to %s", current, target_version)
        undone: list[str] = []
        running: Migration | None = None
        try:
            with transaction(conn):
                for migration in steps:
                    running = migration
                    if migration.down is None:
                        raise MigrationError(
                            f"Migration {migration.version} cannot be rolled back",
                            version=migration.version,
                        )
                    log.info("Rolling back migration %s", migration.version)
                    migration.down(conn)
                    undone.append(migration.version)
                # Ledger rows above the target go too, including ones with no
                # matching definition in this build.
                for version in self.get_applied_migrations(conn):
                    if compare_versions(version, target_version) > 0:
                        conn.execute("DELETE FROM schema_migrations WHERE version = ?", (version,))
        except MigrationError:
            log.error("Rollback to %s aborted", target_version, exc_info=True)
            raise
        except Exception as exc:
            version = running.version if running else None
            log.error("Rollback of %s failed: %s", version, exc, exc_info=True)
            raise MigrationError(f"Rollback of {version} failed: {exc}", version=version) from exc

        return undone


def _normalized(version: str) -> tuple[int, ...]:
    parts = list(parse_version(version))
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)
