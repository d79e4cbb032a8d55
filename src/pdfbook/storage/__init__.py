"""Store lifecycle, schema migrations and the connection pool."""

from pdfbook.storage.connection_pool import ConnectionPool, PoolStats
from pdfbook.storage.database import DatabaseManager
from pdfbook.storage.migration import (
    MIGRATIONS,
    Migration,
    MigrationManager,
    compare_versions,
    parse_version,
)

__all__ = [
    "ConnectionPool",
    "PoolStats",
    "DatabaseManager",
    "Migration",
    "MigrationManager",
    "MIGRATIONS",
    "compare_versions",
    "parse_version",
]
