"""Low-level SQLite helpers shared by the storage and service layers."""

from pdfbook.storage.sqlite.utils import open_db, set_pragmas, transaction

__all__ = ["open_db", "set_pragmas", "transaction"]
