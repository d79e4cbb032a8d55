"""Configuration, paths, logging and the error taxonomy shared by every layer."""

from pdfbook.core.config import PoolConfig, StoreConfig, load_pool_config, load_store_config
from pdfbook.core.errors import (
    ConstraintError,
    IntegrityCheckError,
    MigrationError,
    NotFoundError,
    PdfBookError,
    PoolClosedError,
    PoolTimeoutError,
    StorageError,
    StoreInitError,
    ValidationError,
)
from pdfbook.core.paths import DirectoryManager, PathProvider

__all__ = [
    "PoolConfig",
    "StoreConfig",
    "load_pool_config",
    "load_store_config",
    "DirectoryManager",
    "PathProvider",
    "PdfBookError",
    "ValidationError",
    "NotFoundError",
    "ConstraintError",
    "PoolTimeoutError",
    "PoolClosedError",
    "IntegrityCheckError",
    "MigrationError",
    "StoreInitError",
    "StorageError",
]
