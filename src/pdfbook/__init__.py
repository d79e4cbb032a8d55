# PDFBook
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Public package interface for the PDFBook storage core."""

from importlib import import_module

from pdfbook.core.config import PoolConfig, StoreConfig, load_store_config
from pdfbook.core.errors import (
    ConstraintError,
    NotFoundError,
    PdfBookError,
    StorageError,
    ValidationError,
)
from pdfbook.core.paths import DirectoryManager

__version__ = "1.0.0"

_LAZY_EXPORTS = {
    "DatabaseManager": ("pdfbook.storage.database", "DatabaseManager"),
    "ConnectionPool": ("pdfbook.storage.connection_pool", "ConnectionPool"),
    "MigrationManager": ("pdfbook.storage.migration", "MigrationManager"),
    "ProjectService": ("pdfbook.services.project_service", "ProjectService"),
    "PageService": ("pdfbook.services.page_service", "PageService"),
    "AssetService": ("pdfbook.services.asset_service", "AssetService"),
    "TemplateService": ("pdfbook.services.template_service", "TemplateService"),
    "ColorPaletteService": ("pdfbook.services.palette_service", "ColorPaletteService"),
    "ProjectVersionService": ("pdfbook.services.version_service", "ProjectVersionService"),
    "AppSettingsService": ("pdfbook.services.settings_service", "AppSettingsService"),
    "setup_logging": ("pdfbook.core.logging_config", "setup_logging"),
}


def __getattr__(name: str):
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'pdfbook' has no attribute {name!r}")


__all__ = [
    "__version__",
    "PoolConfig",
    "StoreConfig",
    "load_store_config",
    "DirectoryManager",
    "PdfBookError",
    "ValidationError",
    "NotFoundError",
    "ConstraintError",
    "StorageError",
    *_LAZY_EXPORTS,
]
