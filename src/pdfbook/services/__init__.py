"""Validated, transactional services over the pooled store."""

from importlib import import_module
from typing import Any

__all__ = [
    "ServiceHelpers",
    "ProjectService",
    "PageService",
    "AssetService",
    "TemplateService",
    "ColorPaletteService",
    "ProjectVersionService",
    "AppSettingsService",
    "PaginatedResult",
    "count_words",
    "service_types",
]

_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "ServiceHelpers": ("pdfbook.services.helpers", "ServiceHelpers"),
    "ProjectService": ("pdfbook.services.project_service", "ProjectService"),
    "count_words": ("pdfbook.services.project_service", "count_words"),
    "PageService": ("pdfbook.services.page_service", "PageService"),
    "AssetService": ("pdfbook.services.asset_service", "AssetService"),
    "TemplateService": ("pdfbook.services.template_service", "TemplateService"),
    "ColorPaletteService": ("pdfbook.services.palette_service", "ColorPaletteService"),
    "ProjectVersionService": ("pdfbook.services.version_service", "ProjectVersionService"),
    "AppSettingsService": ("pdfbook.services.settings_service", "AppSettingsService"),
    "PaginatedResult": ("pdfbook.services.types", "PaginatedResult"),
}


def __getattr__(name: str) -> Any:
    if name == "service_types":
        module = import_module("pdfbook.services.types")
        globals()[name] = module
        return module

    target = _LAZY_EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module 'pdfbook.services' has no attribute {name!r}")

    module_name, attr_name = target
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
