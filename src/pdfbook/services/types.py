"""Service interfaces and typing helpers."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypedDict, TypeVar, runtime_checkable

__all__ = [
    "Margins",
    "ProjectRecord",
    "PageRecord",
    "AssetRecord",
    "TemplateRecord",
    "PaletteRecord",
    "VersionRecord",
    "SettingRecord",
    "PageContent",
    "ProjectStats",
    "PaginatedResult",
    "CrudOperations",
]

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class Margins(TypedDict):
    top: float
    bottom: float
    left: float
    right: float


class ProjectRecord(TypedDict, total=False):
    id: int
    name: str
    description: str | None
    file_path: str | None
    page_format: str
    page_orientation: str
    margins: Margins
    color_palette_id: int | None
    word_count: int
    page_count: int
    last_export_path: str | None
    created_at: str
    updated_at: str
    last_accessed: str


class PageRecord(TypedDict, total=False):
    id: int
    project_id: int
    page_number: int
    name: str
    html_content: str
    css_styles: str
    template_id: int | None
    page_config: Mapping[str, Any]
    created_at: str
    updated_at: str


class AssetRecord(TypedDict, total=False):
    id: int
    project_id: int
    filename: str
    original_name: str
    mime_type: str
    file_size: int
    width: int | None
    height: int | None
    thumbnail: bytes | None
    created_at: str
    updated_at: str


class TemplateRecord(TypedDict, total=False):
    id: int
    name: str
    category: str
    html_template: str
    css_template: str
    preview_image: bytes | None
    is_builtin: bool
    description: str | None
    created_at: str
    updated_at: str


class PaletteRecord(TypedDict, total=False):
    id: int
    name: str
    description: str | None
    colors: list[str]
    theme_type: str
    is_default: bool
    created_at: str
    updated_at: str


class VersionRecord(TypedDict, total=False):
    id: int
    project_id: int
    version_number: int
    description: str
    data_snapshot: str
    file_size: int
    created_at: str
    updated_at: str


class SettingRecord(TypedDict, total=False):
    id: int
    key: str
    value: str
    created_at: str
    updated_at: str


class PageContent(TypedDict):
    html: str
    css: str


class ProjectStats(TypedDict):
    page_count: int
    word_count: int
    asset_count: int
    version_count: int
    last_modified: str


@dataclass
class PaginatedResult(Generic[T]):
    data: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
    total_pages: int = 0


@runtime_checkable
class CrudOperations(Protocol[T_co]):
    """Generic create/read/update/delete surface shared by entity services."""

    def create(self, data: Mapping[str, Any]) -> T_co: ...

    def get_by_id(self, entity_id: int) -> T_co | None: ...

    def get_all(self, filters: Mapping[str, Any] | None = None) -> Sequence[T_co]: ...

    def update(self, entity_id: int, data: Mapping[str, Any]) -> T_co: ...

    def delete(self, entity_id: int) -> None: ...

    def count(self, filters: Mapping[str, Any] | None = None) -> int: ...
