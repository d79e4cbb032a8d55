"""Validation schemas for service payloads.

Every create/update payload is parsed through one of these models before a
statement runs. Structured columns (margins, page_config, colors) accept
either a mapping/list or its JSON text.
"""

from __future__ import annotations

import json
import re
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PositiveInt,
    field_validator,
    model_validator,
)

__all__ = [
    "MAX_FILE_SIZE",
    "IMAGE_MIME_PATTERN",
    "MarginsSchema",
    "PageConfigSchema",
    "ProjectCreate",
    "ProjectUpdate",
    "PageCreate",
    "PageUpdate",
    "AssetCreate",
    "AssetUpdate",
    "ImageFile",
    "TemplateCreate",
    "TemplateUpdate",
    "PaletteCreate",
    "PaletteUpdate",
    "VersionCreate",
    "AppSetting",
    "PaginationOptions",
]

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB
IMAGE_MIME_PATTERN = r"^image/(jpeg|jpg|png|gif|webp|svg\+xml)$"
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

PageFormat = Literal["A4", "A3", "A5", "Letter", "Legal", "Custom"]
Orientation = Literal["portrait", "landscape"]
Number = Union[int, float]
PositiveId = Optional[PositiveInt]


def _from_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            raise ValueError("must be valid JSON") from None
    return value


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ---- Structured columns -----------------------------------------------------


class MarginsSchema(BaseModel):
    top: Number = 20
    bottom: Number = 20
    left: Number = 20
    right: Number = 20

    @field_validator("top", "bottom", "left", "right")
    @classmethod
    def _non_negative(cls, value: Number) -> Number:
        if value < 0:
            raise ValueError("margin must be non-negative")
        return value


class PageConfigSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    background_color: Optional[str] = None
    custom_css: Optional[str] = None
    print_settings: Optional[Any] = None


MarginsField = Annotated[MarginsSchema, BeforeValidator(_from_json)]
PageConfigField = Annotated[PageConfigSchema, BeforeValidator(_from_json)]


# ---- Projects -----------------------------------------------------------------


class ProjectCreate(_Schema):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    file_path: Optional[str] = None
    page_format: PageFormat = "A4"
    page_orientation: Orientation = "portrait"
    margins: MarginsField = Field(default_factory=MarginsSchema)
    color_palette_id: PositiveId = None


class ProjectUpdate(_Schema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    file_path: Optional[str] = None
    page_format: Optional[PageFormat] = None
    page_orientation: Optional[Orientation] = None
    margins: Optional[MarginsField] = None
    color_palette_id: PositiveId = None
    last_export_path: Optional[str] = None


# ---- Pages --------------------------------------------------------------------


class PageCreate(_Schema):
    project_id: int = Field(gt=0)
    page_number: Optional[int] = Field(default=None, gt=0)
    name: str = Field(default="Page", max_length=255)
    html_content: str = ""
    css_styles: str = ""
    template_id: PositiveId = None
    page_config: PageConfigField = Field(default_factory=PageConfigSchema)


class PageUpdate(_Schema):
    name: Optional[str] = Field(default=None, max_length=255)
    html_content: Optional[str] = None
    css_styles: Optional[str] = None
    template_id: PositiveId = None
    page_config: Optional[PageConfigField] = None


# ---- Assets -------------------------------------------------------------------


class AssetCreate(_Schema):
    project_id: int = Field(gt=0)
    filename: str = Field(min_length=1, max_length=255)
    original_name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1)
    file_size: Optional[int] = Field(default=None, ge=0, le=MAX_FILE_SIZE)
    file_data: bytes
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    thumbnail: Optional[bytes] = None

    @model_validator(mode="after")
    def _default_size(self) -> "AssetCreate":
        if self.file_size is None:
            if len(self.file_data) > MAX_FILE_SIZE:
                raise ValueError("file_data exceeds the 50 MiB limit")
            self.file_size = len(self.file_data)
        return self


class AssetUpdate(_Schema):
    filename: Optional[str] = Field(default=None, min_length=1, max_length=255)
    original_name: Optional[str] = Field(default=None, min_length=1, max_length=255)


class ImageFile(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    size: int = Field(ge=0, le=MAX_FILE_SIZE)
    mimetype: str = Field(pattern=IMAGE_MIME_PATTERN)


# ---- Templates ----------------------------------------------------------------


class TemplateCreate(_Schema):
    name: str = Field(min_length=1, max_length=255)
    category: str = Field(default="general", max_length=100)
    html_template: str = Field(min_length=1)
    css_template: str = Field(min_length=1)
    preview_image: Optional[bytes] = None
    description: Optional[str] = Field(default=None, max_length=1000)


class TemplateUpdate(_Schema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    html_template: Optional[str] = Field(default=None, min_length=1)
    css_template: Optional[str] = Field(default=None, min_length=1)
    preview_image: Optional[bytes] = None
    description: Optional[str] = Field(default=None, max_length=1000)


# ---- Color palettes -----------------------------------------------------------


def _check_colors(value: list[str]) -> list[str]:
    bad = [color for color in value if not _COLOR_RE.match(color)]
    if bad:
        raise ValueError(f"Invalid color format: {', '.join(bad)}")
    return value


Colors = Annotated[
    list[str], Field(min_length=1), BeforeValidator(_from_json), AfterValidator(_check_colors)
]


class PaletteCreate(_Schema):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    colors: Colors
    theme_type: str = Field(default="custom", max_length=50)
    is_default: bool = False


class PaletteUpdate(_Schema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    colors: Optional[Colors] = None
    theme_type: Optional[str] = Field(default=None, max_length=50)


# ---- Versions / settings ------------------------------------------------------


class VersionCreate(_Schema):
    project_id: int = Field(gt=0)
    description: str = Field(default="Auto-save", max_length=255)
    data_snapshot: Optional[str] = None


class AppSetting(_Schema):
    key: str = Field(min_length=1, max_length=255)
    value: str = Field(max_length=2000)


# ---- Queries ------------------------------------------------------------------


class PaginationOptions(_Schema):
    page: int = Field(default=1, gt=0)
    limit: int = Field(default=20, gt=0, le=100)
    order_by: Optional[str] = Field(default=None, max_length=50)
    direction: Literal["ASC", "DESC"] = "ASC"

    @field_validator("direction", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value
