"""Binary assets (mostly images) embedded in a project."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from io import BytesIO
from typing import Any

from PIL import Image, ImageOps, UnidentifiedImageError

from pdfbook.core.errors import NotFoundError, ValidationError
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.schemas import AssetCreate, AssetUpdate, ImageFile
from pdfbook.services.types import AssetRecord
from pdfbook.storage.connection_pool import ConnectionPool

log = logging.getLogger(__name__)

__all__ = ["AssetService", "probe_image", "THUMBNAIL_SIZE"]

THUMBNAIL_SIZE = (200, 200)
FILTER_FIELDS = frozenset({"id", "project_id", "filename", "original_name", "mime_type"})
# file_data is only returned by get_data().
META_COLUMNS = (
    "id, project_id, filename, original_name, mime_type, file_size, "
    "width, height, thumbnail, created_at, updated_at"
)


def probe_image(data: bytes, mime_type: str) -> tuple[int | None, int | None, bytes | None]:
    """Return ``(width, height, png_thumbnail)`` for raster image bytes.

    Vector images (SVG) are stored as-is and yield ``(None, None, None)``.

    Raises:
        ValidationError: the bytes are not a readable image
    """
    if mime_type == "image/svg+xml":
        return None, None, None
    try:
        with Image.open(BytesIO(data)) as img:
            width, height = img.size
            thumb = ImageOps.contain(img, THUMBNAIL_SIZE, Image.Resampling.LANCZOS)
            if thumb.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                thumb = thumb.convert("RGBA")
            buffer = BytesIO()
            thumb.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError([("file_data", f"Not a readable image: {exc}")]) from exc
    return width, height, buffer.getvalue()


class AssetService:
    def __init__(self, pool: ConnectionPool, helpers: ServiceHelpers | None = None):
        self._pool = pool
        self._h = helpers or ServiceHelpers()

    def _fetch(self, conn: sqlite3.Connection, asset_id: int) -> AssetRecord | None:
        row = conn.execute(
            f"SELECT {META_COLUMNS} FROM assets WHERE id = ?", (asset_id,)
        ).fetchone()
        return self._h.row_to_record(row)  # type: ignore[return-value]

    def _require(self, conn: sqlite3.Connection, asset_id: int) -> AssetRecord:
        asset = self._fetch(conn, asset_id)
        if asset is None:
            raise NotFoundError("Asset", asset_id)
        return asset

    def create(self, data: Mapping[str, Any]) -> AssetRecord:
        payload = self._h.validate(AssetCreate, data)
        now = self._h.now()
        with self._h.guard("AssetService.create"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                if conn.execute(
                    "SELECT 1 FROM projects WHERE id = ?", (payload.project_id,)
                ).fetchone() is None:
                    raise NotFoundError("Project", payload.project_id)
                cur = conn.execute(
                    """
                    INSERT INTO assets (
                        project_id, filename, original_name, mime_type, file_size,
                        file_data, width, height, thumbnail, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        payload.project_id,
                        payload.filename,
                        payload.original_name,
                        payload.mime_type,
                        payload.file_size,
                        sqlite3.Binary(payload.file_data),
                        payload.width,
                        payload.height,
                        sqlite3.Binary(payload.thumbnail) if payload.thumbnail else None,
                        now,
                        now,
                    ),
                )
                asset = self._require(conn, cur.lastrowid)
        log.info(
            "Stored asset %s (%d bytes) for project %s",
            asset["filename"],
            asset["file_size"],
            payload.project_id,
        )
        return asset

    def add_image(
        self,
        project_id: int,
        filename: str,
        data: bytes,
        mime_type: str,
        *,
        original_name: str | None = None,
    ) -> AssetRecord:
        """Validate an image upload, probe its size, thumbnail it and store it."""

        self._h.validate_id(project_id, "project_id")
        self._h.validate(
            ImageFile, {"filename": filename, "size": len(data), "mimetype": mime_type}
        )
        width, height, thumbnail = probe_image(data, mime_type)
        return self.create(
            {
                "project_id": project_id,
                "filename": filename,
                "original_name": original_name or filename,
                "mime_type": mime_type,
                "file_size": len(data),
                "file_data": data,
                "width": width,
                "height": height,
                "thumbnail": thumbnail,
            }
        )

    def get_by_id(self, asset_id: int) -> AssetRecord | None:
        self._h.validate_id(asset_id)
        with self._h.guard("AssetService.get_by_id"), self._pool.connection() as conn:
            return self._fetch(conn, asset_id)

    def get_data(self, asset_id: int) -> bytes:
        self._h.validate_id(asset_id)
        with self._h.guard("AssetService.get_data"), self._pool.connection() as conn:
            row = conn.execute("SELECT file_data FROM assets WHERE id = ?", (asset_id,)).fetchone()
        if row is None:
            raise NotFoundError("Asset", asset_id)
        return bytes(row[0])

    def get_all(self, filters: Mapping[str, Any] | None = None) -> list[AssetRecord]:
        where, params = self._h.build_where(filters, FILTER_FIELDS)
        with self._h.guard("AssetService.get_all"), self._pool.connection() as conn:
            rows = conn.execute(
                f"SELECT {META_COLUMNS} FROM assets {where} ORDER BY project_id, id", params
            ).fetchall()
        return [self._h.row_to_record(row) for row in rows]  # type: ignore[misc]

    def get_by_project(self, project_id: int) -> list[AssetRecord]:
        self._h.validate_id(project_id, "project_id")
        return self.get_all({"project_id": project_id})

    def update(self, asset_id: int, data: Mapping[str, Any]) -> AssetRecord:
        self._h.validate_id(asset_id)
        payload = self._h.validate(AssetUpdate, data)
        set_clause, params = self._h.build_update(payload.model_dump(exclude_none=True))
        with self._h.guard("AssetService.update"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require(conn, asset_id)
                conn.execute(f"UPDATE assets SET {set_clause} WHERE id = ?", [*params, asset_id])
                return self._require(conn, asset_id)

    def delete(self, asset_id: int) -> None:
        self._h.validate_id(asset_id)
        with self._h.guard("AssetService.delete"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                asset = self._require(conn, asset_id)
                conn.execute("DELETE FROM assets WHERE id = ?", (asset_id,))
        log.info("Deleted asset %s (ID: %s)", asset["filename"], asset_id)

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        with self._h.guard("AssetService.count"), self._pool.connection() as conn:
            return self._h.count(conn, "assets", filters, FILTER_FIELDS)
