"""Color palettes. Exactly one palette is the default once any has been marked."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping
from typing import Any

from pdfbook.core.errors import ConstraintError, NotFoundError
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.schemas import PaletteCreate, PaletteUpdate
from pdfbook.services.types import PaletteRecord
from pdfbook.storage.connection_pool import ConnectionPool

log = logging.getLogger(__name__)

__all__ = ["ColorPaletteService"]

FILTER_FIELDS = frozenset({"id", "name", "theme_type", "is_default"})
JSON_FIELDS = ("colors",)
BOOL_FIELDS = ("is_default",)


class ColorPaletteService:
    def __init__(self, pool: ConnectionPool, helpers: ServiceHelpers | None = None):
        self._pool = pool
        self._h = helpers or ServiceHelpers()

    def _fetch(self, conn: sqlite3.Connection, palette_id: int) -> PaletteRecord | None:
        row = conn.execute("SELECT * FROM color_palettes WHERE id = ?", (palette_id,)).fetchone()
        return self._h.row_to_record(row, JSON_FIELDS, BOOL_FIELDS)  # type: ignore[return-value]

    def _require(self, conn: sqlite3.Connection, palette_id: int) -> PaletteRecord:
        palette = self._fetch(conn, palette_id)
        if palette is None:
            raise NotFoundError("ColorPalette", palette_id)
        return palette

    @staticmethod
    def _clear_default(conn: sqlite3.Connection, now: str) -> None:
        conn.execute(
            "UPDATE color_palettes SET is_default = 0, updated_at = ? WHERE is_default = 1", (now,)
        )

    def create(self, data: Mapping[str, Any]) -> PaletteRecord:
        payload = self._h.validate(PaletteCreate, data)
        now = self._h.now()
        with self._h.guard("ColorPaletteService.create"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                if payload.is_default:
                    self._clear_default(conn, now)
                cur = conn.execute(
                    """
                    INSERT INTO color_palettes (
                        name, description, colors, theme_type, is_default, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        payload.name,
                        payload.description,
                        json.dumps(payload.colors),
                        payload.theme_type,
                        int(payload.is_default),
                        now,
                        now,
                    ),
                )
                palette = self._require(conn, cur.lastrowid)
        log.info("Created color palette: %s (ID: %s)", palette["name"], palette["id"])
        return palette

    def get_by_id(self, palette_id: int) -> PaletteRecord | None:
        self._h.validate_id(palette_id)
        with self._h.guard("ColorPaletteService.get_by_id"), self._pool.connection() as conn:
            return self._fetch(conn, palette_id)

    def get_all(self, filters: Mapping[str, Any] | None = None) -> list[PaletteRecord]:
        where, params = self._h.build_where(filters, FILTER_FIELDS)
        with self._h.guard("ColorPaletteService.get_all"), self._pool.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM color_palettes {where} ORDER BY is_default DESC, name", params
            ).fetchall()
        records = [self._h.row_to_record(row, JSON_FIELDS, BOOL_FIELDS) for row in rows]
        return records  # type: ignore[return-value]

    def get_default(self) -> PaletteRecord | None:
        with self._h.guard("ColorPaletteService.get_default"), self._pool.connection() as conn:
            row = conn.execute(
                "SELECT * FROM color_palettes WHERE is_default = 1 ORDER BY id LIMIT 1"
            ).fetchone()
        return self._h.row_to_record(row, JSON_FIELDS, BOOL_FIELDS)  # type: ignore[return-value]

    def set_default(self, palette_id: int) -> PaletteRecord:
        """Make ``palette_id`` the only default palette."""

        self._h.validate_id(palette_id)
        now = self._h.now()
        with self._h.guard("ColorPaletteService.set_default"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require(conn, palette_id)
                self._clear_default(conn, now)
                conn.execute(
                    "UPDATE color_palettes SET is_default = 1, updated_at = ? WHERE id = ?",
                    (now, palette_id),
                )
                palette = self._require(conn, palette_id)
        log.info("Default color palette is now %s (ID: %s)", palette["name"], palette_id)
        return palette

    def update(self, palette_id: int, data: Mapping[str, Any]) -> PaletteRecord:
        self._h.validate_id(palette_id)
        payload = self._h.validate(PaletteUpdate, data)
        values = payload.model_dump(exclude_unset=True)
        if values.get("colors") is not None:
            values["colors"] = json.dumps(values["colors"])
        set_clause, params = self._h.build_update(values, ("description",))
        with self._h.guard("ColorPaletteService.update"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require(conn, palette_id)
                conn.execute(
                    f"UPDATE color_palettes SET {set_clause} WHERE id = ?", [*params, palette_id]
                )
                return self._require(conn, palette_id)

    def delete(self, palette_id: int) -> None:
        self._h.validate_id(palette_id)
        with self._h.guard("ColorPaletteService.delete"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                palette = self._require(conn, palette_id)
                if palette["is_default"]:
                    raise ConstraintError(
                        "constraint", "choose another default before deleting this palette"
                    )
                conn.execute("DELETE FROM color_palettes WHERE id = ?", (palette_id,))
        log.info("Deleted color palette: %s (ID: %s)", palette["name"], palette_id)

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        with self._h.guard("ColorPaletteService.count"), self._pool.connection() as conn:
            return self._h.count(conn, "color_palettes", filters, FILTER_FIELDS)
