# PDFBook
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Project lifecycle, search and derived statistics."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from collections.abc import Mapping
from typing import Any

from pdfbook.core.errors import NotFoundError, ValidationError
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.schemas import PaginationOptions, ProjectCreate, ProjectUpdate
from pdfbook.services.types import PaginatedResult, ProjectRecord, ProjectStats
from pdfbook.storage.connection_pool import ConnectionPool

log = logging.getLogger(__name__)

__all__ = ["ProjectService", "count_words", "refresh_project_stats"]

FILTER_FIELDS = frozenset(
    {
        "id",
        "name",
        "description",
        "file_path",
        "page_format",
        "page_orientation",
        "color_palette_id",
    }
)
ORDER_FIELDS = FILTER_FIELDS | {
    "word_count",
    "page_count",
    "created_at",
    "updated_at",
    "last_accessed",
}
JSON_FIELDS = ("margins",)
# Nullable columns an update may set back to NULL with an explicit None.
CLEARABLE_FIELDS = frozenset({"description", "file_path", "color_palette_id", "last_export_path"})

_TAG_RE = re.compile(r"<[^>]*>")


def count_words(html: str | None) -> int:
    """Whitespace-delimited tokens left after replacing tags with spaces."""

    if not html:
        return 0
    return len(_TAG_RE.sub(" ", html).split())


def refresh_project_stats(conn: sqlite3.Connection, project_id: int, now: str) -> tuple[int, int]:
    """Recompute ``page_count``/``word_count`` from the live pages.

    Runs on the caller's connection so it joins the caller's transaction.

    Returns:
        ``(page_count, word_count)``
    """
    rows = conn.execute(
        "SELECT html_content FROM pages WHERE project_id = ?", (project_id,)
    ).fetchall()
    page_count = len(rows)
    word_count = sum(count_words(row[0]) for row in rows)
    conn.execute(
        "UPDATE projects SET page_count = ?, word_count = ?, updated_at = ? WHERE id = ?",
        (page_count, word_count, now, project_id),
    )
    return page_count, word_count


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ProjectService:
    """CRUD plus cascade delete and statistics upkeep for projects."""

    def __init__(self, pool: ConnectionPool, helpers: ServiceHelpers | None = None):
        self._pool = pool
        self._h = helpers or ServiceHelpers()

    # ---- Internal ----------------------------------------------------------

    def _fetch(self, conn: sqlite3.Connection, project_id: int) -> ProjectRecord | None:
        row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return self._h.row_to_record(row, JSON_FIELDS)  # type: ignore[return-value]

    def _require(self, conn: sqlite3.Connection, project_id: int) -> ProjectRecord:
        project = self._fetch(conn, project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    @staticmethod
    def _to_columns(values: Mapping[str, Any]) -> dict[str, Any]:
        columns = dict(values)
        if columns.get("margins") is not None:
            columns["margins"] = json.dumps(columns["margins"], separators=(",", ":"))
        return columns

    # ---- CRUD --------------------------------------------------------------

    def create(self, data: Mapping[str, Any]) -> ProjectRecord:
        payload = self._h.validate(ProjectCreate, data)
        columns = self._to_columns(payload.model_dump())
        now = self._h.now()
        with self._h.guard("ProjectService.create"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                cur = conn.execute(
                    """
                    INSERT INTO projects (
                        name, description, file_path, page_format, page_orientation,
                        margins, color_palette_id, created_at, updated_at, last_accessed
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        columns["name"],
                        columns["description"],
                        columns["file_path"],
                        columns["page_format"],
                        columns["page_orientation"],
                        columns["margins"],
                        columns["color_palette_id"],
                        now,
                        now,
                        now,
                    ),
                )
                project = self._require(conn, cur.lastrowid)
        log.info("Created project: %s (ID: %s)", project["name"], project["id"])
        return project

    def get_by_id(self, project_id: int) -> ProjectRecord | None:
        self._h.validate_id(project_id)
        with self._h.guard("ProjectService.get_by_id"), self._pool.connection() as conn:
            return self._fetch(conn, project_id)

    def get_all(self, filters: Mapping[str, Any] | None = None) -> list[ProjectRecord]:
        where, params = self._h.build_where(filters, FILTER_FIELDS)
        with self._h.guard("ProjectService.get_all"), self._pool.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM projects {where} ORDER BY last_accessed DESC, id DESC", params
            ).fetchall()
        return [self._h.row_to_record(row, JSON_FIELDS) for row in rows]  # type: ignore[misc]

    def get_recent(self, limit: int = 10) -> list[ProjectRecord]:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 0 < limit <= 100:
            raise ValidationError([("limit", "Must be an integer between 1 and 100")])
        with self._h.guard("ProjectService.get_recent"), self._pool.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM projects ORDER BY last_accessed DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._h.row_to_record(row, JSON_FIELDS) for row in rows]  # type: ignore[misc]

    def get_paginated(
        self,
        options: Mapping[str, Any] | PaginationOptions | None = None,
        filters: Mapping[str, Any] | None = None,
    ) -> PaginatedResult[ProjectRecord]:
        if options is None or isinstance(options, Mapping):
            options = {"order_by": "last_accessed", "direction": "DESC", **(options or {})}
        with self._h.guard("ProjectService.get_paginated"), self._pool.connection() as conn:
            return self._h.paginate(  # type: ignore[return-value]
                conn,
                "projects",
                options,
                allowed=ORDER_FIELDS,
                filters=filters,
                json_fields=JSON_FIELDS,
            )

    def update(self, project_id: int, data: Mapping[str, Any]) -> ProjectRecord:
        self._h.validate_id(project_id)
        payload = self._h.validate(ProjectUpdate, data)
        set_clause, params = self._h.build_update(
            self._to_columns(payload.model_dump(exclude_unset=True)), CLEARABLE_FIELDS
        )
        with self._h.guard("ProjectService.update"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require(conn, project_id)
                conn.execute(
                    f"UPDATE projects SET {set_clause} WHERE id = ?", [*params, project_id]
                )
                project = self._require(conn, project_id)
        log.info("Updated project: %s (ID: %s)", project["name"], project_id)
        return project

    def delete(self, project_id: int) -> None:
        """Delete the project with its versions, assets and pages, atomically."""

        self._h.validate_id(project_id)
        with self._h.guard("ProjectService.delete"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                project = self._require(conn, project_id)
                conn.execute("DELETE FROM project_versions WHERE project_id = ?", (project_id,))
                conn.execute("DELETE FROM assets WHERE project_id = ?", (project_id,))
                conn.execute("DELETE FROM pages WHERE project_id = ?", (project_id,))
                conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        log.info("Deleted project: %s (ID: %s)", project["name"], project_id)

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        with self._h.guard("ProjectService.count"), self._pool.connection() as conn:
            return self._h.count(conn, "projects", filters, FILTER_FIELDS)

    # ---- Derived fields ----------------------------------------------------

    def update_last_accessed(self, project_id: int) -> None:
        self._h.validate_id(project_id)
        with self._h.guard("ProjectService.update_last_accessed"), self._pool.connection() as conn:
            cur = conn.execute(
                "UPDATE projects SET last_accessed = ? WHERE id = ?", (self._h.now(), project_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError("Project", project_id)

    def update_page_count(self, project_id: int) -> int:
        self._h.validate_id(project_id)
        with self._h.guard("ProjectService.update_page_count"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require(conn, project_id)
                (page_count,) = conn.execute(
                    "SELECT COUNT(*) FROM pages WHERE project_id = ?", (project_id,)
                ).fetchone()
                conn.execute(
                    "UPDATE projects SET page_count = ?, updated_at = ? WHERE id = ?",
                    (page_count, self._h.now(), project_id),
                )
        return page_count

    def update_word_count(self, project_id: int) -> int:
        self._h.validate_id(project_id)
        with self._h.guard("ProjectService.update_word_count"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require(conn, project_id)
                rows = conn.execute(
                    "SELECT html_content FROM pages WHERE project_id = ?", (project_id,)
                ).fetchall()
                word_count = sum(count_words(row[0]) for row in rows)
                conn.execute(
                    "UPDATE projects SET word_count = ?, updated_at = ? WHERE id = ?",
                    (word_count, self._h.now(), project_id),
                )
        return word_count

    def refresh_stats(self, project_id: int) -> ProjectRecord:
        self._h.validate_id(project_id)
        with self._h.guard("ProjectService.refresh_stats"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require(conn, project_id)
                refresh_project_stats(conn, project_id, self._h.now())
                return self._require(conn, project_id)

    # ---- Queries -----------------------------------------------------------

    def search(self, query: str, limit: int = 20) -> list[ProjectRecord]:
        """Projects whose name or description contains ``query``.

        Name matches rank before description matches, then most recently
        accessed first. ``%`` and ``_`` in ``query`` match literally.
        """

        if not isinstance(query, str):
            raise ValidationError([("query", "Must be a string")])
        if isinstance(limit, bool) or not isinstance(limit, int) or not 0 < limit <= 100:
            raise ValidationError([("limit", "Must be an integer between 1 and 100")])
        pattern = f"%{_escape_like(query)}%"
        with self._h.guard("ProjectService.search"), self._pool.connection() as conn:
            rows = conn.execute(
                r"""
                SELECT * FROM projects
                WHERE name LIKE ? ESCAPE '\' OR description LIKE ? ESCAPE '\'
                ORDER BY
                    CASE
                        WHEN name LIKE ? ESCAPE '\' THEN 1
                        WHEN description LIKE ? ESCAPE '\' THEN 2
                        ELSE 3
                    END,
                    last_accessed DESC,
                    id DESC
                LIMIT ?
                """,
                (pattern, pattern, pattern, pattern, limit),
            ).fetchall()
        return [self._h.row_to_record(row, JSON_FIELDS) for row in rows]  # type: ignore[misc]

    def get_project_stats(self, project_id: int) -> ProjectStats:
        self._h.validate_id(project_id)
        with self._h.guard("ProjectService.get_project_stats"), self._pool.connection() as conn:
            row = conn.execute(
                """
                SELECT
                    p.page_count,
                    p.word_count,
                    p.updated_at AS last_modified,
                    (SELECT COUNT(*) FROM assets WHERE project_id = p.id) AS asset_count,
                    (SELECT COUNT(*) FROM project_versions WHERE project_id = p.id) AS version_count
                FROM projects p
                WHERE p.id = ?
                """,
                (project_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError("Project", project_id)
        return ProjectStats(
            page_count=row["page_count"] or 0,
            word_count=row["word_count"] or 0,
            asset_count=row["asset_count"] or 0,
            version_count=row["version_count"] or 0,
            last_modified=row["last_modified"],
        )
