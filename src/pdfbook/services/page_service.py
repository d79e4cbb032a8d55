# PDFBook
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Page lifecycle and ordering.

Within a project, page numbers are always exactly ``1..N`` with no gaps or
duplicates. Every operation that adds, removes or moves pages renumbers the
neighbours and refreshes the owning project's ``page_count``/``word_count``
inside the same transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping, Sequence
from typing import Any

from pdfbook.core.errors import NotFoundError, ValidationError
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.project_service import refresh_project_stats
from pdfbook.services.schemas import PageCreate, PageUpdate
from pdfbook.services.types import PageContent, PageRecord
from pdfbook.storage.connection_pool import ConnectionPool

log = logging.getLogger(__name__)

__all__ = ["PageService"]

FILTER_FIELDS = frozenset({"id", "project_id", "page_number", "name", "template_id"})
JSON_FIELDS = ("page_config",)
CLEARABLE_FIELDS = frozenset({"template_id"})
COPY_SUFFIX = " (Copy)"


class PageService:
    """CRUD and ordering operations for pages."""

    def __init__(self, pool: ConnectionPool, helpers: ServiceHelpers | None = None):
        self._pool = pool
        self._h = helpers or ServiceHelpers()

    # ---- Internal ----------------------------------------------------------

    def _fetch(self, conn: sqlite3.Connection, page_id: int) -> PageRecord | None:
        row = conn.execute("SELECT * FROM pages WHERE id = ?", (page_id,)).fetchone()
        return self._h.row_to_record(row, JSON_FIELDS)  # type: ignore[return-value]

    def _require(self, conn: sqlite3.Connection, page_id: int) -> PageRecord:
        page = self._fetch(conn, page_id)
        if page is None:
            raise NotFoundError("Page", page_id)
        return page

    @staticmethod
    def _require_project(conn: sqlite3.Connection, project_id: int) -> None:
        row = conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone()
        if row is None:
            raise NotFoundError("Project", project_id)

    @staticmethod
    def _page_count(conn: sqlite3.Connection, project_id: int) -> int:
        row = conn.execute("SELECT COUNT(*) FROM pages WHERE project_id = ?", (project_id,))
        return int(row.fetchone()[0])

    @staticmethod
    def _next_number(conn: sqlite3.Connection, project_id: int) -> int:
        row = conn.execute(
            "SELECT COALESCE(MAX(page_number), 0) FROM pages WHERE project_id = ?", (project_id,)
        ).fetchone()
        return int(row[0]) + 1

    def _shift_from(self, conn: sqlite3.Connection, project_id: int, start: int, now: str) -> None:
        """Make room at ``start`` by moving it and every later page up by one."""

        conn.execute(
            "UPDATE pages SET page_number = page_number + 1, updated_at = ? "
            "WHERE project_id = ? AND page_number >= ?",
            (now, project_id, start),
        )

    def _insert(
        self, conn: sqlite3.Connection, values: Mapping[str, Any], page_number: int, now: str
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO pages (
                project_id, page_number, name, html_content, css_styles,
                template_id, page_config, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                values["project_id"],
                page_number,
                values["name"],
                values["html_content"],
                values["css_styles"],
                values.get("template_id"),
                json.dumps(values.get("page_config") or {}),
                now,
                now,
            ),
        )
        return int(cur.lastrowid)

    # ---- CRUD --------------------------------------------------------------

    def create(self, data: Mapping[str, Any]) -> PageRecord:
        """
        Add a page to a project.

        Without ``page_number`` the page is appended. An explicit number is an
        insert position in ``1..N+1``; the page already there and every later
        one move up by one.
        """
        payload = self._h.validate(PageCreate, data)
        values = payload.model_dump(exclude_none=True)
        project_id = payload.project_id
        now = self._h.now()
        with self._h.guard("PageService.create"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require_project(conn, project_id)
                next_number = self._next_number(conn, project_id)
                if payload.page_number is None:
                    page_number = next_number
                else:
                    page_number = payload.page_number
                    if page_number > next_number:
                        raise ValidationError(
                            [("page_number", f"Must be between 1 and {next_number}")]
                        )
                    self._shift_from(conn, project_id, page_number, now)
                page_id = self._insert(conn, values, page_number, now)
                refresh_project_stats(conn, project_id, now)
                page = self._require(conn, page_id)
        log.info("Created page: %s for project %s", page["name"], project_id)
        return page

    def get_by_id(self, page_id: int) -> PageRecord | None:
        self._h.validate_id(page_id)
        with self._h.guard("PageService.get_by_id"), self._pool.connection() as conn:
            return self._fetch(conn, page_id)

    def get_all(self, filters: Mapping[str, Any] | None = None) -> list[PageRecord]:
        where, params = self._h.build_where(filters, FILTER_FIELDS)
        with self._h.guard("PageService.get_all"), self._pool.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM pages {where} ORDER BY project_id, page_number", params
            ).fetchall()
        return [self._h.row_to_record(row, JSON_FIELDS) for row in rows]  # type: ignore[misc]

    def get_by_project(self, project_id: int) -> list[PageRecord]:
        self._h.validate_id(project_id, "project_id")
        with self._h.guard("PageService.get_by_project"), self._pool.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM pages WHERE project_id = ? ORDER BY page_number", (project_id,)
            ).fetchall()
        return [self._h.row_to_record(row, JSON_FIELDS) for row in rows]  # type: ignore[misc]

    def update(self, page_id: int, data: Mapping[str, Any]) -> PageRecord:
        self._h.validate_id(page_id)
        payload = self._h.validate(PageUpdate, data)
        values = payload.model_dump(exclude_unset=True)
        if values.get("page_config") is not None:
            values["page_config"] = json.dumps(values["page_config"])
        set_clause, params = self._h.build_update(values, CLEARABLE_FIELDS)
        with self._h.guard("PageService.update"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                current = self._require(conn, page_id)
                conn.execute(f"UPDATE pages SET {set_clause} WHERE id = ?", [*params, page_id])
                if values.get("html_content") is not None:
                    refresh_project_stats(conn, current["project_id"], self._h.now())
                page = self._require(conn, page_id)
        log.info("Updated page: %s (ID: %s)", page["name"], page_id)
        return page

    def delete(self, page_id: int) -> None:
        self._h.validate_id(page_id)
        now = self._h.now()
        with self._h.guard("PageService.delete"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                page = self._require(conn, page_id)
                conn.execute("DELETE FROM pages WHERE id = ?", (page_id,))
                conn.execute(
                    "UPDATE pages SET page_number = page_number - 1, updated_at = ? "
                    "WHERE project_id = ? AND page_number > ?",
                    (now, page["project_id"], page["page_number"]),
                )
                refresh_project_stats(conn, page["project_id"], now)
        log.info("Deleted page: %s (ID: %s)", page["name"], page_id)

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        with self._h.guard("PageService.count"), self._pool.connection() as conn:
            return self._h.count(conn, "pages", filters, FILTER_FIELDS)

    # ---- Ordering ----------------------------------------------------------

    def reorder_pages(self, project_id: int, page_ids: Sequence[int]) -> list[PageRecord]:
        """Renumber a project's pages to follow ``page_ids``.

        ``page_ids`` must list every page of the project exactly once.
        """

        self._h.validate_id(project_id, "project_id")
        if isinstance(page_ids, (str, bytes)) or not isinstance(page_ids, Sequence):
            raise ValidationError([("page_ids", "Must be a list of page IDs")])
        for page_id in page_ids:
            self._h.validate_id(page_id, "page_ids")
        now = self._h.now()
        with self._h.guard("PageService.reorder_pages"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require_project(conn, project_id)
                current = {
                    row[0]
                    for row in conn.execute(
                        "SELECT id FROM pages WHERE project_id = ?", (project_id,)
                    )
                }
                if len(page_ids) != len(set(page_ids)) or set(page_ids) != current:
                    raise ValidationError(
                        [("page_ids", "Must list every page of the project exactly once")]
                    )
                conn.executemany(
                    "UPDATE pages SET page_number = ?, updated_at = ? "
                    "WHERE id = ? AND project_id = ?",
                    [(number, now, pid, project_id) for number, pid in enumerate(page_ids, 1)],
                )
                refresh_project_stats(conn, project_id, now)
                rows = conn.execute(
                    "SELECT * FROM pages WHERE project_id = ? ORDER BY page_number", (project_id,)
                ).fetchall()
        log.info("Reordered pages for project %s", project_id)
        return [self._h.row_to_record(row, JSON_FIELDS) for row in rows]  # type: ignore[misc]

    def move_page(self, page_id: int, new_page_number: int) -> PageRecord:
        self._h.validate_id(page_id)
        self._h.validate_id(new_page_number, "new_page_number")
        now = self._h.now()
        with self._h.guard("PageService.move_page"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                page = self._require(conn, page_id)
                project_id = page["project_id"]
                current_number = page["page_number"]
                total = self._page_count(conn, project_id)
                if new_page_number > total:
                    raise ValidationError(
                        [("new_page_number", f"Must be between 1 and {total}")]
                    )
                if new_page_number == current_number:
                    return page

                if new_page_number > current_number:
                    conn.execute(
                        "UPDATE pages SET page_number = page_number - 1, updated_at = ? "
                        "WHERE project_id = ? AND page_number > ? AND page_number <= ?",
                        (now, project_id, current_number, new_page_number),
                    )
                else:
                    conn.execute(
                        "UPDATE pages SET page_number = page_number + 1, updated_at = ? "
                        "WHERE project_id = ? AND page_number >= ? AND page_number < ?",
                        (now, project_id, new_page_number, current_number),
                    )
                conn.execute(
                    "UPDATE pages SET page_number = ?, updated_at = ? WHERE id = ?",
                    (new_page_number, now, page_id),
                )
                refresh_project_stats(conn, project_id, now)
                moved = self._require(conn, page_id)
        log.info(
            "Moved page %s from position %s to %s", page["name"], current_number, new_page_number
        )
        return moved

    def duplicate(self, page_id: int, insert_after: bool = True) -> PageRecord:
        """Copy a page right after (or before) the original."""

        self._h.validate_id(page_id)
        now = self._h.now()
        with self._h.guard("PageService.duplicate"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                original = self._require(conn, page_id)
                project_id = original["project_id"]
                position = original["page_number"] + (1 if insert_after else 0)
                self._shift_from(conn, project_id, position, now)
                name = original["name"][: 255 - len(COPY_SUFFIX)] + COPY_SUFFIX
                copy_id = self._insert(conn, {**original, "name": name}, position, now)
                refresh_project_stats(conn, project_id, now)
                copy = self._require(conn, copy_id)
        log.info("Duplicated page: %s -> %s", original["name"], copy["name"])
        return copy

    # ---- Queries -----------------------------------------------------------

    def get_page_content(self, page_id: int) -> PageContent:
        self._h.validate_id(page_id)
        with self._h.guard("PageService.get_page_content"), self._pool.connection() as conn:
            row = conn.execute(
                "SELECT html_content, css_styles FROM pages WHERE id = ?", (page_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("Page", page_id)
        return PageContent(html=row["html_content"], css=row["css_styles"])

    def next_page_number(self, project_id: int) -> int:
        self._h.validate_id(project_id, "project_id")
        with self._h.guard("PageService.next_page_number"), self._pool.connection() as conn:
            return self._next_number(conn, project_id)
