"""Page templates; builtin templates are seeded by the initial migration and read-only."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from typing import Any

from pdfbook.core.errors import ConstraintError, NotFoundError, ValidationError
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.schemas import TemplateCreate, TemplateUpdate
from pdfbook.services.types import TemplateRecord
from pdfbook.storage.connection_pool import ConnectionPool

log = logging.getLogger(__name__)

__all__ = ["TemplateService"]

FILTER_FIELDS = frozenset({"id", "name", "category", "is_builtin"})
BOOL_FIELDS = ("is_builtin",)


class TemplateService:
    def __init__(self, pool: ConnectionPool, helpers: ServiceHelpers | None = None):
        self._pool = pool
        self._h = helpers or ServiceHelpers()

    def _fetch(self, conn: sqlite3.Connection, template_id: int) -> TemplateRecord | None:
        row = conn.execute("SELECT * FROM templates WHERE id = ?", (template_id,)).fetchone()
        return self._h.row_to_record(row, bool_fields=BOOL_FIELDS)  # type: ignore[return-value]

    def _require_editable(self, conn: sqlite3.Connection, template_id: int) -> TemplateRecord:
        template = self._fetch(conn, template_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        if template["is_builtin"]:
            raise ConstraintError("constraint", "builtin templates cannot be modified")
        return template

    def _query(self, where: str, params: list[Any]) -> list[TemplateRecord]:
        with self._h.guard("TemplateService.query"), self._pool.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM templates {where} ORDER BY is_builtin DESC, category, name, id",
                params,
            ).fetchall()
        records = [self._h.row_to_record(row, bool_fields=BOOL_FIELDS) for row in rows]
        return records  # type: ignore[return-value]

    def create(self, data: Mapping[str, Any]) -> TemplateRecord:
        payload = self._h.validate(TemplateCreate, data)
        now = self._h.now()
        with self._h.guard("TemplateService.create"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                cur = conn.execute(
                    """
                    INSERT INTO templates (
                        name, category, html_template, css_template, preview_image,
                        is_builtin, description, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
                    """,
                    (
                        payload.name,
                        payload.category,
                        payload.html_template,
                        payload.css_template,
                        payload.preview_image,
                        payload.description,
                        now,
                        now,
                    ),
                )
                template = self._fetch(conn, cur.lastrowid)
        log.info("Created template: %s (ID: %s)", payload.name, cur.lastrowid)
        return template  # type: ignore[return-value]

    def get_by_id(self, template_id: int) -> TemplateRecord | None:
        self._h.validate_id(template_id)
        with self._h.guard("TemplateService.get_by_id"), self._pool.connection() as conn:
            return self._fetch(conn, template_id)

    def get_all(self, filters: Mapping[str, Any] | None = None) -> list[TemplateRecord]:
        where, params = self._h.build_where(filters, FILTER_FIELDS)
        return self._query(where, params)

    def get_by_category(self, category: str) -> list[TemplateRecord]:
        if not isinstance(category, str) or not category:
            raise ValidationError([("category", "Must be a non-empty string")])
        return self._query("WHERE category = ?", [category])

    def get_builtin(self) -> list[TemplateRecord]:
        return self._query("WHERE is_builtin = 1", [])

    def update(self, template_id: int, data: Mapping[str, Any]) -> TemplateRecord:
        self._h.validate_id(template_id)
        payload = self._h.validate(TemplateUpdate, data)
        set_clause, params = self._h.build_update(
            payload.model_dump(exclude_unset=True), ("description",)
        )
        with self._h.guard("TemplateService.update"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                self._require_editable(conn, template_id)
                conn.execute(
                    f"UPDATE templates SET {set_clause} WHERE id = ?", [*params, template_id]
                )
                return self._fetch(conn, template_id)  # type: ignore[return-value]

    def delete(self, template_id: int) -> None:
        self._h.validate_id(template_id)
        with self._h.guard("TemplateService.delete"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                template = self._require_editable(conn, template_id)
                conn.execute("DELETE FROM templates WHERE id = ?", (template_id,))
        log.info("Deleted template: %s (ID: %s)", template["name"], template_id)

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        with self._h.guard("TemplateService.count"), self._pool.connection() as conn:
            return self._h.count(conn, "templates", filters, FILTER_FIELDS)
