"""Append-only version history of projects.

Each version stores a JSON snapshot of the project row and its pages at the
time it was taken. Version numbers start at 1 and increase per project.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping
from typing import Any

from pdfbook.core.errors import NotFoundError, ValidationError
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.schemas import VersionCreate
from pdfbook.services.types import VersionRecord
from pdfbook.storage.connection_pool import ConnectionPool

log = logging.getLogger(__name__)

__all__ = ["ProjectVersionService", "build_snapshot"]

FILTER_FIELDS = frozenset({"id", "project_id", "version_number", "description"})


def build_snapshot(conn: sqlite3.Connection, project_id: int) -> str:
    """Serialize the project and its pages, in page order."""

    project = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
    if project is None:
        raise NotFoundError("Project", project_id)
    pages = conn.execute(
        "SELECT * FROM pages WHERE project_id = ? ORDER BY page_number", (project_id,)
    ).fetchall()
    return json.dumps(
        {"project": dict(project), "pages": [dict(page) for page in pages]},
        ensure_ascii=False,
    )


class ProjectVersionService:
    def __init__(self, pool: ConnectionPool, helpers: ServiceHelpers | None = None):
        self._pool = pool
        self._h = helpers or ServiceHelpers()

    def _fetch(self, conn: sqlite3.Connection, version_id: int) -> VersionRecord | None:
        row = conn.execute("SELECT * FROM project_versions WHERE id = ?", (version_id,)).fetchone()
        return self._h.row_to_record(row)  # type: ignore[return-value]

    def create(self, data: Mapping[str, Any]) -> VersionRecord:
        payload = self._h.validate(VersionCreate, data)
        now = self._h.now()
        with self._h.guard("ProjectVersionService.create"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                snapshot = payload.data_snapshot
                if snapshot is None:
                    snapshot = build_snapshot(conn, payload.project_id)
                elif conn.execute(
                    "SELECT 1 FROM projects WHERE id = ?", (payload.project_id,)
                ).fetchone() is None:
                    raise NotFoundError("Project", payload.project_id)
                (version_number,) = conn.execute(
                    "SELECT COALESCE(MAX(version_number), 0) + 1 FROM project_versions "
                    "WHERE project_id = ?",
                    (payload.project_id,),
                ).fetchone()
                cur = conn.execute(
                    """
                    INSERT INTO project_versions (
                        project_id, version_number, description, data_snapshot,
                        file_size, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        payload.project_id,
                        version_number,
                        payload.description,
                        snapshot,
                        len(snapshot.encode("utf-8")),
                        now,
                        now,
                    ),
                )
                version = self._fetch(conn, cur.lastrowid)
        log.info(
            "Saved version %d of project %s (%s)",
            version_number,
            payload.project_id,
            payload.description,
        )
        return version  # type: ignore[return-value]

    def get_by_id(self, version_id: int) -> VersionRecord | None:
        self._h.validate_id(version_id)
        with self._h.guard("ProjectVersionService.get_by_id"), self._pool.connection() as conn:
            return self._fetch(conn, version_id)

    def get_all(self, filters: Mapping[str, Any] | None = None) -> list[VersionRecord]:
        where, params = self._h.build_where(filters, FILTER_FIELDS)
        with self._h.guard("ProjectVersionService.get_all"), self._pool.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM project_versions {where} "
                "ORDER BY project_id, version_number DESC",
                params,
            ).fetchall()
        return [self._h.row_to_record(row) for row in rows]  # type: ignore[misc]

    def get_by_project(self, project_id: int) -> list[VersionRecord]:
        """Newest first."""
        self._h.validate_id(project_id, "project_id")
        return self.get_all({"project_id": project_id})

    def get_latest(self, project_id: int) -> VersionRecord | None:
        self._h.validate_id(project_id, "project_id")
        with self._h.guard("ProjectVersionService.get_latest"), self._pool.connection() as conn:
            row = conn.execute(
                "SELECT * FROM project_versions WHERE project_id = ? "
                "ORDER BY version_number DESC LIMIT 1",
                (project_id,),
            ).fetchone()
        return self._h.row_to_record(row)  # type: ignore[return-value]

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        with self._h.guard("ProjectVersionService.count"), self._pool.connection() as conn:
            return self._h.count(conn, "project_versions", filters, FILTER_FIELDS)

    def prune(self, project_id: int, keep: int) -> int:
        """Delete all but the newest ``keep`` versions; returns how many went."""

        self._h.validate_id(project_id, "project_id")
        if isinstance(keep, bool) or not isinstance(keep, int) or keep < 0:
            raise ValidationError([("keep", "Must be a non-negative integer")])
        with self._h.guard("ProjectVersionService.prune"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                cur = conn.execute(
                    """
                    DELETE FROM project_versions
                    WHERE project_id = ? AND id NOT IN (
                        SELECT id FROM project_versions
                        WHERE project_id = ?
                        ORDER BY version_number DESC
                        LIMIT ?
                    )
                    """,
                    (project_id, project_id, keep),
                )
        if cur.rowcount:
            log.info("Pruned %d old version(s) of project %s", cur.rowcount, project_id)
        return cur.rowcount
