"""Key/value application settings."""

from __future__ import annotations

import logging

from pdfbook.core.errors import NotFoundError, ValidationError
from pdfbook.services.helpers import ServiceHelpers
from pdfbook.services.schemas import AppSetting
from pdfbook.services.types import SettingRecord
from pdfbook.storage.connection_pool import ConnectionPool

log = logging.getLogger(__name__)

__all__ = ["AppSettingsService"]


class AppSettingsService:
    def __init__(self, pool: ConnectionPool, helpers: ServiceHelpers | None = None):
        self._pool = pool
        self._h = helpers or ServiceHelpers()

    @staticmethod
    def _check_key(key: object) -> str:
        if not isinstance(key, str) or not key or len(key) > 255:
            raise ValidationError([("key", "Must be a string of 1 to 255 characters")])
        return key

    def get(self, key: str, default: str | None = None) -> str | None:
        self._check_key(key)
        with self._h.guard("AppSettingsService.get"), self._pool.connection() as conn:
            row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
        return default if row is None else row["value"]

    def get_record(self, key: str) -> SettingRecord | None:
        self._check_key(key)
        with self._h.guard("AppSettingsService.get_record"), self._pool.connection() as conn:
            row = conn.execute("SELECT * FROM app_settings WHERE key = ?", (key,)).fetchone()
        return self._h.row_to_record(row)  # type: ignore[return-value]

    def set(self, key: str, value: str) -> SettingRecord:
        """Insert or overwrite ``key``."""

        payload = self._h.validate(AppSetting, {"key": key, "value": value})
        now = self._h.now()
        with self._h.guard("AppSettingsService.set"), self._pool.connection() as conn:
            with self._h.transaction(conn):
                conn.execute(
                    """
                    INSERT INTO app_settings (key, value, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (payload.key, payload.value, now, now),
                )
                row = conn.execute(
                    "SELECT * FROM app_settings WHERE key = ?", (payload.key,)
                ).fetchone()
        log.debug("Setting %s updated", payload.key)
        return self._h.row_to_record(row)  # type: ignore[return-value]

    def delete(self, key: str) -> None:
        self._check_key(key)
        with self._h.guard("AppSettingsService.delete"), self._pool.connection() as conn:
            cur = conn.execute("DELETE FROM app_settings WHERE key = ?", (key,))
        if cur.rowcount == 0:
            raise NotFoundError("AppSetting", key)

    def get_all(self) -> dict[str, str]:
        with self._h.guard("AppSettingsService.get_all"), self._pool.connection() as conn:
            rows = conn.execute("SELECT key, value FROM app_settings ORDER BY key").fetchall()
        return {row["key"]: row["value"] for row in rows}

    def count(self) -> int:
        with self._h.guard("AppSettingsService.count"), self._pool.connection() as conn:
            (total,) = conn.execute("SELECT COUNT(*) FROM app_settings").fetchone()
        return total
