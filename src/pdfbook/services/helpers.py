"""
Shared mechanics every entity service holds a reference to.

Services compose a :class:`ServiceHelpers` instead of inheriting from a base
class. The helpers validate payloads, translate engine errors into the
package taxonomy and build the WHERE/ORDER/LIMIT fragments of queries.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from collections.abc import Collection, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel

from pdfbook.core.errors import PdfBookError, ValidationError, translate_sqlite_error
from pdfbook.services.schemas import PaginationOptions
from pdfbook.services.types import PaginatedResult
from pdfbook.storage.sqlite.utils import transaction

log = logging.getLogger(__name__)

__all__ = ["ServiceHelpers", "utc_now"]

M = TypeVar("M", bound=BaseModel)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


class ServiceHelpers:
    """Validation, error translation and query building for services."""

    # ---- Validation ------------------------------------------------------

    def validate(self, schema: type[M], payload: Mapping[str, Any] | M | None) -> M:
        """Parse ``payload`` with ``schema``.

        Raises:
            ValidationError: with one ``(field, message)`` pair per problem
        """

        if isinstance(payload, schema):
            return payload
        try:
            return schema.model_validate(payload if payload is not None else {})
        except pydantic.ValidationError as exc:
            errors = [
                (".".join(str(part) for part in err["loc"]), err["msg"]) for err in exc.errors()
            ]
            raise ValidationError(errors) from None

    def validate_id(self, value: Any, field: str = "id") -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError([(field, "Invalid ID")])
        return value

    # ---- Errors / transactions -------------------------------------------

    @staticmethod
    def translate(exc: BaseException) -> BaseException:
        return translate_sqlite_error(exc)

    @contextmanager
    def guard(self, context: str) -> Iterator[None]:
        """Log failures with ``context`` and re-raise them as typed errors."""

        try:
            yield
        except PdfBookError as exc:
            log.debug("%s: %s", context, exc)
            raise
        except sqlite3.Error as exc:
            translated = translate_sqlite_error(exc)
            log.error("Error in %s: %s", context, exc, exc_info=True)
            raise translated from exc

    @staticmethod
    def transaction(conn: sqlite3.Connection):
        return transaction(conn)

    now = staticmethod(utc_now)

    # ---- Records ---------------------------------------------------------

    @staticmethod
    def row_to_record(
        row: sqlite3.Row | None,
        json_fields: Iterable[str] = (),
        bool_fields: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        """Turn a row into a dict, decoding JSON and boolean columns."""

        if row is None:
            return None
        record = dict(row)
        for name in json_fields:
            value = record.get(name)
            if isinstance(value, (str, bytes)):
                try:
                    record[name] = json.loads(value)
                except ValueError:
                    log.warning("Column %s holds invalid JSON; returning raw text", name)
        for name in bool_fields:
            if name in record:
                record[name] = bool(record[name])
        return record

    # ---- Query fragments -------------------------------------------------

    @staticmethod
    def build_where(
        filters: Mapping[str, Any] | None,
        allowed: Collection[str],
    ) -> tuple[str, list[Any]]:
        """
        Conjunctive WHERE clause from ``filters``.

        ``None`` values are skipped, sequences become ``IN (...)`` (an empty
        one matches nothing) and strings containing ``%`` become ``LIKE``.

        Raises:
            ValidationError: a key is not one of ``allowed``
        """
        if not filters:
            return "", []
        unknown = sorted(key for key in filters if key not in allowed)
        if unknown:
            raise ValidationError([(key, "Unknown filter field") for key in unknown])

        conditions: list[str] = []
        params: list[Any] = []
        for key, value in filters.items():
            if value is None:
                continue
            if _is_sequence(value):
                values = list(value)
                if not values:
                    conditions.append("1 = 0")
                    continue
                conditions.append(f"{key} IN ({', '.join('?' for _ in values)})")
                params.extend(values)
            elif isinstance(value, str) and "%" in value:
                conditions.append(f"{key} LIKE ?")
                params.append(value)
            else:
                conditions.append(f"{key} = ?")
                params.append(value)
        if not conditions:
            return "", []
        return "WHERE " + " AND ".join(conditions), params

    @staticmethod
    def build_order(
        order_by: str | None,
        direction: str = "ASC",
        allowed: Collection[str] = (),
    ) -> str:
        if not order_by:
            return ""
        if order_by not in allowed:
            raise ValidationError([("order_by", f"Cannot order by {order_by!r}")])
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValidationError([("direction", "Must be ASC or DESC")])
        return f"ORDER BY {order_by} {direction}"

    @staticmethod
    def build_pagination(page: int | None, limit: int | None) -> tuple[str, list[int]]:
        if not limit:
            return "", []
        offset = (page - 1) * limit if page else 0
        return "LIMIT ? OFFSET ?", [limit, offset]

    def build_update(
        self, values: Mapping[str, Any], clearable: Collection[str] = ()
    ) -> tuple[str, list[Any]]:
        """SET clause for ``values`` plus ``updated_at``.

        ``None`` entries are skipped unless the column is in ``clearable``, where
        they set the column to NULL.
        """

        pairs: list[str] = []
        params: list[Any] = []
        for key, value in values.items():
            if value is None and key not in clearable:
                continue
            pairs.append(f"{key} = ?")
            params.append(value)
        if not pairs:
            raise ValidationError("No valid fields to update")
        pairs.append("updated_at = ?")
        params.append(self.now())
        return ", ".join(pairs), params

    def count(
        self,
        conn: sqlite3.Connection,
        table: str,
        filters: Mapping[str, Any] | None,
        allowed: Collection[str],
    ) -> int:
        where, params = self.build_where(filters, allowed)
        row = conn.execute(f"SELECT COUNT(*) FROM {table} {where}", params).fetchone()
        return int(row[0]) if row else 0

    def paginate(
        self,
        conn: sqlite3.Connection,
        table: str,
        options: Mapping[str, Any] | PaginationOptions | None,
        *,
        allowed: Collection[str],
        filters: Mapping[str, Any] | None = None,
        default_order: str = "id",
        json_fields: Iterable[str] = (),
        bool_fields: Iterable[str] = (),
    ) -> PaginatedResult[dict[str, Any]]:
        opts = self.validate(PaginationOptions, options)
        where, params = self.build_where(filters, allowed)
        order = self.build_order(opts.order_by or default_order, opts.direction, allowed)
        limit_clause, limit_params = self.build_pagination(opts.page, opts.limit)

        total = conn.execute(f"SELECT COUNT(*) FROM {table} {where}", params).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM {table} {where} {order}, id {opts.direction} {limit_clause}",
            params + limit_params,
        ).fetchall()
        json_fields = tuple(json_fields)
        bool_fields = tuple(bool_fields)
        return PaginatedResult(
            data=[self.row_to_record(row, json_fields, bool_fields) for row in rows],
            total=total,
            page=opts.page,
            limit=opts.limit,
            total_pages=math.ceil(total / opts.limit) if total else 0,
        )
