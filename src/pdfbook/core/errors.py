"""Typed errors raised by the storage and service layers.

Everything below the service boundary is translated into one of these
classes before it reaches a caller; ``translate_sqlite_error`` is the single
place where raw ``sqlite3`` failures are classified.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence

__all__ = [
    "PdfBookError",
    "ValidationError",
    "NotFoundError",
    "ConstraintError",
    "PoolTimeoutError",
    "PoolClosedError",
    "IntegrityCheckError",
    "MigrationError",
    "StoreInitError",
    "StorageError",
    "translate_sqlite_error",
]


class PdfBookError(Exception):
    """Base class for every error raised by the package."""


class ValidationError(PdfBookError):
    """Payload rejected by a validation schema; no statement was executed."""

    def __init__(self, errors: Sequence[tuple[str, str]] | str):
        if isinstance(errors, str):
            errors = [("", errors)]
        self.errors: list[tuple[str, str]] = list(errors)
        details = ", ".join(
            f"{field}: {message}" if field else message for field, message in self.errors
        )
        super().__init__(f"Validation failed: {details}")

    @property
    def fields(self) -> list[str]:
        return [field for field, _ in self.errors if field]


class NotFoundError(PdfBookError):
    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ConstraintError(PdfBookError):
    """A uniqueness, foreign-key, not-null or check constraint failed."""

    MESSAGES = {
        "unique": "A record with this information already exists",
        "primary_key": "A record with this information already exists",
        "foreign_key": "Cannot perform this operation due to related data",
        "not_null": "Required information is missing",
        "check": "A value is outside its allowed range",
        "constraint": "The operation violates a data constraint",
    }

    def __init__(self, kind: str, detail: str | None = None):
        self.kind = kind
        self.detail = detail
        message = self.MESSAGES.get(kind, self.MESSAGES["constraint"])
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class PoolTimeoutError(PdfBookError, TimeoutError):
    """No pooled handle became available within the acquire timeout."""


class PoolClosedError(PdfBookError):
    """The pool has been destroyed and hands out no further handles."""


class IntegrityCheckError(PdfBookError):
    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        super().__init__("Database integrity check failed: " + "; ".join(self.problems))


class MigrationError(PdfBookError):
    """A migration step failed; the enclosing transaction was rolled back."""

    def __init__(self, message: str, *, version: str | None = None):
        self.version = version
        super().__init__(message)


class StoreInitError(PdfBookError):
    """The store could not be opened or brought to the current schema."""


class StorageError(PdfBookError):
    """Any other failure reported by the SQLite engine."""


# ---- sqlite classification -------------------------------------------------

# Extended result codes (sqlite3.h); used when the driver exposes them.
_CONSTRAINT_CODES = {
    2067: "unique",  # SQLITE_CONSTRAINT_UNIQUE
    1555: "primary_key",  # SQLITE_CONSTRAINT_PRIMARYKEY
    787: "foreign_key",  # SQLITE_CONSTRAINT_FOREIGNKEY
    1299: "not_null",  # SQLITE_CONSTRAINT_NOTNULL
    275: "check",  # SQLITE_CONSTRAINT_CHECK
}

_CONSTRAINT_NAMES = {
    "SQLITE_CONSTRAINT_UNIQUE": "unique",
    "SQLITE_CONSTRAINT_PRIMARYKEY": "primary_key",
    "SQLITE_CONSTRAINT_FOREIGNKEY": "foreign_key",
    "SQLITE_CONSTRAINT_NOTNULL": "not_null",
    "SQLITE_CONSTRAINT_CHECK": "check",
}

_CONSTRAINT_TEXT = (
    ("UNIQUE constraint failed", "unique"),
    ("FOREIGN KEY constraint failed", "foreign_key"),
    ("NOT NULL constraint failed", "not_null"),
    ("CHECK constraint failed", "check"),
)


def _constraint_kind(exc: sqlite3.Error) -> str | None:
    name = getattr(exc, "sqlite_errorname", None)
    if name in _CONSTRAINT_NAMES:
        return _CONSTRAINT_NAMES[name]
    code = getattr(exc, "sqlite_errorcode", None)
    if code in _CONSTRAINT_CODES:
        return _CONSTRAINT_CODES[code]

    # Last resort: older drivers only give us the message text.
    text = str(exc)
    for needle, kind in _CONSTRAINT_TEXT:
        if needle in text:
            return kind
    if isinstance(exc, sqlite3.IntegrityError):
        return "constraint"
    return None


def translate_sqlite_error(exc: BaseException) -> BaseException:
    """Map a raw ``sqlite3`` error to the package taxonomy.

    Errors that already belong to the taxonomy, and anything that is not an
    ``sqlite3.Error``, are returned unchanged.
    """

    if isinstance(exc, PdfBookError) or not isinstance(exc, sqlite3.Error):
        return exc
    kind = _constraint_kind(exc)
    if kind is not None:
        detail = str(exc).split(":", 1)[1].strip() if ":" in str(exc) else None
        return ConstraintError(kind, detail)
    return StorageError(str(exc))
