"""Helpers for working with database/SQLAlchemy errors."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

_UNIQUE_VIOLATION_SQLSTATES = {"23505"}


def is_unique_violation(exc: IntegrityError, table_name: str | None = None) -> bool:
    """Return ``True`` if ``exc`` was caused by a duplicate key.

    Parameters
    ----------
    exc:
        The integrity error raised while flushing.
    table_name:
        Optional table name that must appear in the driver message. Only
        consulted for drivers that do not report a SQLSTATE.
    """

    orig = getattr(exc, "orig", None)
    if orig is None:
        return False

    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _UNIQUE_VIOLATION_SQLSTATES:
        return True

    message = str(orig).lower()
    if table_name and table_name.lower() not in message:
        return False

    return "unique constraint" in message or "duplicate key" in message
