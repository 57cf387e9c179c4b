"""
Shared helpers for module services.

Used by ledger_modules/*/service.py for the transaction boundary, input
coercion and pagination.

Architecture: Modules layer.  Imports only from ledger_kernel.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.exceptions import LedgerError, ValidationError


@contextmanager
def unit_of_work(session: Session, logger: logging.Logger, operation: str, **fields: Any) -> Iterator[None]:
    """Commit on success, roll back and re-raise on any exception."""
    try:
        yield
        session.commit()
    except LedgerError as exc:
        session.rollback()
        logger.info(
            f"{operation}_rejected",
            extra={**fields, "error_code": exc.code},
        )
        raise
    except Exception:
        session.rollback()
        logger.error(f"{operation}_failed", extra=fields, exc_info=True)
        raise


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def optional_text(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    return value.strip() or None


def require_uuid(value: Any, field: str) -> UUID:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"invalid {field}", field=field) from None


def optional_uuid(value: Any, field: str) -> UUID | None:
    if value is None or value == "":
        return None
    return require_uuid(value, field)


def require_date(value: Any, field: str) -> date:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(
            f"invalid {field} format, expected YYYY-MM-DD", field=field
        ) from None


def optional_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    return require_date(value, field)
