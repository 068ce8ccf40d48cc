r"""
Map SQLAlchemy errors to structured errors.

Repository code talks to the database through SQLAlchemy; the rest of the application
(HTTP handlers, retry policies, the failure logger) only understands ErrorCode-based
structured errors. This module is the bridge:

| SQLAlchemy error                          | ErrorCode          | Retried by default policy? |
| ----------------------------------------- | ------------------ | -------------------------- |
| IntegrityError (unique / duplicate)       | CONFLICT           | no                         |
| IntegrityError (foreign key)              | CONFLICT           | no                         |
| IntegrityError (not null / check)         | VALIDATION_ERROR   | no                         |
| IntegrityError (unrecognized)             | CONFLICT           | no                         |
| OperationalError / DBAPIError / other     | DATABASE_ERROR     | yes                        |

Transaction retries (`db.transactions.retry_transaction`) deliberately do NOT go through
this mapping: they match the raw storage-engine message, which the mapping would hide.
"""

import logging
from contextlib import asynccontextmanager
from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .base import ErrorPayload, StructuredError, create_error_response
from .codes import ErrorCode

logger = logging.getLogger(__name__)


# https://www.postgresql.org/docs/current/errcodes-appendix.html
class PostgresErrorCodes(str, Enum):
    UNIQUE_VIOLATION = "23505"
    NOT_NULL_VIOLATION = "23502"
    FOREIGN_KEY_VIOLATION = "23503"
    CHECK_VIOLATION = "23514"


class IntegrityKind(str, Enum):
    UNIQUE = "unique"
    NOT_NULL = "not_null"
    FOREIGN_KEY = "foreign_key"
    CHECK = "check"
    UNKNOWN = "unknown"


PGCODE_KIND_MAP = {
    PostgresErrorCodes.UNIQUE_VIOLATION: IntegrityKind.UNIQUE,
    PostgresErrorCodes.NOT_NULL_VIOLATION: IntegrityKind.NOT_NULL,
    PostgresErrorCodes.FOREIGN_KEY_VIOLATION: IntegrityKind.FOREIGN_KEY,
    PostgresErrorCodes.CHECK_VIOLATION: IntegrityKind.CHECK,
}

KIND_CODE_MAP = {
    IntegrityKind.UNIQUE: ErrorCode.CONFLICT,
    IntegrityKind.FOREIGN_KEY: ErrorCode.CONFLICT,
    IntegrityKind.NOT_NULL: ErrorCode.VALIDATION_ERROR,
    IntegrityKind.CHECK: ErrorCode.VALIDATION_ERROR,
    IntegrityKind.UNKNOWN: ErrorCode.CONFLICT,
}


def _match_any(msg: str, keywords: list[str]) -> bool:
    return any(keyword in msg for keyword in keywords)


def _kind_from_postgres_diag(orig) -> tuple[IntegrityKind | None, str | None]:
    """
    Classify via pgcode and diagnostics (psycopg / asyncpg expose them on `orig`).
    """
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if not pgcode:
        return None, None

    diag = getattr(orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None) if diag else None

    try:
        kind = PGCODE_KIND_MAP.get(PostgresErrorCodes(pgcode))
    except ValueError:
        kind = None

    if kind is None:
        logger.warning(
            "Unknown Postgres integrity error code encountered",
            extra={"pgcode": pgcode, "constraint_name": constraint_name},
        )
        return IntegrityKind.UNKNOWN, constraint_name

    logger.debug("Postgres integrity diagnostic", extra={"pgcode": pgcode, "constraint_name": constraint_name})
    return kind, constraint_name


def _kind_from_message(msg: str) -> IntegrityKind:
    """
    Fallback for SQLite, MySQL, etc: classify from the driver message.
    """
    normalized = msg.lower()

    if _match_any(normalized, ["unique constraint", "unique failed", "unique violation", "duplicate"]):
        return IntegrityKind.UNIQUE

    if _match_any(normalized, ["not null constraint", "not null", "null value in column"]):
        return IntegrityKind.NOT_NULL

    if _match_any(normalized, ["foreign key constraint", "foreign key", "is not present in table"]):
        return IntegrityKind.FOREIGN_KEY

    if _match_any(normalized, ["check constraint", "check failed"]):
        return IntegrityKind.CHECK

    logger.warning("Unknown integrity error message encountered", extra={"message_snippet": (msg or "")[:200]})
    return IntegrityKind.UNKNOWN


def classify_integrity_error(exc: IntegrityError) -> tuple[IntegrityKind, str | None]:
    """
    Heuristically classify an IntegrityError.

    Returns:
        (IntegrityKind, constraint name if the driver reported one)
    """
    orig = exc.orig
    kind, constraint_name = _kind_from_postgres_diag(orig)
    if kind is not None:
        return kind, constraint_name
    return _kind_from_message(str(orig) if orig is not None else str(exc)), None


def payload_from_db_error(exc: SQLAlchemyError, model_name: str | None = None) -> ErrorPayload:
    """
    Build a client-safe ErrorPayload for a SQLAlchemy error. Raw driver text is never
    copied into the message; it stays at DEBUG level in the logs.
    """
    subject = model_name or "Record"

    if isinstance(exc, IntegrityError):
        kind, constraint_name = classify_integrity_error(exc)
        details = {"constraint": constraint_name, "kind": kind.value} if constraint_name else {"kind": kind.value}
        messages = {
            IntegrityKind.UNIQUE: f"{subject} already exists",
            IntegrityKind.FOREIGN_KEY: f"{subject} references a missing entity",
            IntegrityKind.NOT_NULL: f"Missing required field for {subject}",
            IntegrityKind.CHECK: f"{subject} business rule violated",
            IntegrityKind.UNKNOWN: f"{subject} database integrity error",
        }
        logger.info("storage.integrity_violation", extra={"model": subject, "kind": kind.value})
        return create_error_response(KIND_CODE_MAP[kind], messages[kind], details=details)

    logger.debug("storage.raw_error", extra={"model": subject, "raw": str(exc)})
    return create_error_response(ErrorCode.DATABASE_ERROR, f"Failed to operate on {subject}")


@asynccontextmanager
async def storage_error_boundary(db: AsyncSession, model_name: str | None = None):
    """
    Usage:
        async with storage_error_boundary(self.db, "User"):
            ... DB ops that may raise SQLAlchemy errors ...

    Rolls the session back on error and raises a StructuredError chained to the
    original exception. Non-SQLAlchemy exceptions are rolled back and re-raised as-is.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        await _safe_rollback(db, model_name)
        raise StructuredError(payload_from_db_error(exc, model_name)) from exc
    except Exception:
        await _safe_rollback(db, model_name)
        raise


async def _safe_rollback(db: AsyncSession, model_name: str | None) -> None:
    try:
        await db.rollback()
    except Exception:
        # A failing rollback must not replace the original error.
        logger.exception("Failed to rollback session", extra={"model": model_name})


__all__ = [
    "IntegrityKind",
    "classify_integrity_error",
    "payload_from_db_error",
    "storage_error_boundary",
]
