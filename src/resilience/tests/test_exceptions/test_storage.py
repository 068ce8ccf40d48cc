# src/resilience/tests/test_exceptions/test_storage.py
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from resilience.exceptions.base import StructuredError
from resilience.exceptions.codes import ErrorCode
from resilience.exceptions.storage import (
    IntegrityKind,
    classify_integrity_error,
    payload_from_db_error,
    storage_error_boundary,
)


class PgDriverError(Exception):
    """Mimics psycopg errors: pgcode + diag.constraint_name."""

    def __init__(self, pgcode, constraint_name=None):
        super().__init__(f"pg error {pgcode}")
        self.pgcode = pgcode
        self.diag = SimpleNamespace(constraint_name=constraint_name)


class FakeSession:
    def __init__(self, fail_rollback=False):
        self.rollbacks = 0
        self.fail_rollback = fail_rollback

    async def rollback(self):
        self.rollbacks += 1
        if self.fail_rollback:
            raise RuntimeError("connection gone")


def integrity_error(orig):
    return IntegrityError("INSERT INTO users ...", {}, orig)


class TestIntegrityClassification:

    def test_sqlite_unique_message(self):
        kind, constraint = classify_integrity_error(integrity_error(Exception("UNIQUE constraint failed: users.email")))
        assert kind is IntegrityKind.UNIQUE
        assert constraint is None

    def test_postgres_pgcode_and_constraint(self):
        kind, constraint = classify_integrity_error(integrity_error(PgDriverError("23503", "fk_user_org")))
        assert kind is IntegrityKind.FOREIGN_KEY
        assert constraint == "fk_user_org"

    def test_unknown_pgcode(self):
        kind, _ = classify_integrity_error(integrity_error(PgDriverError("23999")))
        assert kind is IntegrityKind.UNKNOWN


class TestPayloadFromDbError:

    def test_unique_maps_to_conflict(self):
        payload = payload_from_db_error(integrity_error(Exception("duplicate key value")), "User")

        assert payload.code is ErrorCode.CONFLICT
        assert payload.message == "User already exists"
        assert payload.details == {"kind": "unique"}

    def test_not_null_maps_to_validation_error(self):
        payload = payload_from_db_error(integrity_error(PgDriverError("23502", "users_email_not_null")), "User")

        assert payload.code is ErrorCode.VALIDATION_ERROR
        assert payload.details == {"constraint": "users_email_not_null", "kind": "not_null"}

    def test_operational_error_maps_to_database_error(self):
        exc = OperationalError("SELECT 1", {}, Exception("could not connect to server"))
        payload = payload_from_db_error(exc)

        assert payload.code is ErrorCode.DATABASE_ERROR
        # raw driver text is never exposed
        assert "could not connect" not in payload.message


@pytest.mark.asyncio
class TestStorageErrorBoundary:

    async def test_sqlalchemy_error_becomes_structured(self):
        db = FakeSession()
        original = integrity_error(Exception("UNIQUE constraint failed: users.email"))

        with pytest.raises(StructuredError) as exc_info:
            async with storage_error_boundary(db, "User"):
                raise original

        assert exc_info.value.code is ErrorCode.CONFLICT
        assert exc_info.value.__cause__ is original
        assert db.rollbacks == 1

    async def test_other_errors_reraised_unchanged(self):
        db = FakeSession()

        with pytest.raises(KeyError):
            async with storage_error_boundary(db, "User"):
                raise KeyError("x")

        assert db.rollbacks == 1

    async def test_failing_rollback_does_not_hide_error(self):
        db = FakeSession(fail_rollback=True)

        with pytest.raises(StructuredError):
            async with storage_error_boundary(db):
                raise OperationalError("SELECT 1", {}, Exception("gone"))

    async def test_no_error_no_rollback(self):
        db = FakeSession()
        async with storage_error_boundary(db):
            pass
        assert db.rollbacks == 0
