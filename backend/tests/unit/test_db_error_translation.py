import pytest
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from app.core.exceptions import StoreErrorKind
from app.database.errors import classify_db_error, translate_db_error


class FakePgError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"pg error {pgcode}")
        self.pgcode = pgcode


class FakeSqliteError(Exception):
    def __init__(self, code):
        super().__init__(f"sqlite error {code}")
        self.sqlite_errorcode = code


@pytest.mark.parametrize(
    "pgcode, kind",
    [
        ("40P01", StoreErrorKind.DEADLOCK),
        ("40001", StoreErrorKind.SERIALIZATION),
        ("57014", StoreErrorKind.TIMEOUT),
        ("08006", StoreErrorKind.CONNECTION),
        ("57P01", StoreErrorKind.CONNECTION),
        ("42P01", StoreErrorKind.OTHER),
    ],
)
def test_classifies_postgres_sqlstate(pgcode, kind):
    exc = OperationalError("SELECT 1", {}, FakePgError(pgcode))
    assert classify_db_error(exc) == kind


def test_sqlite_busy_is_retryable_timeout():
    exc = OperationalError("INSERT", {}, FakeSqliteError(5))
    translated = translate_db_error(exc, "insert lesson")

    assert translated.kind == StoreErrorKind.TIMEOUT
    assert translated.retryable
    assert translated.__cause__ is exc


def test_sqlite_extended_constraint_code_is_integrity():
    # SQLITE_CONSTRAINT_UNIQUE (2067) masks down to SQLITE_CONSTRAINT (19)
    exc = OperationalError("INSERT", {}, FakeSqliteError(2067))
    assert classify_db_error(exc) == StoreErrorKind.INTEGRITY


def test_integrity_error_is_not_retryable():
    translated = translate_db_error(IntegrityError("INSERT", {}, Exception("unique")))
    assert translated.is_integrity_violation
    assert not translated.retryable


def test_connection_signals_are_retryable():
    invalidated = OperationalError("SELECT 1", {}, Exception("gone"), connection_invalidated=True)
    assert translate_db_error(invalidated).kind == StoreErrorKind.CONNECTION
    assert translate_db_error(PoolTimeoutError("pool exhausted")).retryable
    assert translate_db_error(DisconnectionError("reset")).retryable


def test_message_text_is_ignored():
    exc = ProgrammingError("SELECT", {}, Exception("deadlock detected"))
    translated = translate_db_error(exc)
    assert translated.kind == StoreErrorKind.OTHER
    assert not translated.retryable
