"""
Tests for transient-error classification and the retry wrapper.
"""
import sqlite3

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from agrimarket.app.core.exceptions import ConflictError
from agrimarket.app.core.retry import (
    backoff_delay,
    classifier_for_dialect,
    is_transient_mysql,
    is_transient_postgres,
    is_transient_sqlite,
    never_transient,
    with_retry,
)


class FakePgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"pg error {sqlstate}")
        self.sqlstate = sqlstate


def pg_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("UPDATE products ...", {}, FakePgError(sqlstate))


def sqlite_locked() -> OperationalError:
    return OperationalError("BEGIN IMMEDIATE", {}, sqlite3.OperationalError("database is locked"))


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ============================================
# CLASSIFIERS
# ============================================

@pytest.mark.parametrize("code", ["40P01", "40001", "55P03"])
def test_postgres_transient_codes(code):
    assert is_transient_postgres(pg_error(code)) is True


def test_postgres_other_codes_are_not_transient():
    assert is_transient_postgres(pg_error("23505")) is False
    assert is_transient_postgres(ValueError("boom")) is False


def test_mysql_codes():
    assert is_transient_mysql(DBAPIError("x", {}, Exception(1213, "Deadlock found"))) is True
    assert is_transient_mysql(DBAPIError("x", {}, Exception(1205, "Lock wait timeout"))) is True
    assert is_transient_mysql(DBAPIError("x", {}, Exception(1062, "Duplicate entry"))) is False


def test_sqlite_locked():
    assert is_transient_sqlite(sqlite_locked()) is True
    assert is_transient_sqlite(
        OperationalError("x", {}, sqlite3.OperationalError("no such table: orders"))
    ) is False
    assert is_transient_sqlite(IntegrityError("x", {}, sqlite3.IntegrityError("UNIQUE constraint failed"))) is False


def test_classifier_for_dialect():
    assert classifier_for_dialect("postgresql") is is_transient_postgres
    assert classifier_for_dialect("mysql") is is_transient_mysql
    assert classifier_for_dialect("sqlite") is is_transient_sqlite
    assert classifier_for_dialect("oracle") is never_transient


def test_backoff_delay_grows_exponentially():
    assert backoff_delay(1, 0.1, 0) == pytest.approx(0.1)
    assert backoff_delay(2, 0.1, 0) == pytest.approx(0.2)
    assert backoff_delay(3, 0.1, 0) == pytest.approx(0.4)
    for _ in range(20):
        assert 0.1 <= backoff_delay(1, 0.1, 0.05) <= 0.15


# ============================================
# WITH_RETRY
# ============================================

@pytest.mark.asyncio
async def test_with_retry_recovers_from_transient_errors():
    calls = {"n": 0}
    sleep = SleepRecorder()

    async def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise pg_error("40P01")
        return "done"

    result = await with_retry(flaky, is_transient=is_transient_postgres, max_attempts=3,
                              base_delay=0.1, jitter=0, sleep=sleep)
    assert result == "done"
    assert calls["n"] == 3
    assert sleep.delays == [pytest.approx(0.1), pytest.approx(0.2)]


@pytest.mark.asyncio
async def test_with_retry_gives_up_after_max_attempts():
    calls = {"n": 0}
    sleep = SleepRecorder()

    async def always_locked():
        calls["n"] += 1
        raise sqlite_locked()

    with pytest.raises(OperationalError):
        await with_retry(always_locked, is_transient=is_transient_sqlite, max_attempts=3,
                         base_delay=0.01, jitter=0, sleep=sleep)
    assert calls["n"] == 3
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_with_retry_does_not_retry_business_errors():
    calls = {"n": 0}
    sleep = SleepRecorder()

    async def conflict():
        calls["n"] += 1
        raise ConflictError("stock changed")

    with pytest.raises(ConflictError):
        await with_retry(conflict, is_transient=is_transient_postgres, sleep=sleep)
    assert calls["n"] == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_with_retry_rejects_zero_attempts():
    async def noop():
        return None

    with pytest.raises(ValueError):
        await with_retry(noop, is_transient=never_transient, max_attempts=0)
