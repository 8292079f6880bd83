"""
Retry wrapper for operations that lose a lock race.

A transaction may fail because the store picked it as a deadlock victim or
because it waited too long for a row lock. Those failures are transient: the
same operation, started again on fresh data, usually succeeds. `with_retry`
re-runs such operations with exponential backoff plus jitter:

    delay = base_delay * 2 ** (attempt - 1) + uniform(0, jitter)

Which errors count as transient depends on the store, so the wrapper takes
an `is_transient(error) -> bool` classifier; one implementation per backend
lives below and `classifier_for_dialect()` picks the right one.

Usage:
    classifier = classifier_for_dialect(session.bind.dialect.name)
    order = await with_retry(
        lambda: OrderService(session).confirm_order(order_id, farmer_id),
        is_transient=classifier,
    )
"""
import asyncio
import random
from typing import Awaitable, Callable, Optional, Protocol, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from agrimarket.app.core.logging import get_logger
from agrimarket.app.core.metrics import transaction_retries_total

logger = get_logger(__name__)

T = TypeVar("T")


class TransientErrorClassifier(Protocol):
    def __call__(self, error: BaseException) -> bool: ...


def _driver_error(error: BaseException) -> Optional[BaseException]:
    if isinstance(error, DBAPIError):
        return error.orig
    return None


# SQLSTATE codes: deadlock_detected, serialization_failure, lock_not_available
POSTGRES_TRANSIENT_SQLSTATES = frozenset({"40P01", "40001", "55P03"})

# ER_LOCK_DEADLOCK, ER_LOCK_WAIT_TIMEOUT
MYSQL_TRANSIENT_CODES = frozenset({1213, 1205})

SQLITE_TRANSIENT_MESSAGES = ("database is locked", "database table is locked")


def is_transient_postgres(error: BaseException) -> bool:
    orig = _driver_error(error)
    if orig is None:
        return False
    # asyncpg errors surface the code as sqlstate, psycopg as pgcode
    candidates = (orig, getattr(orig, "__cause__", None))
    for candidate in candidates:
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code in POSTGRES_TRANSIENT_SQLSTATES:
            return True
    return False


def is_transient_mysql(error: BaseException) -> bool:
    orig = _driver_error(error)
    if orig is None or not getattr(orig, "args", None):
        return False
    return orig.args[0] in MYSQL_TRANSIENT_CODES


def is_transient_sqlite(error: BaseException) -> bool:
    if not isinstance(error, OperationalError):
        return False
    message = str(error.orig).lower()
    return any(m in message for m in SQLITE_TRANSIENT_MESSAGES)


def never_transient(error: BaseException) -> bool:
    return False


_CLASSIFIERS = {
    "postgresql": is_transient_postgres,
    "mysql": is_transient_mysql,
    "mariadb": is_transient_mysql,
    "sqlite": is_transient_sqlite,
}


def classifier_for_dialect(dialect_name: str) -> TransientErrorClassifier:
    """Pick the transient-error classifier for a SQLAlchemy dialect name."""
    return _CLASSIFIERS.get(dialect_name, never_transient)


def backoff_delay(attempt: int, base_delay: float, jitter: float) -> float:
    """Delay before the retry that follows failed attempt number `attempt` (1-based)."""
    return base_delay * (2 ** (attempt - 1)) + random.uniform(0, jitter)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    is_transient: TransientErrorClassifier,
    max_attempts: int = 3,
    base_delay: float = 0.1,
    jitter: float = 0.1,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    name: Optional[str] = None,
) -> T:
    """
    Call `operation()` until it succeeds, retrying transient failures.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        is_transient: Classifier deciding which errors are worth retrying
        max_attempts: Total attempts, including the first
        base_delay: Backoff base in seconds
        jitter: Upper bound of the random jitter in seconds
        sleep: Awaitable sleep, replaceable in tests
        name: Label for logs and metrics

    Raises:
        The first non-transient error immediately, or the last transient
        error once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    label = name or getattr(operation, "__name__", "operation")

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_transient(e):
                raise
            if attempt == max_attempts:
                logger.error(
                    "Lock contention unresolved, giving up",
                    operation=label,
                    attempts=max_attempts,
                    error=str(e),
                )
                raise
            delay = backoff_delay(attempt, base_delay, jitter)
            transaction_retries_total.labels(operation=label).inc()
            logger.warning(
                "Transient database error, retrying",
                operation=label,
                attempt=attempt,
                max_attempts=max_attempts,
                delay_seconds=round(delay, 3),
                error=str(e),
            )
            await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
