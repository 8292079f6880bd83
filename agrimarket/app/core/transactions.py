"""
Transaction scopes for the service layer.

Every core operation runs inside `atomic()`: the scope begins a transaction
(at READ COMMITTED unless told otherwise), and either commits when the body
finishes or rolls back before the exception leaves the scope, so a failed
operation never leaves a partial write behind.

Usage:
    async with atomic(session):
        product = await session.execute(select(Product)...with_for_update())
        ...

Inside another `atomic()` scope (the caller is batching several operations,
see `run_in_transaction`) the scope becomes a SAVEPOINT and the outermost
scope owns the commit. A transaction the session opened on its own for an
earlier read is not a scope: it is committed and a real one is begun.

Work that must only happen once the data is durable (notifications) is
registered with `after_commit()` and runs when the outermost scope has
committed. A rollback, of the whole transaction or of the savepoint that
registered it, drops it.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.core.constants import ISOLATION_LEVELS, READ_COMMITTED
from agrimarket.app.core.logging import get_logger

logger = get_logger(__name__)

Operation = Callable[[AsyncSession], Awaitable[Any]]
CommitCallback = Callable[[], Awaitable[Any]]

# session.info keys
_SCOPE_DEPTH = "atomic_depth"
_AFTER_COMMIT = "atomic_after_commit"


def _isolation_options(session: AsyncSession, isolation_level: str) -> Optional[dict]:
    """Execution options that pin the isolation level, or None where the store has a single level."""
    if isolation_level not in ISOLATION_LEVELS:
        raise ValueError(f"Invalid isolation level: {isolation_level}. Must be one of {list(ISOLATION_LEVELS)}")
    bind = session.bind
    # SQLite transactions are always serializable
    if bind is None or bind.dialect.name == "sqlite":
        return None
    return {"isolation_level": isolation_level}


def in_atomic_scope(session: AsyncSession) -> bool:
    return session.info.get(_SCOPE_DEPTH, 0) > 0


def after_commit(session: AsyncSession, callback: CommitCallback) -> None:
    """Run `callback()` after the outermost `atomic()` scope commits; dropped on rollback."""
    if not in_atomic_scope(session):
        raise RuntimeError("after_commit() must be called inside atomic()")
    session.info[_AFTER_COMMIT].append(callback)


@asynccontextmanager
async def _savepoint(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    callbacks = session.info[_AFTER_COMMIT]
    mark = len(callbacks)
    session.info[_SCOPE_DEPTH] += 1
    try:
        async with session.begin_nested():
            yield session
    except BaseException:
        del callbacks[mark:]
        raise
    finally:
        session.info[_SCOPE_DEPTH] -= 1


@asynccontextmanager
async def atomic(session: AsyncSession, isolation_level: str = READ_COMMITTED) -> AsyncIterator[AsyncSession]:
    """Run the body in one transaction (or a savepoint when nested)."""
    if in_atomic_scope(session):
        async with _savepoint(session):
            yield session
        return

    options = _isolation_options(session, isolation_level)
    if session.in_transaction():
        # autobegun by a read outside any scope; it holds nothing to keep open
        await session.commit()

    session.info[_SCOPE_DEPTH] = 1
    session.info[_AFTER_COMMIT] = []
    try:
        async with session.begin():
            if options:
                await session.connection(execution_options=options)
            yield session
    except Exception as e:
        logger.debug("Transaction rolled back", isolation_level=isolation_level, error=str(e))
        raise
    finally:
        session.info[_SCOPE_DEPTH] = 0
        callbacks = session.info.pop(_AFTER_COMMIT, [])

    for callback in callbacks:
        await callback()


async def run_in_transaction(
    session: AsyncSession,
    operations: Iterable[Operation],
    isolation_level: str = READ_COMMITTED,
) -> List[Any]:
    """
    Run several operations as one unit of work.

    Each operation receives the session; operations that open their own
    `atomic()` scope run as savepoints inside this transaction. Either every
    operation is committed or none is, and their notifications go out only
    after the commit.
    """
    results: List[Any] = []
    async with atomic(session, isolation_level):
        for operation in operations:
            results.append(await operation(session))
    return results
