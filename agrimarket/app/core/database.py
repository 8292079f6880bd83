from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from agrimarket.app.core.base import Base  # noqa: F401 - re-exported for compatibility
from agrimarket.app.core.settings import get_settings


def enable_sqlite_write_locks(engine: AsyncEngine) -> None:
    """
    SQLite ignores FOR UPDATE. Take the database write lock at BEGIN instead,
    so transactions that would lock rows on PostgreSQL are serialized here too.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # let the "begin" hook below emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create the async engine; pool sizing only applies to server databases."""
    settings = get_settings()
    if make_url(url).get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"timeout": 30})
        engine = create_async_engine(url, echo=False, **kwargs)
        enable_sqlite_write_locks(engine)
        return engine
    return create_async_engine(
        url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # drop dead connections before use
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=30,
        **kwargs,
    )


engine = build_engine(get_settings().db_url)
async_session = async_sessionmaker(engine, expire_on_commit=False)
