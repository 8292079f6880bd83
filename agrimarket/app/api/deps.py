from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.core.database import async_session
from agrimarket.app.core.logging import log_context
from agrimarket.app.core.retry import classifier_for_dialect, with_retry
from agrimarket.app.core.settings import get_settings
from agrimarket.app.services.notifications import DatabaseNotificationSink, NotificationSink
from agrimarket.app.services.results import Err, capture

T = TypeVar("T")


# One session per request
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


async def get_notifier() -> NotificationSink:
    return DatabaseNotificationSink(async_session)


async def run_service(session: AsyncSession, operation: Callable[[], Awaitable[T]], name: str) -> T:
    """
    Run a core operation with lock-contention retries and map business
    errors to HTTP responses (404 / 400 / 403 / 409).
    """
    settings = get_settings()
    with log_context(operation=name):
        result = await capture(with_retry(
            operation,
            is_transient=classifier_for_dialect(session.bind.dialect.name),
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY_MS / 1000,
            jitter=settings.RETRY_JITTER_MS / 1000,
            name=name,
        ))
    if isinstance(result, Err):
        raise HTTPException(status_code=result.status_code, detail=result.message)
    return result.value
