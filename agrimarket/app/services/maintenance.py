"""Daily maintenance: cleanup batch, then the integrity report."""
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrimarket.app.core.logging import get_logger, log_context
from agrimarket.app.services.cleanup import CleanupResult, CleanupService
from agrimarket.app.services.integrity import IntegrityReport, IntegrityService

logger = get_logger(__name__)


async def run_maintenance(
    session_factory: async_sessionmaker[AsyncSession],
) -> Tuple[Optional[CleanupResult], IntegrityReport]:
    """
    Run cleanup and the integrity scan, each in its own session.
    A failed cleanup is logged and returned as None; the scan still runs.
    """
    cleanup: Optional[CleanupResult] = None
    with log_context(operation="maintenance"):
        async with session_factory() as session:
            try:
                cleanup = await CleanupService(session).run()
            except Exception as e:
                logger.error("Maintenance: cleanup failed", error=str(e))

        async with session_factory() as session:
            report = await IntegrityService(session).scan()
        if report.error:
            logger.error("Maintenance: integrity scan failed", error=report.error)
        elif report.has_issues:
            logger.warning(
                "Maintenance: integrity issues",
                issues={i.type: i.count for i in report.issues},
            )
    return cleanup, report
