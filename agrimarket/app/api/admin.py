from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.api.deps import get_session, run_service
from agrimarket.app.core.logging import get_logger
from agrimarket.app.schemas import CleanupResponse, IntegrityReportResponse
from agrimarket.app.services.cleanup import CleanupService
from agrimarket.app.services.integrity import IntegrityService

router = APIRouter()
logger = get_logger(__name__)


@router.get("/integrity", response_model=IntegrityReportResponse)
async def integrity_report(session: AsyncSession = Depends(get_session)):
    """Read-only consistency report (orphans, stock bounds, order totals)."""
    report = await IntegrityService(session).scan()
    return report.to_dict()


@router.post("/cleanup", response_model=CleanupResponse)
async def run_cleanup(session: AsyncSession = Depends(get_session)):
    """Run the maintenance batch now instead of waiting for the scheduler."""
    logger.info("Manual cleanup requested")
    result = await run_service(session, lambda: CleanupService(session).run(), name="cleanup")
    return result.to_dict()
