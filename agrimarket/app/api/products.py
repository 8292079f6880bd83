from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.api.deps import get_notifier, get_session, run_service
from agrimarket.app.core.auth import get_current_user_id
from agrimarket.app.schemas import ProductStockResponse, StockAdjust
from agrimarket.app.services.notifications import NotificationSink
from agrimarket.app.services.stock import StockService

router = APIRouter()


@router.post("/{product_id}/stock", response_model=ProductStockResponse)
async def adjust_stock(
    product_id: int,
    data: StockAdjust,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Owner-only manual stock change (restock or write-off)."""
    service = StockService(session, notifier)
    return await run_service(
        session,
        lambda: service.adjust_stock(product_id, data.delta, data.operation, verify_farmer_id=user_id),
        name="adjust_stock",
    )
