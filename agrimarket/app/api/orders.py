from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from agrimarket.app.api.deps import get_notifier, get_session, run_service
from agrimarket.app.core.auth import get_current_user_id
from agrimarket.app.core.logging import get_logger
from agrimarket.app.schemas import (
    OrderCancel,
    OrderConfirm,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
)
from agrimarket.app.services.notifications import NotificationSink
from agrimarket.app.services.orders import OrderService

router = APIRouter()
logger = get_logger(__name__)


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Place a pending order; stock is taken only when the farmer confirms."""
    logger.info(
        "Creating order",
        buyer_id=user_id,
        product_id=data.product_id,
        quantity=data.quantity,
        delivery_method=data.delivery_method,
    )
    service = OrderService(session, notifier)
    return await run_service(
        session,
        lambda: service.create_order(
            buyer_id=user_id,
            product_id=data.product_id,
            quantity=data.quantity,
            delivery_method=data.delivery_method,
            delivery_address=data.delivery_address,
            notes=data.notes,
        ),
        name="create_order",
    )


@router.get("/mine", response_model=List[OrderResponse])
async def my_orders(
    as_farmer: bool = False,
    status: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    service = OrderService(session)
    if as_farmer:
        return await run_service(session, lambda: service.list_farmer_orders(user_id, status), name="list_orders")
    return await run_service(session, lambda: service.list_buyer_orders(user_id), name="list_orders")


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    service = OrderService(session)
    return await run_service(session, lambda: service.get_order(order_id, user_id), name="get_order")


@router.post("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: int,
    data: Optional[OrderConfirm] = None,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    data = data or OrderConfirm()
    service = OrderService(session, notifier)
    return await run_service(
        session,
        lambda: service.confirm_order(
            order_id,
            farmer_id=user_id,
            farmer_notes=data.farmer_notes,
            estimated_delivery_at=data.estimated_delivery_at,
        ),
        name="confirm_order",
    )


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    data: Optional[OrderCancel] = None,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    data = data or OrderCancel()
    service = OrderService(session, notifier)
    return await run_service(
        session,
        lambda: service.cancel_order(order_id, user_id, reason=data.reason),
        name="cancel_order",
    )


@router.post("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    service = OrderService(session, notifier)
    return await run_service(
        session,
        lambda: service.update_status(order_id, user_id, data.status),
        name="update_order_status",
    )
