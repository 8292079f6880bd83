# agrimarket/app/services/orders.py
"""
Order service - the transactional order engine.

Lock order is always Order, then Product. create_order only touches the
product row, so it can never wait on an order lock held by confirm/cancel.

Stock is deducted at confirmation, not at creation: several pending orders
may together ask for more than the product has, and the farmer's confirm is
where the shortfall surfaces (as StockConflictError).
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.core.clock import Clock, utcnow
from agrimarket.app.core.constants import (
    CANCELLED_BY_BUYER,
    CANCELLED_BY_FARMER,
    CANCELLED_BY_VALUES,
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    VALID_ORDER_STATUSES,
)
from agrimarket.app.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationAppError,
)
from agrimarket.app.core.logging import get_logger
from agrimarket.app.core.metrics import (
    orders_cancelled_total,
    orders_confirmed_total,
    orders_created_total,
)
from agrimarket.app.core.transactions import atomic
from agrimarket.app.models.order import Order
from agrimarket.app.models.user import User
from agrimarket.app.services import notifications as notify
from agrimarket.app.services.notifications import NotificationSink, PendingNotification
from agrimarket.app.services.pricing import delivery_fee_for, order_total
from agrimarket.app.services.stock import deduct_stock, lock_product, restore_stock

logger = get_logger(__name__)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found")


class BuyerNotFoundError(NotFoundError):
    def __init__(self, buyer_id: int):
        super().__init__(f"Buyer {buyer_id} not found or inactive")


class ProductUnavailableError(ValidationAppError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} is not available")


class InsufficientStockError(ValidationAppError):
    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Requested quantity {requested} is not available for product {product_id} (remaining: {available})"
        )


class SelfOrderError(ValidationAppError):
    def __init__(self):
        super().__init__("You cannot order your own product")


class InvalidOrderStatusError(ValidationAppError):
    def __init__(self, order_id: int, current_status: str, action: str):
        super().__init__(f"Order {order_id} has status '{current_status}' and cannot be {action}")


class OrderAlreadyConfirmedError(ConflictError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} was already confirmed")


class OrderAccessDeniedError(PermissionDeniedError):
    def __init__(self, order_id: int):
        super().__init__(f"Access denied to order {order_id}")


class OrderService:
    """Service class for order operations."""

    def __init__(self, session: AsyncSession, notifier: Optional[NotificationSink] = None, clock: Clock = utcnow):
        self.session = session
        self.notifier = notifier
        self.clock = clock

    async def _lock_order(self, order_id: int) -> Order:
        result = await self.session.execute(
            select(Order).where(Order.id == order_id).with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def create_order(
        self,
        buyer_id: int,
        product_id: int,
        quantity: int,
        delivery_method: str = "pickup",
        delivery_address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Create a pending order. Stock is not touched.

        Raises:
            ProductNotFoundError: product does not exist
            ProductUnavailableError: product inactive or sold out
            InsufficientStockError: quantity exceeds remaining stock
            SelfOrderError: buyer owns the product
            BuyerNotFoundError: buyer missing or deactivated
            UnknownDeliveryMethodError: delivery method not in the fee table
        """
        async with atomic(self.session):
            product = await lock_product(self.session, product_id)
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValidationAppError("Quantity must be a positive integer")
            if not product.is_available():
                raise ProductUnavailableError(product_id)
            if not product.can_order_quantity(quantity):
                raise InsufficientStockError(product_id, product.remaining_quantity, quantity)
            if product.farmer_id == buyer_id:
                raise SelfOrderError()
            buyer = await self.session.get(User, buyer_id, populate_existing=True)
            if not buyer or not buyer.is_active:
                raise BuyerNotFoundError(buyer_id)

            fee = delivery_fee_for(delivery_method)
            order = Order(
                buyer_id=buyer_id,
                farmer_id=product.farmer_id,
                product_id=product.id,
                quantity=quantity,
                unit_price=product.price,
                delivery_method=delivery_method,
                delivery_fee=fee,
                total_price=order_total(quantity, product.price, fee),
                delivery_address=delivery_address,
                notes=notes,
                buyer_name=buyer.full_name,
                buyer_phone=buyer.phone,
                status=ORDER_PENDING,
                created_at=self.clock(),
                updated_at=self.clock(),
            )
            self.session.add(order)
            await self.session.flush()
            await self.session.refresh(order)
            notify.dispatch_after_commit(self.session, self.notifier, [
                notify.order_received(order.farmer_id, order.id, product.title, quantity, order.total_price),
            ])

        orders_created_total.labels(delivery_method=delivery_method).inc()
        logger.info(
            "Order created",
            order_id=order.id,
            buyer_id=buyer_id,
            product_id=product_id,
            quantity=quantity,
            total_price=str(order.total_price),
        )
        return order

    async def confirm_order(
        self,
        order_id: int,
        farmer_id: int,
        farmer_notes: Optional[str] = None,
        estimated_delivery_at: Optional[datetime] = None,
    ) -> Order:
        """
        Confirm a pending order and deduct its quantity from stock.

        Raises:
            OrderNotFoundError / ProductNotFoundError
            OrderAccessDeniedError: farmer does not own the order
            OrderAlreadyConfirmedError: a concurrent confirm got there first
            InvalidOrderStatusError: order is past pending
            StockConflictError: stock no longer covers the quantity
        """
        async with atomic(self.session):
            order = await self._lock_order(order_id)
            if order.farmer_id != farmer_id:
                raise OrderAccessDeniedError(order_id)
            if order.status == ORDER_CONFIRMED:
                raise OrderAlreadyConfirmedError(order_id)
            if not order.can_be_confirmed():
                raise InvalidOrderStatusError(order_id, order.status, "confirmed")

            product = await lock_product(self.session, order.product_id)
            sold_out = deduct_stock(product, order.quantity, operation="confirm_order")

            now = self.clock()
            order.status = ORDER_CONFIRMED
            order.confirmed_at = now
            order.updated_at = now
            if farmer_notes is not None:
                order.farmer_notes = farmer_notes
            if estimated_delivery_at is not None:
                order.estimated_delivery_at = estimated_delivery_at
            product.updated_at = now

            pending: List[PendingNotification] = [
                notify.order_status_changed(order.buyer_id, order.id, ORDER_CONFIRMED),
            ]
            if sold_out:
                pending.append(notify.out_of_stock(product.farmer_id, product.id, product.title))
            notify.dispatch_after_commit(self.session, self.notifier, pending)

        orders_confirmed_total.inc()
        logger.info(
            "Order confirmed",
            order_id=order_id,
            product_id=order.product_id,
            quantity=order.quantity,
            remaining=product.remaining_quantity,
        )
        return order

    async def cancel_order(
        self,
        order_id: int,
        user_id: int,
        reason: Optional[str] = None,
        cancelled_by: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order on behalf of its buyer or farmer.

        Stock taken at confirmation is put back (clamped to original_quantity).
        """
        if cancelled_by is not None and cancelled_by not in CANCELLED_BY_VALUES:
            raise ValidationAppError(
                f"Invalid cancelled_by '{cancelled_by}'. Must be one of: {list(CANCELLED_BY_VALUES)}"
            )

        async with atomic(self.session):
            order = await self._lock_order(order_id)
            if user_id not in (order.buyer_id, order.farmer_id):
                raise OrderAccessDeniedError(order_id)
            if not order.can_be_cancelled():
                raise InvalidOrderStatusError(order_id, order.status, "cancelled")

            restored = 0
            if order.has_deducted_stock():
                product = await lock_product(self.session, order.product_id)
                restored = restore_stock(product, order.quantity)
                product.updated_at = self.clock()

            now = self.clock()
            actor = cancelled_by or (CANCELLED_BY_BUYER if user_id == order.buyer_id else CANCELLED_BY_FARMER)
            order.status = ORDER_CANCELLED
            order.cancellation_reason = reason
            order.cancelled_by = actor
            order.cancelled_at = now
            order.updated_at = now
            counterparty = order.farmer_id if user_id == order.buyer_id else order.buyer_id
            notify.dispatch_after_commit(self.session, self.notifier, [
                notify.order_status_changed(counterparty, order.id, ORDER_CANCELLED, reason),
            ])

        orders_cancelled_total.labels(cancelled_by=actor).inc()
        logger.info(
            "Order cancelled",
            order_id=order_id,
            cancelled_by=actor,
            restored_quantity=restored,
        )
        return order

    async def update_status(self, order_id: int, farmer_id: int, new_status: str) -> Order:
        """
        Move a confirmed order forward (confirmed -> preparing -> delivered).
        Confirmation and cancellation have their own operations.
        """
        if new_status not in VALID_ORDER_STATUSES:
            raise ValidationAppError(f"Invalid status. Must be one of: {VALID_ORDER_STATUSES}")
        if new_status in (ORDER_PENDING, ORDER_CONFIRMED, ORDER_CANCELLED):
            raise ValidationAppError(f"Use the dedicated operation to set status '{new_status}'")

        async with atomic(self.session):
            order = await self._lock_order(order_id)
            if order.farmer_id != farmer_id:
                raise OrderAccessDeniedError(order_id)
            if not order.can_transition_to(new_status):
                raise InvalidOrderStatusError(order_id, order.status, f"moved to '{new_status}'")
            now = self.clock()
            order.status = new_status
            order.updated_at = now
            if new_status == ORDER_DELIVERED:
                order.delivered_at = now
            notify.dispatch_after_commit(self.session, self.notifier, [
                notify.order_status_changed(order.buyer_id, order.id, new_status),
            ])

        logger.info("Order status updated", order_id=order_id, status=new_status)
        return order

    async def get_order(self, order_id: int, user_id: int) -> Order:
        """Order visible to its buyer or farmer."""
        async with atomic(self.session):
            order = await self.session.get(Order, order_id, populate_existing=True)
            if not order:
                raise OrderNotFoundError(order_id)
            if user_id not in (order.buyer_id, order.farmer_id):
                raise OrderAccessDeniedError(order_id)
        return order

    async def list_farmer_orders(self, farmer_id: int, status: Optional[str] = None) -> List[Order]:
        query = select(Order).where(Order.farmer_id == farmer_id)
        if status:
            if status not in VALID_ORDER_STATUSES:
                raise ValidationAppError(f"Invalid status. Must be one of: {VALID_ORDER_STATUSES}")
            query = query.where(Order.status == status)
        async with atomic(self.session):
            result = await self.session.execute(query.order_by(Order.created_at.desc(), Order.id.desc()))
            return list(result.scalars().all())

    async def list_buyer_orders(self, buyer_id: int) -> List[Order]:
        async with atomic(self.session):
            result = await self.session.execute(
                select(Order).where(Order.buyer_id == buyer_id).order_by(Order.created_at.desc(), Order.id.desc())
            )
            return list(result.scalars().all())
