# agrimarket/app/services/stock.py
"""
Stock service - product quantity changes under a row lock.

`remaining_quantity` only moves inside a transaction that holds the product
row (FOR UPDATE), and always stays within 0..original_quantity. The helpers
below are shared with the order engine, which deducts and restores stock
while it also holds the order row.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.core.clock import Clock, utcnow
from agrimarket.app.core.constants import (
    PRODUCT_SOLD_OUT,
    STOCK_ADD,
    STOCK_OPERATIONS,
    STOCK_SUBTRACT,
)
from agrimarket.app.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationAppError,
)
from agrimarket.app.core.logging import get_logger
from agrimarket.app.core.metrics import stock_conflicts_total
from agrimarket.app.core.transactions import atomic
from agrimarket.app.models.product import Product
from agrimarket.app.services import notifications as notify
from agrimarket.app.services.notifications import NotificationSink

logger = get_logger(__name__)


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")


class StockConflictError(ConflictError):
    def __init__(self, product_id: int, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}. Available: {available}, requested: {requested}"
        )


class InvalidStockOperationError(ValidationAppError):
    pass


async def lock_product(session: AsyncSession, product_id: int) -> Product:
    """Load the product row with FOR UPDATE; raises ProductNotFoundError."""
    result = await session.execute(
        select(Product).where(Product.id == product_id).with_for_update()
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise ProductNotFoundError(product_id)
    return product


def deduct_stock(product: Product, quantity: int, operation: str = STOCK_SUBTRACT) -> bool:
    """
    Take `quantity` out of the locked product.
    Returns True when this deduction sold the product out.
    """
    if product.remaining_quantity < quantity:
        stock_conflicts_total.labels(operation=operation).inc()
        raise StockConflictError(product.id, product.remaining_quantity, quantity)
    was_sold_out = product.status == PRODUCT_SOLD_OUT
    product.remaining_quantity -= quantity
    product.order_count = (product.order_count or 0) + 1
    product.refresh_status()
    return product.status == PRODUCT_SOLD_OUT and not was_sold_out


def restore_stock(product: Product, quantity: int) -> int:
    """Put `quantity` back, never above original_quantity. Returns the amount actually restored."""
    before = product.remaining_quantity
    product.remaining_quantity = min(product.original_quantity, before + quantity)
    product.refresh_status()
    return product.remaining_quantity - before


class StockService:
    """Manual stock adjustments made by farmers."""

    def __init__(self, session: AsyncSession, notifier: Optional[NotificationSink] = None, clock: Clock = utcnow):
        self.session = session
        self.notifier = notifier
        self.clock = clock

    async def adjust_stock(
        self,
        product_id: int,
        delta: int,
        operation: str = STOCK_SUBTRACT,
        verify_farmer_id: Optional[int] = None,
    ) -> Product:
        """
        Add or subtract `delta` units.

        subtract fails with StockConflictError instead of going below zero;
        add is clamped at original_quantity. Status follows the new quantity.
        """
        if operation not in STOCK_OPERATIONS:
            raise InvalidStockOperationError(
                f"Invalid operation '{operation}'. Must be one of: {list(STOCK_OPERATIONS)}"
            )
        if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
            raise InvalidStockOperationError("Stock delta must be a positive integer")

        async with atomic(self.session):
            product = await lock_product(self.session, product_id)
            if verify_farmer_id is not None and product.farmer_id != verify_farmer_id:
                raise PermissionDeniedError(f"Product {product_id} belongs to another farmer")

            if operation == STOCK_SUBTRACT:
                sold_out = deduct_stock(product, delta, operation="adjust_stock")
                if sold_out:
                    notify.dispatch_after_commit(self.session, self.notifier, [
                        notify.out_of_stock(product.farmer_id, product.id, product.title),
                    ])
            else:
                restore_stock(product, delta)
            product.updated_at = self.clock()

        logger.info(
            "Stock adjusted",
            product_id=product_id,
            operation=operation,
            delta=delta,
            remaining=product.remaining_quantity,
            status=product.status,
        )
        return product
