# agrimarket/app/services/integrity.py
"""
Read-only consistency scan over orders and products.

The scan reports problems for an operator; it never fixes them and never
raises for what it finds. A failing query is reported in `error`.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from agrimarket.app.core.clock import Clock, utcnow
from agrimarket.app.core.constants import PRODUCT_ACTIVE, PRODUCT_SOLD_OUT
from agrimarket.app.core.logging import get_logger
from agrimarket.app.core.settings import get_settings
from agrimarket.app.models.order import Order
from agrimarket.app.models.product import Product
from agrimarket.app.models.user import User

logger = get_logger(__name__)


@dataclass
class IntegrityIssue:
    type: str
    count: int
    items: List[Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "count": self.count, "items": self.items}


@dataclass
class IntegrityReport:
    has_issues: bool
    checked_at: datetime
    issues: List[IntegrityIssue] = field(default_factory=list)
    error: Optional[str] = None

    def issue(self, type_: str) -> Optional[IntegrityIssue]:
        return next((i for i in self.issues if i.type == type_), None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "has_issues": self.has_issues,
            "issues": [i.to_dict() for i in self.issues],
            "checked_at": self.checked_at.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data


class IntegrityService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow, total_epsilon: Optional[Decimal] = None):
        self.session = session
        self.clock = clock
        self.total_epsilon = total_epsilon if total_epsilon is not None else get_settings().INTEGRITY_TOTAL_EPSILON

    async def _orphaned_orders(self) -> List[int]:
        buyer = aliased(User)
        farmer = aliased(User)
        result = await self.session.execute(
            select(Order.id)
            .outerjoin(Product, Product.id == Order.product_id)
            .outerjoin(buyer, buyer.id == Order.buyer_id)
            .outerjoin(farmer, farmer.id == Order.farmer_id)
            .where(or_(Product.id.is_(None), buyer.id.is_(None), farmer.id.is_(None)))
            .order_by(Order.id)
        )
        return list(result.scalars().all())

    async def _negative_stock(self) -> List[Dict[str, int]]:
        result = await self.session.execute(
            select(Product.id, Product.remaining_quantity)
            .where(Product.remaining_quantity < 0)
            .order_by(Product.id)
        )
        return [{"id": pid, "quantity": qty} for pid, qty in result.all()]

    async def _stock_above_original(self) -> List[Dict[str, int]]:
        result = await self.session.execute(
            select(Product.id, Product.remaining_quantity, Product.original_quantity)
            .where(Product.remaining_quantity > Product.original_quantity)
            .order_by(Product.id)
        )
        return [{"id": pid, "quantity": qty, "original_quantity": orig} for pid, qty, orig in result.all()]

    async def _stock_status_mismatch(self) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(Product.id, Product.remaining_quantity, Product.status)
            .where(or_(
                and_(Product.remaining_quantity == 0, Product.status == PRODUCT_ACTIVE),
                and_(Product.remaining_quantity > 0, Product.status == PRODUCT_SOLD_OUT),
            ))
            .order_by(Product.id)
        )
        return [{"id": pid, "quantity": qty, "status": status} for pid, qty, status in result.all()]

    async def _inconsistent_totals(self) -> List[Dict[str, Any]]:
        # Compared in Python: SQLite has no exact decimal arithmetic
        result = await self.session.execute(
            select(Order.id, Order.quantity, Order.unit_price, Order.delivery_fee, Order.total_price)
            .order_by(Order.id)
        )
        items = []
        for order_id, quantity, unit_price, delivery_fee, total_price in result.all():
            expected = Decimal(quantity) * Decimal(unit_price) + Decimal(delivery_fee or 0)
            if abs(Decimal(total_price) - expected) > self.total_epsilon:
                items.append({
                    "id": order_id,
                    "quantity": quantity,
                    "unit_price": str(unit_price),
                    "delivery_fee": str(delivery_fee),
                    "total_price": str(total_price),
                    "calculated_total": str(expected),
                })
        return items

    async def scan(self) -> IntegrityReport:
        """Run every check and return the structured report."""
        checks = (
            ("orphaned_orders", self._orphaned_orders),
            ("negative_stock", self._negative_stock),
            ("stock_above_original", self._stock_above_original),
            ("stock_status_mismatch", self._stock_status_mismatch),
            ("inconsistent_order_totals", self._inconsistent_totals),
        )
        issues: List[IntegrityIssue] = []
        owns_transaction = not self.session.in_transaction()
        try:
            for name, check in checks:
                items = await check()
                if items:
                    issues.append(IntegrityIssue(type=name, count=len(items), items=items))
        except SQLAlchemyError as e:
            logger.error("Data integrity check failed", error=str(e))
            return IntegrityReport(has_issues=True, checked_at=self.clock(), issues=issues, error=str(e))
        finally:
            # read-only: release the snapshot without writing anything
            if owns_transaction and self.session.in_transaction():
                await self.session.rollback()

        report = IntegrityReport(has_issues=bool(issues), checked_at=self.clock(), issues=issues)
        if report.has_issues:
            logger.warning(
                "Data integrity issues found",
                issues={i.type: i.count for i in issues},
            )
        else:
            logger.info("Data integrity check passed")
        return report
