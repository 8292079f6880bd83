from sqlalchemy import String, ForeignKey, DECIMAL, Text, Boolean, Index, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from typing import Optional
from agrimarket.app.core.base import Base
from agrimarket.app.core.clock import utcnow
from agrimarket.app.core.constants import PRODUCT_ACTIVE, PRODUCT_SOLD_OUT


class Product(Base):
    __tablename__ = 'products'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    farmer_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(DECIMAL(10, 2))
    unit: Mapped[str] = mapped_column(String(50), default='kg')
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    original_quantity: Mapped[int] = mapped_column(Integer, default=0)
    remaining_quantity: Mapped[int] = mapped_column(Integer, default=0)
    # active | sold_out; kept in step with remaining_quantity by the stock code
    status: Mapped[str] = mapped_column(String(20), default=PRODUCT_ACTIVE)
    order_count: Mapped[int] = mapped_column(Integer, default=0)
    # Products are never deleted, only deactivated
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_products_farmer_id', 'farmer_id'),
        Index('ix_products_is_active', 'is_active'),
        Index('ix_products_category', 'category'),
        Index('ix_products_farmer_active', 'farmer_id', 'is_active'),
    )

    def is_available(self) -> bool:
        return bool(self.is_active) and self.status == PRODUCT_ACTIVE and self.remaining_quantity > 0

    def can_order_quantity(self, quantity: int) -> bool:
        return 0 < quantity <= self.remaining_quantity

    def refresh_status(self) -> None:
        """sold_out exactly when nothing is left."""
        self.status = PRODUCT_SOLD_OUT if self.remaining_quantity == 0 else PRODUCT_ACTIVE
