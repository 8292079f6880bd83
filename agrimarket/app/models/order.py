from sqlalchemy import String, ForeignKey, DateTime, DECIMAL, Text, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from typing import Optional
from agrimarket.app.core.base import Base
from agrimarket.app.core.clock import utcnow
from agrimarket.app.core.constants import (
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_PENDING,
    ORDER_TRANSITIONS,
    STOCK_DEDUCTED_STATUSES,
)


class Order(Base):
    __tablename__ = 'orders'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    buyer_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    farmer_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'))
    quantity: Mapped[int] = mapped_column(Integer)
    # Captured from the product at creation, never updated afterwards
    unit_price: Mapped[Decimal] = mapped_column(DECIMAL(10, 2))
    delivery_method: Mapped[str] = mapped_column(String(20), default='pickup')
    delivery_fee: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=0)
    total_price: Mapped[Decimal] = mapped_column(DECIMAL(12, 2))
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Buyer contact snapshot for the farmer
    buyer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    buyer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=ORDER_PENDING)
    farmer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_delivery_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # buyer | farmer | system
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_orders_buyer_id', 'buyer_id'),
        Index('ix_orders_farmer_id', 'farmer_id'),
        Index('ix_orders_product_id', 'product_id'),
        Index('ix_orders_status', 'status'),
        Index('ix_orders_farmer_status', 'farmer_id', 'status'),
        Index('ix_orders_status_created', 'status', 'created_at'),  # auto-cancel sweep
    )

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in ORDER_TRANSITIONS.get(self.status, ())

    def can_be_confirmed(self) -> bool:
        return self.can_transition_to(ORDER_CONFIRMED)

    def can_be_cancelled(self) -> bool:
        return self.can_transition_to(ORDER_CANCELLED)

    def has_deducted_stock(self) -> bool:
        return self.status in STOCK_DEDUCTED_STATUSES

    def expected_total(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.unit_price) + Decimal(self.delivery_fee or 0)
