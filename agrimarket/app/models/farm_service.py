from sqlalchemy import String, ForeignKey, DECIMAL, Text, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column
from decimal import Decimal
from typing import Optional
from agrimarket.app.core.base import Base


class FarmService(Base):
    """Service offered to farmers (vet, equipment rental, paperwork)."""
    __tablename__ = 'farm_services'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    provider_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(50))  # vet | equipment_rent | equipment_buy | administration
    price: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index('ix_farm_services_provider_id', 'provider_id'),
    )
