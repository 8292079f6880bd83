from sqlalchemy import (
    String, ForeignKey, DateTime, Text, Index, Integer, Boolean, JSON,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional, List
from agrimarket.app.core.base import Base
from agrimarket.app.core.clock import utcnow


class Conversation(Base):
    """
    Chat between two users, optionally about a product, order or service.

    Participants are stored lower id first, so (A, B) and (B, A) land on the
    same row. context_key folds the optional context into one non-null value
    ("direct", "product:5", ...) that takes part in the unique constraint.
    """
    __tablename__ = 'conversations'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user1_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    user2_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    product_id: Mapped[Optional[int]] = mapped_column(ForeignKey('products.id'), nullable=True)
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey('orders.id'), nullable=True)
    service_id: Mapped[Optional[int]] = mapped_column(ForeignKey('farm_services.id'), nullable=True)
    context_key: Mapped[str] = mapped_column(String(64), default='direct')
    type: Mapped[str] = mapped_column(String(32), default='direct')
    title: Mapped[str] = mapped_column(String(255))
    last_message_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_message_preview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user1_unread_count: Mapped[int] = mapped_column(Integer, default=0)
    user2_unread_count: Mapped[int] = mapped_column(Integer, default=0)
    is_blocked_by_user1: Mapped[bool] = mapped_column(Boolean, default=False)
    is_blocked_by_user2: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived_by_user1: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived_by_user2: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint('user1_id < user2_id', name='ck_conversations_canonical_pair'),
        UniqueConstraint('user1_id', 'user2_id', 'context_key', name='uq_conversations_pair_context'),
        Index('ix_conversations_user1_id', 'user1_id'),
        Index('ix_conversations_user2_id', 'user2_id'),
        Index('ix_conversations_last_message_at', 'last_message_at'),
    )

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def other_participant(self, user_id: int) -> int:
        return self.user2_id if user_id == self.user1_id else self.user1_id

    def is_blocked_for_sender(self, sender_id: int) -> bool:
        """True when the other participant has blocked `sender_id`."""
        if sender_id == self.user1_id:
            return bool(self.is_blocked_by_user2)
        return bool(self.is_blocked_by_user1)


class Message(Base):
    __tablename__ = 'messages'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(ForeignKey('conversations.id'))
    sender_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    content: Mapped[str] = mapped_column(Text)
    message_type: Mapped[str] = mapped_column(String(20), default='text')  # text | image | file
    attachments: Mapped[Optional[List[str]]] = mapped_column(JSON(), nullable=True)
    reply_to_message_id: Mapped[Optional[int]] = mapped_column(ForeignKey('messages.id'), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_messages_conversation_id', 'conversation_id'),
        Index('ix_messages_sender_id', 'sender_id'),
        Index('ix_messages_conversation_created', 'conversation_id', 'created_at'),
    )
