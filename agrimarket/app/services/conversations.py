# agrimarket/app/services/conversations.py
"""
Conversation service - chat threads and messages.

Participants are stored as (lower id, higher id). Creation locks both user
rows in that order, so two users opening a chat with each other at the same
moment serialize instead of inserting two rows; the unique constraint on
(user1_id, user2_id, context_key) catches anything that slips through.
"""
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.core.clock import Clock, utcnow
from agrimarket.app.core.constants import (
    CONVERSATION_DIRECT,
    CONVERSATION_ORDER,
    CONVERSATION_PRODUCT,
    CONVERSATION_SERVICE,
    CONVERSATION_TYPES,
    MESSAGE_TYPES,
)
from agrimarket.app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationAppError
from agrimarket.app.core.logging import get_logger
from agrimarket.app.core.metrics import messages_sent_total
from agrimarket.app.core.settings import get_settings
from agrimarket.app.core.transactions import atomic
from agrimarket.app.models.conversation import Conversation, Message
from agrimarket.app.models.farm_service import FarmService
from agrimarket.app.models.order import Order
from agrimarket.app.models.product import Product
from agrimarket.app.models.user import User
from agrimarket.app.services import notifications as notify
from agrimarket.app.services.notifications import NotificationSink

logger = get_logger(__name__)

TITLES = {
    CONVERSATION_DIRECT: "Direct conversation",
    CONVERSATION_PRODUCT: "Product inquiry",
    CONVERSATION_SERVICE: "Service inquiry",
}


class ConversationNotFoundError(NotFoundError):
    def __init__(self, conversation_id: int):
        super().__init__(f"Conversation {conversation_id} not found")


class ParticipantNotFoundError(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found or inactive")


class NotAParticipantError(PermissionDeniedError):
    def __init__(self, conversation_id: int):
        super().__init__(f"You are not a participant of conversation {conversation_id}")


class ConversationBlockedError(ValidationAppError):
    def __init__(self, conversation_id: int):
        super().__init__(f"Conversation {conversation_id} is blocked")


def canonical_pair(user_a: int, user_b: int) -> Tuple[int, int]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def context_key(product_id: Optional[int] = None, order_id: Optional[int] = None,
                service_id: Optional[int] = None) -> str:
    """Non-null key for the optional context, e.g. 'direct' or 'product:5'."""
    parts = []
    if product_id is not None:
        parts.append(f"product:{product_id}")
    if order_id is not None:
        parts.append(f"order:{order_id}")
    if service_id is not None:
        parts.append(f"service:{service_id}")
    return "|".join(parts) or "direct"


def infer_conversation_type(product_id=None, order_id=None, service_id=None) -> str:
    if order_id is not None:
        return CONVERSATION_ORDER
    if service_id is not None:
        return CONVERSATION_SERVICE
    if product_id is not None:
        return CONVERSATION_PRODUCT
    return CONVERSATION_DIRECT


def conversation_title(conversation_type: str, order_id: Optional[int] = None) -> str:
    if conversation_type == CONVERSATION_ORDER:
        return f"About order #{order_id}" if order_id is not None else "Order conversation"
    return TITLES.get(conversation_type, "Conversation")


def message_preview(content: str, limit: int) -> str:
    if len(content) > limit:
        return content[:limit] + "..."
    return content


class ConversationService:
    """Service class for conversations and messages."""

    def __init__(self, session: AsyncSession, notifier: Optional[NotificationSink] = None, clock: Clock = utcnow):
        self.session = session
        self.notifier = notifier
        self.clock = clock

    async def _lock_conversation(self, conversation_id: int) -> Conversation:
        result = await self.session.execute(
            select(Conversation).where(Conversation.id == conversation_id).with_for_update()
            .execution_options(populate_existing=True)
        )
        conversation = result.scalar_one_or_none()
        if not conversation:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def _find(self, user1_id: int, user2_id: int, key: str) -> Optional[Conversation]:
        result = await self.session.execute(
            select(Conversation).where(
                Conversation.user1_id == user1_id,
                Conversation.user2_id == user2_id,
                Conversation.context_key == key,
            )
        )
        return result.scalar_one_or_none()

    async def _check_context(self, product_id, order_id, service_id) -> None:
        for model, pk, label in (
            (Product, product_id, "Product"),
            (Order, order_id, "Order"),
            (FarmService, service_id, "Service"),
        ):
            if pk is not None and await self.session.get(model, pk) is None:
                raise NotFoundError(f"{label} {pk} not found")

    async def get_or_create_conversation(
        self,
        user_a: int,
        user_b: int,
        product_id: Optional[int] = None,
        order_id: Optional[int] = None,
        service_id: Optional[int] = None,
        conversation_type: Optional[str] = None,
    ) -> Tuple[Conversation, bool]:
        """
        Return the conversation for the pair and context, creating it if needed.

        Returns:
            (conversation, created)
        """
        if user_a == user_b:
            raise ValidationAppError("Cannot start a conversation with yourself")
        if conversation_type is not None and conversation_type not in CONVERSATION_TYPES:
            raise ValidationAppError(
                f"Invalid conversation type. Must be one of: {list(CONVERSATION_TYPES)}"
            )
        user1_id, user2_id = canonical_pair(user_a, user_b)
        key = context_key(product_id, order_id, service_id)

        async with atomic(self.session):
            result = await self.session.execute(
                select(User).where(User.id.in_((user1_id, user2_id))).order_by(User.id)
                .with_for_update().execution_options(populate_existing=True)
            )
            users = {u.id: u for u in result.scalars().all()}
            for uid in (user1_id, user2_id):
                if uid not in users or not users[uid].is_active:
                    raise ParticipantNotFoundError(uid)

            existing = await self._find(user1_id, user2_id, key)
            if existing:
                return existing, False

            await self._check_context(product_id, order_id, service_id)
            ctype = conversation_type or infer_conversation_type(product_id, order_id, service_id)
            conversation = Conversation(
                user1_id=user1_id,
                user2_id=user2_id,
                product_id=product_id,
                order_id=order_id,
                service_id=service_id,
                context_key=key,
                type=ctype,
                title=conversation_title(ctype, order_id),
                created_at=self.clock(),
            )
            try:
                async with self.session.begin_nested():
                    self.session.add(conversation)
            except IntegrityError:
                # another transaction inserted the same pair + context first
                logger.info("Conversation insert lost race, reusing existing row",
                            user1_id=user1_id, user2_id=user2_id, context_key=key)
                existing = await self._find(user1_id, user2_id, key)
                if existing is None:
                    raise
                return existing, False
            await self.session.refresh(conversation)

        logger.info("Conversation created", conversation_id=conversation.id, type=ctype,
                    user1_id=user1_id, user2_id=user2_id)
        return conversation, True

    async def send_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        message_type: str = "text",
        attachments: Optional[Sequence[str]] = None,
        reply_to_message_id: Optional[int] = None,
    ) -> Message:
        """Store a message and update the conversation's preview and recipient unread counter."""
        if content is None or not content.strip():
            raise ValidationAppError("Message content cannot be empty")
        if message_type not in MESSAGE_TYPES:
            raise ValidationAppError(f"Invalid message type. Must be one of: {list(MESSAGE_TYPES)}")
        preview_length = get_settings().MESSAGE_PREVIEW_LENGTH

        async with atomic(self.session):
            conversation = await self._lock_conversation(conversation_id)
            if not conversation.has_participant(sender_id):
                raise NotAParticipantError(conversation_id)
            if conversation.is_blocked_for_sender(sender_id):
                raise ConversationBlockedError(conversation_id)
            if reply_to_message_id is not None:
                target = await self.session.get(Message, reply_to_message_id)
                if target is None or target.conversation_id != conversation_id:
                    raise ValidationAppError("Reply target is not a message of this conversation")

            now = self.clock()
            message = Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                message_type=message_type,
                attachments=list(attachments or []),
                reply_to_message_id=reply_to_message_id,
                created_at=now,
            )
            self.session.add(message)

            recipient_id = conversation.other_participant(sender_id)
            conversation.last_message_at = now
            conversation.last_message_preview = message_preview(content, preview_length)
            if recipient_id == conversation.user1_id:
                conversation.user1_unread_count = (conversation.user1_unread_count or 0) + 1
            else:
                conversation.user2_unread_count = (conversation.user2_unread_count or 0) + 1
            await self.session.flush()
            await self.session.refresh(message)
            notify.dispatch_after_commit(self.session, self.notifier, [
                notify.new_message(recipient_id, conversation_id, message.id, conversation.last_message_preview),
            ])

        messages_sent_total.labels(message_type=message_type).inc()
        logger.info("Message sent", conversation_id=conversation_id, message_id=message.id, sender_id=sender_id)
        return message

    async def mark_read(self, conversation_id: int, user_id: int) -> Conversation:
        """Zero the reader's unread counter and flag the other side's messages as read."""
        async with atomic(self.session):
            conversation = await self._lock_conversation(conversation_id)
            if not conversation.has_participant(user_id):
                raise NotAParticipantError(conversation_id)
            if user_id == conversation.user1_id:
                conversation.user1_unread_count = 0
            else:
                conversation.user2_unread_count = 0
            await self.session.execute(
                update(Message)
                .where(
                    Message.conversation_id == conversation_id,
                    Message.sender_id != user_id,
                    Message.is_read.is_(False),
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
        return conversation

    async def set_blocked(self, conversation_id: int, user_id: int, blocked: bool = True) -> Conversation:
        """Block (or unblock) the other participant from sending."""
        async with atomic(self.session):
            conversation = await self._lock_conversation(conversation_id)
            if not conversation.has_participant(user_id):
                raise NotAParticipantError(conversation_id)
            if user_id == conversation.user1_id:
                conversation.is_blocked_by_user1 = blocked
            else:
                conversation.is_blocked_by_user2 = blocked
        logger.info("Conversation block changed", conversation_id=conversation_id, user_id=user_id, blocked=blocked)
        return conversation

    async def set_archived(self, conversation_id: int, user_id: int, archived: bool = True) -> Conversation:
        async with atomic(self.session):
            conversation = await self._lock_conversation(conversation_id)
            if not conversation.has_participant(user_id):
                raise NotAParticipantError(conversation_id)
            if user_id == conversation.user1_id:
                conversation.is_archived_by_user1 = archived
            else:
                conversation.is_archived_by_user2 = archived
        return conversation

    async def list_conversations(self, user_id: int, include_archived: bool = False) -> List[Conversation]:
        """User's conversations, most recently active first."""
        query = select(Conversation).where(
            or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id)
        )
        if not include_archived:
            query = query.where(
                or_(
                    (Conversation.user1_id == user_id) & Conversation.is_archived_by_user1.is_(False),
                    (Conversation.user2_id == user_id) & Conversation.is_archived_by_user2.is_(False),
                )
            )
        async with atomic(self.session):
            result = await self.session.execute(
                query.order_by(Conversation.last_message_at.desc().nulls_last(), Conversation.id.desc())
            )
            return list(result.scalars().all())
