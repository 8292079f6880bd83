# agrimarket/app/services/cleanup.py
"""
Periodic maintenance: expire feed posts, archive idle conversations,
auto-cancel stale pending orders. All three run in one transaction; if any
step fails nothing is applied.
"""
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.core.clock import Clock, utcnow
from agrimarket.app.core.constants import (
    AUTO_CANCEL_REASON,
    CANCELLED_BY_SYSTEM,
    ORDER_CANCELLED,
    ORDER_PENDING,
)
from agrimarket.app.core.logging import get_logger
from agrimarket.app.core.metrics import orders_cancelled_total
from agrimarket.app.core.settings import get_settings
from agrimarket.app.core.transactions import atomic
from agrimarket.app.models.conversation import Conversation
from agrimarket.app.models.feed import FeedPost
from agrimarket.app.models.order import Order

logger = get_logger(__name__)


@dataclass
class CleanupResult:
    expired_feed_posts: int = 0
    archived_conversations: int = 0
    cancelled_orders: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class CleanupService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = utcnow,
        pending_order_max_age: Optional[timedelta] = None,
        conversation_inactive_after: Optional[timedelta] = None,
    ):
        settings = get_settings()
        self.session = session
        self.clock = clock
        self.pending_order_max_age = pending_order_max_age or timedelta(
            days=settings.CLEANUP_PENDING_ORDER_MAX_AGE_DAYS
        )
        self.conversation_inactive_after = conversation_inactive_after or timedelta(
            days=settings.CLEANUP_CONVERSATION_INACTIVE_DAYS
        )

    async def _delete_expired_feed_posts(self, now) -> int:
        result = await self.session.execute(
            delete(FeedPost)
            .where(FeedPost.status == "published", FeedPost.expires_at.is_not(None), FeedPost.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def _archive_idle_conversations(self, now) -> int:
        cutoff = now - self.conversation_inactive_after
        last_activity = func.coalesce(Conversation.last_message_at, Conversation.created_at)
        result = await self.session.execute(
            update(Conversation)
            .where(
                last_activity < cutoff,
                or_(Conversation.is_archived_by_user1.is_(False), Conversation.is_archived_by_user2.is_(False)),
            )
            .values(is_archived_by_user1=True, is_archived_by_user2=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def _cancel_stale_pending_orders(self, now) -> int:
        # pending orders never deducted stock, so there is nothing to restore
        cutoff = now - self.pending_order_max_age
        result = await self.session.execute(
            update(Order)
            .where(Order.status == ORDER_PENDING, Order.created_at < cutoff)
            .values(
                status=ORDER_CANCELLED,
                cancellation_reason=AUTO_CANCEL_REASON,
                cancelled_by=CANCELLED_BY_SYSTEM,
                cancelled_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def run(self) -> CleanupResult:
        now = self.clock()
        try:
            async with atomic(self.session):
                result = CleanupResult(
                    expired_feed_posts=await self._delete_expired_feed_posts(now),
                    archived_conversations=await self._archive_idle_conversations(now),
                    cancelled_orders=await self._cancel_stale_pending_orders(now),
                )
        except Exception as e:
            logger.error("Cleanup failed, nothing applied", error=str(e))
            raise
        if result.cancelled_orders:
            orders_cancelled_total.labels(cancelled_by=CANCELLED_BY_SYSTEM).inc(result.cancelled_orders)
        logger.info("Cleanup finished", **result.to_dict())
        return result
