"""
Notify users about order and messaging events.

Services build `PendingNotification`s while they hold row locks and queue
them with `dispatch_after_commit`; the sink sees them only once the outermost
transaction has committed, and never if it rolls back. Delivery is best effort: a
failing sink is logged and never turns a committed operation into an error.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrimarket.app.core.constants import (
    NOTIFY_NEW_MESSAGE,
    NOTIFY_ORDER_RECEIVED,
    NOTIFY_ORDER_STATUS,
    NOTIFY_OUT_OF_STOCK,
)
from agrimarket.app.core.logging import get_logger
from agrimarket.app.core.transactions import after_commit
from agrimarket.app.models.notification import Notification

logger = get_logger(__name__)

STATUS_LABELS = {
    "pending": "Waiting for the farmer to confirm",
    "confirmed": "Confirmed by the farmer",
    "preparing": "Being prepared",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}


@dataclass
class PendingNotification:
    user_id: int
    type: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    async def send(self, notification: PendingNotification) -> bool: ...


class DatabaseNotificationSink:
    """Stores notifications in the notifications table, in a session of its own."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def send(self, notification: PendingNotification) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(Notification(
                        user_id=notification.user_id,
                        type=notification.type,
                        title=notification.title,
                        body=notification.body,
                        data=notification.data or None,
                    ))
            return True
        except Exception as e:
            logger.exception(
                "Failed to store notification",
                user_id=notification.user_id,
                type=notification.type,
                error=str(e),
            )
            return False


async def dispatch(sink: Optional[NotificationSink], notifications: Iterable[PendingNotification]) -> int:
    """Send each notification; returns how many were delivered."""
    if sink is None:
        return 0
    delivered = 0
    for notification in notifications:
        try:
            if await sink.send(notification):
                delivered += 1
        except Exception as e:
            logger.exception(
                "Notification sink raised",
                user_id=notification.user_id,
                type=notification.type,
                error=str(e),
            )
    return delivered


def dispatch_after_commit(
    session: AsyncSession,
    sink: Optional[NotificationSink],
    notifications: Iterable[PendingNotification],
) -> None:
    """Queue notifications on the open atomic() scope; they are sent once it commits."""
    notifications = list(notifications)
    if sink is None or not notifications:
        return
    after_commit(session, lambda: dispatch(sink, notifications))


def order_received(farmer_id: int, order_id: int, product_title: str, quantity: int, total_price) -> PendingNotification:
    return PendingNotification(
        user_id=farmer_id,
        type=NOTIFY_ORDER_RECEIVED,
        title=f"New order #{order_id}",
        body=f"{product_title} x {quantity}, total {total_price}. Confirm or cancel it in your orders.",
        data={"order_id": order_id},
    )


def order_status_changed(user_id: int, order_id: int, new_status: str, reason: Optional[str] = None) -> PendingNotification:
    body = STATUS_LABELS.get(new_status, new_status)
    if reason:
        body += f". Reason: {reason}"
    return PendingNotification(
        user_id=user_id,
        type=NOTIFY_ORDER_STATUS,
        title=f"Order #{order_id}",
        body=body,
        data={"order_id": order_id, "status": new_status},
    )


def out_of_stock(farmer_id: int, product_id: int, product_title: str) -> PendingNotification:
    return PendingNotification(
        user_id=farmer_id,
        type=NOTIFY_OUT_OF_STOCK,
        title="Product sold out",
        body=f"'{product_title}' has no remaining stock.",
        data={"product_id": product_id},
    )


def new_message(recipient_id: int, conversation_id: int, message_id: int, preview: str) -> PendingNotification:
    return PendingNotification(
        user_id=recipient_id,
        type=NOTIFY_NEW_MESSAGE,
        title="New message",
        body=preview,
        data={"conversation_id": conversation_id, "message_id": message_id},
    )


class RecordingNotificationSink:
    """Keeps notifications in memory; used by tests and dry runs."""

    def __init__(self):
        self.sent: List[PendingNotification] = []

    async def send(self, notification: PendingNotification) -> bool:
        self.sent.append(notification)
        return True

    def of_type(self, type_: str) -> List[PendingNotification]:
        return [n for n in self.sent if n.type == type_]
