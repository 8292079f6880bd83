# agrimarket/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from agrimarket.app.services.orders import (
    OrderService,
    OrderNotFoundError,
    BuyerNotFoundError,
    ProductUnavailableError,
    InsufficientStockError,
    SelfOrderError,
    InvalidOrderStatusError,
    OrderAlreadyConfirmedError,
    OrderAccessDeniedError,
)
from agrimarket.app.services.stock import (
    StockService,
    ProductNotFoundError,
    StockConflictError,
    InvalidStockOperationError,
)
from agrimarket.app.services.conversations import (
    ConversationService,
    ConversationNotFoundError,
    ParticipantNotFoundError,
    NotAParticipantError,
    ConversationBlockedError,
)
from agrimarket.app.services.notifications import (
    NotificationSink,
    DatabaseNotificationSink,
    RecordingNotificationSink,
    PendingNotification,
)
from agrimarket.app.services.pricing import delivery_fee_for, order_total, UnknownDeliveryMethodError
from agrimarket.app.services.integrity import IntegrityService, IntegrityReport, IntegrityIssue
from agrimarket.app.services.cleanup import CleanupService, CleanupResult
from agrimarket.app.services.results import Ok, Err, Result, capture

__all__ = [
    # Order service
    "OrderService",
    "OrderNotFoundError",
    "BuyerNotFoundError",
    "ProductUnavailableError",
    "InsufficientStockError",
    "SelfOrderError",
    "InvalidOrderStatusError",
    "OrderAlreadyConfirmedError",
    "OrderAccessDeniedError",
    # Stock service
    "StockService",
    "ProductNotFoundError",
    "StockConflictError",
    "InvalidStockOperationError",
    # Conversation service
    "ConversationService",
    "ConversationNotFoundError",
    "ParticipantNotFoundError",
    "NotAParticipantError",
    "ConversationBlockedError",
    # Notifications
    "NotificationSink",
    "DatabaseNotificationSink",
    "RecordingNotificationSink",
    "PendingNotification",
    # Pricing
    "delivery_fee_for",
    "order_total",
    "UnknownDeliveryMethodError",
    # Maintenance
    "IntegrityService",
    "IntegrityReport",
    "IntegrityIssue",
    "CleanupService",
    "CleanupResult",
    # Results
    "Ok",
    "Err",
    "Result",
    "capture",
]
