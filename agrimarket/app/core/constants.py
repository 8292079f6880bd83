"""
Shared constants for the backend application.
"""
from decimal import Decimal

# ---------------------------------------------------------------------------
# Order statuses
# ---------------------------------------------------------------------------
ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_PREPARING = "preparing"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

VALID_ORDER_STATUSES = [
    ORDER_PENDING, ORDER_CONFIRMED, ORDER_PREPARING, ORDER_DELIVERED, ORDER_CANCELLED,
]

# Allowed forward moves; delivered and cancelled are sinks.
ORDER_TRANSITIONS = {
    ORDER_PENDING: (ORDER_CONFIRMED, ORDER_CANCELLED),
    ORDER_CONFIRMED: (ORDER_PREPARING, ORDER_CANCELLED),
    ORDER_PREPARING: (ORDER_DELIVERED, ORDER_CANCELLED),
    ORDER_DELIVERED: (),
    ORDER_CANCELLED: (),
}

# Statuses in which the order's quantity has been taken out of stock
STOCK_DEDUCTED_STATUSES = (ORDER_CONFIRMED, ORDER_PREPARING)

CANCELLED_BY_BUYER = "buyer"
CANCELLED_BY_FARMER = "farmer"
CANCELLED_BY_SYSTEM = "system"
CANCELLED_BY_VALUES = (CANCELLED_BY_BUYER, CANCELLED_BY_FARMER, CANCELLED_BY_SYSTEM)

AUTO_CANCEL_REASON = "Automatically cancelled: pending order expired"

DELIVERY_METHODS = ("pickup", "delivery", "shipping")

# ---------------------------------------------------------------------------
# Product statuses
# ---------------------------------------------------------------------------
PRODUCT_ACTIVE = "active"
PRODUCT_SOLD_OUT = "sold_out"

STOCK_ADD = "add"
STOCK_SUBTRACT = "subtract"
STOCK_OPERATIONS = (STOCK_ADD, STOCK_SUBTRACT)

# ---------------------------------------------------------------------------
# Conversations / messages
# ---------------------------------------------------------------------------
CONVERSATION_DIRECT = "direct"
CONVERSATION_PRODUCT = "product_inquiry"
CONVERSATION_ORDER = "order_related"
CONVERSATION_SERVICE = "service_inquiry"
CONVERSATION_TYPES = (CONVERSATION_DIRECT, CONVERSATION_PRODUCT, CONVERSATION_ORDER, CONVERSATION_SERVICE)

MESSAGE_TYPES = ("text", "image", "file")

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
NOTIFY_ORDER_RECEIVED = "order_received"
NOTIFY_ORDER_STATUS = "order_status_changed"
NOTIFY_OUT_OF_STOCK = "out_of_stock"
NOTIFY_NEW_MESSAGE = "new_message"

# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------
READ_COMMITTED = "READ COMMITTED"
REPEATABLE_READ = "REPEATABLE READ"
SERIALIZABLE = "SERIALIZABLE"
ISOLATION_LEVELS = (READ_COMMITTED, REPEATABLE_READ, SERIALIZABLE)

# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------
ZERO = Decimal("0")
ONE_CENT = Decimal("0.01")
