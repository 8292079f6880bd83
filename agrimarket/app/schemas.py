from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Any
from decimal import Decimal
from datetime import datetime
from agrimarket.app.core.sanitize import sanitize_user_input


def _clean(v: Optional[str], max_length: int) -> Optional[str]:
    if v is None:
        return None
    return sanitize_user_input(v, max_length=max_length)


# --- Orders ---
class OrderCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    delivery_method: str = "pickup"
    delivery_address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("delivery_address", "notes")
    @classmethod
    def sanitize_text_fields(cls, v: Optional[str]) -> Optional[str]:
        return _clean(v, 2000)


class OrderConfirm(BaseModel):
    farmer_notes: Optional[str] = None
    estimated_delivery_at: Optional[datetime] = None

    @field_validator("farmer_notes")
    @classmethod
    def sanitize_notes(cls, v: Optional[str]) -> Optional[str]:
        return _clean(v, 2000)


class OrderCancel(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v: Optional[str]) -> Optional[str]:
        return _clean(v, 1000)


class OrderStatusUpdate(BaseModel):
    status: str


class OrderResponse(BaseModel):
    id: int
    buyer_id: int
    farmer_id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    delivery_method: str
    delivery_fee: Decimal
    total_price: Decimal
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    status: str
    farmer_notes: Optional[str] = None
    estimated_delivery_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# --- Products ---
class StockAdjust(BaseModel):
    delta: int = Field(..., gt=0)
    operation: str = "subtract"


class ProductStockResponse(BaseModel):
    id: int
    farmer_id: int
    title: str
    original_quantity: int
    remaining_quantity: int
    status: str
    order_count: int

    model_config = {"from_attributes": True}


# --- Conversations ---
class ConversationCreate(BaseModel):
    other_user_id: int
    product_id: Optional[int] = None
    order_id: Optional[int] = None
    service_id: Optional[int] = None
    type: Optional[str] = None


class ConversationResponse(BaseModel):
    id: int
    user1_id: int
    user2_id: int
    product_id: Optional[int] = None
    order_id: Optional[int] = None
    service_id: Optional[int] = None
    type: str
    title: str
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    user1_unread_count: int = 0
    user2_unread_count: int = 0
    created: bool = False

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    message_type: str = "text"
    attachments: List[str] = Field(default_factory=list)
    reply_to_message_id: Optional[int] = None

    @field_validator("content")
    @classmethod
    def sanitize_content(cls, v: str) -> str:
        return sanitize_user_input(v, max_length=5000)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    message_type: str
    attachments: Optional[List[str]] = None
    reply_to_message_id: Optional[int] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# --- Admin ---
class IntegrityIssueResponse(BaseModel):
    type: str
    count: int
    items: List[Any]


class IntegrityReportResponse(BaseModel):
    has_issues: bool
    issues: List[IntegrityIssueResponse]
    checked_at: datetime
    error: Optional[str] = None


class CleanupResponse(BaseModel):
    expired_feed_posts: int
    archived_conversations: int
    cancelled_orders: int
