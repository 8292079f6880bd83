from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from agrimarket.app.api.deps import get_notifier, get_session, run_service
from agrimarket.app.core.auth import get_current_user_id
from agrimarket.app.schemas import (
    ConversationCreate,
    ConversationResponse,
    MessageCreate,
    MessageResponse,
)
from agrimarket.app.services.conversations import ConversationService
from agrimarket.app.services.notifications import NotificationSink

router = APIRouter()


def _conversation_payload(conversation, created: bool = False) -> ConversationResponse:
    payload = ConversationResponse.model_validate(conversation)
    payload.created = created
    return payload


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    include_archived: bool = False,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    service = ConversationService(session)
    conversations = await run_service(
        session, lambda: service.list_conversations(user_id, include_archived), name="list_conversations"
    )
    return [_conversation_payload(c) for c in conversations]


@router.post("", response_model=ConversationResponse)
async def open_conversation(
    data: ConversationCreate,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Return the existing conversation with the other user, or start one (201)."""
    service = ConversationService(session)
    conversation, created = await run_service(
        session,
        lambda: service.get_or_create_conversation(
            user_id,
            data.other_user_id,
            product_id=data.product_id,
            order_id=data.order_id,
            service_id=data.service_id,
            conversation_type=data.type,
        ),
        name="get_or_create_conversation",
    )
    response.status_code = 201 if created else 200
    return _conversation_payload(conversation, created)


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    conversation_id: int,
    data: MessageCreate,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    service = ConversationService(session, notifier)
    return await run_service(
        session,
        lambda: service.send_message(
            conversation_id,
            user_id,
            data.content,
            message_type=data.message_type,
            attachments=data.attachments,
            reply_to_message_id=data.reply_to_message_id,
        ),
        name="send_message",
    )


@router.post("/{conversation_id}/read", response_model=ConversationResponse)
async def mark_read(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    service = ConversationService(session)
    conversation = await run_service(session, lambda: service.mark_read(conversation_id, user_id), name="mark_read")
    return _conversation_payload(conversation)


@router.post("/{conversation_id}/block", response_model=ConversationResponse)
async def block_conversation(
    conversation_id: int,
    blocked: bool = True,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    service = ConversationService(session)
    conversation = await run_service(
        session, lambda: service.set_blocked(conversation_id, user_id, blocked), name="set_blocked"
    )
    return _conversation_payload(conversation)


@router.post("/{conversation_id}/archive", response_model=ConversationResponse)
async def archive_conversation(
    conversation_id: int,
    archived: bool = True,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    service = ConversationService(session)
    conversation = await run_service(
        session, lambda: service.set_archived(conversation_id, user_id, archived), name="set_archived"
    )
    return _conversation_payload(conversation)
