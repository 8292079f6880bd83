"""
Tests for ConversationService.

Tests cover:
- Idempotent, order-independent conversation creation (also concurrent)
- Context keys and generated titles
- send_message counters, preview truncation, blocking, reply targets
- mark_read / block / archive / listing
"""
import asyncio

import pytest
from sqlalchemy import func, select

from agrimarket.app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationAppError
from agrimarket.app.models.conversation import Conversation, Message
from agrimarket.app.services.conversations import (
    ConversationBlockedError,
    ConversationNotFoundError,
    ConversationService,
    NotAParticipantError,
    ParticipantNotFoundError,
    canonical_pair,
    context_key,
    message_preview,
)
from agrimarket.tests.helpers import reload


def test_canonical_pair_and_context_key():
    assert canonical_pair(9, 3) == (3, 9)
    assert canonical_pair(3, 9) == (3, 9)
    assert context_key() == "direct"
    assert context_key(product_id=5) == "product:5"
    assert context_key(product_id=5, order_id=2) == "product:5|order:2"


def test_message_preview_truncates():
    assert message_preview("short", 100) == "short"
    assert message_preview("x" * 150, 100) == "x" * 100 + "..."


# ============================================
# GET OR CREATE
# ============================================

@pytest.mark.asyncio
async def test_get_or_create_is_symmetric(session_factory, farmer, buyer):
    async with session_factory() as session:
        first, created = await ConversationService(session).get_or_create_conversation(buyer.id, farmer.id)
    async with session_factory() as session:
        again, created_again = await ConversationService(session).get_or_create_conversation(farmer.id, buyer.id)

    assert created is True
    assert created_again is False
    assert first.id == again.id
    assert first.user1_id < first.user2_id
    assert first.type == "direct"
    assert first.title == "Direct conversation"


@pytest.mark.asyncio
async def test_context_creates_separate_conversation(test_session, farmer, buyer, product):
    service = ConversationService(test_session)
    direct, _ = await service.get_or_create_conversation(buyer.id, farmer.id)
    about_product, created = await service.get_or_create_conversation(buyer.id, farmer.id, product_id=product.id)

    assert created is True
    assert about_product.id != direct.id
    assert about_product.type == "product_inquiry"
    assert about_product.title == "Product inquiry"
    assert about_product.context_key == f"product:{product.id}"


@pytest.mark.asyncio
async def test_order_conversation_title(test_session, farmer, buyer, product, make_order):
    order = await make_order(buyer, product)
    conv, _ = await ConversationService(test_session).get_or_create_conversation(
        buyer.id, farmer.id, order_id=order.id
    )
    assert conv.type == "order_related"
    assert conv.title == f"About order #{order.id}"


@pytest.mark.asyncio
async def test_get_or_create_with_self_fails(test_session, buyer):
    with pytest.raises(ValidationAppError):
        await ConversationService(test_session).get_or_create_conversation(buyer.id, buyer.id)


@pytest.mark.asyncio
async def test_get_or_create_missing_user(test_session, buyer):
    with pytest.raises(ParticipantNotFoundError):
        await ConversationService(test_session).get_or_create_conversation(buyer.id, 9999)


@pytest.mark.asyncio
async def test_get_or_create_inactive_user(test_session, make_user, buyer):
    gone = await make_user("Deactivated", is_active=False)
    with pytest.raises(ParticipantNotFoundError):
        await ConversationService(test_session).get_or_create_conversation(buyer.id, gone.id)


@pytest.mark.asyncio
async def test_get_or_create_missing_context(test_session, farmer, buyer):
    with pytest.raises(NotFoundError):
        await ConversationService(test_session).get_or_create_conversation(buyer.id, farmer.id, product_id=777)


@pytest.mark.asyncio
async def test_get_or_create_rejects_unknown_type(test_session, farmer, buyer):
    with pytest.raises(ValidationAppError):
        await ConversationService(test_session).get_or_create_conversation(
            buyer.id, farmer.id, conversation_type="group"
        )


@pytest.mark.asyncio
async def test_concurrent_creation_from_both_sides_yields_one_row(session_factory, farmer, buyer):
    async def open_chat(a, b):
        async with session_factory() as session:
            conv, _ = await ConversationService(session).get_or_create_conversation(a, b)
            return conv.id

    ids = await asyncio.gather(
        open_chat(buyer.id, farmer.id),
        open_chat(farmer.id, buyer.id),
        open_chat(buyer.id, farmer.id),
    )
    assert len(set(ids)) == 1

    async with session_factory() as session:
        count = await session.scalar(select(func.count(Conversation.id)))
    assert count == 1


@pytest.mark.asyncio
async def test_duplicate_insert_falls_back_to_existing_row(test_session, session_factory, monkeypatch, conversation, farmer, buyer):
    service = ConversationService(test_session)
    real_find = service._find
    calls = {"n": 0}

    async def find_misses_first(*args):
        # the first lookup runs before the competing row is visible
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return await real_find(*args)

    monkeypatch.setattr(service, "_find", find_misses_first)

    conv, created = await service.get_or_create_conversation(buyer.id, farmer.id)

    assert created is False
    assert conv.id == conversation.id
    assert calls["n"] == 2
    async with session_factory() as session:
        assert await session.scalar(select(func.count(Conversation.id))) == 1


# ============================================
# MESSAGES
# ============================================

@pytest.mark.asyncio
async def test_send_message_updates_recipient_counter_only(test_session, session_factory, notifier, conversation, buyer, farmer):
    service = ConversationService(test_session, notifier)
    message = await service.send_message(conversation.id, buyer.id, "Are the tomatoes organic?")
    await service.send_message(conversation.id, buyer.id, "And do you deliver?")

    assert message.id is not None
    assert message.is_read is False
    stored = await reload(session_factory, Conversation, conversation.id)
    buyer_is_user1 = stored.user1_id == buyer.id
    sender_count = stored.user1_unread_count if buyer_is_user1 else stored.user2_unread_count
    recipient_count = stored.user2_unread_count if buyer_is_user1 else stored.user1_unread_count
    assert sender_count == 0
    assert recipient_count == 2
    assert stored.last_message_preview == "And do you deliver?"
    assert stored.last_message_at is not None

    events = notifier.of_type("new_message")
    assert [n.user_id for n in events] == [farmer.id, farmer.id]


@pytest.mark.asyncio
async def test_send_message_truncates_preview(test_session, session_factory, conversation, buyer):
    await ConversationService(test_session).send_message(conversation.id, buyer.id, "a" * 250)
    stored = await reload(session_factory, Conversation, conversation.id)
    assert stored.last_message_preview == "a" * 100 + "..."


@pytest.mark.asyncio
async def test_send_message_by_outsider(test_session, make_user, conversation):
    outsider = await make_user("Outsider")
    with pytest.raises(NotAParticipantError) as exc:
        await ConversationService(test_session).send_message(conversation.id, outsider.id, "hi")
    assert isinstance(exc.value, PermissionDeniedError)


@pytest.mark.asyncio
async def test_send_message_missing_conversation(test_session, buyer):
    with pytest.raises(ConversationNotFoundError):
        await ConversationService(test_session).send_message(555, buyer.id, "hi")


@pytest.mark.asyncio
async def test_blocked_sender_cannot_send(test_session, session_factory, conversation, buyer, farmer):
    service = ConversationService(test_session)
    await service.set_blocked(conversation.id, farmer.id)

    with pytest.raises(ConversationBlockedError):
        await service.send_message(conversation.id, buyer.id, "hello?")

    # the blocker can still write
    await service.send_message(conversation.id, farmer.id, "We are closed today")
    async with session_factory() as session:
        count = await session.scalar(select(func.count(Message.id)))
    assert count == 1


@pytest.mark.asyncio
async def test_send_message_validates_payload(test_session, conversation, buyer):
    service = ConversationService(test_session)
    with pytest.raises(ValidationAppError):
        await service.send_message(conversation.id, buyer.id, "   ")
    with pytest.raises(ValidationAppError):
        await service.send_message(conversation.id, buyer.id, "hi", message_type="video")


@pytest.mark.asyncio
async def test_reply_must_stay_in_conversation(test_session, make_user, conversation, buyer, farmer):
    service = ConversationService(test_session)
    original = await service.send_message(conversation.id, farmer.id, "Fresh eggs available")
    reply = await service.send_message(conversation.id, buyer.id, "I'll take a dozen", reply_to_message_id=original.id)
    assert reply.reply_to_message_id == original.id

    third = await make_user("Third")
    other, _ = await service.get_or_create_conversation(buyer.id, third.id)
    with pytest.raises(ValidationAppError):
        await service.send_message(other.id, buyer.id, "wrong thread", reply_to_message_id=original.id)


@pytest.mark.asyncio
async def test_mark_read(test_session, session_factory, conversation, buyer, farmer):
    service = ConversationService(test_session)
    await service.send_message(conversation.id, buyer.id, "one")
    await service.send_message(conversation.id, buyer.id, "two")
    await service.send_message(conversation.id, farmer.id, "reply")

    await service.mark_read(conversation.id, farmer.id)

    stored = await reload(session_factory, Conversation, conversation.id)
    farmer_count = stored.user1_unread_count if stored.user1_id == farmer.id else stored.user2_unread_count
    buyer_count = stored.user1_unread_count if stored.user1_id == buyer.id else stored.user2_unread_count
    assert farmer_count == 0
    assert buyer_count == 1

    async with session_factory() as session:
        rows = (await session.execute(select(Message.sender_id, Message.is_read))).all()
    assert all(is_read for sender, is_read in rows if sender == buyer.id)
    assert not any(is_read for sender, is_read in rows if sender == farmer.id)


@pytest.mark.asyncio
async def test_archive_hides_conversation_for_that_user_only(test_session, session_factory, conversation, buyer, farmer):
    await ConversationService(test_session).set_archived(conversation.id, buyer.id)

    async with session_factory() as session:
        service = ConversationService(session)
        assert await service.list_conversations(buyer.id) == []
        assert [c.id for c in await service.list_conversations(buyer.id, include_archived=True)] == [conversation.id]
        assert [c.id for c in await service.list_conversations(farmer.id)] == [conversation.id]
