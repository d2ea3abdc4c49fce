"""
Buyer/seller messaging.

Each unordered pair of users shares exactly one conversation whose id is the
sorted pair joined by ``:``. Sending a message appends it and refreshes the
conversation summary in the same write.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional, TypeVar

from marketplace.auth import AuthUser
from marketplace.db import (
    ConversationRecord,
    DbClient,
    MessageRecord,
    timestamp_key,
)
from marketplace.errors import Forbidden, NotFound, ValidationError
from marketplace.listings import product_view
from marketplace.schemas import SendMessageRequest
from marketplace.storage import StorageClient

logger = logging.getLogger(__name__)

CONVERSATION_ID_SEPARATOR = ":"

T = TypeVar("T")


def conversation_id(user_a: str, user_b: str) -> str:
    """Deterministic id for the unordered pair of participants."""
    return CONVERSATION_ID_SEPARATOR.join(sorted([user_a, user_b]))


def _lookup_or_none(description: str, fn: Callable[[], Optional[T]]) -> Optional[T]:
    # One failed enrichment must not fail the whole listing.
    try:
        return fn()
    except Exception:
        logger.exception("Lookup failed: %s", description)
        return None


def send_message(
    db: DbClient, actor: AuthUser, payload: SendMessageRequest
) -> MessageRecord:
    text = payload.message.strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if not payload.receiverId:
        raise ValidationError("Receiver is required")
    if payload.receiverId == actor.id:
        raise ValidationError("Cannot send a message to yourself")

    sender = db.get_user(actor.id)
    if not sender:
        raise NotFound("User not found")

    message = MessageRecord(
        id=uuid.uuid4().hex,
        conversation_id=conversation_id(actor.id, payload.receiverId),
        product_id=payload.productId,
        sender_id=actor.id,
        sender_name=sender.name,
        receiver_id=payload.receiverId,
        message=text,
    )
    db.append_message(message)
    return message


def _enrich(
    db: DbClient, storage: StorageClient, actor: AuthUser, conv: ConversationRecord
) -> dict:
    view = conv.as_dict()

    product = _lookup_or_none(
        f"product {conv.product_id}", lambda: db.get_product(conv.product_id)
    )
    view["product"] = product_view(storage, product) if product else None

    other_id = conv.other_participant(actor.id)
    other = (
        _lookup_or_none(f"user {other_id}", lambda: db.get_user(other_id))
        if other_id
        else None
    )
    view["otherUser"] = other.public_dict() if other else None
    return view


def list_conversations(
    db: DbClient, storage: StorageClient, actor: AuthUser
) -> list[dict]:
    conversations = sorted(
        db.list_conversations(actor.id),
        key=lambda c: (timestamp_key(c.last_message_at), c.id),
        reverse=True,
    )
    return [_enrich(db, storage, actor, conv) for conv in conversations]


def list_messages(db: DbClient, actor: AuthUser, conv_id: str) -> list[MessageRecord]:
    conversation = db.get_conversation(conv_id)
    if conversation is None:
        # Nothing sent yet; a participant named in the id sees an empty thread.
        pair = conv_id.split(CONVERSATION_ID_SEPARATOR)
        if len(pair) == 2 and actor.id in pair and conversation_id(*pair) == conv_id:
            return []
        raise Forbidden("Unauthorized access to conversation")
    if actor.id not in conversation.participants:
        raise Forbidden("Unauthorized access to conversation")
    return sorted(
        db.list_messages(conv_id),
        key=lambda m: (timestamp_key(m.created_at), m.id),
    )
