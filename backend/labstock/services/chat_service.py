# Overview: Support chat between depots and administrators.

from __future__ import annotations

from sqlalchemy import func, select

from ..extensions import db
from ..models import ChatMessage
from ..errors import ValidationError


MAX_MESSAGE_LENGTH = 4000


def conversation_id_for_depot(depot_id: str) -> str:
    return f"depot_{depot_id}"


def send_message(*, sender_id: str, sender_name: str, conversation_id: str, content: str) -> ChatMessage:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Le message ne peut pas être vide.")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Le message ne peut pas dépasser {MAX_MESSAGE_LENGTH} caractères.")
    if not conversation_id:
        raise ValidationError("conversation_id est obligatoire.")

    msg = ChatMessage(
        sender_id=sender_id,
        sender_name=sender_name,
        conversation_id=conversation_id,
        content=content,
    )
    db.session.add(msg)
    db.session.commit()
    return msg


def fetch_messages(conversation_id: str, *, after_id: int | None = None) -> list[ChatMessage]:
    """Messages of one conversation, oldest first."""
    q = ChatMessage.query.filter_by(conversation_id=conversation_id)
    if after_id is not None:
        q = q.filter(ChatMessage.id > after_id)
    return q.order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc()).all()


def list_conversations() -> list[dict]:
    """Admin inbox: one entry per conversation with its latest message."""
    latest_ids = select(func.max(ChatMessage.id)).group_by(ChatMessage.conversation_id)
    latest = (
        ChatMessage.query.filter(ChatMessage.id.in_(latest_ids))
        .order_by(ChatMessage.id.desc())
        .all()
    )
    counts = dict(
        db.session.query(ChatMessage.conversation_id, func.count(ChatMessage.id))
        .group_by(ChatMessage.conversation_id)
        .all()
    )
    return [
        {
            "conversation_id": m.conversation_id,
            "message_count": counts.get(m.conversation_id, 0),
            "last_message": m.to_dict(),
        }
        for m in latest
    ]
