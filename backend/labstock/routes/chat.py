# Overview: Flask API routes for the depot support chat.

from flask import Blueprint, g, jsonify, request

from ..extensions import db
from ..errors import StockError
from ..validation import parse_int
from ..services import chat_service
from ..decorators import current_depot_scope, require_auth, require_role
from ..models.auth import ROLE_ADMIN


chat_bp = Blueprint("chat", __name__, url_prefix="/api/chat")


def _can_access(conversation_id: str) -> bool:
    depot_id, _depot_name = current_depot_scope()
    if depot_id is None:
        return True
    return conversation_id == chat_service.conversation_id_for_depot(depot_id)


@chat_bp.get("/conversations")
@require_auth
@require_role(ROLE_ADMIN)
def list_conversations_route():
    return jsonify({"conversations": chat_service.list_conversations()}), 200


@chat_bp.get("/conversations/<conversation_id>/messages")
@require_auth
def fetch_messages_route(conversation_id: str):
    """Oldest first. Query param after_id returns only newer messages."""
    if not _can_access(conversation_id):
        return jsonify({"error": "Conversation introuvable."}), 404
    after_id = request.args.get("after_id")
    try:
        after_id = parse_int(after_id, "after_id") if after_id else None
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    messages = chat_service.fetch_messages(conversation_id, after_id=after_id)
    return jsonify({"messages": [m.to_dict() for m in messages]}), 200


@chat_bp.post("/conversations/<conversation_id>/messages")
@require_auth
def send_message_route(conversation_id: str):
    """Request body: {"content": str}"""
    if not _can_access(conversation_id):
        return jsonify({"error": "Conversation introuvable."}), 404
    data = request.get_json(silent=True) or {}
    user = g.current_user
    try:
        message = chat_service.send_message(
            sender_id=user.email,
            sender_name=user.display_name or user.email,
            conversation_id=conversation_id,
            content=data.get("content"),
        )
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"message": message.to_dict()}), 201
