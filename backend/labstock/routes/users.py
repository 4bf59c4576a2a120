# Overview: Flask API routes for admin user management.

from flask import Blueprint, g, jsonify, request

from ..extensions import db
from ..errors import StockError
from ..services import user_service
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _fail(e: StockError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    users = user_service.list_users(
        role=request.args.get("role") or None,
        status=request.args.get("status") or None,
    )
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    """Update first_name, last_name, service, phone, role and/or status."""
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(user_id, data, acting_user=g.current_user)
    except StockError as e:
        return _fail(e)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.post("/bulk")
@require_auth
@require_role(ROLE_ADMIN)
def bulk_update_users_route():
    """Request body: {"ids": [int], "role": str (optional), "status": str (optional)}"""
    data = request.get_json(silent=True) or {}
    patch = {k: data[k] for k in ("role", "status") if k in data}
    try:
        count = user_service.bulk_update_users(data.get("ids"), patch, acting_user=g.current_user)
    except StockError as e:
        return _fail(e)
    return jsonify({"updated": count}), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: int):
    try:
        user_service.delete_user(user_id, acting_user=g.current_user)
    except StockError as e:
        return _fail(e)
    return jsonify({"ok": True}), 200
