# Overview: Flask API routes for expiry alert configurations.

from flask import Blueprint, jsonify, request

from ..extensions import db
from ..errors import StockError
from ..validation import parse_int
from ..services import alert_service
from ..decorators import current_depot_scope, require_auth, require_role
from ..models.auth import ROLE_ADMIN


alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


def _fail(e: StockError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


@alerts_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_alerts_route():
    return jsonify({"alerts": [a.to_dict() for a in alert_service.list_alerts()]}), 200


@alerts_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_alert_route():
    """Request body: {"threshold_days": int, "emails_to_notify": [str], "is_active": bool}"""
    try:
        alert = alert_service.create_alert(request.get_json(silent=True) or {})
    except StockError as e:
        return _fail(e)
    return jsonify({"alert": alert.to_dict()}), 201


@alerts_bp.put("/<int:alert_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_alert_route(alert_id: int):
    try:
        alert = alert_service.update_alert(alert_id, request.get_json(silent=True) or {})
    except StockError as e:
        return _fail(e)
    return jsonify({"alert": alert.to_dict()}), 200


@alerts_bp.delete("/<int:alert_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_alert_route(alert_id: int):
    try:
        alert_service.delete_alert(alert_id)
    except StockError as e:
        return _fail(e)
    return jsonify({"ok": True}), 200


@alerts_bp.get("/report")
@require_auth
@require_role(ROLE_ADMIN)
def alert_report_route():
    """Products flagged by each active alert."""
    return jsonify({"alerts": alert_service.active_alert_report()}), 200


@alerts_bp.get("/expiring")
@require_auth
def expiring_products_route():
    """Query param days (default 30). Depot users see their depot only."""
    try:
        days = parse_int(request.args.get("days", "30"), "days")
    except StockError as e:
        return _fail(e)
    _depot_id, depot_name = current_depot_scope()
    products = alert_service.expiring_products(days, location=depot_name)
    return jsonify({"products": [p.to_dict() for p in products]}), 200
