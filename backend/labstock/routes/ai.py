# Overview: Flask API routes for the AI assistant.

from flask import Blueprint, jsonify, request

from ..errors import StockError, ValidationError
from ..services import ai_service, ledger_service
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN


ai_bp = Blueprint("ai", __name__, url_prefix="/api/ai")


def _required(data: dict, key: str) -> str:
    value = str(data.get(key) or "").strip()
    if not value:
        raise ValidationError(f"{key} est obligatoire.")
    return value


@ai_bp.post("/safety-sheet")
@require_auth
def safety_sheet_route():
    """Request body: {"name": str, "formula": str (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        name = _required(data, "name")
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    sheet = ai_service.generate_safety_sheet(name, data.get("formula") or None)
    return jsonify(sheet.to_dict()), 200


@ai_bp.post("/product-info")
@require_auth
@require_role(ROLE_ADMIN)
def product_info_route():
    """Request body: {"name": str} -> {"formula", "cas", "ghsPictograms"}"""
    data = request.get_json(silent=True) or {}
    try:
        info = ai_service.get_product_info(_required(data, "name"))
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"data": info}), 200


@ai_bp.post("/extract-products")
@require_auth
@require_role(ROLE_ADMIN)
def extract_products_route():
    """Request body: {"image": base64 str, "mime_type": str}"""
    data = request.get_json(silent=True) or {}
    try:
        products = ai_service.extract_products_from_image(
            _required(data, "image"), data.get("mime_type") or "image/png"
        )
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"data": products}), 200


@ai_bp.post("/edit-image")
@require_auth
@require_role(ROLE_ADMIN)
def edit_image_route():
    """Request body: {"image": base64 str, "mime_type": str, "prompt": str}"""
    data = request.get_json(silent=True) or {}
    try:
        image = ai_service.edit_image(
            _required(data, "image"), data.get("mime_type") or "image/png", _required(data, "prompt")
        )
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"data": image}), 200


def _recent_movements():
    return ledger_service.list_movements(limit=ai_service.ANALYSIS_MOVEMENT_LIMIT)


@ai_bp.post("/predictive-analysis")
@require_auth
@require_role(ROLE_ADMIN)
def predictive_analysis_route():
    content = ai_service.generate_predictive_analysis(_recent_movements())
    return jsonify({"content": content}), 200


@ai_bp.post("/anomaly-analysis")
@require_auth
@require_role(ROLE_ADMIN)
def anomaly_analysis_route():
    content = ai_service.generate_movement_analysis(_recent_movements())
    return jsonify({"content": content}), 200
