# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/labstock/routes/products.py
"""
Product and stock routes.

SECURITY: All routes require authentication.
- Depot users see and consume only products located in their depot.
- Create, edit, delete, import and manual entry/exit are admin-only.

Every stock change goes through stock_service, which writes the ledger row.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..models import Product
from ..errors import NotFoundError, StockError
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from ..services import csv_export, stock_service
from ..decorators import current_depot_scope, require_auth, require_role
from ..models.auth import ROLE_ADMIN
from . import csv_response

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "code", "cas", "formula", "location", "stock", "unit",
        "alert_threshold", "image_url", "safety_sheet_url", "ghs_pictograms", "expiry_date",
    },
    required_on_create={"name", "code", "location"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _fail(e: StockError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


def _internal(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Erreur interne du serveur."}), 500


def _scoped_location() -> str | None:
    """Depot users are pinned to their depot; admins may pass ?location=."""
    _depot_id, depot_name = current_depot_scope()
    if depot_name is not None:
        return depot_name
    return request.args.get("location") or None


def _visible_product(product_id: int) -> Product:
    product = stock_service.get_product(product_id)
    _depot_id, depot_name = current_depot_scope()
    if depot_name is not None and product.location != depot_name:
        raise NotFoundError("Produit introuvable.")
    return product


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products ordered by name.

    Query params:
    - location: depot name (admins only; depot users always get their depot)
    """
    products = stock_service.list_products(location=_scoped_location())
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    products = stock_service.list_low_stock(location=_scoped_location())
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/export.csv")
@require_auth
def export_stock_sheet_route():
    location = _scoped_location()
    products = stock_service.list_products(location=location)
    content = csv_export.stock_sheet_csv(products)
    return csv_response(content, csv_export.export_filename("stock", location))


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify({"product": _visible_product(product_id).to_dict()}), 200
    except StockError as e:
        return _fail(e)


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """Create a product; its initial stock is recorded as an "initial" movement."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = stock_service.create_product(patch, g.current_user)
        return jsonify({"product": product.to_dict()}), 201
    except StockError as e:
        return _fail(e)
    except Exception:
        return _internal("Failed to create product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    """Edit a product; a changed stock value writes one "update" movement."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = stock_service.update_product(product_id, patch, g.current_user)
        return jsonify({"product": product.to_dict()}), 200
    except StockError as e:
        return _fail(e)
    except Exception:
        return _internal("Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    try:
        stock_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except StockError as e:
        return _fail(e)
    except Exception:
        return _internal("Failed to delete product")


@products_bp.post("/<int:product_id>/consumption")
@require_auth
def record_consumption_route(product_id: int):
    """
    Depot usage.

    Request body: {"quantity": int > 0}
    """
    data = request.get_json(silent=True) or {}
    try:
        _visible_product(product_id)
        product = stock_service.record_consumption(product_id, data.get("quantity"), g.current_user)
        return jsonify({"product": product.to_dict()}), 200
    except StockError as e:
        return _fail(e)
    except Exception:
        return _internal("Failed to record consumption")


@products_bp.post("/<int:product_id>/movements")
@require_auth
@require_role(ROLE_ADMIN)
def admin_movement_route(product_id: int):
    """
    Manual entry or exit.

    Request body: {"quantity": int > 0, "type": "admin_entry" | "admin_exit"}
    """
    data = request.get_json(silent=True) or {}
    try:
        product = stock_service.admin_movement(
            product_id, data.get("quantity"), data.get("type"), g.current_user
        )
        return jsonify({"product": product.to_dict()}), 200
    except StockError as e:
        return _fail(e)
    except Exception:
        return _internal("Failed to create admin movement")


@products_bp.post("/import")
@require_auth
@require_role(ROLE_ADMIN)
def import_products_route():
    """
    Create products from rows extracted by the AI assistant.

    Request body: {"products": [{"code", "name", "stock"}]}
    """
    data = request.get_json(silent=True) or {}
    try:
        created = stock_service.import_products(data.get("products"), g.current_user)
        return jsonify({"products": [p.to_dict() for p in created], "count": len(created)}), 201
    except StockError as e:
        return _fail(e)
    except Exception:
        return _internal("Failed to import products")
