# Overview: Flask API routes for depots and the depot inventory tool.

from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..errors import StockError
from ..services import depot_inventory_service, depot_service
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN


depots_bp = Blueprint("depots", __name__, url_prefix="/api/depots")


def _fail(e: StockError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


@depots_bp.get("")
@require_auth
def list_depots_route():
    active_only = request.args.get("active") in ("1", "true")
    depots = depot_service.list_depots(active_only=active_only)
    return jsonify({"depots": [d.to_dict() for d in depots]}), 200


@depots_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_depot_route():
    """
    Create a depot.

    Request body:
    {
        "id": str (digits),
        "name": str,
        "color": "#RRGGBB" (optional),
        "password": str (optional; creates the "<id>@<domain>" login)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        depot = depot_service.create_depot(
            data.get("id"),
            data.get("name"),
            color=data.get("color"),
            active=data.get("active", True),
            password=data.get("password") or None,
        )
        body = {"depot": depot.to_dict()}
        if depot.accounts:
            body["account"] = depot.accounts[0].to_dict()
        return jsonify(body), 201
    except StockError as e:
        return _fail(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create depot")
        return jsonify({"error": "Erreur interne du serveur."}), 500


@depots_bp.put("/<depot_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_depot_route(depot_id: str):
    """Update name, color or active. A rename does not touch existing products."""
    data = request.get_json(silent=True) or {}
    try:
        depot = depot_service.update_depot(depot_id, data)
        return jsonify({"depot": depot.to_dict()}), 200
    except StockError as e:
        return _fail(e)


@depots_bp.post("/<depot_id>/inventory")
@require_auth
@require_role(ROLE_ADMIN)
def set_inventory_route(depot_id: str):
    """
    Replace the stock of a depot.

    Request body: {"items": [{"code": str, "newStock": int >= 0}]}

    Returns a summary of updated / created / unchanged / failed codes; the
    status is 207 when some lines failed.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = depot_inventory_service.set_depot_inventory(
            depot_id, data.get("items"), g.current_user
        )
    except StockError as e:
        return _fail(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set inventory for depot %s", depot_id)
        return jsonify({"error": "Erreur lors de la mise à jour de l'inventaire."}), 500
    return jsonify(result.to_dict()), 207 if result.failed else 200
