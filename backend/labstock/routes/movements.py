# Overview: Flask API routes for the stock-movement ledger (read-only).

from flask import Blueprint, current_app, jsonify, request

from ..errors import StockError
from ..validation import parse_int
from ..services import csv_export, depot_service, ledger_service
from ..decorators import current_depot_scope, require_auth
from . import csv_response


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


def _query_movements():
    """
    Query params:
    - depot_id: restrict to one depot (forced to the caller's depot for depot users)
    - change_type, search (product name or transaction reference)
    - limit: default MOVEMENT_LIST_LIMIT
    """
    limit = request.args.get("limit")
    limit = parse_int(limit, "limit") if limit else None
    if limit is not None and limit < 1:
        limit = None
    change_type = request.args.get("change_type") or None
    search = request.args.get("search") or None

    depot_id, depot_name = current_depot_scope()
    if depot_id is None and request.args.get("depot_id"):
        depot_name = depot_service.get_depot(request.args["depot_id"]).name

    if depot_name is None:
        movements = ledger_service.list_movements(limit=limit, change_type=change_type, search=search)
    else:
        movements = ledger_service.list_movements_for_depot(
            depot_name, limit=limit, change_type=change_type, search=search
        )
    return movements


@movements_bp.get("")
@require_auth
def list_movements_route():
    try:
        movements = _query_movements()
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@movements_bp.get("/export.csv")
@require_auth
def export_movements_route():
    try:
        movements = _query_movements()
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code

    attribution = current_app.config.get(
        "MOVEMENT_DEPOT_ATTRIBUTION", ledger_service.ATTRIBUTION_CURRENT_LOCATION
    )
    products = ledger_service.product_locations(movements)
    locations = {
        m.id: ledger_service.movement_location(m, products, attribution) for m in movements
    }
    content = csv_export.movements_csv(movements, locations)
    return csv_response(content, csv_export.export_filename("historique_mouvements"))
