# Overview: Flask API route for the admin statistics dashboard.

from flask import Blueprint, jsonify

from ..services import statistics_service
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN


statistics_bp = Blueprint("statistics", __name__, url_prefix="/api/statistics")


@statistics_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def statistics_route():
    """
    Totals (products, stock, depots, submissions), stock per depot, top 5
    products by stock, movement count per type, products expiring within
    90 days and low-stock products.
    """
    return jsonify(statistics_service.dashboard()), 200
