# Overview: Change feed endpoint; clients poll it and re-fetch changed tables.

from flask import Blueprint, jsonify

from ..services.change_feed import feed
from ..decorators import require_auth


changes_bp = Blueprint("changes", __name__, url_prefix="/api/changes")


@changes_bp.get("")
@require_auth
def versions_route():
    """{"versions": {table name: version}}; a version only grows."""
    return jsonify({"versions": feed.versions()}), 200
