# Overview: Flask API routes for inventory submissions; parses input and returns JSON responses.

# backend/labstock/routes/submissions.py
"""
Inventory submission API routes.

- Depot users submit their counted stock and see their own submissions.
- Admins list every submission, approve or reject pending ones, and export
  them as CSV.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..errors import NotFoundError, StockError
from ..services import approval_service, csv_export, submission_service
from ..decorators import can_access_depot, current_depot_scope, require_auth, require_role
from ..models.auth import ROLE_ADMIN
from . import csv_response


submissions_bp = Blueprint("submissions", __name__, url_prefix="/api/submissions")


def _fail(e: StockError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


def _visible_submission(submission_id: int):
    submission = submission_service.get_submission(submission_id)
    if not can_access_depot(submission.depot_id):
        raise NotFoundError("Soumission introuvable.")
    return submission


@submissions_bp.get("")
@require_auth
def list_submissions_route():
    """
    Newest first.

    Query params:
    - status: pending | approved | rejected
    - depot_id: admins only
    """
    depot_id, _depot_name = current_depot_scope()
    if depot_id is None:
        depot_id = request.args.get("depot_id") or None
    try:
        submissions = submission_service.list_submissions(
            depot_id=depot_id, status=request.args.get("status") or None
        )
    except StockError as e:
        return _fail(e)
    return jsonify({"submissions": [s.to_dict() for s in submissions]}), 200


@submissions_bp.post("")
@require_auth
def submit_route():
    """
    Submit a depot's stock count.

    Request body:
    {
        "items": [{"productId": int, "quantity": int > 0}],
        "depot_id": str   // admins only; depot users submit for their depot
    }

    The response carries the staging CSV export; a notification is posted
    to the depot's support conversation.
    """
    data = request.get_json(silent=True) or {}
    try:
        depot_id, _depot_name = current_depot_scope()
        if depot_id is None:
            depot_id = data.get("depot_id")
            if not depot_id:
                return jsonify({"error": "depot_id est obligatoire."}), 400

        depot = submission_service.get_depot(depot_id)
        draft = submission_service.build_draft(depot, data.get("items"))
        result = submission_service.submit(depot, draft, g.current_user)
    except StockError as e:
        return _fail(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to submit inventory")
        return jsonify({"error": "La soumission de l'inventaire a échoué."}), 500

    return jsonify({
        "submission": result.submission.to_dict(),
        "export": {"filename": result.csv_filename, "content": result.csv_content},
        "notification_sent": result.notification_sent,
    }), 201


@submissions_bp.get("/approved/export.csv")
@require_auth
@require_role(ROLE_ADMIN)
def export_approved_route():
    submissions = submission_service.list_submissions(status=submission_service.STATUS_APPROVED)
    products = submission_service.products_for_submissions(submissions)
    content = csv_export.approved_submissions_csv(submissions, products)
    return csv_response(content, csv_export.export_filename("soumissions_approuvees"))


@submissions_bp.get("/<int:submission_id>")
@require_auth
def get_submission_route(submission_id: int):
    try:
        submission = _visible_submission(submission_id)
    except StockError as e:
        return _fail(e)
    return jsonify({"submission": submission.to_dict()}), 200


@submissions_bp.get("/<int:submission_id>/export.csv")
@require_auth
def export_submission_route(submission_id: int):
    try:
        submission = _visible_submission(submission_id)
    except StockError as e:
        return _fail(e)
    products = submission_service.products_for_submissions([submission])
    content = csv_export.submission_inventory_csv(submission, products)
    return csv_response(
        content, csv_export.export_filename("inventaire", submission.depot_name)
    )


@submissions_bp.post("/<int:submission_id>/approve")
@require_auth
@require_role(ROLE_ADMIN)
def approve_route(submission_id: int):
    """
    Approve a pending submission: each counted quantity replaces the
    product's stock.

    On a partial failure the submission goes back to pending and the
    response lists the failed items under "details".
    """
    try:
        submission = approval_service.approve(submission_id, g.current_user)
    except StockError as e:
        return _fail(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve submission %s", submission_id)
        return jsonify({"error": approval_service.APPROVAL_FAILED_MESSAGE}), 500
    return jsonify({"submission": submission.to_dict()}), 200


@submissions_bp.post("/<int:submission_id>/reject")
@require_auth
@require_role(ROLE_ADMIN)
def reject_route(submission_id: int):
    try:
        submission = approval_service.reject(submission_id, g.current_user)
    except StockError as e:
        return _fail(e)
    return jsonify({"submission": submission.to_dict()}), 200
