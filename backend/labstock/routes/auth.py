# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/labstock/routes/auth.py
"""
Authentication API routes.

Depot accounts log in as "<depot id>@<domain>"; every other email is an
admin login (see auth_service).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..errors import StockError
from ..services import auth_service, session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_payload(user) -> dict:
    body = user.to_dict()
    if user.depot is not None:
        body["depot"] = user.depot.to_dict()
    return body


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Request body: {"email": str, "password": str}
    Token must be sent as "Authorization: Bearer <token>".
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.authenticate(data.get("email"), data.get("password"))
        _session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({"user": _user_payload(user), "token": token}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Erreur interne du serveur."}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": _user_payload(g.current_user)}), 200


@auth_bp.post("/password")
@require_auth
def change_password_route():
    """
    Change the current user's password (6 characters minimum).

    Every other session of the user is revoked.
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_password(g.current_user.id, data.get("password"))
        session_service.revoke_all_user_sessions(user.id, reason="Password changed")
        _session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({"ok": True, "token": token}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Password change failed")
        return jsonify({"error": "Erreur lors de la mise à jour du mot de passe. Veuillez réessayer."}), 500
