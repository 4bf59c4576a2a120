# Overview: Admin management of user profiles.

from __future__ import annotations

from ..extensions import db
from ..models import SessionToken, User
from ..models.auth import STATUS_ACTIVE, VALID_ROLES, VALID_STATUSES
from ..errors import ConflictError, NotFoundError, ValidationError
from . import session_service


PROFILE_FIELDS = ("first_name", "last_name", "service", "phone")


def list_users(*, role: str | None = None, status: str | None = None) -> list[User]:
    q = User.query
    if role is not None:
        q = q.filter(User.role == role)
    if status is not None:
        q = q.filter(User.status == status)
    return q.order_by(User.last_name.asc(), User.first_name.asc(), User.id.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("Utilisateur introuvable.")
    return user


def _check_role(role) -> str:
    if role not in VALID_ROLES:
        raise ValidationError(f"Rôle invalide : {role}")
    return role


def _check_status(status) -> str:
    if status not in VALID_STATUSES:
        raise ValidationError(f"Statut invalide : {status}")
    return status


def update_user(user_id: int, patch: dict, *, acting_user: User) -> User:
    user = get_user(user_id)

    for key in PROFILE_FIELDS:
        if key in patch:
            setattr(user, key, str(patch[key] or "").strip())
    if "role" in patch:
        user.role = _check_role(patch["role"])
    if "status" in patch:
        new_status = _check_status(patch["status"])
        if user.id == acting_user.id and new_status != STATUS_ACTIVE:
            raise ConflictError("Vous ne pouvez pas désactiver votre propre compte.")
        user.status = new_status

    db.session.commit()

    if user.status != STATUS_ACTIVE:
        session_service.revoke_all_user_sessions(user.id, reason="Account deactivated")
    return user


def bulk_update_users(user_ids, patch: dict, *, acting_user: User) -> int:
    """Apply role and/or status to many users in one transaction. Returns the count."""
    if not isinstance(user_ids, list) or not user_ids:
        raise ValidationError("Aucun utilisateur sélectionné.")
    values = {}
    if "role" in patch:
        values["role"] = _check_role(patch["role"])
    if "status" in patch:
        values["status"] = _check_status(patch["status"])
    if not values:
        raise ValidationError("Aucune modification demandée.")
    if acting_user.id in user_ids and values.get("status", STATUS_ACTIVE) != STATUS_ACTIVE:
        raise ConflictError("Vous ne pouvez pas désactiver votre propre compte.")

    users = User.query.filter(User.id.in_(user_ids)).all()
    for user in users:
        for key, value in values.items():
            setattr(user, key, value)
    db.session.commit()

    if values.get("status", STATUS_ACTIVE) != STATUS_ACTIVE:
        for user in users:
            session_service.revoke_all_user_sessions(user.id, reason="Account deactivated")
    return len(users)


def delete_user(user_id: int, *, acting_user: User) -> None:
    user = get_user(user_id)
    if user.id == acting_user.id:
        raise ConflictError("Vous ne pouvez pas supprimer votre propre compte.")
    SessionToken.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.delete(user)
    db.session.commit()
