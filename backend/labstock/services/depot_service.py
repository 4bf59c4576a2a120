# Overview: Service-layer operations for depots.

"""
Depots are identified by a short numeric string id chosen by the admin; it
is also the local part of the depot login email.

Products and submissions refer to a depot by *name*. Renaming a depot here
does not rewrite them.
"""
from __future__ import annotations

import re

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Depot
from ..errors import ConflictError, NotFoundError, ValidationError
from . import auth_service


DEPOT_ID_PATTERN = re.compile(r"^\d{1,16}$")
COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


def list_depots(*, active_only: bool = False) -> list[Depot]:
    q = Depot.query
    if active_only:
        q = q.filter(Depot.active.is_(True))
    return q.order_by(Depot.name.asc()).all()


def get_depot(depot_id: str) -> Depot:
    depot = db.session.get(Depot, str(depot_id))
    if depot is None:
        raise NotFoundError("Dépôt introuvable.")
    return depot


def _clean_name(name) -> str:
    name = str(name or "").strip()
    if not name:
        raise ValidationError("Le nom du dépôt est obligatoire.")
    return name


def _clean_color(color) -> str:
    color = str(color or "").strip()
    if not COLOR_PATTERN.match(color):
        raise ValidationError("La couleur doit être au format #RRGGBB.")
    return color


def create_depot(
    depot_id, name, *, color: str | None = None, active: bool = True, password: str | None = None
) -> Depot:
    """
    Create a depot. With a password, its "<id>@<domain>" login is created in
    the same transaction; a bad password or a taken email writes nothing.
    """
    depot_id = str(depot_id or "").strip()
    if not DEPOT_ID_PATTERN.match(depot_id):
        raise ValidationError("L'identifiant du dépôt doit être numérique.")
    name = _clean_name(name)

    if db.session.get(Depot, depot_id) is not None:
        raise ConflictError(f"Le dépôt {depot_id} existe déjà.")
    if Depot.query.filter_by(name=name).first() is not None:
        raise ConflictError(f"Un dépôt nommé « {name} » existe déjà.")

    depot = Depot(id=depot_id, name=name, active=bool(active))
    if color is not None:
        depot.color = _clean_color(color)

    account = auth_service.new_depot_account(depot, password) if password is not None else None

    db.session.add(depot)
    if account is not None:
        db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Le dépôt {depot_id} existe déjà.")
    return depot


def update_depot(depot_id: str, patch: dict) -> Depot:
    """Updates name, color and active; other keys are ignored."""
    depot = get_depot(depot_id)

    if "name" in patch:
        name = _clean_name(patch["name"])
        clash = Depot.query.filter(Depot.name == name, Depot.id != depot.id).first()
        if clash is not None:
            raise ConflictError(f"Un dépôt nommé « {name} » existe déjà.")
        depot.name = name
    if "color" in patch:
        depot.color = _clean_color(patch["color"])
    if "active" in patch:
        if not isinstance(patch["active"], bool):
            raise ValidationError("active doit être un booléen.")
        depot.active = patch["active"]

    db.session.commit()
    return depot
