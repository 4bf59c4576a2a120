# Overview: Service-layer operations for the stock-movement ledger.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import StockMovement, Product
from ..errors import ValidationError
from labstock.time_utils import epoch_millis
"""
Stock Movement Ledger Invariants (authoritative)

- Append-only: one row per accepted stock change. No update/delete API.
- new_stock_level = old_stock_level + quantity_change for every row.
- transaction_ref = "<PFX>-<epoch ms>" groups the rows of one logical
  operation. It is a trace tag, not a key: two operations in the same
  millisecond share a value.
- record_movement() only flushes. The caller commits it together with the
  product write it describes.
"""


CHANGE_INITIAL = "initial"
CHANGE_UPDATE = "update"
CHANGE_CORRECTION = "correction"
CHANGE_IMPORT = "import"
CHANGE_SUBMISSION = "submission"
CHANGE_CONSUMPTION = "consumption"
CHANGE_ADMIN_ENTRY = "admin_entry"
CHANGE_ADMIN_EXIT = "admin_exit"
CHANGE_INVENTORY_COUNT = "inventory_count"

CHANGE_TYPES = {
    CHANGE_INITIAL,
    CHANGE_UPDATE,
    CHANGE_CORRECTION,
    CHANGE_IMPORT,
    CHANGE_SUBMISSION,
    CHANGE_CONSUMPTION,
    CHANGE_ADMIN_ENTRY,
    CHANGE_ADMIN_EXIT,
    CHANGE_INVENTORY_COUNT,
}

CHANGE_TYPE_LABELS = {
    CHANGE_INITIAL: "Stock Initial",
    CHANGE_UPDATE: "Mise à jour manuelle",
    CHANGE_CORRECTION: "Correction",
    CHANGE_IMPORT: "Import CSV",
    CHANGE_SUBMISSION: "Soumission Dépôt",
    CHANGE_CONSUMPTION: "Sortie Dépôt",
    CHANGE_ADMIN_ENTRY: "Entrée Admin",
    CHANGE_ADMIN_EXIT: "Sortie Admin",
    CHANGE_INVENTORY_COUNT: "Inventaire Admin",
}

REF_CREATE = "CRE"
REF_EDIT = "MAJ"
REF_CONSUMPTION = "CON"
REF_ENTRY = "ENT"
REF_EXIT = "SOR"
REF_INVENTORY = "INV"
REF_IMPORT = "IMP"

ATTRIBUTION_CURRENT_LOCATION = "current_location"
ATTRIBUTION_SNAPSHOT = "snapshot"


def generate_transaction_ref(prefix: str) -> str:
    return f"{prefix.upper()}-{epoch_millis()}"


def record_movement(
    *,
    product_id: int,
    product_name: str,
    user_id: int | None,
    user_name: str,
    change_type: str,
    quantity_change: int,
    old_level: int,
    new_level: int,
    ref: str,
    depot_name: str | None = None,
) -> StockMovement:
    """
    Append one immutable ledger row.

    Raises ValidationError if the row would break the ledger arithmetic or
    uses an unknown change type. Store errors propagate unchanged.
    """
    if change_type not in CHANGE_TYPES:
        raise ValidationError(f"Type de mouvement inconnu : {change_type}")
    if new_level != old_level + quantity_change:
        raise ValidationError(
            f"Mouvement incohérent : {old_level} + ({quantity_change}) != {new_level}"
        )
    if new_level < 0:
        raise ValidationError("Le stock ne peut pas être négatif.")

    mv = StockMovement(
        product_id=product_id,
        product_name=product_name,
        user_id=user_id,
        user_name=user_name,
        change_type=change_type,
        quantity_change=quantity_change,
        old_stock_level=old_level,
        new_stock_level=new_level,
        depot_name=depot_name,
        transaction_ref=ref,
    )
    db.session.add(mv)
    db.session.flush()
    return mv


def _recent_query():
    return StockMovement.query.order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    )


def _apply_filters(q, *, change_type: str | None, search: str | None):
    if change_type:
        q = q.filter(StockMovement.change_type == change_type)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                StockMovement.product_name.ilike(pattern),
                StockMovement.transaction_ref.ilike(pattern),
            )
        )
    return q


def list_movements(
    *,
    limit: int | None = None,
    change_type: str | None = None,
    search: str | None = None,
) -> list[StockMovement]:
    """Most recent movements first."""
    if limit is None:
        limit = current_app.config.get("MOVEMENT_LIST_LIMIT", 500)
    q = _apply_filters(_recent_query(), change_type=change_type, search=search)
    return q.limit(limit).all()


def list_movements_for_depot(
    depot_name: str,
    *,
    limit: int | None = None,
    change_type: str | None = None,
    search: str | None = None,
    attribution: str | None = None,
) -> list[StockMovement]:
    """
    Movements belonging to one depot.

    With the default "current_location" attribution a movement belongs to the
    depot where its product is located *now*: moving a product to another
    depot moves its whole history with it, and movements of deleted products
    drop out of every depot view. "snapshot" uses the depot recorded on the
    movement row instead.
    """
    if limit is None:
        limit = current_app.config.get("MOVEMENT_LIST_LIMIT", 500)
    if attribution is None:
        attribution = current_app.config.get(
            "MOVEMENT_DEPOT_ATTRIBUTION", ATTRIBUTION_CURRENT_LOCATION
        )

    q = _apply_filters(_recent_query(), change_type=change_type, search=search)

    if attribution == ATTRIBUTION_SNAPSHOT:
        q = q.filter(StockMovement.depot_name == depot_name)
    else:
        product_ids = db.session.query(Product.id).filter(Product.location == depot_name)
        q = q.filter(StockMovement.product_id.in_(product_ids))

    return q.limit(limit).all()


def movement_location(movement: StockMovement, product_locations: dict[int, str], attribution: str) -> str:
    """Depot label shown for a movement in reports."""
    if attribution == ATTRIBUTION_SNAPSHOT:
        return movement.depot_name or "Inconnu"
    return product_locations.get(movement.product_id, "Inconnu")


def product_locations(movements: list[StockMovement]) -> dict[int, str]:
    ids = {m.product_id for m in movements}
    if not ids:
        return {}
    rows = db.session.query(Product.id, Product.location).filter(Product.id.in_(ids)).all()
    return {pid: loc for pid, loc in rows}
