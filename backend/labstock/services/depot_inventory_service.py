# backend/labstock/services/depot_inventory_service.py
"""
Admin "set inventory" tool: replace the stock of a whole depot in one go.

Input is a list of (product code, new stock) pairs for one depot. For each
pair:
- the product row for (code, depot name) exists and its stock differs:
  write the new level with an "inventory_count" movement;
- it exists with the same stock: nothing is written;
- it does not exist and the new stock is > 0: a copy of the product (same
  code, attributes taken from another depot's row) is created in this depot
  with an "initial" movement.

Every pair commits on its own and all movements share one INV reference.
Pairs already written stay written when a later pair fails; the failures are
reported in the returned summary.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Depot, Product, User
from ..errors import NotFoundError, StockError, ValidationError
from ..validation import parse_quantity
from . import ledger_service, stock_service
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import CHANGE_INITIAL, CHANGE_INVENTORY_COUNT, REF_INVENTORY


COPIED_ATTRIBUTES = (
    "name", "cas", "formula", "unit", "alert_threshold",
    "image_url", "safety_sheet_url", "ghs_pictograms", "expiry_date",
)


@dataclass
class InventorySetResult:
    ref: str
    updated: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "transaction_ref": self.ref,
            "updated": self.updated,
            "created": self.created,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }


def parse_entries(raw_entries) -> list[tuple[str, int]]:
    """Validate [{"code", "newStock"}] before anything is written."""
    if not isinstance(raw_entries, list) or not raw_entries:
        raise ValidationError("Aucune ligne d'inventaire fournie.")

    entries = []
    seen = set()
    for idx, raw in enumerate(raw_entries, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Ligne {idx} : format invalide")
        code = str(raw.get("code") or "").strip()
        if not code:
            raise ValidationError(f"Ligne {idx} : code produit obligatoire")
        if code in seen:
            raise ValidationError(f"Ligne {idx} : code {code} en double")
        seen.add(code)
        new_stock = parse_quantity(
            raw.get("newStock", raw.get("new_stock")), "newStock", allow_zero=True
        )
        entries.append((code, new_stock))
    return entries


def _master_product(code: str) -> Product | None:
    return (
        Product.query.filter(Product.code == code)
        .order_by(Product.id.asc())
        .first()
    )


def _apply_entry(depot: Depot, code: str, new_stock: int, *, user: User, ref: str) -> str:
    """Returns "updated", "created" or "unchanged"."""
    def _op():
        product = lock_for_update(
            db.session.query(Product).filter_by(code=code, location=depot.name)
        ).first()

        if product is not None:
            if product.stock == new_stock:
                db.session.rollback()
                return "unchanged"
            stock_service.set_stock_level(
                product,
                new_stock,
                change_type=CHANGE_INVENTORY_COUNT,
                user=user,
                ref=ref,
            )
            db.session.commit()
            return "updated"

        if new_stock <= 0:
            db.session.rollback()
            return "unchanged"

        master = _master_product(code)
        if master is None:
            raise NotFoundError(f"Aucun produit de référence pour le code {code}.")

        copy = Product(code=code, location=depot.name, stock=new_stock)
        for attr in COPIED_ATTRIBUTES:
            value = getattr(master, attr)
            setattr(copy, attr, list(value) if isinstance(value, list) else value)
        db.session.add(copy)
        db.session.flush()

        ledger_service.record_movement(
            product_id=copy.id,
            product_name=copy.name,
            user_id=user.id,
            user_name=stock_service.actor_name(user),
            change_type=CHANGE_INITIAL,
            quantity_change=new_stock,
            old_level=0,
            new_level=new_stock,
            ref=ref,
            depot_name=depot.name,
        )
        db.session.commit()
        return "created"

    return run_with_retry(_op)


def set_depot_inventory(depot_id: str, raw_entries, user: User) -> InventorySetResult:
    depot = db.session.get(Depot, str(depot_id))
    if depot is None:
        raise NotFoundError("Dépôt introuvable.")

    entries = parse_entries(raw_entries)
    result = InventorySetResult(ref=ledger_service.generate_transaction_ref(REF_INVENTORY))

    for code, new_stock in entries:
        try:
            outcome = _apply_entry(depot, code, new_stock, user=user, ref=result.ref)
        except (StockError, SQLAlchemyError) as exc:
            db.session.rollback()
            current_app.logger.error(
                "Inventory set for depot %s: product %s failed (ref %s): %s",
                depot.id, code, result.ref, exc,
            )
            result.failed.append({
                "code": code,
                "error": getattr(exc, "message", None) or "Erreur lors de la mise à jour du stock.",
            })
            continue
        getattr(result, outcome).append(code)

    current_app.logger.info(
        "Inventory set for depot %s (ref %s): %d updated, %d created, %d unchanged, %d failed",
        depot.id, result.ref, len(result.updated), len(result.created),
        len(result.unchanged), len(result.failed),
    )
    return result
