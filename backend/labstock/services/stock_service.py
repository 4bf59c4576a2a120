# Overview: Service-layer operations for product stock; the only code path that changes Product.stock.

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, User
from ..errors import InsufficientStockError, NotFoundError, RemoteFailure, StockError, ValidationError
from ..validation import parse_quantity
from . import ledger_service
from .ledger_service import (
    CHANGE_ADMIN_ENTRY,
    CHANGE_ADMIN_EXIT,
    CHANGE_CONSUMPTION,
    CHANGE_IMPORT,
    CHANGE_INITIAL,
    CHANGE_UPDATE,
    REF_CONSUMPTION,
    REF_CREATE,
    REF_EDIT,
    REF_ENTRY,
    REF_EXIT,
    REF_IMPORT,
)
from .concurrency import lock_for_update, run_with_retry
"""
Stock Mutator Invariants (authoritative)

- Product.stock never goes below zero; a change that would is rejected
  before anything is written.
- Every accepted stock change writes exactly one StockMovement, in the same
  DB transaction as the product write.
- Edits that leave stock unchanged write no movement.
- Product deletion writes no movement.
- Each mutation reads the product under a row lock and is retried when the
  product version changed underneath it.
"""


IMPORT_DEFAULT_LOCATION = "Non spécifié"
IMPORT_DEFAULT_UNIT = "unité"

PRODUCT_FIELDS = (
    "name", "code", "cas", "formula", "location", "stock", "unit",
    "alert_threshold", "image_url", "safety_sheet_url", "ghs_pictograms", "expiry_date",
)


def actor_name(user: User) -> str:
    return user.display_name or user.email


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Produit introuvable.")
    return product


def _mutate(op, failure_message: str):
    """Run op with retry; store errors surface as RemoteFailure after rollback."""
    try:
        return run_with_retry(op)
    except StockError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise RemoteFailure(failure_message) from exc


def set_stock_level(
    product: Product,
    new_level: int,
    *,
    change_type: str,
    user: User,
    ref: str,
    user_name: str | None = None,
):
    """
    Write an absolute stock level and append the matching movement.

    Flushes only; the caller owns the commit. Returns the movement.
    """
    if new_level < 0:
        raise InsufficientStockError("Le stock ne peut pas être négatif.")

    old_level = product.stock
    product.stock = new_level
    db.session.flush()

    return ledger_service.record_movement(
        product_id=product.id,
        product_name=product.name,
        user_id=user.id,
        user_name=user_name or actor_name(user),
        change_type=change_type,
        quantity_change=new_level - old_level,
        old_level=old_level,
        new_level=new_level,
        ref=ref,
        depot_name=product.location,
    )


def create_product(patch: dict, user: User) -> Product:
    """
    Create a product row and its "initial" movement (old level 0).

    patch must already be validated (see routes/products.py).
    """
    stock = patch.get("stock") or 0
    if stock < 0:
        raise ValidationError("Le stock ne peut pas être négatif.")

    def _op():
        product = Product(**{k: v for k, v in patch.items() if k in PRODUCT_FIELDS})
        product.stock = stock
        db.session.add(product)
        db.session.flush()

        ledger_service.record_movement(
            product_id=product.id,
            product_name=product.name,
            user_id=user.id,
            user_name=actor_name(user),
            change_type=CHANGE_INITIAL,
            quantity_change=stock,
            old_level=0,
            new_level=stock,
            ref=ledger_service.generate_transaction_ref(REF_CREATE),
            depot_name=product.location,
        )

        db.session.commit()
        return product

    return _mutate(_op, "Erreur lors de la création du produit.")


def update_product(product_id: int, patch: dict, user: User) -> Product:
    """
    Update product attributes; a stock change writes one "update" movement.
    """
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("Le stock ne peut pas être négatif.")

    def _op():
        product = get_product(product_id, lock=True)
        old_level = product.stock

        for key, value in patch.items():
            if key in PRODUCT_FIELDS and key != "stock":
                setattr(product, key, value)

        new_level = patch.get("stock", old_level)
        if new_level is None:
            new_level = old_level

        if new_level != old_level:
            set_stock_level(
                product,
                new_level,
                change_type=CHANGE_UPDATE,
                user=user,
                ref=ledger_service.generate_transaction_ref(REF_EDIT),
            )

        db.session.commit()
        return product

    return _mutate(_op, "Erreur lors de la mise à jour du produit.")


def delete_product(product_id: int) -> None:
    """Hard delete. The product's movements stay in the ledger; none is added."""
    def _op():
        product = get_product(product_id, lock=True)
        db.session.delete(product)
        db.session.commit()

    _mutate(_op, "Erreur lors de la suppression du produit.")


def record_consumption(product_id: int, quantity, user: User) -> Product:
    """
    Depot usage: stock decreases by quantity.

    Raises InsufficientStockError when quantity exceeds the current stock.
    """
    qty = parse_quantity(quantity)

    def _op():
        product = get_product(product_id, lock=True)
        if qty > product.stock:
            raise InsufficientStockError(
                "La quantité consommée ne peut pas dépasser le stock disponible."
            )

        set_stock_level(
            product,
            product.stock - qty,
            change_type=CHANGE_CONSUMPTION,
            user=user,
            ref=ledger_service.generate_transaction_ref(REF_CONSUMPTION),
        )
        db.session.commit()
        return product

    return _mutate(_op, "Erreur lors de l'enregistrement de la consommation.")


def admin_movement(product_id: int, quantity, movement_type: str, user: User) -> Product:
    """
    Manual admin entry (admin_entry, +quantity) or exit (admin_exit, -quantity).
    """
    if movement_type not in (CHANGE_ADMIN_ENTRY, CHANGE_ADMIN_EXIT):
        raise ValidationError("Le type de mouvement doit être admin_entry ou admin_exit.")
    qty = parse_quantity(quantity)
    change = qty if movement_type == CHANGE_ADMIN_ENTRY else -qty
    prefix = REF_ENTRY if movement_type == CHANGE_ADMIN_ENTRY else REF_EXIT

    def _op():
        product = get_product(product_id, lock=True)
        new_level = product.stock + change
        if new_level < 0:
            raise InsufficientStockError("Le stock ne peut pas être négatif.")

        set_stock_level(
            product,
            new_level,
            change_type=movement_type,
            user=user,
            ref=ledger_service.generate_transaction_ref(prefix),
        )
        db.session.commit()
        return product

    return _mutate(_op, "Erreur lors de la création du mouvement.")


def import_products(extracted: list[dict], user: User) -> list[Product]:
    """
    Bulk-create products from extracted rows ({"code", "name", "stock"}).

    All rows are validated first and written in one transaction; every
    created product gets an "import" movement under one shared reference.
    """
    if not isinstance(extracted, list) or not extracted:
        raise ValidationError("Aucun produit à importer.")

    rows = []
    for idx, raw in enumerate(extracted, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Ligne {idx} : format invalide")
        code = str(raw.get("code") or "").strip()
        name = str(raw.get("name") or "").strip()
        if not code or not name:
            raise ValidationError(f"Ligne {idx} : code et désignation sont obligatoires")
        stock = parse_quantity(raw.get("stock", 0), "stock", allow_zero=True)
        rows.append((code, name, stock))

    expiry = date.today() + timedelta(days=365)
    ref = ledger_service.generate_transaction_ref(REF_IMPORT)

    def _op():
        created = []
        for code, name, stock in rows:
            product = Product(
                name=name,
                code=code,
                cas="",
                formula="",
                location=IMPORT_DEFAULT_LOCATION,
                stock=stock,
                unit=IMPORT_DEFAULT_UNIT,
                alert_threshold=0,
                ghs_pictograms=[],
                expiry_date=expiry,
            )
            db.session.add(product)
            db.session.flush()
            ledger_service.record_movement(
                product_id=product.id,
                product_name=product.name,
                user_id=user.id,
                user_name=actor_name(user),
                change_type=CHANGE_IMPORT,
                quantity_change=stock,
                old_level=0,
                new_level=stock,
                ref=ref,
                depot_name=product.location,
            )
            created.append(product)
        db.session.commit()
        return created

    return _mutate(_op, "Erreur lors de l'import des produits.")


def list_products(*, location: str | None = None) -> list[Product]:
    q = Product.query
    if location is not None:
        q = q.filter(Product.location == location)
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def list_low_stock(*, location: str | None = None) -> list[Product]:
    q = Product.query.filter(Product.stock <= Product.alert_threshold)
    if location is not None:
        q = q.filter(Product.location == location)
    return q.order_by(Product.name.asc()).all()
