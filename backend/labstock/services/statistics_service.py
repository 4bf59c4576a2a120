# Overview: Service-layer aggregates for the admin statistics dashboard.

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Depot, InventorySubmission, Product, StockMovement
from .ledger_service import CHANGE_TYPE_LABELS


EXPIRY_WINDOW_DAYS = 90
TOP_PRODUCTS_LIMIT = 5
DEFAULT_DEPOT_COLOR = "#cccccc"


def stock_by_depot() -> list[dict]:
    """Total stock per product location, largest first."""
    colors = dict(db.session.query(Depot.name, Depot.color).all())
    rows = (
        db.session.query(Product.location, func.coalesce(func.sum(Product.stock), 0))
        .filter(Product.location.isnot(None), Product.location != "")
        .group_by(Product.location)
        .all()
    )
    items = [
        {
            "depot_name": location,
            "stock": int(total),
            "color": colors.get(location) or DEFAULT_DEPOT_COLOR,
        }
        for location, total in rows
    ]
    return sorted(items, key=lambda item: (-item["stock"], item["depot_name"]))


def top_products_by_stock(limit: int = TOP_PRODUCTS_LIMIT) -> list[Product]:
    return (
        Product.query.order_by(Product.stock.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )


def movement_type_distribution() -> list[dict]:
    rows = (
        db.session.query(StockMovement.change_type, func.count(StockMovement.id))
        .group_by(StockMovement.change_type)
        .all()
    )
    items = [
        {
            "change_type": change_type,
            "label": CHANGE_TYPE_LABELS.get(change_type, change_type),
            "count": count,
        }
        for change_type, count in rows
    ]
    return sorted(items, key=lambda item: (-item["count"], item["change_type"]))


def products_near_expiry(*, today: date | None = None, days: int = EXPIRY_WINDOW_DAYS) -> list[Product]:
    """Expiry between today and today + days, both inclusive. Already expired products are left out."""
    today = today or date.today()
    return (
        Product.query.filter(
            Product.expiry_date.isnot(None),
            Product.expiry_date >= today,
            Product.expiry_date <= today + timedelta(days=days),
        )
        .order_by(Product.expiry_date.asc(), Product.id.asc())
        .all()
    )


def dashboard(*, today: date | None = None) -> dict:
    total_products, total_stock = db.session.query(
        func.count(Product.id), func.coalesce(func.sum(Product.stock), 0)
    ).one()

    low_stock = (
        Product.query.filter(Product.stock <= Product.alert_threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )

    return {
        "totals": {
            "products": total_products,
            "stock": int(total_stock),
            "depots": db.session.query(func.count(Depot.id)).scalar(),
            "submissions": db.session.query(func.count(InventorySubmission.id)).scalar(),
        },
        "stock_by_depot": stock_by_depot(),
        "top_products": [
            {"id": p.id, "code": p.code, "name": p.name, "stock": p.stock}
            for p in top_products_by_stock()
        ],
        "movement_types": movement_type_distribution(),
        "near_expiry": [p.to_dict() for p in products_near_expiry(today=today)],
        "low_stock": [p.to_dict() for p in low_stock],
    }
