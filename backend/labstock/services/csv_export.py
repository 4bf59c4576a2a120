# Overview: CSV report builders (stock sheet, submissions, movement history).

"""
CSV conventions:
- UTF-8, comma separated, one fixed header row per report.
- Code and quantity columns are written bare; free-text columns are wrapped
  in double quotes with embedded quotes doubled.
"""
from __future__ import annotations

import re
from datetime import date

from ..models import InventorySubmission, Product, StockMovement
from labstock.time_utils import to_display
from .ledger_service import CHANGE_TYPE_LABELS


SUBMISSION_STAGING_HEADER = ["Code Produit", "Désignation", "Quantité Soumise", "Unité"]
SUBMISSION_INVENTORY_HEADER = ["Code", "Désignation", "Qte en stock"]
APPROVED_SUBMISSIONS_HEADER = ["Depot", "Date de soumission", "Code Produit", "Désignation", "Quantité Approuvée"]
STOCK_SHEET_HEADER = ["Code", "Désignation", "CAS", "Formule", "Stock", "Unité", "Seuil Alerte", "Date Expiration"]
MOVEMENTS_HEADER = ["Date", "Depot", "Produit", "Type Mouvement", "Quantite", "Par", "Nouveau Stock", "Reference"]

MISSING = "N/A"
BOM = "\ufeff"


def quoted(value) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def bare(value) -> str:
    return "" if value is None else str(value)


def render(header: list[str], rows: list[list[str]]) -> str:
    lines = [",".join(header)]
    lines.extend(",".join(row) for row in rows)
    return "\n".join(lines) + "\n"


def slug(text: str) -> str:
    return re.sub(r"\s+", "_", text.strip())


def export_filename(stem: str, label: str | None = None, day: date | None = None) -> str:
    day = day or date.today()
    parts = [stem]
    if label:
        parts.append(slug(label))
    parts.append(day.isoformat())
    return "_".join(parts) + ".csv"


def submission_staging_csv(items: list[dict], products_by_id: dict[int, Product]) -> str:
    """The file a depot receives when it submits its count."""
    rows = []
    for item in items:
        product = products_by_id.get(item["productId"])
        rows.append([
            bare(product.code if product else MISSING),
            quoted(item["name"]),
            bare(item["quantity"]),
            bare(product.unit if product else MISSING),
        ])
    return render(SUBMISSION_STAGING_HEADER, rows)


def submission_inventory_csv(submission: InventorySubmission, products_by_id: dict[int, Product]) -> str:
    rows = []
    for item in submission.items or []:
        product = products_by_id.get(item["productId"])
        rows.append([
            bare(product.code if product else MISSING),
            quoted(item["name"]),
            bare(item["quantity"]),
        ])
    return render(SUBMISSION_INVENTORY_HEADER, rows)


def approved_submissions_csv(
    submissions: list[InventorySubmission], products_by_id: dict[int, Product]
) -> str:
    rows = []
    for submission in submissions:
        submitted = to_display(submission.created_at)
        for item in submission.items or []:
            product = products_by_id.get(item["productId"])
            rows.append([
                quoted(submission.depot_name),
                bare(submitted),
                bare(product.code if product else MISSING),
                quoted(item["name"]),
                bare(item["quantity"]),
            ])
    return render(APPROVED_SUBMISSIONS_HEADER, rows)


def stock_sheet_csv(products: list[Product]) -> str:
    rows = [
        [
            bare(p.code),
            quoted(p.name),
            bare(p.cas),
            bare(p.formula),
            bare(p.stock),
            bare(p.unit),
            bare(p.alert_threshold),
            bare(p.expiry_date.isoformat() if p.expiry_date else ""),
        ]
        for p in products
    ]
    return render(STOCK_SHEET_HEADER, rows)


def movements_csv(movements: list[StockMovement], locations: dict[int, str]) -> str:
    """
    locations maps movement id -> depot label (see ledger_service.movement_location).
    Output starts with a UTF-8 BOM.
    """
    rows = [
        [
            bare(to_display(m.created_at)),
            quoted(locations.get(m.id, "Inconnu")),
            quoted(m.product_name),
            quoted(CHANGE_TYPE_LABELS.get(m.change_type, m.change_type)),
            bare(m.quantity_change),
            quoted(m.user_name),
            bare(m.new_stock_level),
            bare(m.transaction_ref),
        ]
        for m in movements
    ]
    return BOM + render(MOVEMENTS_HEADER, rows)
