from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Date, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from labstock.errors import ValidationError
from labstock.time_utils import parse_iso_datetime


MAX_STOCK = 10_000_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} doit être un nombre entier")
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} doit être un nombre entier")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} doit être un nombre entier")
    raise ValidationError(f"{field} doit être un nombre entier")


def parse_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> int:
    qty = parse_int(value, field)
    if qty < 0 or (qty == 0 and not allow_zero):
        raise ValidationError("La quantité doit être un nombre entier positif.")
    if qty > MAX_STOCK:
        raise ValidationError(f"{field} ne peut pas dépasser {MAX_STOCK}")
    return qty


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} doit être une date ISO-8601")
            return dt.date() if dt else None
        raise ValidationError(f"{col.key} doit être une date")

    if isinstance(coltype, JSON):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"{col.key} doit être une liste de chaînes")
        return [v.strip() for v in value if v.strip()]

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Données JSON invalides")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Champs obligatoires manquants : {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Champ non autorisé : {k}")
        if k not in cols:
            raise ValidationError(f"Champ inconnu : {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} ne peut pas être vide")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and k in required:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} ne peut pas être vide")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} dépasse la longueur maximale de {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    if "stock" in patch and patch["stock"] is not None:
        if patch["stock"] < 0:
            raise ValidationError("Le stock ne peut pas être négatif.")
        if patch["stock"] > MAX_STOCK:
            raise ValidationError(f"stock ne peut pas dépasser {MAX_STOCK}")
    if "alert_threshold" in patch and patch["alert_threshold"] is not None:
        if patch["alert_threshold"] < 0:
            raise ValidationError("Le seuil d'alerte ne peut pas être négatif.")
