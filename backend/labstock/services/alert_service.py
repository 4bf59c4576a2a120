# Overview: Expiry alert configurations and the products they flag.

from __future__ import annotations

import re
from datetime import date, timedelta

from ..extensions import db
from ..models import AlertConfiguration, Product
from ..errors import NotFoundError, ValidationError
from ..validation import parse_int


ALERT_TYPE_EXPIRY = "expiry"
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_THRESHOLD_DAYS = 3650


def _clean_emails(value) -> list[str]:
    if not isinstance(value, list):
        raise ValidationError("emails_to_notify doit être une liste.")
    emails = []
    for raw in value:
        email = str(raw or "").strip()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(f"Adresse email invalide : {raw}")
        if email not in emails:
            emails.append(email)
    return emails


def _clean_threshold(value) -> int:
    days = parse_int(value, "threshold_days")
    if days < 1 or days > MAX_THRESHOLD_DAYS:
        raise ValidationError(f"threshold_days doit être compris entre 1 et {MAX_THRESHOLD_DAYS}.")
    return days


def _apply(alert: AlertConfiguration, patch: dict) -> None:
    if "threshold_days" in patch:
        alert.threshold_days = _clean_threshold(patch["threshold_days"])
    if "emails_to_notify" in patch:
        alert.emails_to_notify = _clean_emails(patch["emails_to_notify"])
    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationError("is_active doit être un booléen.")
        alert.is_active = patch["is_active"]


def list_alerts() -> list[AlertConfiguration]:
    return AlertConfiguration.query.order_by(AlertConfiguration.id.asc()).all()


def get_alert(alert_id: int) -> AlertConfiguration:
    alert = db.session.get(AlertConfiguration, alert_id)
    if alert is None:
        raise NotFoundError("Alerte introuvable.")
    return alert


def create_alert(patch: dict) -> AlertConfiguration:
    alert = AlertConfiguration(alert_type=ALERT_TYPE_EXPIRY, threshold_days=30, emails_to_notify=[])
    _apply(alert, patch)
    db.session.add(alert)
    db.session.commit()
    return alert


def update_alert(alert_id: int, patch: dict) -> AlertConfiguration:
    alert = get_alert(alert_id)
    _apply(alert, patch)
    db.session.commit()
    return alert


def delete_alert(alert_id: int) -> None:
    alert = get_alert(alert_id)
    db.session.delete(alert)
    db.session.commit()


def expiring_products(threshold_days: int, *, today: date | None = None, location: str | None = None) -> list[Product]:
    """Products with an expiry date on or before today + threshold_days (already expired included)."""
    today = today or date.today()
    limit = today + timedelta(days=threshold_days)
    q = Product.query.filter(Product.expiry_date.isnot(None), Product.expiry_date <= limit)
    if location is not None:
        q = q.filter(Product.location == location)
    return q.order_by(Product.expiry_date.asc(), Product.name.asc()).all()


def active_alert_report(*, today: date | None = None) -> list[dict]:
    """One entry per active alert with the products it currently flags."""
    report = []
    for alert in AlertConfiguration.query.filter_by(is_active=True).order_by(AlertConfiguration.id.asc()):
        products = expiring_products(alert.threshold_days, today=today)
        report.append({
            "alert": alert.to_dict(),
            "products": [p.to_dict() for p in products],
        })
    return report
