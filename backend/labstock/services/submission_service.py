# backend/labstock/services/submission_service.py
"""
Depot inventory submissions.

WHY: A depot counts its shelves and sends the full list to the
administration, which approves (stock is replaced by the counted values) or
rejects it. See approval_service for the admin side.

LIFECYCLE:
1. Staging: SubmissionDraft collects one line per product (client-side state
   in the UI; rebuilt from the request body here).
2. PENDING: submit() persists the draft.
3. APPROVED / REJECTED: admin decision (approval_service).

Side effects of submit() (CSV export, chat notification to the support
conversation) run only after the submission is committed, and each one fails
on its own without touching the submission.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Depot, InventorySubmission, Product, User
from ..errors import ConflictError, NotFoundError, RemoteFailure, ValidationError
from ..validation import parse_int, parse_quantity
from . import chat_service, csv_export


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
VALID_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED}


@dataclass
class SubmissionDraft:
    """
    Staged (product, counted quantity) lines for one depot.

    One line per product; quantities are positive absolute counts.
    """
    lines: list[dict] = field(default_factory=list)

    def stage(self, product_id: int, name: str, quantity) -> dict:
        qty = parse_quantity(quantity)
        if any(line["productId"] == product_id for line in self.lines):
            raise ConflictError("Ce produit est déjà dans la liste.")
        line = {"productId": product_id, "name": name, "quantity": qty}
        self.lines.append(line)
        return line

    def unstage(self, product_id: int) -> None:
        before = len(self.lines)
        self.lines = [line for line in self.lines if line["productId"] != product_id]
        if len(self.lines) == before:
            raise NotFoundError("Ce produit n'est pas dans la liste.")

    @property
    def items(self) -> list[dict]:
        return [dict(line) for line in self.lines]

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class SubmitResult:
    submission: InventorySubmission
    csv_content: str | None
    csv_filename: str | None
    notification_sent: bool


def build_draft(depot: Depot, raw_items) -> SubmissionDraft:
    """
    Stage every requested line, checking each product exists and is located
    in the submitting depot.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Veuillez ajouter au moins un article.")

    draft = SubmissionDraft()
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Format d'article invalide.")
        product_id = parse_int(raw.get("productId", raw.get("product_id")), "productId")
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Produit {product_id} introuvable.")
        if product.location != depot.name:
            raise ValidationError(f"Le produit {product.name} n'appartient pas à ce dépôt.")
        draft.stage(product.id, product.name, raw.get("quantity"))
    return draft


def get_depot(depot_id: str) -> Depot:
    depot = db.session.get(Depot, str(depot_id))
    if depot is None:
        raise NotFoundError("Dépôt introuvable.")
    return depot


def submit(depot: Depot, draft: SubmissionDraft, user: User) -> SubmitResult:
    """
    Persist the draft as a pending submission, then export and notify.
    """
    if len(draft) == 0:
        raise ValidationError("Veuillez ajouter au moins un article.")
    if not depot.active:
        raise ValidationError("Ce dépôt est inactif.")

    items = draft.items
    submission = InventorySubmission(
        depot_id=depot.id,
        depot_name=depot.name,
        items=items,
        status=STATUS_PENDING,
        submitted_by_user_id=user.id,
    )
    try:
        db.session.add(submission)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise RemoteFailure("La soumission de l'inventaire a échoué.") from exc

    csv_content, csv_filename = _export_staging_csv(depot, items)
    notification_sent = _notify_support(depot, user, len(items))

    return SubmitResult(
        submission=submission,
        csv_content=csv_content,
        csv_filename=csv_filename,
        notification_sent=notification_sent,
    )


def _export_staging_csv(depot: Depot, items: list[dict]) -> tuple[str | None, str | None]:
    try:
        ids = [item["productId"] for item in items]
        products = {p.id: p for p in Product.query.filter(Product.id.in_(ids)).all()}
        content = csv_export.submission_staging_csv(items, products)
        return content, csv_export.export_filename("soumission_inventaire", depot.name)
    except Exception:
        current_app.logger.warning("Submission CSV export failed for depot %s", depot.id, exc_info=True)
        return None, None


def _notify_support(depot: Depot, user: User, item_count: int) -> bool:
    try:
        chat_service.send_message(
            sender_id=user.email,
            sender_name=user.first_name or depot.name,
            conversation_id=chat_service.conversation_id_for_depot(depot.id),
            content=(
                f"Nouvelle soumission d'inventaire avec {item_count} article(s) "
                f"prête pour validation."
            ),
        )
        return True
    except Exception:
        db.session.rollback()
        current_app.logger.warning("Submission chat notification failed for depot %s", depot.id, exc_info=True)
        return False


def get_submission(submission_id: int) -> InventorySubmission:
    submission = db.session.get(InventorySubmission, submission_id)
    if submission is None:
        raise NotFoundError("Soumission introuvable.")
    return submission


def list_submissions(*, depot_id: str | None = None, status: str | None = None) -> list[InventorySubmission]:
    """Newest first."""
    q = InventorySubmission.query
    if depot_id is not None:
        q = q.filter(InventorySubmission.depot_id == str(depot_id))
    if status is not None:
        if status not in VALID_STATUSES:
            raise ValidationError(f"Statut invalide : {status}")
        q = q.filter(InventorySubmission.status == status)
    return q.order_by(InventorySubmission.created_at.desc(), InventorySubmission.id.desc()).all()


def products_for_submissions(submissions: list[InventorySubmission]) -> dict[int, Product]:
    ids = {item["productId"] for s in submissions for item in (s.items or [])}
    if not ids:
        return {}
    return {p.id: p for p in Product.query.filter(Product.id.in_(ids)).all()}
