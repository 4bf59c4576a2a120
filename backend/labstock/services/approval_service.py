# backend/labstock/services/approval_service.py
"""
Admin decision on inventory submissions.

approve():
1. pending -> approved, committed on its own. If that fails nothing else runs
   and the submission stays pending.
2. Every item is replayed as an absolute stock level through the stock
   mutator: delta = counted quantity - current stock, one "submission"
   movement per item, all sharing one INV reference. Each item commits on
   its own.
3. Items are independent: a failing item does not stop the others, and items
   already written stay written. If any item failed, the status flag alone
   is put back to pending and one aggregated RemoteFailure is raised.

reject() is a single pending -> rejected update with no stock effect.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventorySubmission, User
from ..errors import ConflictError, NotFoundError, RemoteFailure, StockError
from labstock.time_utils import utcnow
from . import ledger_service, stock_service
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import CHANGE_SUBMISSION, REF_INVENTORY
from .submission_service import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED


APPROVAL_FAILED_MESSAGE = (
    "Une erreur est survenue lors de la mise à jour des stocks. "
    "La soumission a été remise en attente."
)


def _load_for_update(submission_id: int) -> InventorySubmission:
    submission = lock_for_update(
        db.session.query(InventorySubmission).filter_by(id=submission_id)
    ).first()
    if submission is None:
        raise NotFoundError("Soumission introuvable.")
    return submission


def _transition(submission_id: int, *, to_status: str, user: User | None, allowed_from: set[str]) -> InventorySubmission:
    def _op():
        submission = _load_for_update(submission_id)
        if submission.status not in allowed_from:
            raise ConflictError(
                f"Impossible de passer une soumission « {submission.status} » à « {to_status} »."
            )
        submission.status = to_status
        if to_status == STATUS_PENDING:
            submission.reviewed_by_user_id = None
            submission.reviewed_at = None
        else:
            submission.reviewed_by_user_id = user.id if user else None
            submission.reviewed_at = utcnow()
        db.session.commit()
        return submission

    try:
        return run_with_retry(_op)
    except StockError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise RemoteFailure("Erreur lors de la mise à jour du statut de la soumission.") from exc


def _apply_item(item: dict, *, admin: User, ref: str, approver_name: str) -> None:
    def _op():
        product = stock_service.get_product(int(item["productId"]), lock=True)
        stock_service.set_stock_level(
            product,
            int(item["quantity"]),
            change_type=CHANGE_SUBMISSION,
            user=admin,
            ref=ref,
            user_name=approver_name,
        )
        db.session.commit()

    run_with_retry(_op)


def approve(submission_id: int, admin: User) -> InventorySubmission:
    submission = _transition(
        submission_id,
        to_status=STATUS_APPROVED,
        user=admin,
        allowed_from={STATUS_PENDING},
    )

    ref = ledger_service.generate_transaction_ref(REF_INVENTORY)
    approver_name = f"{stock_service.actor_name(admin)} (Approbation)"
    items = list(submission.items or [])

    failures = []
    for item in items:
        try:
            _apply_item(item, admin=admin, ref=ref, approver_name=approver_name)
        except (StockError, SQLAlchemyError, KeyError, TypeError, ValueError) as exc:
            db.session.rollback()
            current_app.logger.error(
                "Submission %s: stock update failed for product %s (ref %s): %s",
                submission_id, item.get("productId"), ref, exc,
            )
            failures.append({
                "productId": item.get("productId"),
                "name": item.get("name"),
                "error": getattr(exc, "message", None) or str(exc),
            })

    if failures:
        try:
            _transition(
                submission_id,
                to_status=STATUS_PENDING,
                user=None,
                allowed_from={STATUS_APPROVED},
            )
        except StockError:
            current_app.logger.exception(
                "Submission %s: could not revert status to pending", submission_id
            )
        raise RemoteFailure(APPROVAL_FAILED_MESSAGE, details=failures)

    return submission


def reject(submission_id: int, admin: User) -> InventorySubmission:
    return _transition(
        submission_id,
        to_status=STATUS_REJECTED,
        user=admin,
        allowed_from={STATUS_PENDING},
    )
