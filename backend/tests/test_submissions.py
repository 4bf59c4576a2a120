"""
Submission workflow and approval engine tests.

Verifies:
- Staging rules (positive quantity, one line per product)
- Submit persists a pending submission, then exports and notifies
- A failed notification never blocks the submission
- Approval replaces stock with the counted quantity, one shared reference
- Partial approval failure reverts the status to pending only
- Approved / rejected submissions are terminal
"""

import pytest

from labstock.errors import ConflictError, NotFoundError, RemoteFailure, ValidationError
from labstock.models import ChatMessage, InventorySubmission, Product, StockMovement
from labstock.services import approval_service, chat_service, submission_service
from labstock.services.submission_service import SubmissionDraft

from conftest import make_product


def _submit(depot, user, lines):
    draft = SubmissionDraft()
    for product, quantity in lines:
        draft.stage(product.id, product.name, quantity)
    return submission_service.submit(depot, draft, user).submission


class TestDraft:

    def test_stage_and_unstage(self):
        draft = SubmissionDraft()
        draft.stage(1, "Acétone", 4)
        draft.stage(2, "Éthanol", "7")
        draft.unstage(1)
        assert draft.items == [{"productId": 2, "name": "Éthanol", "quantity": 7}]

    def test_same_product_cannot_be_staged_twice(self):
        draft = SubmissionDraft()
        draft.stage(1, "Acétone", 4)
        with pytest.raises(ConflictError):
            draft.stage(1, "Acétone", 5)
        assert len(draft) == 1

    @pytest.mark.parametrize("quantity", [0, -2, "", "1.5", None])
    def test_quantity_must_be_positive_integer(self, quantity):
        with pytest.raises(ValidationError):
            SubmissionDraft().stage(1, "Acétone", quantity)

    def test_unstage_missing_line(self):
        with pytest.raises(NotFoundError):
            SubmissionDraft().unstage(3)


class TestSubmit:

    def test_submit_persists_exports_and_notifies(self, db_session, depot_a, depot_user, product):
        draft = SubmissionDraft()
        draft.stage(product.id, product.name, 15)

        result = submission_service.submit(depot_a, draft, depot_user)

        submission = db_session.get(InventorySubmission, result.submission.id)
        assert submission.status == "pending"
        assert submission.depot_name == "Labo A"
        assert submission.items == [{"productId": product.id, "name": "Acétone", "quantity": 15}]

        assert result.csv_content.splitlines() == [
            "Code Produit,Désignation,Quantité Soumise,Unité",
            'C-100,"Acétone",15,L',
        ]
        assert result.csv_filename.startswith("soumission_inventaire_Labo_A_")

        messages = chat_service.fetch_messages("depot_43")
        assert len(messages) == 1
        assert messages[0].content == (
            "Nouvelle soumission d'inventaire avec 1 article(s) prête pour validation."
        )
        assert result.notification_sent is True

        # Submitting never touches stock
        assert db_session.get(Product, product.id).stock == 10
        assert StockMovement.query.count() == 0

    def test_failed_notification_does_not_block_submission(self, db_session, depot_a, depot_user, product, monkeypatch):
        def boom(**kwargs):
            raise RuntimeError("chat down")

        monkeypatch.setattr(chat_service, "send_message", boom)

        draft = SubmissionDraft()
        draft.stage(product.id, product.name, 3)
        result = submission_service.submit(depot_a, draft, depot_user)

        assert result.notification_sent is False
        assert InventorySubmission.query.count() == 1
        assert ChatMessage.query.count() == 0

    def test_empty_draft_rejected(self, db_session, depot_a, depot_user):
        with pytest.raises(ValidationError):
            submission_service.submit(depot_a, SubmissionDraft(), depot_user)
        assert InventorySubmission.query.count() == 0

    def test_build_draft_rejects_product_of_other_depot(self, db_session, depot_a, depot_b):
        other = make_product(code="B-1", name="Autre", location="Labo B")
        with pytest.raises(ValidationError):
            submission_service.build_draft(depot_a, [{"productId": other.id, "quantity": 1}])

    def test_list_is_newest_first_and_depot_scoped(self, db_session, depot_a, depot_b, depot_user, depot_b_user, product):
        other = make_product(code="B-1", name="Autre", location="Labo B")
        first = _submit(depot_a, depot_user, [(product, 1)])
        second = _submit(depot_a, depot_user, [(product, 2)])
        _submit(depot_b, depot_b_user, [(other, 3)])

        ids = [s.id for s in submission_service.list_submissions(depot_id="43")]
        assert ids == [second.id, first.id]
        assert len(submission_service.list_submissions()) == 3


class TestApprove:

    def test_approve_replaces_stock(self, db_session, depot_a, depot_user, admin_user, product):
        """P1 stock 7, counted 15 -> stock 15, movement +8."""
        product.stock = 7
        db_session.commit()
        submission = _submit(depot_a, depot_user, [(product, 15)])

        approved = approval_service.approve(submission.id, admin_user)

        assert approved.status == "approved"
        assert approved.reviewed_by_user_id == admin_user.id
        assert db_session.get(Product, product.id).stock == 15

        row = StockMovement.query.filter_by(product_id=product.id).one()
        assert (row.old_stock_level, row.new_stock_level, row.quantity_change) == (7, 15, 8)
        assert row.change_type == "submission"
        assert row.user_name == "Amel Ben Salah (Approbation)"

    def test_batch_shares_one_reference(self, db_session, depot_a, depot_user, admin_user, product):
        second = make_product(code="C-101", name="Éthanol", stock=3)
        third = make_product(code="C-102", name="Méthanol", stock=8)
        submission = _submit(depot_a, depot_user, [(product, 1), (second, 4), (third, 8)])

        approval_service.approve(submission.id, admin_user)

        refs = {m.transaction_ref for m in StockMovement.query.all()}
        assert len(refs) == 1
        assert refs.pop().startswith("INV-")
        assert StockMovement.query.count() == 3

    def test_partial_failure_reverts_status_only(self, db_session, depot_a, depot_user, admin_user, product):
        doomed = make_product(code="C-101", name="Éthanol", stock=3)
        later = make_product(code="C-102", name="Méthanol", stock=8)
        submission = _submit(depot_a, depot_user, [(product, 12), (doomed, 4), (later, 1)])

        db_session.delete(db_session.get(Product, doomed.id))
        db_session.commit()

        with pytest.raises(RemoteFailure) as excinfo:
            approval_service.approve(submission.id, admin_user)

        assert "remise en attente" in excinfo.value.message
        assert [d["productId"] for d in excinfo.value.details] == [doomed.id]

        assert db_session.get(InventorySubmission, submission.id).status == "pending"
        # Siblings were written and stay written
        assert db_session.get(Product, product.id).stock == 12
        assert db_session.get(Product, later.id).stock == 1
        assert StockMovement.query.count() == 2

    def test_approve_terminal_states(self, db_session, depot_a, depot_user, admin_user, product):
        submission = _submit(depot_a, depot_user, [(product, 2)])
        approval_service.approve(submission.id, admin_user)

        with pytest.raises(ConflictError):
            approval_service.approve(submission.id, admin_user)
        with pytest.raises(ConflictError):
            approval_service.reject(submission.id, admin_user)

        assert StockMovement.query.count() == 1
        assert db_session.get(InventorySubmission, submission.id).status == "approved"

    def test_reject_has_no_stock_effect(self, db_session, depot_a, depot_user, admin_user, product):
        submission = _submit(depot_a, depot_user, [(product, 2)])

        rejected = approval_service.reject(submission.id, admin_user)

        assert rejected.status == "rejected"
        assert db_session.get(Product, product.id).stock == 10
        assert StockMovement.query.count() == 0
        with pytest.raises(ConflictError):
            approval_service.approve(submission.id, admin_user)

    def test_unknown_submission(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            approval_service.approve(12345, admin_user)
