from __future__ import annotations

from ..extensions import db
from labstock.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only ledger row for one stock change.

    LEDGER INVARIANTS:
    - new_stock_level = old_stock_level + quantity_change (checked in the DB too)
    - Rows are never updated or deleted.
    - product_id is not a foreign key: deleting a product keeps its history.

    product_name, user_name and depot_name are snapshots taken at write time.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "new_stock_level = old_stock_level + quantity_change",
            name="ck_stock_movements_arithmetic",
        ),
        db.Index("ix_stock_movements_created", "created_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    user_id = db.Column(db.Integer, nullable=True, index=True)
    user_name = db.Column(db.String(255), nullable=False)

    # initial | update | correction | import | submission | consumption
    # | admin_entry | admin_exit | inventory_count
    change_type = db.Column(db.String(32), nullable=False, index=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    old_stock_level = db.Column(db.Integer, nullable=False)
    new_stock_level = db.Column(db.Integer, nullable=False)

    depot_name = db.Column(db.String(120), nullable=True, index=True)

    # "<PFX>-<epoch ms>", shared by every row of one logical operation
    transaction_ref = db.Column(db.String(32), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} "
            f"{self.change_type} {self.quantity_change:+d} ref={self.transaction_ref}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "change_type": self.change_type,
            "quantity_change": self.quantity_change,
            "old_stock_level": self.old_stock_level,
            "new_stock_level": self.new_stock_level,
            "depot_name": self.depot_name,
            "transaction_ref": self.transaction_ref,
            "created_at": to_utc_z(self.created_at),
        }


class InventorySubmission(db.Model):
    """
    A depot's stock count awaiting admin review.

    items is a JSON list of {"productId", "name", "quantity"}; quantities are
    absolute counts, not deltas.

    LIFECYCLE:
    pending -> approved | rejected (terminal). A failed approval puts the
    record back to pending.
    """
    __tablename__ = "inventory_submissions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    depot_id = db.Column(db.String(16), db.ForeignKey("depots.id"), nullable=False, index=True)
    depot_name = db.Column(db.String(120), nullable=False)

    items = db.Column(db.JSON, nullable=False, default=list)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    depot = db.relationship("Depot", backref=db.backref("submissions", lazy=True))

    def __repr__(self) -> str:
        return f"<InventorySubmission id={self.id} depot_id={self.depot_id!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "depot_id": self.depot_id,
            "depot_name": self.depot_name,
            "items": list(self.items or []),
            "status": self.status,
            "submitted_by_user_id": self.submitted_by_user_id,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "created_at": to_utc_z(self.created_at),
        }
