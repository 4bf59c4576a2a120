from __future__ import annotations

from ..extensions import db
from labstock.time_utils import to_utc_z


class Depot(db.Model):
    """
    A storage room or laboratory holding stock.

    The id is a short numeric string that doubles as the depot's login
    namespace ("<id>@<domain>").

    NAME AS JOIN KEY:
    Product.location and InventorySubmission.depot_name hold the depot *name*,
    not its id. Renaming a depot does not rewrite those columns, so historical
    rows keep pointing at the old name.
    """
    __tablename__ = "depots"

    id = db.Column(db.String(16), primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    color = db.Column(db.String(32), nullable=False, default="#1e3a8a")
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Depot id={self.id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "active": self.active,
            "role": "depot",
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    One chemical held in one depot.

    The same chemical appears once per depot: rows share `code` and differ by
    `location` (the depot name).

    STOCK INVARIANT:
    stock >= 0 always. Stock is changed only through stock_service, which
    writes the matching StockMovement in the same transaction.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_code_location", "code", "location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    code = db.Column(db.String(64), nullable=False, index=True)
    cas = db.Column(db.String(32), nullable=False, default="")
    formula = db.Column(db.String(128), nullable=False, default="")

    # Depot name, denormalized
    location = db.Column(db.String(120), nullable=False, index=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(32), nullable=False, default="unité")
    alert_threshold = db.Column(db.Integer, nullable=False, default=0)

    image_url = db.Column(db.String(1024), nullable=True)
    safety_sheet_url = db.Column(db.String(1024), nullable=True)
    ghs_pictograms = db.Column(db.JSON, nullable=False, default=list)
    expiry_date = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} location={self.location!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.alert_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "cas": self.cas,
            "formula": self.formula,
            "location": self.location,
            "stock": self.stock,
            "unit": self.unit,
            "alert_threshold": self.alert_threshold,
            "image_url": self.image_url,
            "safety_sheet_url": self.safety_sheet_url,
            "ghs_pictograms": list(self.ghs_pictograms or []),
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
