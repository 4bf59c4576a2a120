"""
Bulk depot inventory tests.
"""

import pytest

from labstock.errors import NotFoundError, ValidationError
from labstock.extensions import db
from labstock.models import Product, StockMovement
from labstock.services import depot_inventory_service

from conftest import make_product


def test_missing_product_is_created_from_master(db_session, depot_a, depot_b, admin_user):
    """Code absent from Labo A, newStock 5 -> new row in Labo A with an initial movement."""
    master = make_product(code="C-300", name="Toluène", location="Labo B", stock=2, cas="108-88-3")

    result = depot_inventory_service.set_depot_inventory(
        "43", [{"code": "C-300", "newStock": 5}], admin_user
    )

    assert result.created == ["C-300"]
    created = Product.query.filter_by(code="C-300", location="Labo A").one()
    assert created.id != master.id
    assert created.stock == 5
    assert created.name == "Toluène"
    assert created.cas == "108-88-3"

    row = StockMovement.query.filter_by(product_id=created.id).one()
    assert row.change_type == "initial"
    assert (row.old_stock_level, row.new_stock_level) == (0, 5)
    assert row.transaction_ref == result.ref

    # Master row untouched
    assert db_session.get(Product, master.id).stock == 2


def test_update_unchanged_and_shared_reference(db_session, depot_a, depot_b, admin_user):
    make_product(code="A-1", name="Acide", location="Labo A", stock=4)
    make_product(code="A-2", name="Base", location="Labo A", stock=9)
    make_product(code="B-1", name="Sel", location="Labo B", stock=1)

    result = depot_inventory_service.set_depot_inventory(
        "43",
        [
            {"code": "A-1", "newStock": 6},
            {"code": "A-2", "newStock": 9},
            {"code": "B-1", "newStock": 2},
        ],
        admin_user,
    )

    assert result.updated == ["A-1"]
    assert result.unchanged == ["A-2"]
    assert result.created == ["B-1"]
    assert result.failed == []

    rows = StockMovement.query.order_by(StockMovement.id.asc()).all()
    assert [r.change_type for r in rows] == ["inventory_count", "initial"]
    assert {r.transaction_ref for r in rows} == {result.ref}
    assert result.ref.startswith("INV-")


def test_zero_stock_for_absent_product_creates_nothing(db_session, depot_a, depot_b, admin_user):
    make_product(code="B-1", name="Sel", location="Labo B", stock=1)

    result = depot_inventory_service.set_depot_inventory(
        "43", [{"code": "B-1", "newStock": 0}], admin_user
    )

    assert result.unchanged == ["B-1"]
    assert Product.query.filter_by(location="Labo A").count() == 0


def test_failed_line_does_not_undo_others(db_session, depot_a, admin_user):
    make_product(code="A-1", name="Acide", location="Labo A", stock=4)

    result = depot_inventory_service.set_depot_inventory(
        "43",
        [{"code": "A-1", "newStock": 1}, {"code": "NOPE", "newStock": 3}],
        admin_user,
    )

    assert result.updated == ["A-1"]
    assert [f["code"] for f in result.failed] == ["NOPE"]
    assert Product.query.filter_by(code="A-1").one().stock == 1


def test_invalid_entries_rejected_before_writing(db_session, depot_a, admin_user):
    make_product(code="A-1", name="Acide", location="Labo A", stock=4)
    with pytest.raises(ValidationError):
        depot_inventory_service.set_depot_inventory(
            "43",
            [{"code": "A-1", "newStock": 1}, {"code": "A-2", "newStock": -1}],
            admin_user,
        )
    assert Product.query.filter_by(code="A-1").one().stock == 4
    assert StockMovement.query.count() == 0


def test_unknown_depot(db_session, admin_user):
    with pytest.raises(NotFoundError):
        depot_inventory_service.set_depot_inventory("99", [{"code": "A", "newStock": 1}], admin_user)


def test_every_entry_closes_its_transaction(db_session, depot_a, admin_user, monkeypatch):
    """Unchanged lines release their row lock instead of holding it until the next line."""
    make_product(code="A-1", name="Acide", location="Labo A", stock=4)
    make_product(code="A-2", name="Base", location="Labo A", stock=9)

    apply_entry = depot_inventory_service._apply_entry
    open_after = []

    def tracking(depot, code, new_stock, **kwargs):
        outcome = apply_entry(depot, code, new_stock, **kwargs)
        open_after.append((code, outcome, db.session().in_transaction()))
        return outcome

    monkeypatch.setattr(depot_inventory_service, "_apply_entry", tracking)

    depot_inventory_service.set_depot_inventory(
        "43",
        [{"code": "A-1", "newStock": 4}, {"code": "Z-9", "newStock": 0}, {"code": "A-2", "newStock": 1}],
        admin_user,
    )

    assert open_after == [
        ("A-1", "unchanged", False),
        ("Z-9", "unchanged", False),
        ("A-2", "updated", False),
    ]
