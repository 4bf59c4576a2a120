"""
Movement ledger reads and CSV reports.
"""

import pytest

from labstock.errors import ValidationError
from labstock.models import StockMovement
from labstock.services import csv_export, ledger_service, stock_service
from labstock.services.ledger_service import ATTRIBUTION_CURRENT_LOCATION, ATTRIBUTION_SNAPSHOT

from conftest import make_product


class TestRecordMovement:

    def test_rejects_broken_arithmetic(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                product_id=1, product_name="X", user_id=None, user_name="Système",
                change_type="update", quantity_change=3, old_level=1, new_level=5, ref="MAJ-1",
            )

    def test_rejects_unknown_change_type(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                product_id=1, product_name="X", user_id=None, user_name="Système",
                change_type="theft", quantity_change=1, old_level=1, new_level=2, ref="MAJ-1",
            )

    def test_reference_format(self):
        ref = ledger_service.generate_transaction_ref("inv")
        prefix, millis = ref.split("-")
        assert prefix == "INV"
        assert millis.isdigit() and len(millis) >= 13


class TestDepotAttribution:

    @pytest.fixture
    def moved_product(self, db_session, depot_a, depot_b, admin_user):
        product = make_product(location="Labo A")
        stock_service.admin_movement(product.id, 2, "admin_entry", admin_user)
        stock_service.update_product(product.id, {"location": "Labo B"}, admin_user)
        return product

    def test_current_location_follows_product(self, moved_product):
        in_b = ledger_service.list_movements_for_depot("Labo B", attribution=ATTRIBUTION_CURRENT_LOCATION)
        in_a = ledger_service.list_movements_for_depot("Labo A", attribution=ATTRIBUTION_CURRENT_LOCATION)
        assert len(in_b) == 1
        assert in_a == []

    def test_snapshot_keeps_original_depot(self, moved_product):
        in_a = ledger_service.list_movements_for_depot("Labo A", attribution=ATTRIBUTION_SNAPSHOT)
        in_b = ledger_service.list_movements_for_depot("Labo B", attribution=ATTRIBUTION_SNAPSHOT)
        assert len(in_a) == 1
        assert in_b == []

    def test_deleted_product_drops_out_of_depot_views(self, db_session, depot_a, admin_user):
        product = make_product(location="Labo A")
        stock_service.admin_movement(product.id, 2, "admin_entry", admin_user)
        stock_service.delete_product(product.id)

        assert ledger_service.list_movements_for_depot("Labo A") == []
        assert len(ledger_service.list_movements()) == 1


class TestListMovements:

    def test_latest_first_with_limit_and_filters(self, db_session, depot_a, admin_user, depot_user):
        product = make_product(location="Labo A")
        stock_service.admin_movement(product.id, 1, "admin_entry", admin_user)
        stock_service.record_consumption(product.id, 2, depot_user)
        stock_service.admin_movement(product.id, 3, "admin_entry", admin_user)

        latest = ledger_service.list_movements(limit=2)
        assert [m.quantity_change for m in latest] == [3, -2]

        consumption = ledger_service.list_movements(change_type="consumption")
        assert [m.quantity_change for m in consumption] == [-2]

        ref = consumption[0].transaction_ref
        assert [m.id for m in ledger_service.list_movements(search=ref)] == [consumption[0].id]
        assert len(ledger_service.list_movements(search="acét")) == 3


class TestCsv:

    def test_free_text_quoted_codes_bare(self, db_session, depot_a):
        product = make_product(code="C-1", name='Acide "fort"', stock=3)
        content = csv_export.stock_sheet_csv([product])
        header, row = content.splitlines()
        assert header == "Code,Désignation,CAS,Formule,Stock,Unité,Seuil Alerte,Date Expiration"
        assert row.startswith('C-1,"Acide ""fort""",67-64-1,C3H6O,3,L,5,')

    def test_movements_csv_has_bom_and_labels(self, db_session, depot_a, admin_user):
        product = make_product(location="Labo A")
        stock_service.admin_movement(product.id, 4, "admin_entry", admin_user)
        movements = ledger_service.list_movements()
        locations = {m.id: "Labo A" for m in movements}

        content = csv_export.movements_csv(movements, locations)

        assert content.startswith(csv_export.BOM)
        header, row = content[len(csv_export.BOM):].splitlines()
        assert header == "Date,Depot,Produit,Type Mouvement,Quantite,Par,Nouveau Stock,Reference"
        fields = row.split(",")
        assert fields[1:6] == ['"Labo A"', '"Acétone"', '"Entrée Admin"', "4", '"Amel Ben Salah"']
        assert fields[6] == "14"
        assert fields[7].startswith("ENT-")

    def test_submission_csv_marks_missing_products(self, db_session):
        class Submission:
            items = [{"productId": 77, "name": "Disparu", "quantity": 2}]

        content = csv_export.submission_inventory_csv(Submission(), {})
        assert content.splitlines() == ["Code,Désignation,Qte en stock", 'N/A,"Disparu",2']

    def test_movement_location_attribution(self):
        movement = StockMovement(id=1, product_id=5, depot_name="Labo A")
        assert ledger_service.movement_location(movement, {5: "Labo B"}, ATTRIBUTION_CURRENT_LOCATION) == "Labo B"
        assert ledger_service.movement_location(movement, {5: "Labo B"}, ATTRIBUTION_SNAPSHOT) == "Labo A"
        assert ledger_service.movement_location(movement, {}, ATTRIBUTION_CURRENT_LOCATION) == "Inconnu"
