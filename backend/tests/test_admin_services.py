"""
Depot, user and alert administration.
"""

from datetime import date, timedelta

import pytest

from labstock.errors import ConflictError, NotFoundError, ValidationError
from labstock.models import SessionToken
from labstock.models.auth import STATUS_ACTIVE, STATUS_INACTIVE
from labstock.services import alert_service, auth_service, depot_service, session_service, user_service

from conftest import make_product


class TestDepots:

    def test_create_rules(self, db_session, depot_a):
        with pytest.raises(ValidationError):
            depot_service.create_depot("4a", "Labo X")
        with pytest.raises(ConflictError):
            depot_service.create_depot("43", "Labo X")
        with pytest.raises(ConflictError):
            depot_service.create_depot("60", "Labo A")
        with pytest.raises(ValidationError):
            depot_service.create_depot("60", "Labo X", color="bleu")

        depot = depot_service.create_depot(" 60 ", "Labo X", color="#123456")
        assert depot.id == "60"
        assert depot.active is True

    def test_taken_login_email_writes_nothing(self, db_session):
        auth_service.create_user("77@pasteur.tn", "secret1", first_name="Ancien")

        with pytest.raises(ConflictError):
            depot_service.create_depot("77", "Labo Z", password="depot77")
        with pytest.raises(ValidationError):
            depot_service.create_depot("78", "Labo Y", password="abc")

        assert depot_service.list_depots() == []

    def test_create_with_account(self, db_session):
        depot = depot_service.create_depot("79", "Labo W", password="depot79")
        assert [u.email for u in depot.accounts] == ["79@pasteur.tn"]
        assert depot.accounts[0].role == "depot"

    def test_active_only_listing(self, db_session, depot_a, depot_b):
        depot_service.update_depot("44", {"active": False})
        assert [d.id for d in depot_service.list_depots(active_only=True)] == ["43"]
        assert len(depot_service.list_depots()) == 2

    def test_update_requires_boolean_active(self, db_session, depot_a):
        with pytest.raises(ValidationError):
            depot_service.update_depot("43", {"active": "non"})

    def test_unknown_depot(self, db_session):
        with pytest.raises(NotFoundError):
            depot_service.get_depot("999")


class TestUsers:

    def test_deactivation_revokes_sessions(self, db_session, admin_user, depot_user):
        _session, token = session_service.create_session(depot_user.id)

        user_service.update_user(depot_user.id, {"status": STATUS_INACTIVE}, acting_user=admin_user)

        assert session_service.validate_session(token) is None
        assert SessionToken.query.filter_by(user_id=depot_user.id, is_revoked=False).count() == 0

    def test_cannot_deactivate_self(self, db_session, admin_user):
        with pytest.raises(ConflictError):
            user_service.update_user(admin_user.id, {"status": STATUS_INACTIVE}, acting_user=admin_user)
        assert user_service.get_user(admin_user.id).status == STATUS_ACTIVE

    def test_profile_fields(self, db_session, admin_user, depot_user):
        user = user_service.update_user(
            depot_user.id, {"service": " Biochimie ", "phone": "71 000 000"}, acting_user=admin_user
        )
        assert user.service == "Biochimie"
        assert user.phone == "71 000 000"

    def test_invalid_role(self, db_session, admin_user, depot_user):
        with pytest.raises(ValidationError):
            user_service.bulk_update_users([depot_user.id], {"role": "superuser"}, acting_user=admin_user)

    def test_delete(self, db_session, admin_user, depot_user):
        session_service.create_session(depot_user.id)
        user_service.delete_user(depot_user.id, acting_user=admin_user)
        with pytest.raises(NotFoundError):
            user_service.get_user(depot_user.id)
        with pytest.raises(ConflictError):
            user_service.delete_user(admin_user.id, acting_user=admin_user)


class TestAlerts:

    def test_threshold_bounds(self, db_session):
        with pytest.raises(ValidationError):
            alert_service.create_alert({"threshold_days": 0})
        alert = alert_service.create_alert({"threshold_days": "15", "emails_to_notify": ["a@b.tn", "a@b.tn"]})
        assert alert.threshold_days == 15
        assert alert.emails_to_notify == ["a@b.tn"]

    def test_expiring_includes_expired(self, db_session, depot_a, depot_b):
        today = date(2026, 10, 18)
        make_product(code="X-1", name="Périmé", expiry_date=today - timedelta(days=3))
        make_product(code="X-2", name="Limite", expiry_date=today + timedelta(days=7))
        make_product(code="X-3", name="Loin", expiry_date=today + timedelta(days=8))
        make_product(code="X-4", name="Ailleurs", location="Labo B", expiry_date=today)

        codes = [p.code for p in alert_service.expiring_products(7, today=today, location="Labo A")]
        assert codes == ["X-1", "X-2"]

    def test_inactive_alert_not_reported(self, db_session, depot_a):
        alert = alert_service.create_alert({"threshold_days": 30})
        alert_service.update_alert(alert.id, {"is_active": False})
        assert alert_service.active_alert_report() == []

        alert_service.delete_alert(alert.id)
        with pytest.raises(NotFoundError):
            alert_service.get_alert(alert.id)
