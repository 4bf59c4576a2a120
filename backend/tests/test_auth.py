"""
Authentication and session tests.
"""

import pytest

from labstock.errors import ValidationError
from labstock.models import User
from labstock.models.auth import ROLE_ADMIN, ROLE_DEPOT, STATUS_INACTIVE
from labstock.services import auth_service, session_service

from conftest import PASSWORD, auth_headers, get_auth_token


class TestLogin:

    def test_admin_login(self, client, db_session, admin_user):
        resp = client.post("/api/auth/login", json={"email": "ADMIN@institut.example", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["role"] == ROLE_ADMIN
        assert len(body["token"]) == 64

    def test_wrong_password(self, client, db_session, admin_user):
        resp = client.post("/api/auth/login", json={"email": admin_user.email, "password": "nope-nope"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == auth_service.INVALID_CREDENTIALS

    def test_inactive_admin_is_reactivated(self, client, db_session, admin_user):
        admin_user.status = STATUS_INACTIVE
        db_session.commit()

        assert get_auth_token(client, admin_user.email) is not None
        assert db_session.get(User, admin_user.id).status == "active"

    def test_depot_login_binds_depot(self, client, db_session, depot_user):
        resp = client.post("/api/auth/login", json={"email": "43@pasteur.tn", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["role"] == ROLE_DEPOT
        assert body["user"]["depot"]["name"] == "Labo A"

    def test_inactive_depot_refused(self, client, db_session, depot_a, depot_user):
        depot_a.active = False
        db_session.commit()
        resp = client.post("/api/auth/login", json={"email": "43@pasteur.tn", "password": PASSWORD})
        assert resp.status_code == 401
        assert "inactif" in resp.get_json()["error"]

    def test_inactive_depot_account_refused(self, client, db_session, depot_user):
        depot_user.status = STATUS_INACTIVE
        db_session.commit()

        resp = client.post("/api/auth/login", json={"email": "43@pasteur.tn", "password": PASSWORD})
        assert resp.status_code == 401
        assert "inactif" in resp.get_json()["error"]
        assert "token" not in resp.get_json()

    def test_depot_account_cannot_use_admin_path(self, client, db_session, depot_a):
        # A depot-role profile under a non-depot email is not an admin
        auth_service.create_user(
            "labo@institut.example", PASSWORD, role=ROLE_DEPOT, depot_id=depot_a.id
        )
        resp = client.post("/api/auth/login", json={"email": "labo@institut.example", "password": PASSWORD})
        assert resp.status_code == 401


class TestSessions:

    def test_logout_revokes_token(self, client, db_session, admin_user):
        token = get_auth_token(client, admin_user.email)
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 200

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_deactivated_depot_invalidates_session(self, client, db_session, depot_a, depot_headers):
        depot_a.active = False
        db_session.commit()
        assert client.get("/api/auth/me", headers=depot_headers).status_code == 401

    def test_idle_timeout(self, db_session, admin_user):
        session, token = session_service.create_session(admin_user.id)
        session.last_used_at = session.last_used_at - session_service.SESSION_IDLE_TIMEOUT * 2
        db_session.commit()
        assert session_service.validate_session(token) is None


class TestPasswords:

    def test_minimum_length(self):
        with pytest.raises(ValidationError):
            auth_service.validate_password_strength("12345")
        auth_service.validate_password_strength("123456")

    def test_change_password_route(self, client, db_session, admin_user, admin_headers):
        resp = client.post("/api/auth/password", json={"password": "abc"}, headers=admin_headers)
        assert resp.status_code == 400

        resp = client.post("/api/auth/password", json={"password": "nouveau-mdp"}, headers=admin_headers)
        assert resp.status_code == 200
        # Old token revoked, new one returned
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401
        assert get_auth_token(client, admin_user.email, "nouveau-mdp") is not None
