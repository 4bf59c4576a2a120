"""
Pytest fixtures for labstock backend tests.

Provides an in-memory database, a test client, depots, admin/depot accounts
and authenticated headers.
"""

from datetime import date, timedelta

import pytest

from labstock import create_app
from labstock.extensions import db
from labstock.models import Depot, Product
from labstock.models.auth import ROLE_ADMIN
from labstock.services import auth_service
from labstock.services.change_feed import feed


PASSWORD = "secret1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'AI_API_KEY': None,
        'DEPOT_EMAIL_DOMAIN': 'pasteur.tn',
        'MOVEMENT_DEPOT_ATTRIBUTION': 'current_location',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        feed.reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def depot_a(db_session):
    depot = Depot(id="43", name="Labo A", color="#1e3a8a", active=True)
    db_session.add(depot)
    db_session.commit()
    return depot


@pytest.fixture(scope='function')
def depot_b(db_session):
    depot = Depot(id="44", name="Labo B", color="#b91c1c", active=True)
    db_session.add(depot)
    db_session.commit()
    return depot


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user(
        "admin@institut.example",
        PASSWORD,
        first_name="Amel",
        last_name="Ben Salah",
        role=ROLE_ADMIN,
    )


@pytest.fixture(scope='function')
def depot_user(app, depot_a):
    return auth_service.create_depot_account(depot_a, PASSWORD)


@pytest.fixture(scope='function')
def depot_b_user(app, depot_b):
    return auth_service.create_depot_account(depot_b, PASSWORD)


def make_product(code="C-100", name="Acétone", location="Labo A", stock=10, alert_threshold=5, **extra):
    """Insert a product row directly (no ledger row)."""
    product = Product(
        code=code,
        name=name,
        location=location,
        stock=stock,
        alert_threshold=alert_threshold,
        cas=extra.pop("cas", "67-64-1"),
        formula=extra.pop("formula", "C3H6O"),
        unit=extra.pop("unit", "L"),
        ghs_pictograms=extra.pop("ghs_pictograms", ["Flame"]),
        expiry_date=extra.pop("expiry_date", date.today() + timedelta(days=200)),
        **extra,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def product(depot_a):
    return make_product()


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.get_json().get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def depot_headers(client, depot_user):
    return auth_headers(get_auth_token(client, depot_user.email))
