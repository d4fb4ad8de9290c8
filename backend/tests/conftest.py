"""
Pytest fixtures for clinic POS backend tests.

Provides test database setup, users, a doctor, the ledger initial balance,
an open shift and bearer-token headers for the test client.
"""

import pytest

from clinicpos import create_app
from clinicpos.extensions import db
from clinicpos.models.auth import ROLE_ADMIN, ROLE_CASHIER
from clinicpos.services import commission_service, ledger_service, shift_service
from clinicpos.services.auth_service import create_user


TEST_PASSWORD = "Passw0rd!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("admin", TEST_PASSWORD, "Clinic Administrator", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return create_user("cashier", TEST_PASSWORD, "Front Desk Cashier", role=ROLE_CASHIER)


@pytest.fixture(scope='function')
def doctor(db_session):
    return commission_service.create_doctor("Dra. Ana Ruiz")


@pytest.fixture(scope='function')
def other_doctor(db_session):
    return commission_service.create_doctor("Dr. Luis Mendez")


@pytest.fixture(scope='function')
def initial_balance(db_session, admin_user):
    """Ledger seeded with 10,000.00."""
    return ledger_service.register_initial_balance(1_000_000, admin_user.id, notes="Opening bank balance")


@pytest.fixture(scope='function')
def open_shift(db_session, cashier_user, initial_balance):
    """Open shift with a 500.00 drawer ({"100": 5})."""
    return shift_service.open_shift(cashier_user.id, {"100": 5}, {})


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.username))
