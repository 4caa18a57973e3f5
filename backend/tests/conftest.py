"""
Pytest fixtures for OrderDesk backend tests.

Provides an in-memory database, users for each role, stocked products and
an authenticated test client.
"""

import pytest

from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.models import Customer, User
from orderdesk.services import products_service
from orderdesk.services.auth_service import hash_password


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RECEIPTS_DIR': str(tmp_path_factory.mktemp("receipts")),
        'DEFAULT_TAX_RATE_BPS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test; roll back anything left open after."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


def make_user(username: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@orderdesk.test",
        password_hash=hash_password(TEST_PASSWORD, rounds=4),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return make_user("manager", "manager")


@pytest.fixture(scope='function')
def waitress_user(db_session):
    return make_user("waitress", "waitress")


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Jane Doe", email="jane@example.com", phone="555-0100")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def coffee(db_session, admin_user):
    """$3.50 coffee with 10 units in stock and a low-stock alert at 2."""
    return products_service.create_product(
        {"name": "Coffee", "sku": "COF-001", "price_cents": 350, "stock": 10, "low_stock_alert": 2},
        user_id=admin_user.id,
    )


@pytest.fixture(scope='function')
def sandwich(db_session, admin_user):
    """$8.00 sandwich with size variants and 5 units in stock."""
    return products_service.create_product(
        {
            "name": "Sandwich",
            "sku": "SND-001",
            "price_cents": 800,
            "stock": 5,
            "variants": ["Half", "Full"],
        },
        user_id=admin_user.id,
    )


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
def waitress_headers(client, waitress_user):
    return auth_headers(get_auth_token(client, waitress_user.username))
