"""
Pytest fixtures for smart retail backend tests.

Provides test database setup, branch/product/user fixtures, and test client.
"""

import pytest

from smart_retail import create_app
from smart_retail.extensions import db
from smart_retail.models import Branch, Product, StockEntry, User
from smart_retail.services.auth_service import hash_password


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def hq(db_session):
    """Headquarters branch (restock source)."""
    branch = Branch(name="HQ", address="Nairobi CBD", is_headquarters=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch(db_session):
    """Ordinary branch."""
    branch = Branch(name="Westlands", address="Westlands Mall")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(name="Tusker Lager 500ml", brand="Tusker", category="Beer", price_cents=25000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = User(
        name="Admin",
        email="admin@shop.test",
        phone="254700000001",
        password_hash=hash_password(PASSWORD),
        role="admin",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer_user(db_session):
    user = User(
        name="Customer",
        email="customer@shop.test",
        phone="254700000002",
        password_hash=hash_password(PASSWORD),
        role="customer",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email, PASSWORD))


@pytest.fixture(scope='function')
def customer_headers(client, customer_user):
    return auth_headers(get_auth_token(client, customer_user.email, PASSWORD))


def set_stock(branch_id: int, product_id: int, quantity: int) -> StockEntry:
    """Helper to seed a stock entry directly (bypasses the ledger)."""
    entry = db.session.query(StockEntry).filter_by(branch_id=branch_id, product_id=product_id).first()
    if entry is None:
        entry = StockEntry(branch_id=branch_id, product_id=product_id, quantity=quantity)
        db.session.add(entry)
    else:
        entry.quantity = quantity
    db.session.commit()
    return entry


def stock_of(branch_id: int, product_id: int) -> int:
    """Current quantity straight from the database."""
    quantity = (
        db.session.query(StockEntry.quantity)
        .filter_by(branch_id=branch_id, product_id=product_id)
        .scalar()
    )
    return int(quantity or 0)


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def create_order(client, headers, branch_id, product_id, quantity=2, phone="0712345678"):
    """Helper to place an M-Pesa order through the API."""
    return client.post(
        "/api/orders",
        json={
            "branch_id": branch_id,
            "phone": phone,
            "items": [{"product_id": product_id, "quantity": quantity}],
        },
        headers=headers,
    )
