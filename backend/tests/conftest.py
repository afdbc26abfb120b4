"""
Pytest fixtures for PDV backend tests.

Provides the app on in-memory SQLite, a per-test table wipe, the test
client and small factories for users, products, inventory items,
customers and open cash sessions.
"""

import pytest

from pdv import create_app
from pdv.extensions import db
from pdv.models import Customer, InventoryItem, Product, User
from pdv.models.auth import ROLE_OPERATOR
from pdv.models.inventory import SALE_TYPE_UNIT
from pdv.services import cash_session_service
from pdv.services.auth_service import hash_password


TEST_PASSWORD = "secret1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOCK_RETRY_BACKOFF': 0,
        'STORE_TIMEZONE': 'America/Sao_Paulo',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data but keep schema."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture
def make_user(db_session):
    def _make(username="operador", role=ROLE_OPERATOR, active=True, password=TEST_PASSWORD):
        user = User(
            username=username,
            role=role,
            active=active,
            password_hash=hash_password(password),
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def make_product(db_session):
    def _make(description="Arroz 5kg", price_cents=2500, stock=10, sale_type=SALE_TYPE_UNIT, **extra):
        product = Product(
            description=description,
            price_cents=price_cents,
            stock=stock,
            sale_type=sale_type,
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def make_item(db_session):
    def _make(name="Sacola plástica", code="SAC-01", current_quantity=0, minimum_quantity=0):
        item = InventoryItem(
            name=name,
            code=code,
            current_quantity=current_quantity,
            minimum_quantity=minimum_quantity,
        )
        db_session.add(item)
        db_session.commit()
        return item
    return _make


@pytest.fixture
def make_customer(db_session):
    def _make(name="João da Silva", credit_limit_cents=10000, is_blocked=False, **extra):
        customer = Customer(
            name=name,
            credit_limit_cents=credit_limit_cents,
            is_blocked=is_blocked,
            **extra,
        )
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture
def operator(make_user):
    return make_user()


@pytest.fixture
def open_session(operator):
    """An open cash session for `operator` with a R$50,00 float."""
    return cash_session_service.open_session(operator.id, 5000)
