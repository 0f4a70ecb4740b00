"""
Pytest fixtures for the POS backend tests.

Provides test database setup, domain factories, and test client.
"""

from decimal import Decimal

import pytest

from pos_backend import create_app
from pos_backend.extensions import db
from pos_backend.models import Customer, Product, Supplier


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def customer(db_session):
    c = Customer(first_name="Ada", last_name="Lovelace", phone_number="555-0100")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(company_name="Acme Wholesale", contact_person="Wile E.")
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name, price, cost_price, stock)."""
    counter = {"n": 0}

    def _make(name=None, price="10.00", cost_price="5.00", stock=0, **extra):
        counter["n"] += 1
        p = Product(
            name=name or f"Product {counter['n']}",
            sku=extra.pop("sku", f"SKU-{counter['n']:04d}"),
            price=Decimal(price),
            cost_price=Decimal(cost_price),
            quantity_in_stock=stock,
            **extra,
        )
        db_session.add(p)
        db_session.commit()
        return p

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product P: price 10.00, cost 5.00, 5 in stock."""
    return make_product(name="Widget", price="10.00", cost_price="5.00", stock=5)


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Read quantity_in_stock fresh from the database."""
    def _read(product_id: int) -> int:
        db_session.expire_all()
        return db_session.get(Product, product_id).quantity_in_stock

    return _read
