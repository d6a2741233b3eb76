"""
Pytest fixtures for RestoPOS backend tests.

Provides test database setup, catalog/table fixtures, and test client.
"""

from decimal import Decimal

import pytest
from restopos import create_app
from restopos.extensions import db
from restopos.models import Product, StoreSettings, Table


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TENANT_DATABASES': {},
        'STOCK_FAILURE_POLICY': 'continue',
        'ENFORCE_STATUS_TRANSITIONS': False,
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
def store_settings(db_session):
    """Store defaults: 8% tax, prices exclusive of tax."""
    settings = StoreSettings(store_name="Test Bistro", currency="VND", tax_rate="8.00", price_includes_tax=False)
    db_session.add(settings)
    db_session.commit()
    return settings


def make_product(session, sku, name, price="50000.00", stock=10, **kwargs):
    """Insert a product row directly (no audit rows, no tax derivation)."""
    product = Product(
        sku=sku,
        name=name,
        price=Decimal(price),
        before_tax_price=Decimal(price),
        after_tax_price=Decimal(price),
        tax_rate=kwargs.pop("tax_rate", "0"),
        stock=stock,
        **kwargs,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def pho(db_session):
    """Tracked product with 10 in stock."""
    return make_product(db_session, "PHO-001", "Pho Bo", price="50000.00", stock=10)


@pytest.fixture(scope='function')
def coffee(db_session):
    """Tracked product with 2 in stock."""
    return make_product(db_session, "CF-001", "Ca Phe Sua Da", price="25000.00", stock=2)


@pytest.fixture(scope='function')
def napkin(db_session):
    """Untracked product; stock calls are no-ops."""
    return make_product(db_session, "NAP-001", "Napkin", price="0", stock=0, track_inventory=False)


@pytest.fixture(scope='function')
def table_one(db_session):
    """Create Table 1 (available)."""
    table = Table(table_number="T1", capacity=4, status="available")
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture(scope='function')
def table_two(db_session):
    """Create Table 2 (available)."""
    table = Table(table_number="T2", capacity=2, status="available")
    db_session.add(table)
    db_session.commit()
    return table


def order_header(number, **kwargs):
    """Minimal order header as the client sends it."""
    header = {
        "order_number": number,
        "subtotal": "100000.00",
        "tax": "8000.00",
        "discount": "0",
        "total": "108000.00",
    }
    header.update(kwargs)
    return header


def line(product, quantity=1, **kwargs):
    """Order / receipt line for product at its catalog price."""
    item = {
        "product_id": product.id,
        "quantity": quantity,
        "unit_price": str(product.price),
    }
    item.update(kwargs)
    return item
