"""
Pytest fixtures for bookshop backend tests.

Provides an in-memory database, a test client, and small factories for
items and customers.
"""

from decimal import Decimal

import pytest
from bookshop import create_app
from bookshop.config import TestConfig
from bookshop.extensions import db
from bookshop.models import Customer, Item


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def make_item(db_session):
    """Factory: make_item("BK-1", price="10.00", stock=5)."""
    def _make(code="BK-0001", *, name=None, price="10.00", stock=10, category="Fiction", active=True):
        item = Item(
            item_code=code,
            item_name=name or f"Book {code}",
            unit_price=Decimal(price),
            stock_quantity=stock,
            category=category,
            is_active=active,
        )
        db_session.add(item)
        db_session.commit()
        return item
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(account_number="ACC-001", *, name="Nimal Perera"):
        customer = Customer(
            account_number=account_number,
            name=name,
            address="12 Galle Road, Colombo 03",
            telephone_number="+94771234567",
        )
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def customer(make_customer):
    return make_customer()
