"""
Pytest fixtures for purchasing engine tests.

Provides a fresh app on an in-memory SQLite database per test, plus factory
fixtures for suppliers, warehouses and purchases.
"""

import pytest

from purchasing import create_app
from purchasing.extensions import db
from purchasing.models import Supplier, Warehouse
from purchasing.services import purchase_service


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DATA_ACCESS_RETRY_ATTEMPTS': 3,
        'DATA_ACCESS_RETRY_BACKOFF': 0,
        'REFUND_WINDOW_DAYS': 30,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


@pytest.fixture(scope='function')
def cache(app):
    return app.extensions["purchase_cache"]


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Acme Supplies", email="orders@acme.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def warehouse(db_session):
    warehouse = Warehouse(name="Main Warehouse", code="MAIN")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def make_purchase(supplier, warehouse):
    """
    Factory: place a purchase and return its id.

    Default is the single-line order used throughout the tests:
    10 units at 500 cents (total 5000).
    """
    def _make(items=None, purchase_date=None, actor="alice"):
        if items is None:
            items = [{
                "item_type": "product",
                "item_id": 101,
                "item_name": "Widget",
                "quantity": 10,
                "unit_price_cents": 500,
            }]
        result = purchase_service.create_purchase(
            supplier_id=supplier.id,
            warehouse_id=warehouse.id,
            created_by=actor,
            items=items,
            purchase_date=purchase_date,
        )
        return result.purchase_id

    return _make


@pytest.fixture(scope='function')
def two_line_items():
    return [
        {"item_type": "product", "item_id": 101, "item_name": "Widget", "quantity": 1, "unit_price_cents": 500},
        {"item_type": "package", "item_id": 202, "item_name": "Crate", "quantity": 1, "unit_price_cents": 1500,
         "variation_id": 7},
    ]
