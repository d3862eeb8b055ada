"""
Pytest fixtures for stockroom backend tests.

Provides an in-memory database, a clean session per test, product factories
and a test client.
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.services.products_service import ProductRegistry


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
    """Empty every table before the test; schema is kept."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create a product (opening quantity booked through the ledger)."""
    registry = ProductRegistry(db_session)
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "name": f"Widget {counter['n']}",
            "sku": f"WID-{counter['n']:03d}",
            "price": 10.0,
            "quantity": 0,
            "min_stock": 0,
        }
        data.update(overrides)
        return registry.create_product(data, user_id="tester")

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product with 10 on hand and a reorder threshold of 3."""
    return make_product(name="Blue Widget", sku="BLU-001", quantity=10, min_stock=3, price=2.5)


def actor_headers(user_id: str = "user_1") -> dict:
    """Helper to set the acting user on a request."""
    return {'X-User-Id': user_id}
