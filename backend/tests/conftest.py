"""
Pytest fixtures for homebase document tests.

Provides an in-memory database, per-test table cleanup, owner headers and a
test client.
"""

from decimal import Decimal

import pytest

from homebase import create_app
from homebase.extensions import db
from homebase.services.totals_service import LineItem


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
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


@pytest.fixture
def owner_a():
    return 1


@pytest.fixture
def owner_b():
    return 2


@pytest.fixture
def owner_a_headers(owner_a):
    return {'X-Owner-Id': str(owner_a)}


@pytest.fixture
def owner_b_headers(owner_b):
    return {'X-Owner-Id': str(owner_b)}


@pytest.fixture
def make_document(db_session):
    """
    Insert a document row directly, bypassing allocation.

    Used to seed numbers that "already exist" for an owner.
    """
    def _make(model, owner_id, number=None, status=None):
        document = model(
            owner_id=owner_id,
            document_number=number,
            status=status or ("sent" if number else "draft"),
            line_items=[],
        )
        db_session.add(document)
        db_session.commit()
        return document
    return _make


@pytest.fixture
def sample_items():
    """Two 25% VAT lines worth 1000.00 before discounts."""
    return [
        LineItem(quantity=Decimal("2"), unit_price=Decimal("250.00"), description="Consulting"),
        LineItem(quantity=Decimal("1"), unit_price=Decimal("500.00"), description="Setup"),
    ]
