"""
Pytest fixtures for stockbook backend tests.

Provides test database setup, box/stock factories, and test client.
"""

import pytest
from stockbook import create_app
from stockbook.extensions import db
from stockbook.services import stock_service


USER_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_BASE': 0.0,
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
def auth_headers():
    return {"X-User-Id": str(USER_ID)}


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
def user_id():
    return USER_ID


@pytest.fixture(scope='function')
def box(db_session):
    """Box BX-100 with Red and Blue buckets (empty), rate 100.00, assembly 10.00."""
    return stock_service.create_box(
        code="bx-100",
        title="Cake Box 8x8",
        category="Cake",
        colours=["Red", "Blue"],
        price_paise=10000,
        assembly_charge_paise=1000,
        inner_size="8x8",
        user_id=USER_ID,
    )


@pytest.fixture(scope='function')
def other_box(db_session):
    return stock_service.create_box(
        code="BX-200",
        title="Pastry Box",
        category="Pastry",
        colours=["Dark Green"],
        price_paise=2500,
        user_id=USER_ID,
    )


@pytest.fixture(scope='function')
def stocked_box(box):
    """BX-100 holding red=20, blue=5."""
    stock_service.add_stock(box.id, "Red", 20, user_id=USER_ID)
    stock_service.add_stock(box.id, "Blue", 5, user_id=USER_ID)
    return box
