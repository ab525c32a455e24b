"""
Pytest fixtures for branchstock backend tests.

Provides an in-memory database, branches, products, a seeded-stock helper
and a test client.
"""

import pytest
from branchstock import create_app
from branchstock.extensions import db
from branchstock.models import Branch, Product, MovementDirection, ReferenceKind
from branchstock.services import stock_ledger


ACTOR_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_BACKOFF': 0.01,
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
def actor_id():
    return ACTOR_ID


@pytest.fixture(scope='function')
def actor_headers():
    return {'X-Actor-Id': str(ACTOR_ID)}


@pytest.fixture(scope='function')
def branch_x(db_session):
    """Source branch."""
    branch = Branch(name="Branch X", code="BRX", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_y(db_session):
    """Destination branch."""
    branch = Branch(name="Branch Y", code="BRY", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(sku="TS-001", name="T-Shirt", price_cents=150000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    product = Product(sku="JN-001", name="Jeans", price_cents=300000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def seed_stock(db_session):
    """Put quantity on the shelf through the ledger so replay stays valid."""
    def _seed(branch, product, quantity: int) -> int:
        new_quantity, _ = stock_ledger.adjust(
            branch.id,
            product.id,
            quantity,
            MovementDirection.IN,
            ReferenceKind.ADJUSTMENT,
            None,
            "seed",
            ACTOR_ID,
        )
        return new_quantity
    return _seed
