"""
Pytest fixtures for back office tests.

Provides an in-memory database, a test client, and a small seeded catalog.
"""

from decimal import Decimal

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Category, Customer, Product


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
        db.engine.dispose()


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
def category(db_session):
    cat = Category(name="Beverages")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def customer(db_session):
    cust = Customer(id="C-001", name="Ana Perez")
    db_session.add(cust)
    db_session.commit()
    return cust


def make_product(session, product_id, *, name=None, price="10.00", cost="4.00", stock=10, category=None):
    product = Product(
        id=product_id,
        name=name or f"Product {product_id}",
        price=Decimal(price),
        cost=Decimal(cost),
        stock=stock,
        category_id=category.id if category else None,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, category):
    """Product in a category, stock 10, price 10.00."""
    return make_product(db_session, "P-A", name="Coffee", price="10.00", cost="4.00", stock=10, category=category)


@pytest.fixture(scope='function')
def product_b(db_session):
    """Uncategorised product, stock 5, price 2.50."""
    return make_product(db_session, "P-B", name="Sugar", price="2.50", cost="1.10", stock=5)


def stock_of(product_id) -> int:
    """Fresh read, ignoring whatever the current session has cached."""
    db.session.expire_all()
    return db.session.get(Product, product_id).stock


def sale_line(product, quantity, unit_price=None, cost_price=None):
    """Checkout line in wire format."""
    unit = Decimal(unit_price) if unit_price is not None else product.price
    line = {
        "productId": product.id,
        "productName": product.name,
        "quantity": quantity,
        "unitPrice": float(unit),
        "totalPrice": float(unit * quantity),
    }
    if cost_price is not None:
        line["costPrice"] = cost_price
    return line
