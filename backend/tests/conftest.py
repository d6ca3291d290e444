"""
Pytest fixtures for stockledger backend tests.

Provides an app bound to a temporary SQLite file (so worker threads share
the database), a test client, and catalog fixtures.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from stockledger import create_app, shutdown_app
from stockledger.extensions import db, broadcaster
from stockledger.models import Product, Sale, SaleLine, Setting, User


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'stockledger-test.sqlite3'}",
        'UNIT_OF_WORK_TIMEOUT': 10,
        'UNIT_OF_WORK_RETRIES': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

    shutdown_app(app)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def events(app):
    """A live subscriber on the broadcaster for the duration of one test."""
    sub = broadcaster.subscribe()
    yield sub
    broadcaster.unsubscribe(sub)


def make_product(product_id: str, stock: float, **overrides) -> Product:
    fields = dict(
        id=product_id,
        name=f"Product {product_id}",
        sku=f"SKU-{product_id}",
        category="Cups",
        selling_price=5.0,
        half_price=2.75,
        cost_price=2.0,
        stock=stock,
        unit="Pack",
    )
    fields.update(overrides)
    product = Product(**fields)
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def product_p1(app):
    """P1 with stock 10.0."""
    return make_product("p1", 10.0, name="Paper Cups")


@pytest.fixture(scope='function')
def product_p2(app):
    """P2 with fractional stock."""
    return make_product("p2", 4.5, name="Foil Trays", selling_price=8.0, cost_price=3.5)


def stock_of(product_id: str) -> float:
    db.session.expire_all()
    return db.session.get(Product, product_id).stock


def table_state() -> dict:
    """Every row of every table, used to assert nothing changed."""
    db.session.expire_all()
    return {
        "products": sorted(
            (p.id, p.name, p.sku, p.category, p.selling_price, p.half_price,
             p.quarter_price, p.cost_price, p.stock, p.unit, p.archived)
            for p in db.session.query(Product).all()
        ),
        "sales": sorted(
            (s.id, s.total, s.timestamp, s.payment_method)
            for s in db.session.query(Sale).all()
        ),
        "sale_items": sorted(
            (line.id, line.sale_id, line.product_id, line.name, line.quantity, line.price, line.cost_price)
            for line in db.session.query(SaleLine).all()
        ),
        "users": sorted(
            (u.id, u.name, u.username, u.password, u.role)
            for u in db.session.query(User).all()
        ),
        "settings": sorted(
            (s.key, s.value) for s in db.session.query(Setting).all()
        ),
    }


def line_item(product_id: str, quantity: float, price: float = 5.0, cost_price: float = 2.0, name: str = "Paper Cups") -> dict:
    return {
        "productId": product_id,
        "name": name,
        "quantity": quantity,
        "price": price,
        "costPrice": cost_price,
    }
