"""
Pytest fixtures for StockMaster backend tests.

Provides the application with an in-memory database, a per-test table wipe,
user / category / item factories and an auth header helper.
"""

import itertools

import pytest
from flask import g

from stockmaster import create_app
from stockmaster.config import TestingConfig
from stockmaster.extensions import db
from stockmaster.models import Category, Item
from stockmaster.services import stock_service, token_service
from stockmaster.services.auth_service import create_user

PASSWORD = "Passw0rd!"

_counter = itertools.count(1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test; schema is kept."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    # State that outlives a single request inside the shared app context
    app.extensions.pop("stockmaster_login_limiter", None)
    g.pop("current_user", None)

    yield db.session

    db.session.rollback()


@pytest.fixture
def make_user(db_session):
    def _make(role="staff", email=None, password=PASSWORD, **fields):
        n = next(_counter)
        user = create_user(
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", f"User{n}"),
            email=email or f"{role}{n}@stockmaster.test",
            password=password,
            role=role,
        )
        for key, value in fields.items():
            setattr(user, key, value)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def staff(make_user):
    return make_user("staff")


@pytest.fixture
def auditor(make_user):
    return make_user("auditor")


@pytest.fixture
def category(db_session):
    cat = Category(name="Beverages", slug="beverages")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture
def make_item(db_session, category):
    """Items are saved through the stock service so status and alerts follow the normal path."""
    def _make(stock_quantity=10, low_stock_threshold=5, selling_price_cents=10000, cost_price_cents=6000, **fields):
        n = next(_counter)
        item = Item(
            sku=fields.pop("sku", f"BEV-{n:06d}"),
            name=fields.pop("name", f"Item {n}"),
            category_id=fields.pop("category_id", category.id),
            stock_quantity=stock_quantity,
            low_stock_threshold=low_stock_threshold,
            selling_price_cents=selling_price_cents,
            cost_price_cents=cost_price_cents,
            **fields,
        )
        stock_service.save_item(item)
        db_session.commit()
        return item

    return _make


def auth_headers(user) -> dict:
    """Authorization header carrying a freshly signed access token for ``user``."""
    token, _expires_at = token_service.generate_access_token(user)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def staff_headers(staff):
    return auth_headers(staff)


@pytest.fixture
def auditor_headers(auditor):
    return auth_headers(auditor)
