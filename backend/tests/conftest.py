import os
import tempfile
from decimal import Decimal

# must be set before storefront.config is imported
_DB_PATH = os.path.join(tempfile.gettempdir(), "storefront_test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["PAYMENT_PROVIDER"] = "mock"
os.environ["PAYMENT_MOCK_DELAY_MS"] = "0"
os.environ["RECONCILE_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient

from storefront.adapters.payment_gateway import build_payment_adapter
from storefront.config import settings
from storefront.db import SessionLocal, init_db
from storefront.main import app
from storefront.models.product import Product, ProductImage


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    app.state.rate_limiter.reset()
    # order ids restart with the schema, so the gateway session cache must too
    app.state.payment_adapter = build_payment_adapter(settings)
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_product(db):
    """Insert a product and return its id."""

    def _make(name="Test Coffee", price="9.99", stock=10, category=None, active=True, image=None):
        p = Product(
            name=name,
            price=Decimal(price),
            inventory_count=stock,
            category=category,
            active=active,
            description=f"{name} description",
        )
        if image:
            p.images = [ProductImage(url=image, alt_text=name, is_primary=True)]
        db.add(p)
        db.commit()
        return p.id

    return _make
