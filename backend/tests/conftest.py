"""
Pytest fixtures for the cannaorders backend tests.

Provides an in-memory application, per-test table wipe, two tenants with one
dispensary each, a small catalog and request-header helpers.
"""

import pytest

from cannaorders import create_app
from cannaorders.config import Config
from cannaorders.extensions import db
from cannaorders.models import Organization, Dispensary, Product, ProductVariant
from cannaorders.services import cart_service
from cannaorders.services.checkout_service import FulfillmentDetails


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    RETRY_BACKOFF_SECONDS = 0
    TAX_RATES = {
        "NY": {"sales_tax_rate": "0.08875", "excise_tax_rate": "0.09"},
        "CT": {"sales_tax_rate": "0.0635", "excise_tax_rate": "0.03"},
    }
    DEFAULT_JURISDICTION = "NY"
    COMPLIANCE_MAX_DELIVERY_ATTEMPTS = 3


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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.info.clear()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    org = Organization(name="Org A - Green Leaf", code="GLEAF", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    org = Organization(name="Org B - High Street", code="HIGH", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def dispensary_a(db_session, org_a):
    dispensary = Dispensary(
        org_id=org_a.id,
        name="Green Leaf Brooklyn",
        code="BK1",
        jurisdiction="NY",
        license_number="OCM-AUCP-24-000123",
    )
    db_session.add(dispensary)
    db_session.commit()
    return dispensary


@pytest.fixture(scope='function')
def dispensary_b(db_session, org_b):
    dispensary = Dispensary(org_id=org_b.id, name="High Street Hartford", code="HF1", jurisdiction="CT")
    db_session.add(dispensary)
    db_session.commit()
    return dispensary


@pytest.fixture(scope='function')
def product_a(db_session, dispensary_a):
    product = Product(
        dispensary_id=dispensary_a.id,
        name="Blue Dream",
        batch_number="BD-2026-0042",
        license_number="OCM-CULT-24-000777",
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def variant_a(db_session, product_a):
    """3.5g at $10.00, 10 on hand."""
    variant = ProductVariant(
        product_id=product_a.id, name="3.5g", price_cents=1000, quantity=10, low_stock_threshold=2
    )
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def variant_b(db_session, product_a):
    """7g at $18.00, 5 on hand."""
    variant = ProductVariant(
        product_id=product_a.id, name="7g", price_cents=1800, quantity=5, low_stock_threshold=5
    )
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def pickup():
    return FulfillmentDetails(
        fulfillment_type="pickup",
        customer_name="Ada Lovelace",
        customer_email="ada@example.com",
        customer_phone="555-0100",
    )


@pytest.fixture(scope='function')
def fill_cart(db_session):
    """Helper: add (variant, quantity) pairs to a user's cart."""
    def _fill(user_id, dispensary, *lines):
        for variant, quantity in lines:
            cart_service.add_item(user_id, dispensary.id, variant.id, quantity)
    return _fill


def context_headers(org, user_id: str, role: str = "customer") -> dict:
    """Helper to create the gateway identity headers."""
    return {
        "X-Tenant-Id": str(org.id),
        "X-User-Id": user_id,
        "X-User-Role": role,
    }


@pytest.fixture(scope='function')
def headers():
    return context_headers
