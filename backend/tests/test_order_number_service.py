# Overview: Pytest coverage for order number allocation, including concurrent checkouts.

import threading
from datetime import date

import pytest

from cannaorders import create_app
from cannaorders.extensions import db
from cannaorders.models import Organization, Dispensary, Product, ProductVariant, Order, OrderSequence
from cannaorders.services import cart_service, checkout_service, inventory_service
from cannaorders.services.checkout_service import FulfillmentDetails
from cannaorders.services.order_number_service import format_order_number, next_order_number

from conftest import TestConfig


class TestFormat:

    def test_format(self):
        assert format_order_number(date(2026, 10, 19), 7) == "ORD-20261019-0007"
        assert format_order_number(date(2026, 1, 2), 12345, prefix="X", pad=3) == "X-20260102-12345"


class TestNextOrderNumber:

    def test_sequential_per_dispensary_and_day(self, db_session, dispensary_a, dispensary_b):
        day = date(2026, 10, 19)
        assert next_order_number(dispensary_a.id, business_date=day) == "ORD-20261019-0001"
        assert next_order_number(dispensary_a.id, business_date=day) == "ORD-20261019-0002"
        assert next_order_number(dispensary_b.id, business_date=day) == "ORD-20261019-0001"
        assert next_order_number(dispensary_a.id, business_date=date(2026, 10, 20)) == "ORD-20261020-0001"
        db_session.commit()

        seq = db_session.query(OrderSequence).filter_by(dispensary_id=dispensary_a.id, business_date=day).one()
        assert seq.next_number == 3

    def test_rolled_back_allocation_is_reused(self, db_session, dispensary_a):
        """The counter lives in the checkout transaction; a failed checkout burns nothing."""
        day = date(2026, 10, 19)
        next_order_number(dispensary_a.id, business_date=day)
        db_session.rollback()
        assert next_order_number(dispensary_a.id, business_date=day) == "ORD-20261019-0001"

    def test_configured_prefix(self, app, db_session, dispensary_a, monkeypatch):
        monkeypatch.setitem(app.config, "ORDER_NUMBER_PREFIX", "GL")
        assert next_order_number(dispensary_a.id, business_date=date(2026, 10, 19)) == "GL-20261019-0001"


class FileDbConfig(TestConfig):
    RETRY_ATTEMPTS = 8
    RETRY_BACKOFF_SECONDS = 0.01


@pytest.fixture
def file_app(tmp_path):
    """Separate app on a file-backed SQLite database so threads get their own connections."""
    config = type(
        "ConcurrentConfig",
        (FileDbConfig,),
        {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'concurrency.sqlite3'}"},
    )
    app = create_app(config)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


class TestConcurrentCheckouts:

    def test_order_numbers_unique_under_concurrency(self, file_app):
        workers = 8

        with file_app.app_context():
            org = Organization(name="Concurrent Org", code="CONC")
            db.session.add(org)
            db.session.flush()
            dispensary = Dispensary(org_id=org.id, name="Busy Counter", jurisdiction="NY")
            db.session.add(dispensary)
            db.session.flush()
            product = Product(dispensary_id=dispensary.id, name="Sour Diesel")
            db.session.add(product)
            db.session.flush()
            variant = ProductVariant(product_id=product.id, name="1g", price_cents=1500, quantity=100)
            db.session.add(variant)
            db.session.commit()
            org_id, dispensary_id, variant_id = org.id, dispensary.id, variant.id

            for n in range(workers):
                cart_service.add_item(f"user-{n}", dispensary_id, variant_id, 2)

        barrier = threading.Barrier(workers)
        errors = []

        def _checkout(n):
            with file_app.app_context():
                try:
                    barrier.wait()
                    checkout_service.checkout(
                        f"user-{n}", org_id, dispensary_id, FulfillmentDetails(fulfillment_type="pickup")
                    )
                except Exception as exc:  # collected and asserted below
                    errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=_checkout, args=(n,)) for n in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []

        with file_app.app_context():
            numbers = [o.order_number for o in db.session.query(Order).all()]
            assert len(numbers) == workers
            assert len(set(numbers)) == workers
            assert sorted(int(n.rsplit("-", 1)[1]) for n in numbers) == list(range(1, workers + 1))
            assert inventory_service.get_quantity(variant_id) == 100 - 2 * workers
