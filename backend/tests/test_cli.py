# Overview: Pytest coverage for the Flask CLI maintenance commands.

from datetime import timedelta

from cannaorders.models import ComplianceOutbox, Order
from cannaorders.services import checkout_service, inventory_service
from cannaorders.services.compliance_service import ComplianceSink
from cannaorders.time_utils import utcnow


class DownSink(ComplianceSink):
    def deliver(self, entry):
        raise ConnectionError("sink offline")


def _age_orders(db_session, hours):
    db_session.query(Order).update(
        {Order.created_at: utcnow() - timedelta(hours=hours)}, synchronize_session=False
    )
    db_session.commit()


def test_flush_outbox(app, db_session, org_a, dispensary_a, variant_a, pickup, fill_cart, monkeypatch):
    monkeypatch.setitem(app.extensions, "compliance_sink", DownSink())
    fill_cart("user-1", dispensary_a, (variant_a, 1))
    checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)
    monkeypatch.delitem(app.extensions, "compliance_sink")

    result = app.test_cli_runner().invoke(args=["compliance", "flush-outbox"])

    assert result.exit_code == 0
    assert "Delivered 1, still pending 0, failed 0." in result.output
    assert db_session.query(ComplianceOutbox).filter_by(status="pending").count() == 0


def test_cancel_stale_dry_run_then_apply(app, db_session, org_a, dispensary_a, variant_a, pickup, fill_cart):
    fill_cart("user-1", dispensary_a, (variant_a, 2))
    order = checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)
    order_number = order.order_number
    _age_orders(db_session, 30)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["orders", "cancel-stale", "--hours", "24", "--dry-run"])
    assert result.exit_code == 0
    assert f"would cancel {order_number}" in result.output
    assert db_session.get(Order, order.id).status == "pending"

    result = runner.invoke(args=["orders", "cancel-stale", "--hours", "24"])
    assert result.exit_code == 0
    assert "Cancelled 1 pending orders older than 24h." in result.output
    assert db_session.get(Order, order.id).status == "cancelled"


def test_cancel_stale_requires_cutoff(app, db_session):
    result = app.test_cli_runner().invoke(args=["orders", "cancel-stale"])
    assert result.exit_code != 0
    assert "PENDING_ORDER_TTL_HOURS" in result.output


def test_low_stock(app, db_session, variant_a, dispensary_a):
    inventory_service.adjust_inventory(variant_a.id, -9, performed_by="mgr-1", reason="recount")

    result = app.test_cli_runner().invoke(args=["inventory", "low-stock", "--dispensary-id", str(dispensary_a.id)])

    assert result.exit_code == 0
    assert "Blue Dream / 3.5g" in result.output
    assert "qty=1" in result.output


def test_daily_report(app, db_session, dispensary_a):
    result = app.test_cli_runner().invoke(
        args=["compliance", "daily-report", "--dispensary-id", str(dispensary_a.id), "--date", "2026-10-18"]
    )
    assert result.exit_code == 0
    assert "2026-10-18" in result.output
    assert "0 completed orders" in result.output
