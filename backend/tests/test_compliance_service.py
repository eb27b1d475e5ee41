# Overview: Pytest coverage for compliance outbox delivery, purchase limits and reporting.

from datetime import date, timedelta

import pytest

from cannaorders.models import ComplianceLog, ComplianceOutbox, DailySalesReport
from cannaorders.services import checkout_service, compliance_service
from cannaorders.services.compliance_service import ComplianceSink, DatabaseComplianceSink
from cannaorders.services.errors import ValidationError
from cannaorders.services.order_status_service import transition_order
from cannaorders.time_utils import day_bounds, utc_today


class FlakySink(ComplianceSink):
    def deliver(self, entry):
        raise ConnectionError("connection reset by peer")


class TestLogEvent:

    def test_unknown_event_type(self, db_session, dispensary_a):
        with pytest.raises(ValidationError):
            compliance_service.log_event(dispensary_a.id, "price_change", {}, "staff-1")

    def test_event_waits_for_commit(self, db_session, dispensary_a):
        entry = compliance_service.log_event(dispensary_a.id, "inventory_adjustment", {"delta": 3}, "staff-1")
        db_session.commit()

        assert entry.status == "pending"
        assert db_session.query(ComplianceLog).count() == 0

        report = compliance_service.deliver_queued()

        assert report.delivered == [entry.id]
        log = db_session.query(ComplianceLog).one()
        assert log.outbox_id == entry.id
        assert log.details == {"delta": 3}

    def test_discarded_queue_is_not_delivered(self, db_session, dispensary_a):
        compliance_service.log_event(dispensary_a.id, "inventory_adjustment", {"delta": 1}, "staff-1")
        db_session.rollback()
        compliance_service.discard_queued()

        assert compliance_service.deliver_queued().delivered == []
        assert db_session.query(ComplianceOutbox).count() == 0


class TestOutboxDelivery:

    def test_redelivery_is_idempotent(self, db_session, dispensary_a):
        entry = compliance_service.log_event(dispensary_a.id, "inventory_adjustment", {"delta": 2}, "staff-1")
        db_session.commit()
        sink = DatabaseComplianceSink()

        sink.deliver(entry)
        sink.deliver(entry)
        db_session.commit()

        assert db_session.query(ComplianceLog).filter_by(outbox_id=entry.id).count() == 1

    def test_marked_failed_after_max_attempts(self, app, db_session, org_a, dispensary_a, variant_a, pickup, fill_cart, monkeypatch, caplog):
        monkeypatch.setitem(app.extensions, "compliance_sink", FlakySink())
        fill_cart("user-1", dispensary_a, (variant_a, 1))
        order = checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)

        first = compliance_service.flush_outbox()
        second = compliance_service.flush_outbox()

        entry = db_session.query(ComplianceOutbox).filter_by(order_id=order.id).one()
        assert first.pending == [entry.id]
        assert second.failed == [entry.id]
        assert entry.status == "failed"
        assert entry.attempts == 3
        assert "connection reset" in entry.last_error
        assert "failed permanently" in caplog.text

        # failed rows are left for manual follow-up
        assert compliance_service.flush_outbox().failed == []
        assert compliance_service.count_outbox("failed") == 1


class TestPurchaseLimit:

    def test_counts_todays_units(self, db_session, org_a, dispensary_a, variant_a, pickup, fill_cart):
        fill_cart("user-1", dispensary_a, (variant_a, 5))
        checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)

        within = compliance_service.check_purchase_limit(dispensary_a.id, "user-1", 80)
        over = compliance_service.check_purchase_limit(dispensary_a.id, "user-1", 81)

        assert within == {"within_limit": True, "daily_total": 5, "limit": 85}
        assert over["within_limit"] is False
        assert db_session.query(ComplianceLog).filter_by(event_type="purchase_limit_check").count() == 2

    def test_cancelled_orders_do_not_count(self, db_session, org_a, dispensary_a, variant_a, pickup, fill_cart):
        fill_cart("user-1", dispensary_a, (variant_a, 5))
        order = checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)
        transition_order(order.id, "cancelled", "user-1")

        result = compliance_service.check_purchase_limit(dispensary_a.id, "user-1", 1)

        assert result["daily_total"] == 0

    def test_other_users_do_not_count(self, db_session, org_a, dispensary_a, variant_a, pickup, fill_cart):
        fill_cart("user-1", dispensary_a, (variant_a, 5))
        checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)

        assert compliance_service.check_purchase_limit(dispensary_a.id, "user-2", 1)["daily_total"] == 0

    def test_negative_request(self, db_session, dispensary_a):
        with pytest.raises(ValidationError):
            compliance_service.check_purchase_limit(dispensary_a.id, "user-1", -1)


class TestDailyReport:

    def _complete(self, order_id):
        for status in ("confirmed", "preparing", "ready_for_pickup", "completed"):
            transition_order(order_id, status, "staff-1")

    def test_summarises_the_day(self, db_session, org_a, dispensary_a, variant_a, variant_b, pickup, fill_cart):
        fill_cart("user-1", dispensary_a, (variant_a, 2))
        first = checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)
        fill_cart("user-2", dispensary_a, (variant_b, 1))
        second = checkout_service.checkout("user-2", org_a.id, dispensary_a.id, pickup)
        fill_cart("user-3", dispensary_a, (variant_a, 1))
        third = checkout_service.checkout("user-3", org_a.id, dispensary_a.id, pickup)

        self._complete(first.id)
        self._complete(second.id)
        transition_order(third.id, "cancelled", "staff-1")

        report = compliance_service.generate_daily_report(dispensary_a.id, utc_today())

        assert report.total_orders == 2
        assert report.total_revenue_cents == first.total_cents + second.total_cents
        assert report.total_tax_cents == first.tax_cents + second.tax_cents
        assert report.total_excise_tax_cents == first.excise_tax_cents + second.excise_tax_cents
        assert report.total_items_sold == 3
        assert report.unique_customers == 2
        assert report.cancelled_orders == 1
        assert report.refunded_amount_cents == 0
        assert report.average_order_value_cents == (report.total_revenue_cents + 1) // 2

    def test_regenerating_replaces_the_row(self, db_session, dispensary_a):
        compliance_service.generate_daily_report(dispensary_a.id, date(2026, 10, 18))
        compliance_service.generate_daily_report(dispensary_a.id, date(2026, 10, 18))

        reports = db_session.query(DailySalesReport).filter_by(dispensary_id=dispensary_a.id).all()
        assert len(reports) == 1
        assert reports[0].total_orders == 0
        assert reports[0].average_order_value_cents == 0


class TestComplianceLogs:

    def test_filters_by_dispensary_window_and_type(self, db_session, org_a, dispensary_a, dispensary_b, variant_a, pickup, fill_cart):
        fill_cart("user-1", dispensary_a, (variant_a, 1))
        order = checkout_service.checkout("user-1", org_a.id, dispensary_a.id, pickup)
        transition_order(order.id, "confirmed", "staff-1")
        start, end = day_bounds(utc_today())

        all_logs = compliance_service.get_compliance_logs(dispensary_a.id, start, end)
        sales = compliance_service.get_compliance_logs(dispensary_a.id, start, end, "sale")

        assert {log.event_type for log in all_logs} == {"sale", "order_status_changed"}
        assert [log.order_id for log in sales] == [order.id]
        assert compliance_service.get_compliance_logs(dispensary_b.id, start, end) == []
        assert compliance_service.get_compliance_logs(
            dispensary_a.id, start - timedelta(days=2), start - timedelta(days=1)
        ) == []
