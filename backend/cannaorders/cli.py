# Overview: Flask CLI command groups for bootstrap, compliance retries, reporting and maintenance.

# backend/cannaorders/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "cannaorders:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent; use `flask db upgrade` once migrations exist).
#
# Compliance:
# - python -m flask compliance flush-outbox [--limit 500]
#   Retry delivery of every pending compliance event.
# - python -m flask compliance daily-report --dispensary-id 1 [--date 2026-10-19]
#   Build or rebuild the daily sales report for one dispensary.
#
# Inventory:
# - python -m flask inventory low-stock --dispensary-id 1
#   List variants at or below their low-stock threshold.
#
# Orders:
# - python -m flask orders cancel-stale --hours 48 [--dry-run]
#   Cancel (and restock) orders stuck in pending longer than the cut-off.

import click
from datetime import date, timedelta
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Order
from .services import compliance_service, inventory_service, order_status_service
from .time_utils import utc_today, utcnow


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    db.create_all()
    click.echo("Database tables created.")


@click.group('compliance')
def compliance_group():
    """Compliance outbox and reporting commands."""


@compliance_group.command('flush-outbox')
@click.option('--limit', type=int, default=500, show_default=True)
@with_appcontext
def flush_outbox_cli(limit):
    report = compliance_service.flush_outbox(limit=limit)
    click.echo(
        f"Delivered {len(report.delivered)}, still pending {len(report.pending)}, "
        f"failed {len(report.failed)}."
    )
    remaining = compliance_service.count_outbox("pending")
    if remaining:
        click.echo(f"{remaining} compliance events remain pending.")


@compliance_group.command('daily-report')
@click.option('--dispensary-id', type=int, required=True)
@click.option('--date', 'report_date', type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@with_appcontext
def daily_report_cli(dispensary_id, report_date):
    day: date = report_date.date() if report_date else utc_today()
    report = compliance_service.generate_daily_report(dispensary_id, day)
    click.echo(
        f"{day.isoformat()} dispensary={dispensary_id}: "
        f"{report.total_orders} completed orders, revenue {report.total_revenue_cents} cents, "
        f"{report.cancelled_orders} cancelled"
    )


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--dispensary-id', type=int, required=True)
@with_appcontext
def low_stock_cli(dispensary_id):
    variants = inventory_service.list_below_threshold(dispensary_id)
    if not variants:
        click.echo("No variants below threshold.")
        return
    for v in variants:
        click.echo(f"{v.id}\t{v.product.name} / {v.name}\tqty={v.quantity}\tthreshold={v.low_stock_threshold}")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('cancel-stale')
@click.option('--hours', type=int, default=None, help="Defaults to PENDING_ORDER_TTL_HOURS.")
@click.option('--dry-run', is_flag=True, default=False)
@with_appcontext
def cancel_stale_cli(hours, dry_run):
    hours = hours if hours is not None else current_app.config.get("PENDING_ORDER_TTL_HOURS")
    if not hours:
        raise click.UsageError("Pass --hours or set PENDING_ORDER_TTL_HOURS.")

    if dry_run:
        cutoff = utcnow() - timedelta(hours=hours)
        stale = (
            db.session.query(Order)
            .filter(Order.status == "pending", Order.created_at < cutoff)
            .order_by(Order.id.asc())
            .all()
        )
        for order in stale:
            click.echo(f"would cancel {order.order_number} (id={order.id})")
        click.echo(f"{len(stale)} pending orders older than {hours}h.")
        return

    cancelled = order_status_service.cancel_stale_pending_orders(hours)
    for order in cancelled:
        click.echo(f"cancelled {order.order_number} (id={order.id})")
    click.echo(f"Cancelled {len(cancelled)} pending orders older than {hours}h.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(compliance_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(orders_group)
