# Overview: Sales analytics over stored daily reports and completed orders.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import DailySalesReport, Order, OrderItem
from .errors import ValidationError

REVENUE_PERIODS = ("day", "week", "month")


def _check_range(start, end) -> None:
    if start > end:
        raise ValidationError("start must not be after end", details={"start": str(start), "end": str(end)})


def get_sales_analytics(dispensary_id: int, start_date: date, end_date: date) -> list[DailySalesReport]:
    """Stored daily reports with start_date <= report_date <= end_date, oldest first."""
    _check_range(start_date, end_date)
    return (
        db.session.query(DailySalesReport)
        .filter(
            DailySalesReport.dispensary_id == dispensary_id,
            DailySalesReport.report_date >= start_date,
            DailySalesReport.report_date <= end_date,
        )
        .order_by(DailySalesReport.report_date.asc())
        .all()
    )


def get_top_products(dispensary_id: int, start: datetime, end: datetime, limit: int = 10) -> list[dict]:
    """Best sellers by revenue across completed orders placed in [start, end]."""
    _check_range(start, end)
    if limit < 1:
        raise ValidationError("limit must be positive", details={"limit": limit})

    revenue = func.sum(OrderItem.line_total_cents)
    rows = (
        db.session.query(
            OrderItem.product_name.label("product_name"),
            func.sum(OrderItem.quantity).label("total_quantity"),
            revenue.label("total_revenue_cents"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.dispensary_id == dispensary_id,
            Order.status == "completed",
            Order.created_at >= start,
            Order.created_at <= end,
        )
        .group_by(OrderItem.product_name)
        .order_by(revenue.desc(), OrderItem.product_name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_name": row.product_name,
            "total_quantity": int(row.total_quantity or 0),
            "total_revenue_cents": int(row.total_revenue_cents or 0),
        }
        for row in rows
    ]


def _period_key(ts: datetime, period: str) -> str:
    if period == "day":
        return ts.strftime("%Y-%m-%d")
    if period == "week":
        monday = ts.date() - timedelta(days=ts.weekday())
        return monday.isoformat()
    return ts.strftime("%Y-%m")


def get_revenue_by_period(dispensary_id: int, period: str, start: datetime, end: datetime) -> list[dict]:
    """
    Completed-order revenue bucketed by UTC day, week or month.

    Buckets are keyed 'YYYY-MM-DD' for days, the Monday of the week for
    weeks, and 'YYYY-MM' for months. Only buckets with orders are returned,
    in ascending order.
    """
    if period not in REVENUE_PERIODS:
        raise ValidationError(
            f"Invalid period '{period}'. Must be one of: {', '.join(REVENUE_PERIODS)}",
            details={"period": period},
        )
    _check_range(start, end)

    # Bucketed here rather than in SQL: date truncation differs per dialect
    rows = (
        db.session.query(Order.created_at, Order.total_cents, Order.tax_cents, Order.excise_tax_cents)
        .filter(
            Order.dispensary_id == dispensary_id,
            Order.status == "completed",
            Order.created_at >= start,
            Order.created_at <= end,
        )
        .all()
    )

    buckets: dict[str, dict] = {}
    for created_at, total, tax, excise in rows:
        key = _period_key(created_at, period)
        bucket = buckets.setdefault(
            key,
            {
                "period": key,
                "order_count": 0,
                "total_revenue_cents": 0,
                "total_tax_cents": 0,
                "total_excise_tax_cents": 0,
            },
        )
        bucket["order_count"] += 1
        bucket["total_revenue_cents"] += total
        bucket["total_tax_cents"] += tax
        bucket["total_excise_tax_cents"] += excise

    return [buckets[key] for key in sorted(buckets)]
