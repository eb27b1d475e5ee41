# Overview: Allocates human-readable, per-dispensary-per-day order numbers.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence
from ..time_utils import utc_today
from .errors import ValidationError


def format_order_number(business_date: date, sequence: int, *, prefix: str = "ORD", pad: int = 4) -> str:
    return f"{prefix}-{business_date:%Y%m%d}-{sequence:0{pad}d}"


def _bump(dispensary_id: int, business_date: date) -> int | None:
    stmt = (
        update(OrderSequence)
        .where(
            OrderSequence.dispensary_id == dispensary_id,
            OrderSequence.business_date == business_date,
        )
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(dispensary_id=dispensary_id, business_date=business_date)
        .scalar()
    )
    return current - 1


def next_order_number(dispensary_id: int, *, business_date: date | None = None) -> str:
    """
    Atomically allocate the next order number for a dispensary.

    Must run inside the caller's transaction: the UPDATE holds the
    sequence row lock until that transaction ends, so concurrent checkouts
    for the same dispensary-day queue up instead of reading the same count.
    The first order of the day inserts the row inside a savepoint; losing
    that insert race falls back to the UPDATE path.
    """
    if not dispensary_id:
        raise ValidationError("dispensary_id is required")

    business_date = business_date or utc_today()
    prefix = current_app.config.get("ORDER_NUMBER_PREFIX", "ORD")

    number = _bump(dispensary_id, business_date)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    OrderSequence(dispensary_id=dispensary_id, business_date=business_date, next_number=2)
                )
            number = 1
        except IntegrityError:
            number = _bump(dispensary_id, business_date)
            if number is None:
                raise

    return format_order_number(business_date, number, prefix=prefix)
