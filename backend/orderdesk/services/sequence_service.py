# Overview: Service-layer operations for order number allocation.

from __future__ import annotations

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflict
from ..extensions import db
from ..models import Order, OrderSequence


ORDER_SEQUENCE = "order"


def next_order_number(name: str = ORDER_SEQUENCE) -> int:
    """
    Allocate the next order number inside the caller's unit of work.

    The counter row is incremented with a single UPDATE, which takes the
    row's write lock until the caller commits; a concurrent allocation waits
    for it and then sees the incremented value. Numbers are therefore unique
    and strictly increasing in commit order. Numbers taken by a transaction
    that rolls back are simply never used.

    If the counter row does not exist yet it is created from
    MAX(order_number) + 1. Two transactions racing to create it surface as
    ConcurrencyConflict, which run_with_retry retries from the top.
    """
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.name == name)
        .values(next_value=OrderSequence.next_value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(OrderSequence.next_value)
            .filter_by(name=name)
            .scalar()
        )
        return current - 1

    highest = db.session.query(func.coalesce(func.max(Order.order_number), 0)).scalar()
    number = int(highest) + 1
    db.session.add(OrderSequence(name=name, next_value=number + 1))
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict("Order sequence initialised concurrently") from exc
    return number


def ensure_order_sequence(name: str = ORDER_SEQUENCE) -> OrderSequence:
    """Create the counter row if missing (used by `flask system init`)."""
    seq = db.session.get(OrderSequence, name)
    if seq is None:
        highest = db.session.query(func.coalesce(func.max(Order.order_number), 0)).scalar()
        seq = OrderSequence(name=name, next_value=int(highest) + 1)
        db.session.add(seq)
        db.session.commit()
    return seq
