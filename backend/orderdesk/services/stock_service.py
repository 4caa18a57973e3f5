# Overview: Service-layer operations for product stock; atomic reserve/release, adjustments and restocks.

"""
Product Stock Ledger

WHY: Product.stock is a shared counter that several registers decrement at
once. Reading the count, checking it in Python and writing it back would let
two orders sell the same last unit. Instead the check and the decrement are
one statement:

    UPDATE products SET stock = stock - :q
    WHERE id = :id AND stock >= :q

The database evaluates the predicate against the current row under its
write lock, so of two concurrent reservations for the last unit exactly one
matches a row. The loser sees rowcount == 0 and gets InsufficientStockError.

reserve_stock / release_stock run inside the caller's unit of work (flush,
no commit). restock_product / adjust_stock are standalone operations and
commit their own transaction.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from .concurrency import begin_write_transaction, run_with_retry
from .inventory_service import (
    TX_CANCELLATION_REVERSAL,
    TX_MANUAL_ADJUSTMENT,
    TX_RESTOCK,
    TX_SALE,
    append_inventory_transaction,
)


def _require_positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})
    return quantity


def _expire_cached_stock(product_id: int) -> None:
    """Drop the session's cached stock so the next read sees the UPDATE."""
    key = sa_inspect(Product).identity_key_from_primary_key((product_id,))
    cached = db.session.identity_map.get(key)
    if cached is not None:
        db.session.expire(cached, ["stock", "version_id", "updated_at"])


def _current_stock(product_id: int) -> int | None:
    return db.session.query(Product.stock).filter_by(id=product_id).scalar()


def _warn_if_low(product_id: int, remaining: int) -> None:
    threshold = db.session.query(Product.low_stock_alert).filter_by(id=product_id).scalar()
    if threshold is not None and remaining <= threshold:
        current_app.logger.warning(
            "Product %s is low on stock (%s left, alert at %s)",
            product_id,
            remaining,
            threshold,
        )


def _decrement(product_id: int, quantity: int) -> int:
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached_stock(product_id)

    if not result.rowcount:
        available = _current_stock(product_id)
        if available is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        raise InsufficientStockError(product_id, quantity, available)

    return _current_stock(product_id)


def _increment(product_id: int, quantity: int) -> int:
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached_stock(product_id)

    if not result.rowcount:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    return _current_stock(product_id)


def reserve_stock(
    product_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    reference: str | None = None,
    note: str | None = None,
) -> int:
    """
    Atomically take `quantity` units and log a SALE transaction.

    Returns the remaining stock. Raises InsufficientStockError (with
    product_id / requested / available) when the product has fewer units,
    NotFoundError when it does not exist. Does not commit.
    """
    quantity = _require_positive_quantity(quantity)
    remaining = _decrement(product_id, quantity)

    append_inventory_transaction(
        product_id=product_id,
        tx_type=TX_SALE,
        quantity_delta=-quantity,
        user_id=user_id,
        reference=reference,
        note=note,
    )
    _warn_if_low(product_id, remaining)
    return remaining


def release_stock(
    product_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    reference: str | None = None,
    note: str | None = None,
) -> int:
    """
    Return `quantity` units and log a CANCELLATION_REVERSAL transaction.

    Always succeeds for an existing product. Does not commit.
    """
    quantity = _require_positive_quantity(quantity)
    new_stock = _increment(product_id, quantity)

    append_inventory_transaction(
        product_id=product_id,
        tx_type=TX_CANCELLATION_REVERSAL,
        quantity_delta=quantity,
        user_id=user_id,
        reference=reference,
        note=note,
    )
    return new_stock


def restock_product(
    product_id: int,
    quantity: int,
    user_id: int | None = None,
    note: str | None = None,
    *,
    commit: bool = True,
) -> Product:
    """Receive goods: add units and log a RESTOCK transaction."""
    quantity = _require_positive_quantity(quantity)

    def _op():
        if commit:
            begin_write_transaction()
        _increment(product_id, quantity)
        append_inventory_transaction(
            product_id=product_id,
            tx_type=TX_RESTOCK,
            quantity_delta=quantity,
            user_id=user_id,
            note=note or "Restock",
        )
        if commit:
            db.session.commit()
        return db.session.get(Product, product_id)

    if not commit:
        return _op()
    return run_with_retry(_op)


def adjust_stock(
    product_id: int,
    quantity_delta: int,
    user_id: int | None = None,
    note: str | None = None,
) -> Product:
    """
    Manual stock correction by a signed delta.

    Negative deltas go through the same conditional decrement as sales,
    so an adjustment can never drive stock below zero.
    """
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise ValidationError(
            "quantity_delta must be a non-zero integer",
            details={"quantity_delta": quantity_delta},
        )

    def _op():
        begin_write_transaction()
        if quantity_delta < 0:
            _decrement(product_id, -quantity_delta)
        else:
            _increment(product_id, quantity_delta)

        append_inventory_transaction(
            product_id=product_id,
            tx_type=TX_MANUAL_ADJUSTMENT,
            quantity_delta=quantity_delta,
            user_id=user_id,
            note=note or "Manual stock adjustment",
        )
        db.session.commit()

        product = db.session.get(Product, product_id)
        _warn_if_low(product_id, product.stock)
        return product

    return run_with_retry(_op)
