# Overview: Service-layer operations for the inventory transaction log; append, history, reconciliation.

"""
Inventory Transaction Log

WHY: Product.stock says how many units exist; this log says why. Every
stock mutation appends exactly one row in the same unit of work, so the
sum of quantity_delta per product always equals Product.stock. The
reconciliation helpers check exactly that.

Rows are append-only: nothing in this module updates or deletes them.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryTransaction, Product
from orderdesk.time_utils import utcnow


TX_SALE = "sale"
TX_CANCELLATION_REVERSAL = "cancellation_reversal"
TX_MANUAL_ADJUSTMENT = "manual_adjustment"
TX_RESTOCK = "restock"
TX_TYPES = (TX_SALE, TX_CANCELLATION_REVERSAL, TX_MANUAL_ADJUSTMENT, TX_RESTOCK)


def order_reference(order_id: int) -> str:
    return f"order:{order_id}"


def append_inventory_transaction(
    *,
    product_id: int,
    tx_type: str,
    quantity_delta: int,
    user_id: int | None = None,
    reference: str | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """
    Append a log row to the current unit of work (flush, no commit).

    Only stock_service calls this; writing a row without the matching stock
    change would break the reconciliation invariant.
    """
    if tx_type not in TX_TYPES:
        raise ValidationError(f"Unknown inventory transaction type: {tx_type}")
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")

    tx = InventoryTransaction(
        product_id=product_id,
        type=tx_type,
        quantity_delta=quantity_delta,
        user_id=user_id,
        reference=reference,
        note=note,
        created_at=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


class InventoryHistory:
    """
    Chronological, lazily loaded view over one product's transactions.

    Iterating runs a fresh query each time, so the view can be walked
    more than once (and picks up rows committed in between). Rows are
    streamed in batches instead of loaded into a list.
    """

    def __init__(self, product_id: int, since: datetime | None = None, batch_size: int = 200):
        self.product_id = product_id
        self.since = since
        self.batch_size = batch_size

    def _query(self):
        query = db.session.query(InventoryTransaction).filter(
            InventoryTransaction.product_id == self.product_id
        )
        if self.since is not None:
            query = query.filter(InventoryTransaction.created_at >= self.since)
        return query

    def __iter__(self):
        query = self._query().order_by(
            InventoryTransaction.created_at.asc(),
            InventoryTransaction.id.asc(),
        )
        yield from query.yield_per(self.batch_size)

    def count(self) -> int:
        return self._query().count()

    def net_change(self) -> int:
        total = (
            self._query()
            .with_entities(func.coalesce(func.sum(InventoryTransaction.quantity_delta), 0))
            .scalar()
        )
        return int(total or 0)


def history(product_id: int, since: datetime | None = None) -> InventoryHistory:
    """Return the restartable history view for a product (NotFoundError if missing)."""
    exists = db.session.query(Product.id).filter_by(id=product_id).first()
    if not exists:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return InventoryHistory(product_id, since=since)


def list_transactions_for_reference(reference: str) -> list[InventoryTransaction]:
    return (
        db.session.query(InventoryTransaction)
        .filter_by(reference=reference)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


def ledger_quantity(product_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity_delta), 0))
        .filter(InventoryTransaction.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def reconcile_product(product_id: int) -> dict:
    """
    Compare Product.stock with the ledger sum for one product.

    Returns {"product_id", "stock", "ledger_quantity", "difference", "in_sync"}.
    """
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    ledger_qty = ledger_quantity(product_id)
    return {
        "product_id": product.id,
        "name": product.name,
        "stock": product.stock,
        "ledger_quantity": ledger_qty,
        "difference": product.stock - ledger_qty,
        "in_sync": product.stock == ledger_qty,
    }


def find_stock_discrepancies() -> list[dict]:
    """
    Every product whose stock disagrees with its ledger sum.

    One grouped query; products with no transactions count as ledger 0.
    """
    ledger_sums = (
        db.session.query(
            InventoryTransaction.product_id.label("product_id"),
            func.sum(InventoryTransaction.quantity_delta).label("ledger_quantity"),
        )
        .group_by(InventoryTransaction.product_id)
        .subquery()
    )

    rows = (
        db.session.query(
            Product.id,
            Product.name,
            Product.stock,
            func.coalesce(ledger_sums.c.ledger_quantity, 0),
        )
        .outerjoin(ledger_sums, ledger_sums.c.product_id == Product.id)
        .order_by(Product.id.asc())
        .all()
    )

    discrepancies = []
    for product_id, name, stock, ledger_qty in rows:
        ledger_qty = int(ledger_qty or 0)
        if stock != ledger_qty:
            discrepancies.append({
                "product_id": product_id,
                "name": name,
                "stock": stock,
                "ledger_quantity": ledger_qty,
                "difference": stock - ledger_qty,
                "in_sync": False,
            })
    return discrepancies
