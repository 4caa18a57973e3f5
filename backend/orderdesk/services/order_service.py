# Overview: Service-layer operations for orders; creation, item additions, status changes and cancellation.

"""
Order Aggregate Manager

WHY: An order touches four things at once (the order row, its item
snapshots, product stock and the inventory log, plus an optional first
payment). Each public operation here is one unit of work: everything
commits together or nothing does, and run_with_retry repeats the whole
unit on transient lock conflicts.

LIFECYCLE:
    pending   -> completed   (full payment, or explicit status change)
    pending   -> cancelled   (stock returned)
    completed -> cancelled   (stock returned, payments kept)
    cancelled is terminal

Receipts are rendered after commit and never affect the order's outcome.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import String, cast, or_

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Order, OrderItem, Product
from ..validation import OrderItemInput, parse_discount, parse_order_items, parse_payment
from orderdesk.time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .inventory_service import order_reference
from .payment_service import PAYMENT_METHODS, apply_payment, refresh_payment_status, validate_payment_input
from .pricing_service import DiscountSpec, Totals, calculate_totals
from .receipt_service import try_generate_receipt
from .sequence_service import next_order_number
from .settings_service import current_tax_rate_bps
from .stock_service import release_stock, reserve_stock


STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)

TRANSITIONS = {
    STATUS_PENDING: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: {STATUS_CANCELLED},
    STATUS_CANCELLED: set(),
}

SORTABLE_FIELDS = {
    "created_at": Order.created_at,
    "order_number": Order.order_number,
    "total_cents": Order.total_cents,
    "status": Order.status,
}

MAX_PAGE_SIZE = 100


def _order_discount(order: Order) -> DiscountSpec | None:
    if not order.discount_type:
        return None
    return DiscountSpec(type=order.discount_type, value=order.discount_value or 0)


def _apply_totals(order: Order, totals: Totals) -> None:
    order.subtotal_cents = totals.subtotal_cents
    order.discount_cents = totals.discount_cents
    order.tax_cents = totals.tax_cents
    order.total_cents = totals.total_cents


def _load_products(items: list[OrderItemInput]) -> dict[int, Product]:
    """Load and check every product referenced by the cart."""
    product_ids = sorted({item.product_id for item in items})
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }

    for item in items:
        product = products.get(item.product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": item.product_id})
        if not product.is_active:
            raise ValidationError("Product is not available", details={"product_id": product.id})
        if not product.accepts_variant(item.variant):
            raise ValidationError(
                "Unknown variant for product",
                details={
                    "product_id": product.id,
                    "variant": item.variant,
                    "allowed": list(product.variants or []),
                },
            )
    return products


def _add_lines(order: Order, items: list[OrderItemInput], products: dict[int, Product], user_id: int) -> None:
    """
    Snapshot each line onto the order and reserve its stock.

    Lines keep cart order; stock is reserved in product_id order so
    concurrent carts lock product rows in the same sequence.
    """
    for item in items:
        product = products[item.product_id]
        order.items.append(OrderItem(
            product_id=product.id,
            product_name=product.name,
            variant=item.variant,
            quantity=item.quantity,
            unit_price_cents=product.price_cents,
            subtotal_cents=product.price_cents * item.quantity,
            notes=item.notes,
            created_at=utcnow(),
        ))
    db.session.flush()

    for item in sorted(items, key=lambda i: i.product_id):
        reserve_stock(
            item.product_id,
            item.quantity,
            user_id=user_id,
            reference=order_reference(order.id),
            note=f"Order #{order.order_number}",
        )


def _get_locked_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def create_order(
    *,
    created_by_user_id: int,
    items,
    customer_id: int | None = None,
    discount=None,
    initial_payment=None,
    payment_method: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Create an order from a cart.

    items: list of {"product_id", "quantity", "variant"?, "notes"?}
    discount: {"type": "percentage"|"fixed", "value": int} or None
    initial_payment: {"amount_cents", "method"?, "reference"?} or None;
        the method falls back to payment_method.

    Raises ValidationError, NotFoundError or InsufficientStockError. On any
    error nothing is written: no order, no items, no stock change.
    """
    order_items = parse_order_items(items)
    discount_spec = parse_discount(discount)
    payment = parse_payment(initial_payment)

    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}",
            details={"method": payment_method, "allowed": list(PAYMENT_METHODS)},
        )
    payment_tender = None
    if payment is not None:
        payment_tender = payment.method or payment_method
        validate_payment_input(payment.amount_cents, payment_tender)

    tax_rate_bps = current_tax_rate_bps()

    def _op() -> Order:
        begin_write_transaction()

        if customer_id is not None:
            if not db.session.get(Customer, customer_id):
                raise NotFoundError("Customer not found", details={"customer_id": customer_id})

        products = _load_products(order_items)
        totals = calculate_totals(
            [(products[i.product_id].price_cents, i.quantity) for i in order_items],
            discount_spec,
            tax_rate_bps,
        )

        now = utcnow()
        order = Order(
            order_number=next_order_number(),
            customer_id=customer_id,
            created_by_user_id=created_by_user_id,
            status=STATUS_PENDING,
            discount_type=discount_spec.type if discount_spec else None,
            discount_value=discount_spec.value if discount_spec else None,
            tax_rate_bps=tax_rate_bps,
            payment_status="unpaid",
            payment_method=payment_method,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        _apply_totals(order, totals)
        db.session.add(order)
        db.session.flush()

        _add_lines(order, order_items, products, created_by_user_id)

        if payment is not None:
            apply_payment(
                order,
                amount_cents=payment.amount_cents,
                method=payment_tender,
                user_id=created_by_user_id,
                reference=payment.reference,
            )
        else:
            refresh_payment_status(order)

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Created order %s (%s items, total %s cents, status %s)",
        order.order_number,
        len(order_items),
        order.total_cents,
        order.status,
    )
    if order.status == STATUS_COMPLETED:
        try_generate_receipt(order.id)
    return order


def add_items(order_id: int, items, user_id: int) -> Order:
    """
    Append lines to a pending order and re-price it.

    The order's own discount and tax snapshot are reused; only the new lines
    reserve stock. Raises InvalidStateError unless the order is pending.
    """
    order_items = parse_order_items(items)

    def _op() -> Order:
        begin_write_transaction()
        order = _get_locked_order(order_id)
        if order.status != STATUS_PENDING:
            raise InvalidStateError(
                "Items can only be added to pending orders",
                details={"order_id": order.id, "status": order.status},
            )

        products = _load_products(order_items)
        _add_lines(order, order_items, products, user_id)

        totals = calculate_totals(
            [(line.unit_price_cents, line.quantity) for line in order.items],
            _order_discount(order),
            order.tax_rate_bps,
        )
        _apply_totals(order, totals)
        refresh_payment_status(order)

        db.session.commit()
        return order

    order = run_with_retry(_op)
    if order.status == STATUS_COMPLETED:
        try_generate_receipt(order.id)
    return order


def update_status(order_id: int, new_status: str, user_id: int, reason: str | None = None) -> Order:
    """
    Move an order along the lifecycle.

    Cancelling delegates to cancel_order so stock is always returned.
    Any transition not in TRANSITIONS (including to the same status) raises
    InvalidStateError.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status: {new_status}",
            details={"allowed": list(ORDER_STATUSES)},
        )
    if new_status == STATUS_CANCELLED:
        return cancel_order(order_id, user_id, reason)

    def _op() -> Order:
        begin_write_transaction()
        order = _get_locked_order(order_id)
        if new_status not in TRANSITIONS[order.status]:
            raise InvalidStateError(
                f"Cannot change order status from {order.status} to {new_status}",
                details={"order_id": order.id, "status": order.status, "requested": new_status},
            )

        order.status = new_status
        if new_status == STATUS_COMPLETED:
            order.completed_at = utcnow()

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s moved to %s by user %s", order.order_number, new_status, user_id)
    if order.status == STATUS_COMPLETED:
        try_generate_receipt(order.id)
    return order


def cancel_order(order_id: int, user_id: int, reason: str | None = None) -> Order:
    """
    Cancel a pending or completed order and return its stock.

    Every item that still references a product releases its quantity and
    logs a CANCELLATION_REVERSAL. Payments are left as recorded.
    """
    def _op() -> Order:
        begin_write_transaction()
        order = _get_locked_order(order_id)
        if STATUS_CANCELLED not in TRANSITIONS[order.status]:
            raise InvalidStateError(
                "Order is already cancelled",
                details={"order_id": order.id, "status": order.status},
            )

        for item in order.items:
            if item.product_id is None:
                continue
            release_stock(
                item.product_id,
                item.quantity,
                user_id=user_id,
                reference=order_reference(order.id),
                note=f"Cancel order #{order.order_number}",
            )

        now = utcnow()
        order.status = STATUS_CANCELLED
        order.cancelled_at = now
        order.cancelled_by_user_id = user_id
        order.cancel_reason = reason
        if reason:
            order.notes = f"{order.notes}\nCancelled: {reason}" if order.notes else f"Cancelled: {reason}"

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Cancelled order %s by user %s%s",
        order.order_number,
        user_id,
        f" ({reason})" if reason else "",
    )
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    payment_method: str | None = None,
    customer_id: int | None = None,
    user_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    """
    Filtered, sorted, paginated order list.

    Returns (orders, total_matching). Unknown sort fields fall back to
    created_at; page and limit are clamped to sane bounds.
    """
    query = db.session.query(Order)

    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if payment_method:
        query = query.filter(Order.payment_method == payment_method)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    if user_id:
        query = query.filter(Order.created_by_user_id == user_id)
    if start_date:
        query = query.filter(Order.created_at >= start_date)
    if end_date:
        query = query.filter(Order.created_at <= end_date)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                cast(Order.order_number, String).like(pattern),
                Order.notes.ilike(pattern),
            )
        )

    total = query.count()

    column = SORTABLE_FIELDS.get(sort_by, Order.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    query = query.order_by(ordering, Order.id.desc() if sort_order != "asc" else Order.id.asc())

    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    orders = query.offset((page - 1) * limit).limit(limit).all()
    return orders, total
