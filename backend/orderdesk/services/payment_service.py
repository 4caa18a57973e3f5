# Overview: Service-layer operations for payments; append-only ledger and payment status derivation.

"""
Payment Ledger

WHY: An order can be settled with several tenders (split payment) or over
several visits (partial payment). Payments are appended, never edited, and
the order's payment_status is recomputed from the sum of its payments on
every write, so the cached column can never drift from the rows.

STATUS RULES (total_paid vs order total):
- total or more       -> paid (anything above total is an overpayment,
                         and a zero total counts as paid)
- 0                  -> unpaid
- between 0 and total -> partial

A pending order that becomes paid is completed automatically.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, Payment
from orderdesk.time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry


METHOD_CASH = "cash"
METHOD_CREDIT_CARD = "credit_card"
METHOD_DEBIT_CARD = "debit_card"
METHOD_TRANSFER = "transfer"
PAYMENT_METHODS = (METHOD_CASH, METHOD_CREDIT_CARD, METHOD_DEBIT_CARD, METHOD_TRANSFER)

PAYMENT_UNPAID = "unpaid"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of record_payment. overpaid_cents > 0 is the overpayment warning."""
    payment: Payment
    order: Order
    total_paid_cents: int
    remaining_cents: int
    overpaid_cents: int

    @property
    def is_overpaid(self) -> bool:
        return self.overpaid_cents > 0

    def to_dict(self) -> dict:
        data = {
            "payment": self.payment.to_dict(),
            "order": self.order.to_dict(),
            "total_paid_cents": self.total_paid_cents,
            "remaining_cents": self.remaining_cents,
            "overpaid_cents": self.overpaid_cents,
        }
        if self.is_overpaid:
            data["warning"] = "Payment exceeds order total"
        return data


def derive_payment_status(total_paid_cents: int, total_cents: int) -> str:
    # A zero-total order is settled with nothing recorded.
    if total_paid_cents >= total_cents:
        return PAYMENT_PAID
    if total_paid_cents <= 0:
        return PAYMENT_UNPAID
    return PAYMENT_PARTIAL


def validate_payment_input(amount_cents, method) -> None:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer", details={"amount_cents": amount_cents})
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be positive", details={"amount_cents": amount_cents})
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}",
            details={"method": method, "allowed": list(PAYMENT_METHODS)},
        )


def total_paid_for_order(order_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.order_id == order_id)
        .scalar()
    )
    return int(total or 0)


def refresh_payment_status(order: Order) -> int:
    """
    Recompute order.payment_status from the payment rows.

    Completes a pending order that is now fully paid. Returns total paid.
    """
    total_paid = total_paid_for_order(order.id)
    order.payment_status = derive_payment_status(total_paid, order.total_cents)

    if order.status == "pending" and order.payment_status == PAYMENT_PAID:
        order.status = "completed"
        order.completed_at = utcnow()

    return total_paid


def apply_payment(
    order: Order,
    *,
    amount_cents: int,
    method: str,
    user_id: int,
    reference: str | None = None,
    notes: str | None = None,
) -> PaymentResult:
    """
    Append a payment to a locked order inside the caller's unit of work.

    Shared by record_payment and the initial payment of create_order.
    """
    if order.status == "cancelled":
        raise InvalidStateError(
            "Cannot add payments to a cancelled order",
            details={"order_id": order.id, "status": order.status},
        )
    validate_payment_input(amount_cents, method)

    payment = Payment(
        order_id=order.id,
        amount_cents=amount_cents,
        method=method,
        reference=reference,
        notes=notes,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(payment)
    db.session.flush()

    if not order.payment_method:
        order.payment_method = method

    total_paid = refresh_payment_status(order)
    overpaid = max(total_paid - order.total_cents, 0)
    if overpaid:
        current_app.logger.warning(
            "Order %s overpaid by %s cents (paid %s of %s)",
            order.order_number,
            overpaid,
            total_paid,
            order.total_cents,
        )

    return PaymentResult(
        payment=payment,
        order=order,
        total_paid_cents=total_paid,
        remaining_cents=max(order.total_cents - total_paid, 0),
        overpaid_cents=overpaid,
    )


def record_payment(
    order_id: int,
    amount_cents: int,
    method: str,
    user_id: int,
    reference: str | None = None,
    notes: str | None = None,
) -> PaymentResult:
    """
    Record a payment against an order and commit.

    Raises NotFoundError, then InvalidStateError (cancelled order), then
    ValidationError (amount <= 0, unknown method). Overpayment is accepted;
    check PaymentResult.overpaid_cents.
    """
    from .receipt_service import try_generate_receipt

    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        was_pending = order.status == "pending"
        result = apply_payment(
            order,
            amount_cents=amount_cents,
            method=method,
            user_id=user_id,
            reference=reference,
            notes=notes,
        )
        db.session.commit()
        return result, was_pending and order.status == "completed"

    result, completed_now = run_with_retry(_op)
    if completed_now:
        current_app.logger.info("Order %s completed by payment", result.order.order_number)
        try_generate_receipt(result.order.id)
    return result


def list_payments(order_id: int) -> list[Payment]:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return (
        db.session.query(Payment)
        .filter_by(order_id=order_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


def payment_summary(order_id: int) -> dict:
    """
    Derived view of an order's payments.

    Computed from the payment rows, not from the cached payment_status.
    """
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})

    total_paid = total_paid_for_order(order_id)
    payment_count = db.session.query(Payment).filter_by(order_id=order_id).count()

    return {
        "order_id": order.id,
        "total_cents": order.total_cents,
        "total_paid_cents": total_paid,
        "remaining_cents": max(order.total_cents - total_paid, 0),
        "overpaid_cents": max(total_paid - order.total_cents, 0),
        "payment_status": derive_payment_status(total_paid, order.total_cents),
        "payment_count": payment_count,
    }
