# Overview: Service-layer operations for receipts; renders completed orders to HTML files.

"""
Receipt rendering.

Receipts are a side effect of completing an order, never part of it: the
order commits first, then try_generate_receipt renders and stores the file.
A rendering failure is logged and the order stays completed; the receipt
can be regenerated later through generate_receipt.
"""

from __future__ import annotations

import os

from flask import current_app, render_template

from ..errors import InvalidStateError, NotFoundError
from ..extensions import db
from ..models import Order
from orderdesk.time_utils import to_utc_z
from .payment_service import total_paid_for_order
from .settings_service import get_business_settings


def format_money(cents: int | None, currency: str = "USD") -> str:
    cents = cents or 0
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    symbol = "$" if currency == "USD" else f"{currency} "
    return f"{sign}{symbol}{whole:,}.{frac:02d}"


def receipts_dir() -> str:
    path = current_app.config.get("RECEIPTS_DIR", "receipts")
    if not os.path.isabs(path):
        path = os.path.join(current_app.instance_path, path)
    return path


def receipt_filename(order: Order) -> str:
    return f"receipt-{order.order_number}.html"


def render_receipt_html(order: Order) -> str:
    settings = get_business_settings()
    total_paid = total_paid_for_order(order.id)
    return render_template(
        "receipt.html",
        order=order,
        settings=settings,
        issued_at=to_utc_z(order.completed_at or order.created_at),
        change_cents=max(total_paid - order.total_cents, 0),
        money=lambda cents: format_money(cents, settings.currency),
    )


def generate_receipt(order_id: int) -> str:
    """
    Render the receipt for a completed order, store it and return its URL.

    Overwrites any previous rendering for the same order number.
    """
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    if order.status != "completed":
        raise InvalidStateError(
            "Receipts are only available for completed orders",
            details={"order_id": order.id, "status": order.status},
        )

    html = render_receipt_html(order)

    directory = receipts_dir()
    os.makedirs(directory, exist_ok=True)
    filename = receipt_filename(order)
    with open(os.path.join(directory, filename), "w", encoding="utf-8") as fh:
        fh.write(html)

    prefix = current_app.config.get("RECEIPT_URL_PREFIX", "/receipts").rstrip("/")
    order.receipt_url = f"{prefix}/{filename}"
    db.session.commit()
    return order.receipt_url


def try_generate_receipt(order_id: int) -> str | None:
    """Best-effort wrapper used after an order completes."""
    try:
        return generate_receipt(order_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to generate receipt for order %s", order_id)
        return None
