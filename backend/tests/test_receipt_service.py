"""
Receipt rendering tests.
"""

import logging
import os

import pytest

from orderdesk.errors import InvalidStateError
from orderdesk.extensions import db
from orderdesk.models import Order
from orderdesk.services import order_service, receipt_service, settings_service


def _paid_order(user, product, quantity=2, **kwargs):
    return order_service.create_order(
        created_by_user_id=user.id,
        items=[{"product_id": product.id, "quantity": quantity}],
        initial_payment={"amount_cents": product.price_cents * quantity + 150, "method": "cash"},
        **kwargs,
    )


def test_format_money():
    assert receipt_service.format_money(0) == "$0.00"
    assert receipt_service.format_money(123456) == "$1,234.56"
    assert receipt_service.format_money(-5) == "-$0.05"
    assert receipt_service.format_money(1999, "EUR") == "EUR 19.99"


def test_completed_order_gets_receipt_file(app, coffee, waitress_user, customer):
    settings_service.update_business_settings({"business_name": "Corner Cafe", "receipt_footer": "See you soon"})
    order = _paid_order(waitress_user, coffee, customer_id=customer.id)

    order = db.session.get(Order, order.id)
    assert order.status == "completed"
    assert order.receipt_url == f"/receipts/receipt-{order.order_number}.html"

    path = os.path.join(app.config["RECEIPTS_DIR"], f"receipt-{order.order_number}.html")
    with open(path, encoding="utf-8") as fh:
        html = fh.read()
    assert "Corner Cafe" in html
    assert "2 x Coffee" in html
    assert "$7.00" in html
    assert "Change" in html and "$1.50" in html
    assert "Jane Doe" in html
    assert "See you soon" in html


def test_pending_order_has_no_receipt(coffee, waitress_user):
    order = order_service.create_order(
        created_by_user_id=waitress_user.id,
        items=[{"product_id": coffee.id, "quantity": 1}],
    )
    assert order.receipt_url is None
    with pytest.raises(InvalidStateError):
        receipt_service.generate_receipt(order.id)


def test_regenerate_overwrites(coffee, waitress_user):
    order = _paid_order(waitress_user, coffee)
    first = receipt_service.generate_receipt(order.id)
    assert receipt_service.generate_receipt(order.id) == first


def test_render_failure_does_not_affect_order(coffee, waitress_user, monkeypatch, caplog):
    def broken(order):
        raise RuntimeError("template exploded")

    monkeypatch.setattr(receipt_service, "render_receipt_html", broken)
    caplog.set_level(logging.ERROR)

    order = _paid_order(waitress_user, coffee)

    order = db.session.get(Order, order.id)
    assert order.status == "completed"
    assert order.payment_status == "paid"
    assert order.receipt_url is None
    assert any("Failed to generate receipt" in r.getMessage() for r in caplog.records)
