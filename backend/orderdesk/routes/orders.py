# backend/orderdesk/routes/orders.py
"""Order routes: create, list, items, status, cancel, payments and receipts."""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import OrderDeskError, ValidationError
from ..services import order_service, payment_service, receipt_service
from ..validation import coerce_int
from orderdesk.time_utils import parse_iso_datetime
from . import error_response, internal_error, parse_int_arg

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params: status, payment_status, payment_method, customer_id,
    user_id, start_date, end_date, search, sort_by, sort_order, page, limit
    """
    try:
        page = parse_int_arg(request.args, "page", 1)
        limit = parse_int_arg(request.args, "limit", 20)
        orders, total = order_service.list_orders(
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            payment_method=request.args.get("payment_method"),
            customer_id=parse_int_arg(request.args, "customer_id"),
            user_id=parse_int_arg(request.args, "user_id"),
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by", "created_at"),
            sort_order=request.args.get("sort_order", "desc"),
            page=page,
            limit=limit,
        )
        limit = min(max(limit, 1), order_service.MAX_PAGE_SIZE)
        return jsonify({
            "orders": [o.to_dict(include_items=False) for o in orders],
            "pagination": {
                "page": max(page, 1),
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }), 200
    except OrderDeskError as e:
        return error_response(e)


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Body:
    {
        "items": [{"product_id": 1, "quantity": 2, "variant": "Large", "notes": "no ice"}],
        "customer_id": 3,                                  // optional
        "discount": {"type": "percentage", "value": 1000}, // optional, bps or cents
        "payment": {"amount_cents": 2500, "method": "cash"}, // optional
        "payment_method": "cash",                          // optional
        "notes": "table 4"                                 // optional
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        customer_id = data.get("customer_id")
        order = order_service.create_order(
            created_by_user_id=g.current_user.id,
            items=data.get("items"),
            customer_id=coerce_int(customer_id, "customer_id") if customer_id is not None else None,
            discount=data.get("discount"),
            initial_payment=data.get("payment"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 201
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create order")


@orders_bp.post("/<int:order_id>/items")
@require_auth
def add_items_route(order_id: int):
    """Body: {"items": [...]} (same shape as order creation)"""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.add_items(order_id, data.get("items"), g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to add order items")


@orders_bp.put("/<int:order_id>/status")
@require_auth
def update_status_route(order_id: int):
    """Body: {"status": "completed"|"cancelled", "reason"?: str}"""
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("status"):
            return jsonify({"error": "status required"}), 400

        order = order_service.update_status(
            order_id,
            data["status"],
            g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update order status")


@orders_bp.put("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    """Body: {"reason"?: str}"""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(order_id, g.current_user.id, reason=data.get("reason"))
        return jsonify({"order": order.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel order")


@orders_bp.post("/<int:order_id>/payments")
@require_auth
def record_payment_route(order_id: int):
    """
    Body: {"amount_cents": int > 0, "method": str, "reference"?: str, "notes"?: str}

    Overpayment is accepted; the response carries "warning" and
    "overpaid_cents" when the total paid exceeds the order total.
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("amount_cents") is None:
            return jsonify({"error": "amount_cents required"}), 400

        result = payment_service.record_payment(
            order_id,
            coerce_int(data["amount_cents"], "amount_cents"),
            data.get("method"),
            g.current_user.id,
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record payment")


@orders_bp.get("/<int:order_id>/payments")
@require_auth
def list_payments_route(order_id: int):
    try:
        payments = payment_service.list_payments(order_id)
        return jsonify({
            "payments": [p.to_dict() for p in payments],
            "summary": payment_service.payment_summary(order_id),
        }), 200
    except OrderDeskError as e:
        return error_response(e)


@orders_bp.post("/<int:order_id>/receipt")
@require_auth
def generate_receipt_route(order_id: int):
    """(Re)render the receipt for a completed order."""
    try:
        url = receipt_service.generate_receipt(order_id)
        return jsonify({"receipt_url": url}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to generate receipt")


@orders_bp.get("/<int:order_id>/receipt")
@require_auth
def get_receipt_route(order_id: int):
    """Return the stored receipt URL, rendering it first if missing."""
    try:
        order = order_service.get_order(order_id)
        url = order.receipt_url or receipt_service.generate_receipt(order_id)
        return jsonify({"receipt_url": url}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load receipt")
