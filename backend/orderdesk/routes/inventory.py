# backend/orderdesk/routes/inventory.py
"""Inventory routes: restock, manual adjustment, history and reconciliation."""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import OrderDeskError, ValidationError
from ..services import inventory_service, stock_service
from ..validation import coerce_int
from orderdesk.time_utils import parse_iso_datetime
from . import error_response, internal_error, parse_int_arg

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

HISTORY_MAX_LIMIT = 1000


def _required_int(data: dict, field: str) -> int:
    if data.get(field) is None:
        raise ValidationError(f"{field} is required")
    return coerce_int(data[field], field)


@inventory_bp.post("/restock")
@require_auth
@require_role("admin", "manager")
def restock_route():
    """Body: {"product_id": int, "quantity": int > 0, "note"?: str}"""
    try:
        data = request.get_json(silent=True) or {}
        product = stock_service.restock_product(
            _required_int(data, "product_id"),
            _required_int(data, "quantity"),
            user_id=g.current_user.id,
            note=data.get("note"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to restock product")


@inventory_bp.post("/adjust")
@require_auth
@require_role("admin", "manager")
def adjust_route():
    """Body: {"product_id": int, "quantity_delta": non-zero int, "note"?: str}"""
    try:
        data = request.get_json(silent=True) or {}
        product = stock_service.adjust_stock(
            _required_int(data, "product_id"),
            _required_int(data, "quantity_delta"),
            user_id=g.current_user.id,
            note=data.get("note"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to adjust stock")


@inventory_bp.get("/products/<int:product_id>/history")
@require_auth
def product_history_route(product_id: int):
    """Query params: since (ISO-8601), limit (default 200)"""
    try:
        try:
            since = parse_iso_datetime(request.args.get("since"))
        except ValueError:
            raise ValidationError("since must be an ISO-8601 datetime")
        limit = min(max(parse_int_arg(request.args, "limit", 200), 1), HISTORY_MAX_LIMIT)

        view = inventory_service.history(product_id, since=since)
        transactions = []
        for tx in view:
            transactions.append(tx.to_dict())
            if len(transactions) >= limit:
                break

        return jsonify({
            "product_id": product_id,
            "transactions": transactions,
            "count": view.count(),
            "net_change": view.net_change(),
        }), 200
    except OrderDeskError as e:
        return error_response(e)


@inventory_bp.get("/reconciliation")
@require_auth
@require_role("admin", "manager")
def reconciliation_route():
    """Products whose stock differs from their transaction log sum."""
    discrepancies = inventory_service.find_stock_discrepancies()
    return jsonify({
        "in_sync": not discrepancies,
        "discrepancies": discrepancies,
    }), 200


@inventory_bp.get("/products/<int:product_id>/reconciliation")
@require_auth
@require_role("admin", "manager")
def product_reconciliation_route(product_id: int):
    try:
        return jsonify(inventory_service.reconcile_product(product_id)), 200
    except OrderDeskError as e:
        return error_response(e)
