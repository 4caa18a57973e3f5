# backend/orderdesk/routes/products.py
"""Product routes. Stock changes go through /api/inventory."""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import OrderDeskError
from ..services import products_service
from . import error_response, internal_error, parse_bool_arg, parse_int_arg

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params: search, low_stock=true, include_inactive=true, page, per_page
    """
    result = products_service.list_products(
        search=request.args.get("search"),
        low_stock=parse_bool_arg(request.args, "low_stock"),
        include_inactive=parse_bool_arg(request.args, "include_inactive"),
        page=parse_int_arg(request.args, "page"),
        per_page=parse_int_arg(request.args, "per_page"),
    )
    return jsonify(result), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_product_route():
    """Create product. Optional "stock" seeds the initial quantity."""
    try:
        product = products_service.create_product(request.get_json(silent=True), user_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_role("admin", "manager")
def update_product_route(product_id: int):
    """Patch product details. "stock" is rejected; use /api/inventory."""
    try:
        product = products_service.update_product(product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("admin")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"deleted": product_id}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete product")
