# backend/orderdesk/services/products_service.py
"""
Products Service

Thin product record management. Stock is never written here directly:
initial stock goes through stock_service.restock_product so the inventory
log starts with a RESTOCK row and stays reconcilable.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import delete, or_
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import ModelValidationPolicy, coerce_int, enforce_rules_product, validate_payload
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .stock_service import restock_product


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price_cents", "low_stock_alert", "variants", "is_active"},
    required_on_create={"name", "price_cents"},
)


def list_products(
    *,
    search: str | None = None,
    low_stock: bool = False,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional search, low-stock filter and pagination.

    Returns a dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)

    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if low_stock:
        base_query = base_query.filter(
            Product.low_stock_alert.isnot(None),
            Product.stock <= Product.low_stock_alert,
        )

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def create_product(payload: dict, user_id: int | None = None) -> Product:
    """
    Create a product. An optional "stock" key seeds the initial quantity
    through a RESTOCK transaction in the same commit.
    """
    payload = dict(payload or {})
    initial_stock = payload.pop("stock", None)
    if initial_stock is not None:
        initial_stock = coerce_int(initial_stock, "stock")
        if initial_stock < 0:
            raise ValidationError("stock must be >= 0")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op() -> Product:
        product = Product(stock=0, **patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise ValidationError("SKU already exists", details={"sku": patch.get("sku")}) from exc

        if initial_stock:
            restock_product(product.id, initial_stock, user_id=user_id, note="Initial stock", commit=False)

        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> Product:
    """
    Patch product details. Stock is not a writable field here; use the
    inventory operations so every change is logged.

    Existing order lines keep their name and price snapshots.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op() -> Product:
        begin_write_transaction()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        for key, value in patch.items():
            setattr(product, key, value)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise ValidationError("SKU already exists", details={"sku": patch.get("sku")}) from exc

        db.session.commit()
        return product

    return run_with_retry(_op)


def delete_product(product_id: int) -> None:
    """
    Remove a product for good.

    Order lines that referenced it keep their snapshot with product_id set to
    NULL (so cancelling those orders returns no stock for them), and its
    inventory log is removed with it.
    """
    def _op() -> str | None:
        begin_write_transaction()
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        sku = product.sku
        db.session.execute(delete(Product).where(Product.id == product_id))
        db.session.commit()
        return sku

    sku = run_with_retry(_op)
    current_app.logger.info("Deleted product %s (sku %s)", product_id, sku)
