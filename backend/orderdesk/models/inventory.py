from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data plus the authoritative on-hand count.

    WHY stock lives on the row: the sale path decrements it with a single
    conditional UPDATE (see services.stock_service.reserve_stock), which is
    the only way to guarantee two registers never sell the same last unit.
    InventoryTransaction rows are the audit trail for every change.

    VARIANTS: `variants` is an optional ordered list of labels ("Small",
    "Large"). Variants share the product-level stock pool.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)

    # Only mutated through stock_service
    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_alert = db.Column(db.Integer, nullable=True)

    variants = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.low_stock_alert is not None and self.stock <= self.low_stock_alert

    def accepts_variant(self, variant: str | None) -> bool:
        if variant is None:
            return True
        if not self.variants:
            return True
        return variant in self.variants

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "low_stock_alert": self.low_stock_alert,
            "is_low_stock": self.is_low_stock,
            "variants": list(self.variants or []),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only audit trail of stock mutations.

    INVARIANT: for every product, SUM(quantity_delta) == Product.stock.
    Rows are written in the same unit of work as the stock change they
    describe and are never updated or deleted.

    TYPES:
    - SALE: negative delta, written when an order reserves stock
    - CANCELLATION_REVERSAL: positive delta, written when an order is cancelled
    - MANUAL_ADJUSTMENT: signed delta from a stock count or correction
    - RESTOCK: positive delta from receiving goods (including initial stock)
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_tx_product_created", "product_id", "created_at", "id"),
        db.Index("ix_inventory_tx_reference", "reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    # "order:<id>" for order-driven rows
    reference = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Python-side default keeps sub-second precision for chronological history
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # The log goes with its product; deletion is left to ON DELETE CASCADE
    product = db.relationship(
        "Product",
        backref=db.backref("inventory_transactions", lazy="dynamic", passive_deletes=True),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity_delta": self.quantity_delta,
            "reference": self.reference,
            "note": self.note,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
