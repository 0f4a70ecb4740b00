from __future__ import annotations

from ..extensions import db
from pos_backend.money_utils import format_money
from pos_backend.time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


class Product(db.Model):
    """
    Product master data plus its stock position.

    STOCK:
    quantity_in_stock is a mutable counter, never negative (enforced by a
    CHECK constraint and by the guarded UPDATE in inventory_service).
    Mutated by:
    - order creation (decrement) and cancellation/deletion (increment)
    - purchase order receipt (weighted-average increment)
    - purchase order cancellation from received, and deletion (clamped decrement)

    COST:
    cost_price is the weighted average acquisition cost, price is the
    selling price. Both are re-derived on each purchase order receipt.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity_in_stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    barcode = db.Column(db.String(64), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.quantity_in_stock}>"

    def to_dict(self) -> dict:
        # "stock" and "cost" are the names the POS frontend reads
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "barcode": self.barcode,
            "price": format_money(self.price),
            "cost_price": format_money(self.cost_price),
            "cost": format_money(self.cost_price),
            "quantity_in_stock": self.quantity_in_stock,
            "stock": self.quantity_in_stock,
            "reorder_level": self.reorder_level,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.company_name if self.supplier else None,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
