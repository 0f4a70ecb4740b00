from __future__ import annotations

from ..extensions import db
from pos_backend.money_utils import format_money, to_decimal
from pos_backend.time_utils import to_utc_z


class Order(db.Model):
    """
    Sales order.

    total_amount is supplied by the client at creation and is authoritative
    for payment caps and balances; it is never recomputed from items.
    Soft-deleted via deleted_at (reversible through restore).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    # pending, processing, completed, cancelled, refunded
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    payment_method = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    delivery_required = db.Column(db.Boolean, nullable=False, default=False)
    delivery_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status!r} total={self.total_amount}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.full_name if self.customer else None,
            "order_date": to_utc_z(self.order_date),
            "total_amount": format_money(self.total_amount),
            "status": self.status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "delivery_required": bool(self.delivery_required),
            "delivery_fee": format_money(self.delivery_fee),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class OrderItem(db.Model):
    """Line item on a sales order; quantity was decremented from stock at creation."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    # Absolute discount for the line (percent discounts are converted at creation)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    @property
    def line_total(self):
        return to_decimal(self.unit_price) * self.quantity - to_decimal(self.discount)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "discount": format_money(self.discount),
            "line_total": format_money(self.line_total),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
