from __future__ import annotations

from ..extensions import db
from pos_backend.money_utils import format_money
from pos_backend.time_utils import to_utc_z


class Payment(db.Model):
    """
    Payment against exactly one owner: a sales order or a purchase order.

    WHY two nullable FKs: the owner tables are unrelated, and the
    CHECK constraint keeps exactly one of them set.

    Only status='completed' rows with deleted_at IS NULL count toward
    paid totals. Soft-deleted rows still block purchase order deletion.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint(
            "(order_id IS NULL) <> (purchase_order_id IS NULL)",
            name="ck_payments_single_owner",
        ),
        db.Index("ix_payments_order_status", "order_id", "status"),
        db.Index("ix_payments_po_status", "purchase_order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    transaction_id = db.Column(db.String(128), nullable=True)

    # pending, completed, failed, refunded
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))
    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("payments", lazy=True))

    @property
    def owner_type(self) -> str:
        return "order" if self.order_id is not None else "purchase_order"

    def __repr__(self) -> str:
        return f"<Payment id={self.id} {self.owner_type} amount={self.amount} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "purchase_order_id": self.purchase_order_id,
            "owner_type": self.owner_type,
            "amount": format_money(self.amount),
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "status": self.status,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
