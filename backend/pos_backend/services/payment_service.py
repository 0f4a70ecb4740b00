# Overview: Service-layer operations for payments; encapsulates business logic and database work.

# backend/pos_backend/services/payment_service.py
"""
Payment Ledger

WHY: Orders and purchase orders are settled by one or more payments.
Every "how much has been paid" question in the system is answered by
get_completed_paid_total(); nothing else sums payments.

DESIGN:
- A payment belongs to exactly one owner: a sales order XOR a purchase order.
- Only status='completed', non-deleted payments count toward paid totals.
- A completed payment may never push the paid total above the owner's
  total_amount. Checked on create, on update and on restore.
- purchase_orders.payment_amount / balance are a cache. They are rewritten
  from the payments table after every payment write, never incremented.
- Completed payments that reach the owner's total flip the owner to
  'completed'. Removing a payment afterwards does NOT roll that back.

TRANSACTIONS:
- All functions take the session explicitly and only flush.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import String, cast, func, or_

from ..models import Customer, Order, Payment, PurchaseOrder, Supplier
from ..money_utils import ZERO, format_money, quantize_money, to_decimal
from ..pagination import paginate_query
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_amount,
    coerce_optional_id,
)
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

OWNER_ORDER = "order"
OWNER_PURCHASE_ORDER = "purchase_order"

PAYMENT_MUTABLE_FIELDS = {"amount", "payment_method", "transaction_id", "status", "notes"}


@dataclass
class PaymentResult:
    """Outcome of a payment write, as reported back to the caller."""
    payment: Payment
    owner_type: str
    total_paid: Decimal
    remaining: Decimal
    owner_status: str
    status_changed: bool

    def summary(self) -> dict:
        return {
            "owner_type": self.owner_type,
            "total_paid": format_money(self.total_paid),
            "remaining": format_money(self.remaining),
            "owner_status": self.owner_status,
            "status_changed": self.status_changed,
        }


# =============================================================================
# PAID TOTALS
# =============================================================================

def _owner_column(owner_type: str):
    if owner_type == OWNER_ORDER:
        return Payment.order_id
    if owner_type == OWNER_PURCHASE_ORDER:
        return Payment.purchase_order_id
    raise ValidationError(f"Unknown payment owner type: {owner_type}")


def get_completed_paid_total(session, owner_type: str, owner_id: int, *, exclude_payment_id: int | None = None) -> Decimal:
    """
    Sum of completed, non-deleted payments against one owner.

    exclude_payment_id leaves one payment out of the sum, used when that
    payment is itself being re-validated.
    """
    q = session.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        _owner_column(owner_type) == owner_id,
        Payment.status == "completed",
        Payment.deleted_at.is_(None),
    )
    if exclude_payment_id is not None:
        q = q.filter(Payment.id != exclude_payment_id)
    return quantize_money(q.scalar())


def remaining_balance(total_amount, total_paid) -> Decimal:
    return max(ZERO, to_decimal(total_amount) - to_decimal(total_paid))


def sync_purchase_order_balance(session, purchase_order: PurchaseOrder) -> Decimal:
    """
    Rewrite payment_amount / balance from the payments table.

    Returns the paid total. Does not touch status.
    """
    paid = get_completed_paid_total(session, OWNER_PURCHASE_ORDER, purchase_order.id)
    purchase_order.payment_amount = paid
    purchase_order.balance = remaining_balance(purchase_order.total_amount, paid)
    session.flush()
    return paid


def resync_all_purchase_order_balances(session) -> int:
    """Recompute the cache on every purchase order. Returns how many rows changed."""
    changed = 0
    for po in session.query(PurchaseOrder).order_by(PurchaseOrder.id.asc()).all():
        before = (to_decimal(po.payment_amount), to_decimal(po.balance))
        sync_purchase_order_balance(session, po)
        if before != (to_decimal(po.payment_amount), to_decimal(po.balance)):
            changed += 1
            logger.info(
                "Resynced purchase order %s payment_amount=%s balance=%s",
                po.id, po.payment_amount, po.balance,
            )
    return changed


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _normalize_status(status) -> str:
    status = (status or "pending").strip().lower() if isinstance(status, str) else status
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(PAYMENT_STATUSES)}")
    return status


def _normalize_method(payment_method) -> str:
    if not isinstance(payment_method, str) or not payment_method.strip():
        raise ValidationError("payment_method is required")
    method = payment_method.strip().lower()
    if len(method) > 32:
        raise ValidationError("payment_method exceeds max length 32")
    return method


def _lock_owner(session, owner_type: str, owner_id: int):
    if owner_type == OWNER_ORDER:
        owner = lock_for_update(
            session.query(Order).filter(Order.id == owner_id, Order.deleted_at.is_(None))
        ).first()
        if owner is None:
            raise NotFoundError("Order not found")
    else:
        owner = lock_for_update(
            session.query(PurchaseOrder).filter(PurchaseOrder.id == owner_id)
        ).first()
        if owner is None:
            raise NotFoundError("Purchase order not found")
    return owner


def _owner_of(payment: Payment) -> tuple[str, int]:
    if payment.order_id is not None:
        return OWNER_ORDER, payment.order_id
    return OWNER_PURCHASE_ORDER, payment.purchase_order_id


def _enforce_cap(session, owner_type: str, owner, amount: Decimal, *, exclude_payment_id: int | None = None) -> Decimal:
    """Reject a completed payment that would overpay the owner. Returns paid-to-date (excluding it)."""
    paid = get_completed_paid_total(session, owner_type, owner.id, exclude_payment_id=exclude_payment_id)
    total = to_decimal(owner.total_amount)
    if paid + amount > total:
        remaining = remaining_balance(total, paid)
        raise ConflictError(
            f"Payment amount exceeds remaining balance. Remaining: ${remaining:.2f}",
            details={"remaining": format_money(remaining), "total_paid": format_money(paid)},
        )
    return paid


def _apply_owner_effects(session, owner_type: str, owner, payment: Payment) -> tuple[Decimal, Decimal, bool]:
    """
    After a payment write: resync the purchase order cache and flip the
    owner to 'completed' once completed payments cover its total.

    Orders complete only on a completed payment; a purchase order
    completes whenever its balance reaches zero.

    Returns (total_paid, remaining, status_changed).
    """
    if owner_type == OWNER_PURCHASE_ORDER:
        paid = sync_purchase_order_balance(session, owner)
    else:
        paid = get_completed_paid_total(session, OWNER_ORDER, owner.id)

    total = to_decimal(owner.total_amount)
    remaining = remaining_balance(total, paid)

    status_changed = False
    if (
        remaining == ZERO
        and total > ZERO
        and (owner_type == OWNER_PURCHASE_ORDER or payment.status == "completed")
        and owner.status not in ("completed", "cancelled")
    ):
        previous = owner.status
        owner.status = "completed"
        status_changed = True
        logger.info("%s %s completed by payments (was %s)", owner_type, owner.id, previous)

    session.flush()
    return paid, remaining, status_changed


# =============================================================================
# WRITES
# =============================================================================

def create_payment(
    session,
    *,
    order_id=None,
    purchase_order_id=None,
    amount=None,
    payment_method=None,
    status="pending",
    transaction_id=None,
    notes=None,
) -> PaymentResult:
    """
    Record a payment against an order or a purchase order.

    Raises:
        ValidationError: owner missing/ambiguous, bad amount, method or status
        NotFoundError: owner does not exist
        ConflictError: owner cancelled, or completed payment would overpay
    """
    order_id = coerce_optional_id(order_id, "order_id")
    purchase_order_id = coerce_optional_id(purchase_order_id, "purchase_order_id")

    if order_id is None and purchase_order_id is None:
        raise ValidationError("Either order_id or purchase_order_id is required")
    if order_id is not None and purchase_order_id is not None:
        raise ValidationError("Cannot provide both order_id and purchase_order_id")

    amount = coerce_amount(amount, "amount")
    payment_method = _normalize_method(payment_method)
    status = _normalize_status(status)

    owner_type = OWNER_ORDER if order_id is not None else OWNER_PURCHASE_ORDER
    owner = _lock_owner(session, owner_type, order_id or purchase_order_id)

    if owner.status == "cancelled":
        label = "order" if owner_type == OWNER_ORDER else "purchase order"
        raise ConflictError(f"Cannot create payment for cancelled {label}")

    if status == "completed":
        _enforce_cap(session, owner_type, owner, amount)

    payment = Payment(
        order_id=order_id,
        purchase_order_id=purchase_order_id,
        amount=amount,
        payment_method=payment_method,
        transaction_id=(transaction_id or None),
        status=status,
        notes=notes,
    )
    session.add(payment)
    session.flush()

    paid, remaining, status_changed = _apply_owner_effects(session, owner_type, owner, payment)
    logger.info(
        "Payment %s recorded: %s %s amount=%s status=%s",
        payment.id, owner_type, owner.id, amount, status,
    )

    return PaymentResult(
        payment=payment,
        owner_type=owner_type,
        total_paid=paid,
        remaining=remaining,
        owner_status=owner.status,
        status_changed=status_changed,
    )


def update_payment_record(session, payment_id: int, patch: dict) -> PaymentResult:
    """
    Edit amount, method, transaction_id, status or notes of a live payment.

    The owner cannot be changed. The overpayment cap is re-checked when the
    edited payment is (or becomes) completed.
    """
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(patch) - PAYMENT_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    payment = get_payment(session, payment_id)
    owner_type, owner_id = _owner_of(payment)
    owner = _lock_owner(session, owner_type, owner_id)

    amount = coerce_amount(patch["amount"], "amount") if patch.get("amount") is not None else to_decimal(payment.amount)
    status = _normalize_status(patch["status"]) if patch.get("status") is not None else payment.status

    if status == "completed":
        _enforce_cap(session, owner_type, owner, amount, exclude_payment_id=payment.id)

    payment.amount = amount
    payment.status = status
    if patch.get("payment_method") is not None:
        payment.payment_method = _normalize_method(patch["payment_method"])
    if "transaction_id" in patch:
        payment.transaction_id = patch["transaction_id"] or None
    if "notes" in patch:
        payment.notes = patch["notes"]
    session.flush()

    paid, remaining, status_changed = _apply_owner_effects(session, owner_type, owner, payment)
    logger.info("Payment %s updated amount=%s status=%s", payment.id, amount, status)

    return PaymentResult(payment, owner_type, paid, remaining, owner.status, status_changed)


def remove_payment(session, payment_id: int) -> Payment:
    """
    Soft delete a payment.

    The purchase order cache is resynced. An owner already marked
    'completed' stays completed.
    """
    payment = get_payment(session, payment_id)
    payment.deleted_at = utcnow()
    session.flush()

    if payment.purchase_order_id is not None:
        po = session.get(PurchaseOrder, payment.purchase_order_id)
        if po is not None:
            sync_purchase_order_balance(session, po)

    logger.info("Payment %s soft-deleted", payment.id)
    return payment


def restore_payment(session, payment_id: int) -> PaymentResult:
    """Undo a soft delete. A completed payment must still fit under the owner's total."""
    payment = session.get(Payment, payment_id)
    if payment is None or payment.deleted_at is None:
        raise NotFoundError("Deleted payment not found")

    owner_type, owner_id = _owner_of(payment)
    if owner_type == OWNER_ORDER:
        owner = lock_for_update(session.query(Order).filter(Order.id == owner_id)).first()
    else:
        owner = lock_for_update(session.query(PurchaseOrder).filter(PurchaseOrder.id == owner_id)).first()
    if owner is None:
        raise NotFoundError("Payment owner not found")

    if payment.status == "completed":
        _enforce_cap(session, owner_type, owner, to_decimal(payment.amount))

    payment.deleted_at = None
    session.flush()

    paid, remaining, status_changed = _apply_owner_effects(session, owner_type, owner, payment)
    logger.info("Payment %s restored", payment.id)

    return PaymentResult(payment, owner_type, paid, remaining, owner.status, status_changed)


# =============================================================================
# READS
# =============================================================================

def get_payment(session, payment_id: int, *, include_deleted: bool = False) -> Payment:
    payment = session.get(Payment, payment_id)
    if payment is None or (payment.deleted_at is not None and not include_deleted):
        raise NotFoundError("Payment not found")
    return payment


def serialize_payment(payment: Payment) -> dict:
    data = payment.to_dict()
    if payment.order is not None:
        data["order_total"] = format_money(payment.order.total_amount)
        data["customer_id"] = payment.order.customer_id
        data["customer_name"] = payment.order.customer.full_name if payment.order.customer else None
    if payment.purchase_order is not None:
        data["purchase_order_total"] = format_money(payment.purchase_order.total_amount)
        data["po_number"] = payment.purchase_order.po_number
        supplier = payment.purchase_order.supplier
        data["supplier_name"] = supplier.company_name if supplier else None
    return data


def list_payments(
    session,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    order_id: int | None = None,
    purchase_order_id: int | None = None,
    customer_id: int | None = None,
    supplier_id: int | None = None,
    only_orders: bool = False,
    only_purchase_orders: bool = False,
    include_deleted: bool = False,
    q: str | None = None,
    limit=None,
    offset=None,
) -> dict:
    query = (
        session.query(Payment)
        .outerjoin(Order, Payment.order_id == Order.id)
        .outerjoin(Customer, Order.customer_id == Customer.id)
        .outerjoin(PurchaseOrder, Payment.purchase_order_id == PurchaseOrder.id)
        .outerjoin(Supplier, PurchaseOrder.supplier_id == Supplier.id)
    )

    if not include_deleted:
        query = query.filter(Payment.deleted_at.is_(None))
    if status:
        query = query.filter(Payment.status == status)
    if payment_method:
        query = query.filter(Payment.payment_method == payment_method)
    if order_id is not None:
        query = query.filter(Payment.order_id == order_id)
    if purchase_order_id is not None:
        query = query.filter(Payment.purchase_order_id == purchase_order_id)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if only_orders:
        query = query.filter(Payment.order_id.isnot(None))
    if only_purchase_orders:
        query = query.filter(Payment.purchase_order_id.isnot(None))

    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(
                cast(Payment.id, String).ilike(like),
                cast(Payment.order_id, String).ilike(like),
                cast(Payment.purchase_order_id, String).ilike(like),
                cast(Payment.amount, String).ilike(like),
                Payment.payment_method.ilike(like),
                Payment.transaction_id.ilike(like),
                Customer.first_name.ilike(like),
                Customer.last_name.ilike(like),
                Supplier.company_name.ilike(like),
                PurchaseOrder.po_number.ilike(like),
            )
        )

    query = query.order_by(Payment.id.desc())
    return paginate_query(query, limit=limit, offset=offset, serialize=serialize_payment)
