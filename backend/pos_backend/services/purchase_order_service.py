# Overview: Service-layer operations for purchase orders; encapsulates business logic and database work.

# backend/pos_backend/services/purchase_order_service.py
"""
Purchase Order Engine

LIFECYCLE (manual):
    pending <-> ordered -> received
    pending/ordered/received/completed -> cancelled (terminal)
    completed -> received
'completed' is never set by hand; the payment ledger sets it once the
balance reaches zero.

STOCK EFFECTS:
- Receiving adds every line to stock at weighted-average cost and sets
  received_date. A PO is only ever received into stock once.
- Cancelling a PO whose goods were received takes them back out,
  clamped at zero.
- Cancelling is refused while any product on the PO has been sold.
- Deleting reverses lines as described on delete_purchase_order().

PAYMENTS:
- payment_amount / balance are owned by payment_service and rewritten
  from the payments table; update_payment() is a wrapper that records a
  completed payment.
"""
from __future__ import annotations

import logging

from sqlalchemy import String, cast, func, or_

from ..models import OrderItem, Payment, Product, PurchaseOrder, PurchaseOrderItem, Supplier
from ..money_utils import ZERO, format_money, to_decimal
from ..pagination import filter_date_range, paginate_query
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_amount,
    coerce_positive_int,
)
from . import inventory_service, payment_service
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


PO_STATUSES = ("pending", "ordered", "received", "cancelled", "completed")
MANUAL_PO_STATUSES = ("pending", "ordered", "received", "cancelled")

PO_TRANSITIONS = {
    "pending": {"ordered", "received", "cancelled"},
    "ordered": {"pending", "received", "cancelled"},
    "received": {"cancelled"},
    "completed": {"received", "cancelled"},
    "cancelled": set(),
}


def _lock_purchase_order(session, po_id: int) -> PurchaseOrder:
    po = lock_for_update(session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)).first()
    if po is None:
        raise NotFoundError("Purchase order not found")
    return po


def _sold_products(session, po: PurchaseOrder) -> list[tuple[int, str, int]]:
    """(product_id, name, total_sold) for every PO product that appears on any sales order line."""
    product_ids = {item.product_id for item in po.items}
    if not product_ids:
        return []
    rows = (
        session.query(OrderItem.product_id, Product.name, func.sum(OrderItem.quantity))
        .join(Product, Product.id == OrderItem.product_id)
        .filter(OrderItem.product_id.in_(product_ids))
        .group_by(OrderItem.product_id, Product.name)
        .having(func.sum(OrderItem.quantity) > 0)
        .order_by(OrderItem.product_id.asc())
        .all()
    )
    return [(pid, name, int(sold)) for pid, name, sold in rows]


# =============================================================================
# CREATE
# =============================================================================

def create_purchase_order(
    session,
    *,
    supplier_id,
    items,
    total_amount=None,
    payment_method: str | None = None,
    notes: str | None = None,
    expected_delivery=None,
) -> PurchaseOrder:
    """
    Create a pending purchase order. No stock moves until it is received.

    Each item: {"product_id", "quantity", "unit_cost"} ("unit_price" is
    accepted as the older name for unit_cost).

    total_amount defaults to the sum of line costs when omitted.
    """
    if supplier_id in (None, ""):
        raise ValidationError("supplier_id is required")
    supplier_id = coerce_positive_int(supplier_id, "supplier_id")

    if not isinstance(items, list) or not items:
        raise ValidationError("Supplier ID and items are required")

    supplier = session.get(Supplier, supplier_id)
    if supplier is None or supplier.deleted_at is not None:
        raise NotFoundError(f"Supplier {supplier_id} not found")

    try:
        expected = parse_iso_datetime(expected_delivery) if isinstance(expected_delivery, str) else expected_delivery
    except ValueError:
        raise ValidationError("expected_delivery must be an ISO-8601 date")

    lines = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = raw.get("product_id")
        if product_id in (None, ""):
            raise ValidationError("Product ID, quantity, and unit cost are required for each item")
        product_id = coerce_positive_int(product_id, f"items[{idx}].product_id")
        quantity = coerce_positive_int(raw.get("quantity"), f"items[{idx}].quantity")
        unit_cost = coerce_amount(raw.get("unit_cost", raw.get("unit_price")), f"items[{idx}].unit_cost")

        if session.get(Product, product_id) is None:
            raise NotFoundError(f"Product with ID {product_id} not found")

        lines.append((product_id, quantity, unit_cost, unit_cost * quantity))

    if total_amount in (None, ""):
        total = sum((line[3] for line in lines), ZERO)
    else:
        total = coerce_amount(total_amount, "total_amount", allow_zero=True)

    po = PurchaseOrder(
        supplier_id=supplier_id,
        status="pending",
        total_amount=total,
        payment_amount=ZERO,
        balance=total,
        payment_method=payment_method,
        notes=notes,
        expected_delivery=expected,
    )
    session.add(po)
    session.flush()
    po.po_number = f"PO-{po.id:06d}"

    for product_id, quantity, unit_cost, total_cost in lines:
        session.add(PurchaseOrderItem(
            purchase_order_id=po.id,
            product_id=product_id,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
        ))
    session.flush()
    session.refresh(po)

    logger.info("Purchase order %s created supplier_id=%s total=%s lines=%s", po.po_number, supplier_id, total, len(lines))
    return po


# =============================================================================
# STATUS
# =============================================================================

def update_purchase_order_status(session, po_id: int, status) -> PurchaseOrder:
    """
    Manually move a purchase order.

    Moves outside PO_TRANSITIONS are rejected on purpose so received
    goods are never restocked or removed twice.

    Raises:
        ValidationError: unknown or non-manual status
        NotFoundError: PO missing
        ConflictError: transition not allowed, or cancelling after sales
    """
    if not isinstance(status, str) or not status.strip():
        raise ValidationError("Status is required")
    status = status.strip().lower()
    if status not in MANUAL_PO_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(MANUAL_PO_STATUSES)}")

    po = _lock_purchase_order(session, po_id)
    current = po.status

    if status == current:
        return po
    if status not in PO_TRANSITIONS.get(current, set()):
        raise ConflictError(
            f"Cannot change purchase order status from {current} to {status}",
            details={"from": current, "to": status},
        )

    if status == "cancelled":
        sold = _sold_products(session, po)
        if sold:
            names = ", ".join(f"{name} ({qty} sold)" for _, name, qty in sold)
            raise ConflictError(
                f"Cannot cancel purchase order. The following products have been sold: {names}. "
                "Purchase order must remain as 'received'.",
                details={"sold": [{"product_id": pid, "name": name, "sold": qty} for pid, name, qty in sold]},
            )
        # Only goods that actually came in are taken back out
        if po.received_date is not None:
            for item in po.items:
                inventory_service.remove_stock_clamped(session, item.product_id, item.quantity)

    if status == "received" and po.received_date is None:
        for item in po.items:
            inventory_service.add_stock_with_average_cost(session, item.product_id, item.quantity, item.unit_cost)
        po.received_date = utcnow()

    po.status = status
    session.flush()
    logger.info("Purchase order %s status %s -> %s", po.id, current, status)
    return po


def receive_purchase_order(session, po_id: int) -> PurchaseOrder:
    return update_purchase_order_status(session, po_id, "received")


def cancel_purchase_order(session, po_id: int) -> PurchaseOrder:
    return update_purchase_order_status(session, po_id, "cancelled")


# =============================================================================
# DELETE
# =============================================================================

def delete_purchase_order(session, po_id: int) -> None:
    """
    Hard delete a purchase order and its lines.

    Refused when any payment row (live or soft-deleted) references it,
    when it is 'received', or when it still carries a balance (unless it
    is cancelled with nothing paid).

    Per line: a product that no other PO references and that was never
    sold is deleted outright; otherwise its stock drops by the line
    quantity, clamped at zero.
    """
    po = _lock_purchase_order(session, po_id)

    paid = payment_service.sync_purchase_order_balance(session, po)
    balance = to_decimal(po.balance)

    payment_rows = session.query(func.count(Payment.id)).filter(Payment.purchase_order_id == po.id).scalar() or 0
    if payment_rows > 0:
        raise ConflictError(
            "Cannot delete purchase order. Payments exist for this order. Please delete/refund payments first.",
            details={"payments": int(payment_rows)},
        )

    if po.status == "received":
        raise ConflictError("Cannot delete received purchase orders")

    allow_cancelled_unpaid = po.status == "cancelled" and paid == ZERO
    if not allow_cancelled_unpaid and balance > ZERO:
        raise ConflictError(
            f"Cannot delete purchase order. Remaining balance: ${balance:.2f}. "
            "Please ensure the purchase order is fully paid before deletion.",
            details={"remaining": format_money(balance)},
        )

    lines = [(item.product_id, item.quantity) for item in po.items]
    po_number = po.po_number

    session.delete(po)
    session.flush()

    for product_id, quantity in lines:
        other_pos = (
            session.query(func.count(PurchaseOrderItem.id))
            .filter(PurchaseOrderItem.product_id == product_id)
            .scalar()
        )
        sold_lines = session.query(func.count(OrderItem.id)).filter(OrderItem.product_id == product_id).scalar()

        product = session.get(Product, product_id)
        if product is None:
            continue
        if not other_pos and not sold_lines:
            session.delete(product)
            session.flush()
            logger.info("Product %s deleted with purchase order %s", product_id, po_number)
        else:
            inventory_service.remove_stock_clamped(session, product_id, quantity)

    logger.info("Purchase order %s deleted", po_number)


# =============================================================================
# PAYMENTS
# =============================================================================

def update_payment(session, po_id: int, amount, payment_method: str | None = None, notes: str | None = None):
    """
    Record a payment against a purchase order.

    Older clients post a "payment_amount" here instead of creating a
    payment; it becomes a completed payment so the cache stays derived
    from the payments table.
    """
    po = _lock_purchase_order(session, po_id)
    method = payment_method or po.payment_method or "cash"

    result = payment_service.create_payment(
        session,
        purchase_order_id=po.id,
        amount=amount,
        payment_method=method,
        status="completed",
        notes=notes,
    )

    po.payment_method = method
    if notes:
        po.notes = notes
    session.flush()
    return result


# =============================================================================
# READS
# =============================================================================

def get_purchase_order(session, po_id: int) -> PurchaseOrder:
    po = session.get(PurchaseOrder, po_id)
    if po is None:
        raise NotFoundError("Purchase order not found")
    return po


def serialize_purchase_order(session, po: PurchaseOrder, *, detail: bool = True) -> dict:
    paid = payment_service.get_completed_paid_total(session, payment_service.OWNER_PURCHASE_ORDER, po.id)
    data = po.to_dict()
    data["total_paid"] = format_money(paid)
    data["remaining"] = format_money(payment_service.remaining_balance(po.total_amount, paid))
    data["item_count"] = len(po.items)
    if detail:
        data["items"] = [i.to_dict() for i in po.items]
        data["supplier"] = po.supplier.to_dict() if po.supplier else None
        data["payments"] = [
            p.to_dict()
            for p in sorted(po.payments, key=lambda p: p.id, reverse=True)
            if p.deleted_at is None
        ]
    return data


def list_purchase_orders(
    session,
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    q: str | None = None,
    limit=None,
    offset=None,
) -> dict:
    """
    status also accepts the virtual filters "paid" (balance 0) and
    "unpaid" (balance above 0).
    """
    query = session.query(PurchaseOrder).outerjoin(Supplier, PurchaseOrder.supplier_id == Supplier.id)

    if status == "paid":
        query = query.filter(PurchaseOrder.balance <= 0)
    elif status == "unpaid":
        query = query.filter(PurchaseOrder.balance > 0)
    elif status:
        if status not in PO_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: paid, unpaid, {', '.join(PO_STATUSES)}")
        query = query.filter(PurchaseOrder.status == status)

    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)

    query = filter_date_range(query, PurchaseOrder.order_date, date_from, date_to)

    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(
                cast(PurchaseOrder.id, String).ilike(like),
                PurchaseOrder.po_number.ilike(like),
                Supplier.company_name.ilike(like),
                PurchaseOrder.status.ilike(like),
            )
        )

    query = query.order_by(PurchaseOrder.id.desc())
    return paginate_query(
        query,
        limit=limit,
        offset=offset,
        serialize=lambda po: serialize_purchase_order(session, po, detail=False),
    )
