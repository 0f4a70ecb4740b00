# Overview: Service-layer operations for sales orders; encapsulates business logic and database work.

# backend/pos_backend/services/order_service.py
"""
Order Fulfillment Engine

LIFECYCLE:
    pending <-> processing -> completed -> refunded
    any non-terminal status -> cancelled (terminal)

STOCK EFFECTS:
- create_order decrements stock per line (guarded, all-or-nothing)
- entering 'cancelled' restocks every line once
- deleting a non-cancelled order restocks every line
- restoring a deleted non-cancelled order decrements again
- item edits move stock by the quantity delta

TOTALS:
- total_amount is supplied by the client and fixed at creation. Payment
  caps and balances use it; item edits never recompute it.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import String, cast, func, or_

from ..models import Customer, Order, OrderItem, Payment, Product
from ..money_utils import ZERO, format_money, quantize_money, to_decimal
from ..pagination import filter_date_range, paginate_query
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    coerce_amount,
    coerce_positive_int,
)
from . import inventory_service
from .concurrency import lock_for_update
from .payment_service import OWNER_ORDER, get_completed_paid_total, remaining_balance

logger = logging.getLogger(__name__)


ORDER_STATUSES = ("pending", "processing", "completed", "cancelled", "refunded")

ORDER_TRANSITIONS = {
    "pending": {"processing", "completed", "cancelled"},
    "processing": {"pending", "completed", "cancelled"},
    "completed": {"refunded", "cancelled"},
    "refunded": {"cancelled"},
    "cancelled": set(),
}

# Orders may be opened in these states; cancelled/refunded only by transition
INITIAL_ORDER_STATUSES = ("pending", "processing", "completed")

DISCOUNT_TYPES = ("flat", "percent")
# Older POS clients send "usd" for a flat discount
DISCOUNT_TYPE_ALIASES = {"usd": "flat", "amount": "flat", "%": "percent"}


# =============================================================================
# HELPERS
# =============================================================================

def _normalize_status(status, allowed=ORDER_STATUSES) -> str:
    if not isinstance(status, str) or not status.strip():
        raise ValidationError("status is required")
    status = status.strip().lower()
    if status not in allowed:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(allowed)}")
    return status


def _lock_order(session, order_id: int, *, include_deleted: bool = False) -> Order:
    q = session.query(Order).filter(Order.id == order_id)
    if not include_deleted:
        q = q.filter(Order.deleted_at.is_(None))
    order = lock_for_update(q).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _line_discount(raw_discount, discount_type, unit_price: Decimal, quantity: int, product_id: int) -> Decimal:
    """Convert a flat or percent discount into the absolute amount stored on the line."""
    dtype = (discount_type or "flat")
    dtype = DISCOUNT_TYPE_ALIASES.get(str(dtype).strip().lower(), str(dtype).strip().lower())
    if dtype not in DISCOUNT_TYPES:
        raise ValidationError(f"Invalid discount_type. Must be one of: {', '.join(DISCOUNT_TYPES)}")

    if raw_discount in (None, ""):
        value = ZERO
    else:
        value = coerce_amount(raw_discount, "discount", allow_zero=True)

    line_total = unit_price * quantity
    discount = (line_total * value / Decimal("100")) if dtype == "percent" else value
    if discount > line_total:
        raise ValidationError(
            f"Discount cannot exceed item total for product ID {product_id}",
            details={"product_id": product_id, "discount": format_money(discount), "line_total": format_money(line_total)},
        )
    return discount


def _has_live_payments(session, order_id: int) -> bool:
    return (
        session.query(Payment.id)
        .filter(Payment.order_id == order_id, Payment.deleted_at.is_(None))
        .first()
        is not None
    )


def _live_payment_total(session, order_id: int) -> Decimal:
    """Sum of non-deleted payments of any status."""
    total = (
        session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.order_id == order_id, Payment.deleted_at.is_(None))
        .scalar()
    )
    return quantize_money(total)


def _restock_items(session, order: Order) -> None:
    for item in order.items:
        inventory_service.increment_stock(session, item.product_id, item.quantity)


# =============================================================================
# CREATE
# =============================================================================

def create_order(
    session,
    *,
    customer_id,
    total_amount,
    items,
    status: str = "pending",
    payment_method: str | None = "cash",
    notes: str | None = None,
    delivery_required: bool = False,
    delivery_fee=0,
) -> Order:
    """
    Create a sales order and take its items out of stock.

    Each item: {"product_id", "quantity", "unit_price"?, "discount"?,
    "discount_type"? ("flat" | "percent"), "notes"?}

    Everything is flushed inside the caller's transaction; any failure
    (including a lost race on the guarded stock decrement) leaves no
    order, no items and no stock change once rolled back.
    """
    if customer_id in (None, ""):
        raise ValidationError("customer_id is required")
    customer_id = coerce_positive_int(customer_id, "customer_id")
    total_amount = coerce_amount(total_amount, "total_amount")
    status = _normalize_status(status or "pending", INITIAL_ORDER_STATUSES)

    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    customer = session.get(Customer, customer_id)
    if customer is None or customer.deleted_at is not None:
        raise NotFoundError(f"Customer {customer_id} not found")

    delivery_fee = coerce_amount(delivery_fee, "delivery_fee", allow_zero=True) if delivery_fee not in (None, "") else ZERO

    order = Order(
        customer_id=customer_id,
        total_amount=total_amount,
        status=status,
        payment_method=payment_method,
        notes=notes,
        delivery_required=bool(delivery_required),
        delivery_fee=delivery_fee,
    )
    session.add(order)
    session.flush()

    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")

        product_id = raw.get("product_id")
        if product_id in (None, ""):
            raise ValidationError("Product ID and quantity are required for each item")
        product_id = coerce_positive_int(product_id, f"items[{idx}].product_id")
        quantity = coerce_positive_int(raw.get("quantity"), f"items[{idx}].quantity")

        product = session.get(Product, product_id)
        if product is None or product.deleted_at is not None:
            raise NotFoundError(f"Product with ID {product_id} not found")

        raw_price = raw.get("unit_price", raw.get("price"))
        if raw_price in (None, ""):
            unit_price = to_decimal(product.price)
            if unit_price <= ZERO:
                raise ValidationError(f"No valid price found for product ID {product_id}")
        else:
            unit_price = coerce_amount(raw_price, f"items[{idx}].unit_price")

        # Advisory only; decrement_stock below is authoritative
        available = int(product.quantity_in_stock or 0)
        if available < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}. Available: {available}, Requested: {quantity}",
                details={"product_id": product_id, "requested": quantity, "available": available},
            )

        discount = _line_discount(raw.get("discount"), raw.get("discount_type"), unit_price, quantity, product_id)

        session.add(OrderItem(
            order_id=order.id,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            notes=raw.get("notes"),
        ))
        session.flush()

        inventory_service.decrement_stock(session, product_id, quantity)

    session.refresh(order)
    logger.info(
        "Order %s created customer_id=%s total=%s items=%s",
        order.id, customer_id, total_amount, len(items),
    )
    return order


# =============================================================================
# STATUS
# =============================================================================

def update_order_status(
    session,
    order_id: int,
    status,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Move an order to a new status.

    Same-status updates only edit payment_method / notes. Entering
    'cancelled' restocks every item in the same transaction.

    Moves outside ORDER_TRANSITIONS (completed -> pending, anything out
    of cancelled) are rejected on purpose: they would replay stock moves.

    Raises:
        ValidationError: unknown status
        NotFoundError: order missing or deleted
        ConflictError: transition not allowed
    """
    status = _normalize_status(status)
    order = _lock_order(session, order_id)
    current = (order.status or "pending").lower()

    if status != current:
        if status not in ORDER_TRANSITIONS.get(current, set()):
            raise ConflictError(
                f"Cannot change order status from {current} to {status}",
                details={"from": current, "to": status},
            )
        if status == "cancelled":
            _restock_items(session, order)
        order.status = status
        logger.info("Order %s status %s -> %s", order.id, current, status)

    if payment_method is not None:
        order.payment_method = payment_method
    if notes is not None:
        order.notes = notes

    session.flush()
    return order


def cancel_order(session, order_id: int) -> Order:
    return update_order_status(session, order_id, "cancelled")


# =============================================================================
# DELETE / RESTORE
# =============================================================================

def delete_order(session, order_id: int) -> Order:
    """
    Soft delete an order.

    Cancelled orders: only when no live payment of any status remains
    (stock was already returned on cancel). Any other status: only when
    fully paid, and the items go back into stock.
    """
    order = _lock_order(session, order_id)

    paid = get_completed_paid_total(session, OWNER_ORDER, order.id)
    remaining = remaining_balance(order.total_amount, paid)

    if order.status == "cancelled":
        # Any live payment row blocks, whatever its status
        if _has_live_payments(session, order.id):
            recorded = _live_payment_total(session, order.id)
            raise ConflictError(
                f"Cannot delete order. It has payments totaling ${recorded:.2f}. Please delete/refund payments first.",
                details={"total_recorded": format_money(recorded), "total_paid": format_money(paid)},
            )
    else:
        if remaining > ZERO:
            raise ConflictError(
                f"Cannot delete order. Remaining balance: ${remaining:.2f}. "
                "Please ensure the order is fully paid before deletion.",
                details={"remaining": format_money(remaining)},
            )
        _restock_items(session, order)

    order.deleted_at = utcnow()
    session.flush()
    logger.info("Order %s soft-deleted (status=%s)", order.id, order.status)
    return order


def restore_order(session, order_id: int) -> Order:
    """
    Undo a soft delete.

    A non-cancelled order gave its stock back when deleted, so restoring
    takes it out again; not enough stock fails the restore.
    """
    order = _lock_order(session, order_id, include_deleted=True)
    if order.deleted_at is None:
        raise NotFoundError("Deleted order not found")

    if order.status != "cancelled":
        for item in order.items:
            inventory_service.decrement_stock(session, item.product_id, item.quantity)

    order.deleted_at = None
    session.flush()
    logger.info("Order %s restored", order.id)
    return order


# =============================================================================
# ITEMS
# =============================================================================

def _get_item_for_edit(session, order_id: int, item_id: int) -> tuple[Order, OrderItem]:
    order = _lock_order(session, order_id)
    item = session.get(OrderItem, item_id)
    if item is None or item.order_id != order.id:
        raise NotFoundError("Order item not found")
    if _has_live_payments(session, order.id):
        raise ConflictError("Cannot modify items of an order that has payments. Delete the payments first.")
    return order, item


def update_order_item(session, order_id: int, item_id: int, patch: dict) -> OrderItem:
    """
    Edit quantity, unit_price, discount or notes of one line.

    Quantity changes move stock by the difference (guarded when it grows).
    Cancelled orders have no stock out, so no stock moves for them.
    """
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    allowed = {"quantity", "unit_price", "discount", "discount_type", "notes"}
    unknown = set(patch) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    order, item = _get_item_for_edit(session, order_id, item_id)

    quantity = coerce_positive_int(patch["quantity"], "quantity") if "quantity" in patch else item.quantity
    unit_price = coerce_amount(patch["unit_price"], "unit_price") if "unit_price" in patch else to_decimal(item.unit_price)

    if "discount" in patch:
        discount = _line_discount(patch["discount"], patch.get("discount_type"), unit_price, quantity, item.product_id)
    else:
        discount = to_decimal(item.discount)
        if discount > unit_price * quantity:
            raise ValidationError(f"Discount cannot exceed item total for product ID {item.product_id}")

    delta = quantity - item.quantity
    if delta and order.status != "cancelled":
        if delta > 0:
            inventory_service.decrement_stock(session, item.product_id, delta)
        else:
            inventory_service.increment_stock(session, item.product_id, -delta)

    item.quantity = quantity
    item.unit_price = unit_price
    item.discount = discount
    if "notes" in patch:
        item.notes = patch["notes"]
    session.flush()

    logger.info("Order %s item %s updated qty_delta=%s", order.id, item.id, delta)
    return item


def delete_order_item(session, order_id: int, item_id: int) -> None:
    order, item = _get_item_for_edit(session, order_id, item_id)

    if order.status != "cancelled":
        inventory_service.increment_stock(session, item.product_id, item.quantity)

    order.items.remove(item)
    session.flush()
    logger.info("Order %s item %s deleted", order.id, item_id)


# =============================================================================
# READS
# =============================================================================

def get_order(session, order_id: int, *, include_deleted: bool = False) -> Order:
    order = session.get(Order, order_id)
    if order is None or (order.deleted_at is not None and not include_deleted):
        raise NotFoundError("Order not found")
    return order


def serialize_order(session, order: Order, *, detail: bool = True) -> dict:
    paid = get_completed_paid_total(session, OWNER_ORDER, order.id)
    data = order.to_dict()
    data["total_paid"] = format_money(paid)
    data["remaining"] = format_money(remaining_balance(order.total_amount, paid))
    data["item_count"] = len(order.items)
    data["calculated_total"] = format_money(sum((i.line_total for i in order.items), ZERO))
    if detail:
        data["items"] = [i.to_dict() for i in order.items]
        data["payments"] = [
            p.to_dict()
            for p in sorted(order.payments, key=lambda p: p.id, reverse=True)
            if p.deleted_at is None
        ]
    return data


def list_orders(
    session,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    q: str | None = None,
    include_deleted: bool = False,
    limit=None,
    offset=None,
) -> dict:
    query = session.query(Order).outerjoin(Customer, Order.customer_id == Customer.id)

    if not include_deleted:
        query = query.filter(Order.deleted_at.is_(None))
    if status:
        query = query.filter(Order.status == status)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)

    query = filter_date_range(query, Order.order_date, date_from, date_to)

    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(
                cast(Order.id, String).ilike(like),
                Customer.first_name.ilike(like),
                Customer.last_name.ilike(like),
                Order.status.ilike(like),
            )
        )

    query = query.order_by(Order.id.desc())
    return paginate_query(
        query,
        limit=limit,
        offset=offset,
        serialize=lambda o: serialize_order(session, o, detail=False),
    )
