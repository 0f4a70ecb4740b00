# Overview: Service-layer operations for inventory; encapsulates stock counter and valuation writes.

# backend/pos_backend/services/inventory_service.py
"""
Inventory ledger: the only code that writes products.quantity_in_stock.

Stock invariants (authoritative):
- quantity_in_stock is a mutable integer counter and is never negative.
- Decrements go through a guarded UPDATE (WHERE quantity_in_stock >= :qty).
  Any earlier SELECT-based check is advisory only; the guarded UPDATE is
  the source of truth under concurrency.
- Increments are unconditional.
- Clamped removals (purchase order reversal) floor at zero instead of failing.

Valuation:
- Receiving stock re-derives cost_price as the weighted average of the
  on-hand and incoming units, and moves the selling price so the
  markup ratio (price - cost) / cost is preserved.
- Both values are rounded to a whole currency unit (see
  money_utils.round_half_up_to_unit).

Transactions:
- Every function takes the session explicitly and only flushes. The
  caller's transaction() scope commits or rolls back.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, update

from ..models import Product
from ..money_utils import ZERO, round_half_up_to_unit, to_decimal
from ..validation import InsufficientStockError, NotFoundError, ValidationError
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def _require_product(session, product_id: int) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_product_stock(session, product_id: int) -> int:
    return int(_require_product(session, product_id).quantity_in_stock or 0)


def _reload_stock(session, product_id: int) -> int:
    # Bulk UPDATEs bypass the identity map; drop any stale copy first
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    session.refresh(product, attribute_names=["quantity_in_stock", "updated_at"])
    return int(product.quantity_in_stock or 0)


def decrement_stock(session, product_id: int, quantity: int) -> int:
    """
    Remove quantity units from a product, failing rather than going negative.

    Returns the new quantity_in_stock.

    Raises:
        InsufficientStockError: fewer than quantity units on hand
        NotFoundError: product does not exist
    """
    _require_quantity(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity_in_stock >= quantity)
        .values(quantity_in_stock=Product.quantity_in_stock - quantity)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        available = _reload_stock(session, product_id)
        product = session.get(Product, product_id)
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}. Available: {available}, Requested: {quantity}",
            details={"product_id": product_id, "requested": quantity, "available": available},
        )

    new_qty = _reload_stock(session, product_id)
    logger.info("Stock decremented product_id=%s qty=%s new_stock=%s", product_id, quantity, new_qty)
    return new_qty


def increment_stock(session, product_id: int, quantity: int) -> int:
    """Return quantity units to a product (cancellations, deletions)."""
    _require_quantity(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity_in_stock=Product.quantity_in_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Product {product_id} not found")

    new_qty = _reload_stock(session, product_id)
    logger.info("Stock incremented product_id=%s qty=%s new_stock=%s", product_id, quantity, new_qty)
    return new_qty


def remove_stock_clamped(session, product_id: int, quantity: int) -> int:
    """
    Remove up to quantity units, flooring at zero.

    Used when a received purchase order is reversed: units that were
    already sold cannot be taken back, so the counter stops at zero.
    """
    _require_quantity(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(
            quantity_in_stock=case(
                (Product.quantity_in_stock > quantity, Product.quantity_in_stock - quantity),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Product {product_id} not found")

    new_qty = _reload_stock(session, product_id)
    logger.info("Stock removed (clamped) product_id=%s qty=%s new_stock=%s", product_id, quantity, new_qty)
    return new_qty


def weighted_average_cost(
    current_qty: int,
    current_cost: Decimal,
    current_price: Decimal,
    incoming_qty: int,
    incoming_cost: Decimal,
) -> tuple[Decimal, Decimal]:
    """
    Compute (new_cost, new_price) for a restock.

    Empty stock: cost becomes the incoming unit cost, price is unchanged.
    Otherwise:
        new_cost  = (cur_qty*cur_cost + in_qty*in_cost) / (cur_qty + in_qty)
        margin    = (cur_price - cur_cost) / cur_cost   (0 when cur_cost is 0)
        new_price = new_cost + new_cost * margin
    """
    current_cost = to_decimal(current_cost)
    current_price = to_decimal(current_price)
    incoming_cost = to_decimal(incoming_cost)

    if current_qty == 0:
        return round_half_up_to_unit(incoming_cost), current_price

    total_value = current_qty * current_cost + incoming_qty * incoming_cost
    new_cost = total_value / (current_qty + incoming_qty)

    margin = (current_price - current_cost) / current_cost if current_cost > ZERO else ZERO
    new_price = new_cost + new_cost * margin

    return round_half_up_to_unit(new_cost), round_half_up_to_unit(new_price)


def add_stock_with_average_cost(session, product_id: int, quantity: int, unit_cost) -> Product:
    """
    Receive quantity units at unit_cost and revalue the product.

    The product row is locked for the read-modify-write so two receipts
    of the same product cannot interleave.
    """
    _require_quantity(quantity)
    unit_cost = to_decimal(unit_cost)
    if unit_cost <= ZERO:
        raise ValidationError("unit_cost must be greater than 0")

    product = lock_for_update(session.query(Product).filter(Product.id == product_id)).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    current_qty = int(product.quantity_in_stock or 0)
    new_cost, new_price = weighted_average_cost(
        current_qty,
        product.cost_price,
        product.price,
        quantity,
        unit_cost,
    )

    product.quantity_in_stock = current_qty + quantity
    product.cost_price = new_cost
    product.price = new_price
    session.flush()

    logger.info(
        "Stock received product_id=%s qty=%s unit_cost=%s new_stock=%s new_cost=%s new_price=%s",
        product_id, quantity, unit_cost, product.quantity_in_stock, new_cost, new_price,
    )
    return product
