# backend/pos_backend/services/products_service.py
"""
Products Service

Product master data. Stock is NOT edited here after creation; it moves
only through orders and purchase orders (inventory_service).
"""
from __future__ import annotations

import logging

from sqlalchemy import or_

from ..models import Category, Product, Supplier
from ..pagination import paginate_query
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "sku", "barcode",
    "price", "cost_price", "reorder_level",
    "supplier_id", "category_id",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_references(session, patch: dict) -> None:
    if patch.get("supplier_id") is not None and session.get(Supplier, patch["supplier_id"]) is None:
        raise NotFoundError(f"Supplier {patch['supplier_id']} not found")
    if patch.get("category_id") is not None and session.get(Category, patch["category_id"]) is None:
        raise NotFoundError(f"Category {patch['category_id']} not found")


def _check_sku(session, sku: str | None, *, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("SKU already exists.")


def list_products(
    session,
    *,
    q: str | None = None,
    supplier_id: int | None = None,
    category_id: int | None = None,
    low_stock: bool = False,
    include_deleted: bool = False,
    limit=None,
    offset=None,
) -> dict:
    query = session.query(Product)

    if not include_deleted:
        query = query.filter(Product.deleted_at.is_(None))
    if supplier_id is not None:
        query = query.filter(Product.supplier_id == supplier_id)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if low_stock:
        query = query.filter(Product.quantity_in_stock <= Product.reorder_level)
    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(like),
                Product.sku.ilike(like),
                Product.barcode.ilike(like),
                Product.description.ilike(like),
            )
        )

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate_query(query, limit=limit, offset=offset)


def get_product(session, product_id: int, *, include_deleted: bool = False) -> Product:
    p = session.get(Product, product_id)
    if p is None or (p.deleted_at is not None and not include_deleted):
        raise NotFoundError("Product not found")
    return p


def create_product(session, *, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    quantity_in_stock may be given once here as the opening stock.
    """
    _check_sku(session, patch.get("sku"))
    _check_references(session, patch)

    p = Product(quantity_in_stock=patch.get("quantity_in_stock") or 0)
    apply_product_patch(p, patch)

    session.add(p)
    session.flush()
    logger.info("Product %s created name=%r stock=%s", p.id, p.name, p.quantity_in_stock)
    return p


def update_product(session, *, product_id: int, patch: dict) -> Product:
    p = get_product(session, product_id)
    if "sku" in patch:
        _check_sku(session, patch["sku"], exclude_id=p.id)
    _check_references(session, patch)

    apply_product_patch(p, patch)
    session.flush()
    return p


def delete_product(session, *, product_id: int) -> Product:
    """Soft-delete: history (order lines, PO lines) keeps pointing at the row."""
    p = get_product(session, product_id)
    p.deleted_at = utcnow()
    session.flush()
    logger.info("Product %s soft-deleted", p.id)
    return p


def restore_product(session, *, product_id: int) -> Product:
    p = session.get(Product, product_id)
    if p is None or p.deleted_at is None:
        raise NotFoundError("Deleted product not found")
    p.deleted_at = None
    session.flush()
    return p
