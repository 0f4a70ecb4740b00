# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/pos_backend/routes/products.py
"""
Product master data routes.

Stock is only accepted on create (opening stock). Afterwards it moves
through orders, purchase orders and the average-cost restock endpoint.
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..extensions import db
from ..models import Product
from ..services import inventory_service, products_service
from ..services.concurrency import transaction
from ..validation import (
    ModelValidationPolicy,
    coerce_amount,
    coerce_positive_int,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "sku", "barcode", "price", "cost_price",
        "quantity_in_stock", "reorder_level", "supplier_id", "category_id",
    },
    required_on_create={"name", "price"},
    aliases={"stock": "quantity_in_stock", "cost": "cost_price"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "sku", "barcode", "price", "cost_price",
        "reorder_level", "supplier_id", "category_id",
    },
    aliases={"cost": "cost_price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@api_errors("list products")
def list_products():
    """
    Query params:
    - q: search name / sku / barcode / description
    - supplier_id, category_id: int
    - low_stock: "true" to list products at or below reorder_level
    - include_deleted: "true" to include soft-deleted products
    - limit, offset
    """
    return products_service.list_products(
        db.session,
        q=request.args.get("q"),
        supplier_id=request.args.get("supplier_id", type=int),
        category_id=request.args.get("category_id", type=int),
        low_stock=request.args.get("low_stock", "false").lower() == "true",
        include_deleted=request.args.get("include_deleted", "false").lower() == "true",
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )


@products_bp.get("/<int:product_id>")
@api_errors("get product")
def get_product(product_id: int):
    p = products_service.get_product(db.session, product_id)
    return {"product": p.to_dict()}


@products_bp.post("")
@api_errors("create product")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    with transaction(db.session):
        p = products_service.create_product(db.session, patch=patch)

    return {"product": p.to_dict()}, 201


@products_bp.put("/<int:product_id>")
@api_errors("update product")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    with transaction(db.session):
        p = products_service.update_product(db.session, product_id=product_id, patch=patch)

    return {"product": p.to_dict()}, 200


@products_bp.delete("/<int:product_id>")
@api_errors("delete product")
def delete_product_route(product_id: int):
    with transaction(db.session):
        products_service.delete_product(db.session, product_id=product_id)
    return {"ok": True}, 200


@products_bp.post("/<int:product_id>/restore")
@api_errors("restore product")
def restore_product_route(product_id: int):
    with transaction(db.session):
        p = products_service.restore_product(db.session, product_id=product_id)
    return {"product": p.to_dict()}, 200


@products_bp.post("/<int:product_id>/stock/average-cost")
@api_errors("add stock with average cost")
def add_stock_with_average_cost_route(product_id: int):
    """
    Receive stock outside a purchase order and revalue the product.

    Request body:
    {"quantity": 10, "cost_price": "7.00"}

    Returns:
        200: {"message", "product": {...}}  (cost and price re-averaged)
        400: quantity or cost_price missing / not positive
        404: product not found
    """
    data = request.get_json(silent=True) or {}
    quantity = coerce_positive_int(data.get("quantity"), "quantity")
    cost_price = coerce_amount(data.get("cost_price"), "cost_price")

    with transaction(db.session):
        products_service.get_product(db.session, product_id)
        p = inventory_service.add_stock_with_average_cost(db.session, product_id, quantity, cost_price)

    return {
        "message": "Stock added with weighted average cost successfully",
        "product": p.to_dict(),
    }, 200
