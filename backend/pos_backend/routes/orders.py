# Overview: Flask API routes for sales orders; parses input and returns JSON responses.

# backend/pos_backend/routes/orders.py
"""
Sales Order API Routes

DESIGN:
- Each write runs inside one transaction(db.session): stock moves,
  item rows and the order row commit or roll back together.
- Errors map to HTTP statuses through @api_errors:
  400 validation, 404 missing, 409 stock/balance/transition conflicts.
"""

from flask import Blueprint, request

from ..decorators import api_errors
from ..extensions import db
from ..services import order_service
from ..services.concurrency import transaction

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("")
@api_errors("list orders")
def list_orders_route():
    """
    Query params:
    - status, customer_id
    - date_from, date_to: ISO dates (inclusive)
    - q: search by id, customer name or status
    - include_deleted: "true" to include soft-deleted orders
    - limit, offset
    """
    return order_service.list_orders(
        db.session,
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
        q=request.args.get("q"),
        include_deleted=request.args.get("include_deleted", "false").lower() == "true",
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )


@orders_bp.get("/<int:order_id>")
@api_errors("get order")
def get_order_route(order_id: int):
    order = order_service.get_order(db.session, order_id)
    return {"order": order_service.serialize_order(db.session, order)}


# =============================================================================
# CREATION / STATUS
# =============================================================================

@orders_bp.post("")
@api_errors("create order")
def create_order_route():
    """
    Create an order and take its items out of stock.

    Request body:
    {
        "customer_id": 1,
        "total_amount": "30.00",          ("total" also accepted)
        "status": "pending",              (optional)
        "payment_method": "cash",         (optional)
        "notes": "...",                   (optional)
        "delivery_required": false,       ("delivery_enabled" also accepted)
        "delivery_fee": "0.00",           ("delivery_amount" also accepted)
        "items": [
            {"product_id": 5, "quantity": 3, "unit_price": "10.00",
             "discount": "10", "discount_type": "percent"}
        ]
    }

    Returns:
        201: {"order": {...}}
        400: invalid input
        404: customer or product not found
        409: insufficient stock
    """
    data = request.get_json(silent=True) or {}

    with transaction(db.session):
        order = order_service.create_order(
            db.session,
            customer_id=data.get("customer_id"),
            total_amount=data.get("total_amount", data.get("total")),
            items=data.get("items"),
            status=data.get("status") or "pending",
            payment_method=data.get("payment_method") or "cash",
            notes=data.get("notes"),
            delivery_required=data.get("delivery_required", data.get("delivery_enabled", False)),
            delivery_fee=data.get("delivery_fee", data.get("delivery_amount", 0)),
        )

    return {"order": order_service.serialize_order(db.session, order)}, 201


@orders_bp.put("/<int:order_id>/status")
@api_errors("update order status")
def update_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}

    with transaction(db.session):
        order = order_service.update_order_status(
            db.session,
            order_id,
            data.get("status"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )

    return {"order": order_service.serialize_order(db.session, order)}


@orders_bp.post("/<int:order_id>/cancel")
@api_errors("cancel order")
def cancel_order_route(order_id: int):
    with transaction(db.session):
        order = order_service.cancel_order(db.session, order_id)
    return {"order": order_service.serialize_order(db.session, order)}


# =============================================================================
# DELETE / RESTORE
# =============================================================================

@orders_bp.delete("/<int:order_id>")
@api_errors("delete order")
def delete_order_route(order_id: int):
    with transaction(db.session):
        order_service.delete_order(db.session, order_id)
    return {"message": "Order deleted successfully"}


@orders_bp.post("/<int:order_id>/restore")
@api_errors("restore order")
def restore_order_route(order_id: int):
    with transaction(db.session):
        order = order_service.restore_order(db.session, order_id)
    return {"order": order_service.serialize_order(db.session, order)}


# =============================================================================
# ITEMS
# =============================================================================

@orders_bp.put("/<int:order_id>/items/<int:item_id>")
@api_errors("update order item")
def update_order_item_route(order_id: int, item_id: int):
    data = request.get_json(silent=True) or {}
    with transaction(db.session):
        item = order_service.update_order_item(db.session, order_id, item_id, data)
    return {"item": item.to_dict()}


@orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@api_errors("delete order item")
def delete_order_item_route(order_id: int, item_id: int):
    with transaction(db.session):
        order_service.delete_order_item(db.session, order_id, item_id)
    return {"message": "Order item deleted successfully"}
