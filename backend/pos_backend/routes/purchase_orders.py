# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

# backend/pos_backend/routes/purchase_orders.py
"""
Purchase Order API Routes

Receiving and cancelling move stock; payments go through the payment
ledger (POST /<id>/payment records a completed payment).
"""

from flask import Blueprint, request

from ..decorators import api_errors
from ..extensions import db
from ..services import purchase_order_service
from ..services.concurrency import transaction

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _po_response(po, status: int = 200):
    return {"purchase_order": purchase_order_service.serialize_purchase_order(db.session, po)}, status


@purchase_orders_bp.get("")
@api_errors("list purchase orders")
def list_purchase_orders_route():
    """
    Query params:
    - status: pending|ordered|received|cancelled|completed, or paid|unpaid
    - supplier_id
    - date_from, date_to: ISO dates (inclusive)
    - q: search by id, PO number, supplier or status
    - limit, offset
    """
    return purchase_order_service.list_purchase_orders(
        db.session,
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
        q=request.args.get("q"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )


@purchase_orders_bp.get("/<int:po_id>")
@api_errors("get purchase order")
def get_purchase_order_route(po_id: int):
    return _po_response(purchase_order_service.get_purchase_order(db.session, po_id))


@purchase_orders_bp.post("")
@api_errors("create purchase order")
def create_purchase_order_route():
    """
    Request body:
    {
        "supplier_id": 1,
        "items": [{"product_id": 5, "quantity": 4, "unit_cost": "6.00"}],
        "total_amount": "24.00",        (optional, defaults to sum of lines; "total" also accepted)
        "payment_method": "cash",       (optional)
        "notes": "...",                 (optional)
        "expected_delivery": "2026-01-31"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    with transaction(db.session):
        po = purchase_order_service.create_purchase_order(
            db.session,
            supplier_id=data.get("supplier_id"),
            items=data.get("items"),
            total_amount=data.get("total_amount", data.get("total")),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            expected_delivery=data.get("expected_delivery"),
        )

    return _po_response(po, 201)


@purchase_orders_bp.put("/<int:po_id>/status")
@api_errors("update purchase order status")
def update_purchase_order_status_route(po_id: int):
    data = request.get_json(silent=True) or {}
    with transaction(db.session):
        po = purchase_order_service.update_purchase_order_status(db.session, po_id, data.get("status"))
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/receive")
@api_errors("receive purchase order")
def receive_purchase_order_route(po_id: int):
    with transaction(db.session):
        po = purchase_order_service.receive_purchase_order(db.session, po_id)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/cancel")
@api_errors("cancel purchase order")
def cancel_purchase_order_route(po_id: int):
    with transaction(db.session):
        po = purchase_order_service.cancel_purchase_order(db.session, po_id)
    return _po_response(po)


@purchase_orders_bp.delete("/<int:po_id>")
@api_errors("delete purchase order")
def delete_purchase_order_route(po_id: int):
    with transaction(db.session):
        purchase_order_service.delete_purchase_order(db.session, po_id)
    return {"message": "Purchase order deleted successfully"}


@purchase_orders_bp.post("/<int:po_id>/payment")
@api_errors("record purchase order payment")
def update_payment_route(po_id: int):
    """
    Request body:
    {"payment_amount": "10.00", "payment_method": "cash", "notes": "..."}
    ("amount" also accepted)
    """
    data = request.get_json(silent=True) or {}

    with transaction(db.session):
        result = purchase_order_service.update_payment(
            db.session,
            po_id,
            data.get("payment_amount", data.get("amount")),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )

    body, status = _po_response(result.payment.purchase_order)
    body["payment"] = result.payment.to_dict()
    body["summary"] = result.summary()
    return body, status
