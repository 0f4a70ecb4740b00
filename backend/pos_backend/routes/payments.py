# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/pos_backend/routes/payments.py
"""
Payment API Routes

WHY: Settle sales orders and purchase orders, possibly in several payments.

DESIGN:
- A payment targets exactly one owner: order_id XOR purchase_order_id
- Completed payments are capped at the owner's remaining balance
- Reaching the total marks the owner 'completed'
- DELETE is a soft delete (restorable); it never reopens a completed owner
"""

from flask import Blueprint, request

from ..decorators import api_errors
from ..extensions import db
from ..services import payment_service
from ..services.concurrency import transaction

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _result_response(result, status: int = 200):
    return {
        "payment": payment_service.serialize_payment(result.payment),
        "summary": result.summary(),
    }, status


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("")
@api_errors("list payments")
def list_payments_route():
    """
    Query params:
    - status, payment_method
    - order_id, purchase_order_id, customer_id, supplier_id
    - only_orders / only_purchase_orders: "true"
    - include_deleted: "true" to include soft-deleted payments
    - q: free-text search
    - limit, offset
    """
    return payment_service.list_payments(
        db.session,
        status=request.args.get("status"),
        payment_method=request.args.get("payment_method"),
        order_id=request.args.get("order_id", type=int),
        purchase_order_id=request.args.get("purchase_order_id", type=int),
        customer_id=request.args.get("customer_id", type=int),
        supplier_id=request.args.get("supplier_id", type=int),
        only_orders=request.args.get("only_orders", "false").lower() == "true",
        only_purchase_orders=request.args.get("only_purchase_orders", "false").lower() == "true",
        include_deleted=request.args.get("include_deleted", "false").lower() == "true",
        q=request.args.get("q"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )


@payments_bp.get("/<int:payment_id>")
@api_errors("get payment")
def get_payment_route(payment_id: int):
    payment = payment_service.get_payment(db.session, payment_id)
    return {"payment": payment_service.serialize_payment(payment)}


# =============================================================================
# PAYMENT WRITES
# =============================================================================

@payments_bp.post("")
@api_errors("add payment")
def add_payment_route():
    """
    Request body:
    {
        "order_id": 123,                 (or "purchase_order_id", never both)
        "amount": "50.00",
        "payment_method": "cash",
        "status": "completed",           (optional, default "pending")
        "transaction_id": "AUTH-12345",  (optional)
        "notes": "..."                   (optional)
    }

    Returns:
        201: {"payment": {...}, "summary": {total_paid, remaining, owner_status, ...}}
        400: invalid input
        404: order / purchase order not found
        409: owner cancelled, or payment exceeds remaining balance
    """
    data = request.get_json(silent=True) or {}

    with transaction(db.session):
        result = payment_service.create_payment(
            db.session,
            order_id=data.get("order_id"),
            purchase_order_id=data.get("purchase_order_id"),
            amount=data.get("amount"),
            payment_method=data.get("payment_method"),
            status=data.get("status") or "pending",
            transaction_id=data.get("transaction_id"),
            notes=data.get("notes"),
        )

    return _result_response(result, 201)


@payments_bp.put("/<int:payment_id>")
@api_errors("update payment")
def update_payment_route(payment_id: int):
    data = request.get_json(silent=True) or {}
    with transaction(db.session):
        result = payment_service.update_payment_record(db.session, payment_id, data)
    return _result_response(result)


@payments_bp.delete("/<int:payment_id>")
@api_errors("delete payment")
def delete_payment_route(payment_id: int):
    with transaction(db.session):
        payment_service.remove_payment(db.session, payment_id)
    return {"message": "Payment deleted successfully"}


@payments_bp.post("/<int:payment_id>/restore")
@api_errors("restore payment")
def restore_payment_route(payment_id: int):
    with transaction(db.session):
        result = payment_service.restore_payment(db.session, payment_id)
    return _result_response(result)
