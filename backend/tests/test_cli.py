"""
CLI command tests.
"""

from decimal import Decimal

from pos_backend.services import purchase_order_service
from pos_backend.services.concurrency import transaction


def test_resync_balances_command(app, db_session, supplier, make_product):
    p = make_product(stock=0)
    with transaction(db_session):
        po = purchase_order_service.create_purchase_order(
            db_session,
            supplier_id=supplier.id,
            items=[{"product_id": p.id, "quantity": 2, "unit_cost": "5.00"}],
        )
    with transaction(db_session):
        po.balance = Decimal("0")

    result = app.test_cli_runner().invoke(args=["purchasing", "resync-balances"])

    assert result.exit_code == 0
    assert "1 changed" in result.output
    db_session.expire_all()
    assert po.balance == Decimal("10.00")


def test_init_db_is_idempotent(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "up to date" in result.output
