"""
Inventory ledger tests.

Verifies:
- Guarded decrement never takes stock below zero
- Increment / clamped removal
- Weighted-average cost and price on restock, including the
  whole-unit half-up rounding rule
"""

from decimal import Decimal

import pytest

from pos_backend.money_utils import round_half_up_to_unit
from pos_backend.services import inventory_service
from pos_backend.services.concurrency import transaction
from pos_backend.validation import InsufficientStockError, NotFoundError, ValidationError


# =============================================================================
# STOCK COUNTER
# =============================================================================


class TestDecrementStock:

    def test_decrement_within_stock(self, db_session, product, stock_of):
        new_qty = inventory_service.decrement_stock(db_session, product.id, 3)
        assert new_qty == 2
        assert stock_of(product.id) == 2

    def test_decrement_to_exactly_zero(self, db_session, product, stock_of):
        inventory_service.decrement_stock(db_session, product.id, 5)
        assert stock_of(product.id) == 0

    def test_decrement_beyond_stock_fails_and_leaves_stock(self, db_session, product, stock_of):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.decrement_stock(db_session, product.id, 6)

        assert exc.value.details == {"product_id": product.id, "requested": 6, "available": 5}
        assert exc.value.http_status == 409
        assert stock_of(product.id) == 5

    def test_decrement_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.decrement_stock(db_session, 99999, 1)

    @pytest.mark.parametrize("qty", [0, -1, 1.5, True, "2"])
    def test_rejects_non_positive_or_non_int_quantity(self, db_session, product, qty):
        with pytest.raises(ValidationError):
            inventory_service.decrement_stock(db_session, product.id, qty)

    def test_failed_decrement_inside_transaction_rolls_back_earlier_writes(
        self, db_session, make_product, stock_of
    ):
        a = make_product(stock=10)
        b = make_product(stock=1)

        with pytest.raises(InsufficientStockError):
            with transaction(db_session):
                inventory_service.decrement_stock(db_session, a.id, 4)
                inventory_service.decrement_stock(db_session, b.id, 2)

        assert stock_of(a.id) == 10
        assert stock_of(b.id) == 1


class TestIncrementAndClamp:

    def test_increment(self, db_session, product, stock_of):
        assert inventory_service.increment_stock(db_session, product.id, 7) == 12
        assert stock_of(product.id) == 12

    def test_increment_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.increment_stock(db_session, 424242, 1)

    def test_clamped_removal_within_stock(self, db_session, product, stock_of):
        inventory_service.remove_stock_clamped(db_session, product.id, 2)
        assert stock_of(product.id) == 3

    def test_clamped_removal_floors_at_zero(self, db_session, product, stock_of):
        inventory_service.remove_stock_clamped(db_session, product.id, 50)
        assert stock_of(product.id) == 0

    def test_get_product_stock(self, db_session, product):
        assert inventory_service.get_product_stock(db_session, product.id) == 5


# =============================================================================
# WEIGHTED AVERAGE COST
# =============================================================================


class TestRounding:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("6.00", "6"),
            ("6.49", "6"),
            ("6.4999", "6"),
            ("6.50", "7"),
            ("6.51", "7"),
            ("0.4", "0"),
            ("0.5", "1"),
        ],
    )
    def test_half_up_to_whole_unit(self, value, expected):
        assert round_half_up_to_unit(Decimal(value)) == Decimal(expected)


class TestAddStockWithAverageCost:

    def test_weighted_average_of_two_lots(self, db_session, make_product, stock_of):
        # 10 @ 5.00 on hand, 10 @ 7.00 incoming -> 6.00
        p = make_product(price="10.00", cost_price="5.00", stock=10)

        inventory_service.add_stock_with_average_cost(db_session, p.id, 10, Decimal("7.00"))

        db_session.expire_all()
        assert stock_of(p.id) == 20
        assert p.cost_price == Decimal("6.00")
        # margin (10 - 5) / 5 = 100% preserved: 6 + 6 = 12
        assert p.price == Decimal("12.00")

    def test_average_rounds_half_up(self, db_session, make_product):
        # (1*5 + 1*6) / 2 = 5.5 -> 6
        p = make_product(price="10.00", cost_price="5.00", stock=1)
        inventory_service.add_stock_with_average_cost(db_session, p.id, 1, Decimal("6.00"))
        assert p.cost_price == Decimal("6.00")

    def test_average_rounds_down_below_half(self, db_session, make_product):
        # (2*5 + 1*6) / 3 = 5.333 -> 5
        p = make_product(price="10.00", cost_price="5.00", stock=2)
        inventory_service.add_stock_with_average_cost(db_session, p.id, 1, Decimal("6.00"))
        assert p.cost_price == Decimal("5.00")

    def test_zero_stock_sets_cost_and_keeps_price(self, db_session, make_product, stock_of):
        p = make_product(price="9.99", cost_price="3.00", stock=0)

        inventory_service.add_stock_with_average_cost(db_session, p.id, 4, Decimal("6.00"))

        assert stock_of(p.id) == 4
        assert p.cost_price == Decimal("6.00")
        assert p.price == Decimal("9.99")

    def test_zero_current_cost_means_zero_margin(self, db_session, make_product):
        p = make_product(price="10.00", cost_price="0.00", stock=5)
        inventory_service.add_stock_with_average_cost(db_session, p.id, 5, Decimal("4.00"))
        # avg (5*0 + 5*4) / 10 = 2, no markup
        assert p.cost_price == Decimal("2.00")
        assert p.price == Decimal("2.00")

    def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.add_stock_with_average_cost(db_session, 123456, 1, Decimal("1.00"))

    def test_rejects_non_positive_cost(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.add_stock_with_average_cost(db_session, product.id, 1, Decimal("0"))
