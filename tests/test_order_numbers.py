"""
Order number allocation tests.

Format PREFIX-YYYYMM-NNNN; strictly increasing within a month, restarting
each month, never widened past 9999.
"""

from datetime import datetime

import pytest

from storefront.models import Order, OrderSequence
from storefront.services.order_service import (
    OrderNumberExhaustedError,
    format_order_number,
    next_order_number,
)

OCTOBER = datetime(2026, 10, 18, 9, 0)
NOVEMBER = datetime(2026, 11, 2, 9, 0)


class TestFormat:

    def test_zero_padded_suffix(self):
        assert format_order_number("AST", "202610", 1) == "AST-202610-0001"

    def test_largest_suffix(self):
        assert format_order_number("AST", "202610", 9999) == "AST-202610-9999"


class TestAllocation:

    def test_sequential_within_month(self, db_session):
        numbers = [next_order_number(now=OCTOBER) for _ in range(3)]
        db_session.commit()
        assert numbers == ["AST-202610-0001", "AST-202610-0002", "AST-202610-0003"]

    def test_restarts_each_month(self, db_session):
        next_order_number(now=OCTOBER)
        next_order_number(now=OCTOBER)
        assert next_order_number(now=NOVEMBER) == "AST-202611-0001"
        assert next_order_number(now=OCTOBER) == "AST-202610-0003"

    def test_prefix_override(self, db_session):
        assert next_order_number(prefix="TRD", now=OCTOBER) == "TRD-202610-0001"
        assert next_order_number(now=OCTOBER) == "AST-202610-0001"

    def test_seeds_from_existing_orders(self, db_session):
        db_session.add(Order(order_number="AST-202610-0041", customer_name="Legacy"))
        db_session.add(Order(order_number="AST-202609-0099", customer_name="Older"))
        db_session.commit()

        assert next_order_number(now=OCTOBER) == "AST-202610-0042"

    def test_rolled_back_allocation_is_reused(self, db_session):
        assert next_order_number(now=OCTOBER) == "AST-202610-0001"
        db_session.rollback()
        assert next_order_number(now=OCTOBER) == "AST-202610-0001"

    def test_last_suffix_is_allocated(self, db_session):
        db_session.add(OrderSequence(prefix="AST", period="202610", next_number=9999))
        db_session.commit()
        assert next_order_number(now=OCTOBER) == "AST-202610-9999"

    def test_suffix_past_9999_is_an_error(self, db_session):
        db_session.add(OrderSequence(prefix="AST", period="202610", next_number=10000))
        db_session.commit()
        with pytest.raises(OrderNumberExhaustedError):
            next_order_number(now=OCTOBER)
