"""
Stock ledger tests.

Verifies:
- adjust() applies positive and negative deltas
- A delta below zero raises InsufficientStock and changes nothing
- set_quantity() reports (previous, new)
- Missing rows read as zero and are created on first positive delta
"""

import pytest

from smart_retail.errors import InsufficientStock, ValidationError
from smart_retail.services import stock_ledger
from smart_retail.services.concurrency import atomic

from conftest import set_stock, stock_of


class TestAdjust:

    def test_decrement_and_increment(self, db_session, branch, product):
        set_stock(branch.id, product.id, 10)

        with atomic():
            assert stock_ledger.adjust(branch.id, product.id, -4) == 6
            assert stock_ledger.adjust(branch.id, product.id, 2) == 8

        assert stock_of(branch.id, product.id) == 8

    def test_shortfall_raises_and_leaves_quantity(self, db_session, branch, product):
        set_stock(branch.id, product.id, 3)

        with pytest.raises(InsufficientStock) as exc:
            with atomic():
                stock_ledger.adjust(branch.id, product.id, -4)

        assert exc.value.details == {"product_id": product.id, "available": 3, "requested": 4}
        assert stock_of(branch.id, product.id) == 3

    def test_exact_quantity_reaches_zero(self, db_session, branch, product):
        set_stock(branch.id, product.id, 5)

        with atomic():
            assert stock_ledger.adjust(branch.id, product.id, -5) == 0

    def test_missing_row_is_zero(self, db_session, branch, product):
        assert stock_ledger.get_quantity(branch.id, product.id) == 0

        with pytest.raises(InsufficientStock):
            with atomic():
                stock_ledger.adjust(branch.id, product.id, -1)

    def test_positive_delta_creates_row(self, db_session, branch, product):
        with atomic():
            assert stock_ledger.adjust(branch.id, product.id, 7, restocked=True) == 7

        entry = stock_ledger.get_entry(branch.id, product.id)
        assert entry is not None
        assert entry.last_restocked_at is not None

    def test_rejects_non_integer_delta(self, db_session, branch, product):
        with pytest.raises(ValidationError):
            stock_ledger.adjust(branch.id, product.id, True)


class TestSetQuantity:

    def test_returns_previous_and_new(self, db_session, branch, product):
        set_stock(branch.id, product.id, 12)

        with atomic():
            previous, new = stock_ledger.set_quantity(branch.id, product.id, 4)

        assert (previous, new) == (12, 4)
        assert stock_of(branch.id, product.id) == 4

    def test_rejects_negative(self, db_session, branch, product):
        with pytest.raises(ValidationError):
            stock_ledger.set_quantity(branch.id, product.id, -1)
