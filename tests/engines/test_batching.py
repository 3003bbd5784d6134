"""
Tests for the Batch Grouping Engine.

Covers:
- Group keys for batch-tracked and untracked products
- Summed figures and first-line attributes
- Weighted average rate for untracked products
- First-seen ordering and placeholder skipping
- Merged stock view for untracked products
"""

from decimal import Decimal

from entry_engines.batching import (
    MERGED_BATCH_NUMBER,
    batch_key,
    group_into_batches,
    merge_stock_batches,
)
from entry_engines.derivation import derive_line
from entry_kernel.domain.types import Line, StockBatch, TaxMode, VatType


def _line(line_id, product_id="p1", qty="1", price="10", **kw) -> Line:
    line = Line(
        id=line_id,
        product_id=product_id,
        product_code=product_id.upper(),
        name=f"Item {product_id}",
        quantity=Decimal(qty),
        price=Decimal(price),
        **kw,
    )
    return derive_line(line, TaxMode.EXCLUSIVE, VatType.VAT)


class TestBatchKey:
    def test_rates_compare_by_value(self):
        assert batch_key(_line("a", price="10")) == batch_key(_line("b", price="10.00"))

    def test_expiry_separates_batches(self):
        assert batch_key(_line("a", expiry_date="2026-01-01")) != batch_key(_line("b"))

    def test_untracked_ignores_rate_and_expiry(self):
        a = _line("a", price="10", batch_tracking=False, expiry_date="2026-01-01")
        b = _line("b", price="12", batch_tracking=False)
        assert batch_key(a) == batch_key(b)


class TestGroupIntoBatches:
    def test_same_rate_and_expiry_merge(self):
        batches = group_into_batches(
            [_line("a", qty="2", batch_number="B1"), _line("b", qty="3", batch_number="B2")]
        )
        assert len(batches) == 1
        (batch,) = batches
        assert batch.total_quantity == Decimal("5")
        assert batch.gross == Decimal("50.00")
        assert batch.vat_amount == Decimal("2.50")
        assert batch.total == Decimal("52.50")
        assert batch.batch_number == "B1"
        assert batch.line_ids == ("a", "b")

    def test_different_rates_split(self):
        batches = group_into_batches([_line("a", price="10"), _line("b", price="11")])
        assert [b.purchase_price for b in batches] == [Decimal("10"), Decimal("11")]

    def test_rate_and_expiry_grouping(self):
        batches = group_into_batches(
            [
                _line("a", qty="2", price="10", expiry_date="2025-01-01"),
                _line("b", qty="3", price="10", expiry_date="2025-01-01"),
                _line("c", qty="1", price="12", expiry_date="2025-01-01"),
            ]
        )
        assert [(b.total_quantity, b.purchase_price) for b in batches] == [
            (Decimal("5"), Decimal("10")),
            (Decimal("1"), Decimal("12")),
        ]
        assert batches[0].expiry_date == "2025-01-01"

    def test_untracked_average_of_two_rates(self):
        (batch,) = group_into_batches(
            [
                _line("a", qty="2", price="10", batch_tracking=False),
                _line("b", qty="2", price="20", batch_tracking=False),
            ]
        )
        assert batch.purchase_price == Decimal("15.00")
        assert batch.total_quantity == Decimal("4")

    def test_untracked_weighted_average(self):
        batches = group_into_batches(
            [
                _line("a", qty="1", price="10", batch_tracking=False),
                _line("b", qty="3", price="14", batch_tracking=False),
            ]
        )
        (batch,) = batches
        assert batch.total_quantity == Decimal("4")
        assert batch.purchase_price == Decimal("13")
        assert batch.expiry_date == ""

    def test_weighted_average_not_rounded(self):
        batches = group_into_batches(
            [
                _line("a", qty="1", price="1", batch_tracking=False),
                _line("b", qty="2", price="1", batch_tracking=False),
                _line("c", qty="0", price="5", batch_tracking=False),
            ]
        )
        assert batches[0].purchase_price == Decimal("1")

        (batch,) = group_into_batches(
            [
                _line("a", qty="1", price="1", batch_tracking=False),
                _line("b", qty="2", price="2", batch_tracking=False),
            ]
        )
        assert batch.purchase_price == Decimal("5") / Decimal("3")

    def test_first_seen_order_and_placeholders(self):
        batches = group_into_batches(
            [
                _line("a", product_id="p2"),
                Line.blank("blank"),
                _line("b", product_id="p1"),
                _line("c", product_id="p2"),
            ]
        )
        assert [b.product_id for b in batches] == ["p2", "p1"]
        assert batches[0].line_ids == ("a", "c")

    def test_first_line_attributes_win(self):
        batches = group_into_batches(
            [
                _line("a", retail=Decimal("15"), multi_unit_id=None),
                _line("b", retail=Decimal("18")),
            ]
        )
        assert batches[0].retail == Decimal("15")

    def test_batch_number_trimmed(self):
        (batch,) = group_into_batches([_line("a", batch_number="  B7 ")])
        assert batch.batch_number == "B7"

    def test_empty(self):
        assert group_into_batches([]) == ()


class TestMergeStockBatches:
    def test_means_over_batches_with_stock(self):
        merged = merge_stock_batches(
            [
                StockBatch("B1", Decimal("10"), Decimal("14"), Decimal("13"), Decimal("5")),
                StockBatch("B2", Decimal("12"), Decimal("16"), None, Decimal("3")),
                StockBatch("B3", Decimal("99"), Decimal("99"), None, Decimal("0")),
            ]
        )
        assert merged.batch_number == MERGED_BATCH_NUMBER
        assert merged.purchase_price == Decimal("11")
        assert merged.retail == Decimal("15")
        assert merged.wholesale == Decimal("13")
        assert merged.quantity == Decimal("8")

    def test_no_stock_uses_first_batch(self):
        merged = merge_stock_batches(
            [
                StockBatch("B1", Decimal("10"), Decimal("14")),
                StockBatch("B2", Decimal("12"), Decimal("16")),
            ]
        )
        assert merged.purchase_price == Decimal("10")
        assert merged.retail == Decimal("14")
        assert merged.wholesale == Decimal("14")

    def test_no_batches(self):
        assert merge_stock_batches([]) is None
