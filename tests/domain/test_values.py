"""
Tests for Decimal coercion, rounding and numeric cell parsing.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from entry_kernel.domain.clock import DeterministicClock
from entry_kernel.domain.values import (
    parse_numeric_input,
    percent_of,
    round2,
    to_decimal,
)


class TestToDecimal:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, Decimal("0")),
            ("", Decimal("0")),
            (" 12.50 ", Decimal("12.50")),
            (3, Decimal("3")),
            (0.1, Decimal("0.1")),
            (Decimal("7.25"), Decimal("7.25")),
        ],
    )
    def test_coercion(self, value, expected):
        assert to_decimal(value) == expected

    def test_float_goes_through_str(self):
        assert to_decimal(1.1) == Decimal("1.1")

    @pytest.mark.parametrize("value", ["abc", True])
    def test_rejects(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestRound2:
    def test_half_up(self):
        assert round2(Decimal("2.345")) == Decimal("2.35")
        assert round2(Decimal("-2.345")) == Decimal("-2.35")
        assert round2("1.004") == Decimal("1.00")

    def test_always_two_places(self):
        assert str(round2(5)) == "5.00"


class TestParseNumericInput:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("", Decimal("0")),
            ("-", Decimal("0")),
            (".", Decimal("0")),
            (".5", Decimal("0.5")),
            ("-.5", Decimal("-0.5")),
            ("12.", Decimal("12")),
            ("1e3x", Decimal("0")),
            ("NaN", Decimal("0")),
            ("Infinity", Decimal("0")),
            (None, Decimal("0")),
        ],
    )
    def test_partial_input(self, raw, expected):
        assert parse_numeric_input(raw) == expected


class TestPercentOf:
    def test_percent(self):
        assert percent_of(Decimal("3"), Decimal("30")) == Decimal("10.00")

    def test_zero_base(self):
        assert percent_of(Decimal("3"), Decimal("0")) == Decimal("0")


class TestDeterministicClock:
    def test_fixed_until_advanced(self):
        clock = DeterministicClock(datetime(2025, 3, 14, 23, 59, 59, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        clock.advance(1)
        assert clock.today().isoformat() == "2025-03-15"
