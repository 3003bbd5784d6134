"""
Tests for the engine invocation tracer.

Verifies that ``@traced_engine`` emits ENTRY_ENGINE_TRACE records with a
deterministic fingerprint and never alters the wrapped result.
"""

from decimal import Decimal

import pytest

from entry_engines.derivation import derive_line
from entry_engines.tracer import compute_input_fingerprint, traced_engine
from entry_kernel.domain.types import Line, TaxMode, VatType


def _traces(records):
    return [r for r in records if r["message"] == "ENTRY_ENGINE_TRACE"]


class TestFingerprint:
    def test_deterministic(self):
        kwargs = {"a": Decimal("1.50"), "b": {"y": 2, "x": 1}}
        assert compute_input_fingerprint(("a", "b"), kwargs) == compute_input_fingerprint(
            ("a", "b"), {"b": {"x": 1, "y": 2}, "a": Decimal("1.50")}
        )

    def test_sixteen_hex_chars(self):
        fp = compute_input_fingerprint(("a",), {"a": "x"})
        assert len(fp) == 16
        int(fp, 16)

    def test_dataclass_inputs(self):
        one = Line(id="l1", quantity=Decimal("2"))
        two = Line(id="l1", quantity=Decimal("3"))
        assert compute_input_fingerprint(("line",), {"line": one}) != compute_input_fingerprint(
            ("line",), {"line": two}
        )

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("a",), {}) == compute_input_fingerprint(
            ("a",), {"a": None}
        )


class TestTracedEngine:
    def test_emits_trace(self, captured_logs):
        @traced_engine("sample", "2.1", fingerprint_fields=("x",))
        def double(x):
            return x * 2

        assert double(x=Decimal("4")) == Decimal("8")

        (trace,) = _traces(captured_logs())
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert trace["trace_type"] == "ENTRY_ENGINE_TRACE"
        assert trace["input_fingerprint"] == compute_input_fingerprint(
            ("x",), {"x": Decimal("4")}
        )
        assert trace["duration_ms"] >= 0

    def test_positional_inputs_are_fingerprinted(self, captured_logs):
        @traced_engine("sample", "1.0", fingerprint_fields=("x",))
        def ident(x):
            return x

        ident(1)
        ident(2)
        ident(x=1)
        first, second, third = _traces(captured_logs())
        assert first["input_fingerprint"] != second["input_fingerprint"]
        assert first["input_fingerprint"] == third["input_fingerprint"]

    def test_defaults_are_fingerprinted(self, captured_logs):
        @traced_engine("sample", "1.0", fingerprint_fields=("x", "scale"))
        def scaled(x, scale=2):
            return x * scale

        scaled(3)
        scaled(3, 2)
        first, second = _traces(captured_logs())
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_real_engine_inputs_distinguished(self, captured_logs):
        derive_line(Line(id="l1", product_id="p"), TaxMode.INCLUSIVE, VatType.VAT)
        derive_line(
            Line(id="l2", product_id="q", quantity=Decimal("3")),
            TaxMode.EXCLUSIVE,
            VatType.NON_VAT,
        )
        first, second = [
            t["input_fingerprint"]
            for t in _traces(captured_logs())
            if t["engine_name"] == "derivation"
        ]
        assert first != second

    def test_real_engine_traced(self, captured_logs):
        derive_line(Line(id="l1", product_id="p"), TaxMode.INCLUSIVE, VatType.VAT)
        assert any(t["engine_name"] == "derivation" for t in _traces(captured_logs()))

    def test_exception_propagates_without_trace(self, captured_logs):
        @traced_engine("broken", "1.0")
        def boom():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            boom()
        assert not [t for t in _traces(captured_logs()) if t["engine_name"] == "broken"]
