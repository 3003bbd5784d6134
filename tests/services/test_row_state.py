"""
Tests for RowEntryStateMachine.

Covers:
- Snapshot on entry of a filled row, none for a blank row
- Revert on leaving without commit; overlays are not leaving
- Auto-commit (product selection) discards the snapshot
- Commit checks at the end of the field sequence
- Focus moves to the next row, appending a placeholder when needed
- Deleted rows are forgotten
"""

from decimal import Decimal

import pytest

from entry_engines.derivation import apply_field_edit, derive_line
from entry_kernel.domain.types import (
    Document,
    DocumentKind,
    Line,
    LineField,
    TaxMode,
    UnitOption,
    VatType,
)
from entry_kernel.exceptions import LineNotFoundError
from entry_services.row_state import FieldFocus, RowEntryStateMachine, RowState
from tests.conftest import make_id_factory, messages


def _filled(line_id: str, **kw) -> Line:
    base = dict(
        id=line_id,
        product_id="p-pen",
        product_code="PEN01",
        name="Blue Pen",
        quantity=Decimal("2"),
        price=Decimal("10"),
        retail=Decimal("12"),
        wholesale=Decimal("11"),
    )
    base.update(kw)
    return derive_line(Line(**base), TaxMode.INCLUSIVE, VatType.VAT)


def _doc(*lines: Line) -> Document:
    return Document(kind=DocumentKind.PURCHASE, lines=lines)


def _edit(doc: Document, line_id: str, field: LineField, value: str) -> Document:
    line = apply_field_edit(doc.line(line_id), field, value, TaxMode.INCLUSIVE, VatType.VAT)
    return doc.with_line(line)


@pytest.fixture
def machine(purchase_profile):
    return RowEntryStateMachine(purchase_profile, make_id_factory("new"))


class TestSnapshots:
    def test_filled_row_snapshotted(self, machine):
        doc = _doc(_filled("a"))
        machine.enter_row(doc, "a")
        assert machine.snapshot.line_id == "a"
        assert machine.state == RowState.EDITING

    def test_blank_row_not_snapshotted(self, machine):
        doc = _doc(Line.blank("a"))
        machine.enter_row(doc, "a")
        assert machine.snapshot is None

    def test_reentering_active_row_keeps_snapshot(self, machine):
        doc = _doc(_filled("a"))
        doc = machine.enter_row(doc, "a")
        doc = _edit(doc, "a", LineField.QUANTITY, "5")
        doc = machine.enter_row(doc, "a")
        assert machine.snapshot.line.quantity == Decimal("2")
        assert doc.line("a").quantity == Decimal("5")

    def test_unknown_row(self, machine):
        with pytest.raises(LineNotFoundError):
            machine.enter_row(_doc(Line.blank("a")), "zzz")


class TestRevert:
    def test_leaving_uncommitted_row_restores_every_field(self, machine, captured_logs):
        original = _filled("a")
        doc = machine.enter_row(_doc(original, Line.blank("b")), "a")
        doc = _edit(doc, "a", LineField.QUANTITY, "9")
        doc = _edit(doc, "a", LineField.DISC_PERCENT, "10")
        doc = machine.leave_row(doc)
        assert doc.line("a") == original
        assert machine.state == RowState.REVERTED
        assert "row_reverted" in messages(captured_logs())

    def test_moving_to_another_row_reverts(self, machine):
        original = _filled("a")
        doc = machine.enter_row(_doc(original, Line.blank("b")), "a")
        doc = _edit(doc, "a", LineField.PRICE, "99")
        doc = machine.enter_row(doc, "b")
        assert doc.line("a") == original
        assert machine.active_line_id == "b"

    def test_overlay_is_not_leaving(self, machine):
        doc = machine.enter_row(_doc(_filled("a")), "a")
        doc = _edit(doc, "a", LineField.QUANTITY, "7")
        doc = machine.leave_row(doc, overlay=True)
        assert doc.line("a").quantity == Decimal("7")
        assert machine.active_line_id == "a"

    def test_blank_row_edits_survive_leaving(self, machine):
        doc = machine.enter_row(_doc(Line.blank("a")), "a")
        doc = doc.with_line(_filled("a"))
        doc = machine.leave_row(doc)
        assert doc.line("a").product_id == "p-pen"

    def test_auto_commit_prevents_revert(self, machine):
        doc = machine.enter_row(_doc(_filled("a")), "a")
        doc = doc.with_line(_filled("a", product_id="p-other", name="Other"))
        machine.mark_committed("a")
        doc = machine.leave_row(doc)
        assert doc.line("a").product_id == "p-other"

    def test_commit_for_inactive_row_keeps_active_snapshot(self, machine):
        doc = _doc(_filled("a"), Line.blank("b"))
        doc = machine.enter_row(doc, "b")
        doc = machine.enter_row(doc, "a")
        doc = _edit(doc, "a", LineField.QUANTITY, "9")
        machine.mark_committed("b")
        assert machine.active_line_id == "a"
        assert machine.snapshot.line_id == "a"
        doc = machine.leave_row(doc)
        assert doc.line("a").quantity == Decimal("2")

    def test_forgotten_row_never_reverts(self, machine):
        doc = machine.enter_row(_doc(_filled("a"), Line.blank("b")), "a")
        machine.forget("a")
        doc = _doc(doc.line("b"))
        doc = machine.enter_row(doc, "b")
        assert [l.id for l in doc.lines] == ["b"]
        assert machine.active_line_id == "b"

    def test_revert_of_missing_row_is_noop(self, machine):
        doc = machine.enter_row(_doc(_filled("a"), Line.blank("b")), "a")
        doc = _doc(doc.line("b"))
        assert machine.revert_if_uncommitted(doc) == doc


class TestFieldSequence:
    def test_unit_skipped_without_options(self, machine):
        assert machine.next_field(_filled("a"), LineField.NAME) == LineField.QUANTITY

    def test_unit_kept_with_options(self, machine):
        line = _filled("a", available_units=(UnitOption(id="u", name="Pcs"),))
        assert machine.next_field(line, LineField.NAME) == LineField.UNIT

    def test_end_of_sequence(self, machine):
        assert machine.next_field(_filled("a"), LineField.WHOLESALE) is None


class TestCommit:
    def test_commit_last_row_appends_placeholder(self, machine, captured_logs):
        doc = machine.enter_row(_doc(_filled("a")), "a")
        outcome = machine.commit_if_valid(doc, "a")
        assert outcome.committed
        assert outcome.focus_line_id == "new-1"
        assert outcome.focus_field == FieldFocus.IMEI
        assert [l.id for l in outcome.document.lines] == ["a", "new-1"]
        assert outcome.document.lines[1].is_placeholder
        assert machine.active_line_id == "new-1"
        assert "row_committed" in messages(captured_logs())

    def test_commit_middle_row_moves_to_next(self, machine):
        doc = machine.enter_row(_doc(_filled("a"), _filled("b")), "a")
        outcome = machine.commit_if_valid(doc, "a")
        assert outcome.focus_line_id == "b"
        assert len(outcome.document.lines) == 2

    def test_committed_values_survive_leaving(self, machine):
        doc = machine.enter_row(_doc(_filled("a"), Line.blank("b")), "a")
        doc = _edit(doc, "a", LineField.QUANTITY, "4")
        outcome = machine.commit_if_valid(doc, "a")
        doc = machine.leave_row(outcome.document)
        assert doc.line("a").quantity == Decimal("4")

    def test_rejected_commit_focuses_failed_field(self, machine, captured_logs):
        doc = machine.enter_row(_doc(_filled("a", retail=Decimal("0"))), "a")
        outcome = machine.commit_if_valid(doc, "a")
        assert not outcome.committed
        assert outcome.focus_line_id == "a"
        assert outcome.focus_field == FieldFocus.RETAIL
        assert outcome.failure.message == "Retail price must be greater than 0"
        assert outcome.document is doc
        assert machine.state == RowState.EDITING
        assert "row_commit_rejected" in messages(captured_logs())

    def test_commit_uses_latest_values(self, machine):
        doc = machine.enter_row(_doc(_filled("a", wholesale=Decimal("0"))), "a")
        doc = _edit(doc, "a", LineField.WHOLESALE, "11")
        assert machine.commit_if_valid(doc, "a").committed

    def test_commit_unknown_row(self, machine):
        with pytest.raises(LineNotFoundError):
            machine.commit_if_valid(_doc(Line.blank("a")), "zzz")

    def test_reset(self, machine):
        machine.enter_row(_doc(_filled("a")), "a")
        machine.reset()
        assert machine.state == RowState.IDLE
        assert machine.active_line_id is None
        assert machine.snapshot is None
