"""
RowEntryStateMachine -- per-row commit / revert during keyboard entry.

Responsibility:
    Decides when a row's edits become durable (commit) and when they are
    discarded back to the snapshot taken on entry (revert).  Walks the
    profile's field sequence and runs the commit checks at its last field.

Architecture position:
    Services -- stateful, but no I/O.  Works on immutable ``Document``
    values: every transition takes the latest document and returns the
    next one, so a decision is always made against current line state.

Invariants enforced:
    - Entering a filled row snapshots it; entering a blank row, or the row
      that is already active, takes no snapshot.
    - Leaving a row without committing restores its snapshot field for
      field.  Moving into an overlay (unit picker, product list) is not
      leaving.
    - Product selection is auto-committed; no snapshot survives it.  An
      auto-commit that lands after focus moved to another row does not
      touch that row's snapshot.
    - Commit runs the configured checks in order; the first failure wins.
    - Forgetting a row (deletion) drops its snapshot so no revert fires
      for it later.

Failure modes:
    - LineNotFoundError when a transition names a row that is not in the
      document.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from entry_config.schema import DocumentProfile
from entry_engines.validation import validate_row
from entry_kernel.domain.types import Document, Line, LineField, Product
from entry_kernel.exceptions import LineNotFoundError, RowValidationFailure
from entry_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.row_state")


class RowState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    COMMITTED = "committed"
    REVERTED = "reverted"


class FieldFocus(str, Enum):
    """Where keyboard focus should go next."""

    IMEI = "imei"
    NAME = "name"
    UNIT = "unit"
    QUANTITY = "quantity"
    PRICE = "price"
    DISC_PERCENT = "disc_percent"
    DISC_AMOUNT = "disc_amount"
    PROFIT_PERCENT = "profit_percent"
    RETAIL = "retail"
    WHOLESALE = "wholesale"
    ADJUSTMENTS = "adjustments"

    @classmethod
    def of(cls, field: LineField | str) -> FieldFocus:
        return cls(field.value if isinstance(field, LineField) else field)


@dataclass(frozen=True)
class RowSnapshot:
    line_id: str
    line: Line


@dataclass(frozen=True)
class CommitOutcome:
    """Result of a commit attempt at the end of the field sequence."""

    document: Document
    committed: bool
    line_id: str
    focus_line_id: str
    focus_field: FieldFocus
    failure: RowValidationFailure | None = None


class RowEntryStateMachine:
    """
    Commit / revert bookkeeping for the row being edited.

    One instance per entry session.  ``reset()`` is called whenever the
    whole working document is replaced.
    """

    def __init__(self, profile: DocumentProfile, id_factory: Callable[[], str]):
        self._profile = profile
        self._new_id = id_factory
        self._state = RowState.IDLE
        self._active_line_id: str | None = None
        self._snapshot: RowSnapshot | None = None

    @property
    def state(self) -> RowState:
        return self._state

    @property
    def active_line_id(self) -> str | None:
        return self._active_line_id

    @property
    def snapshot(self) -> RowSnapshot | None:
        return self._snapshot

    def reset(self) -> None:
        self._state = RowState.IDLE
        self._active_line_id = None
        self._snapshot = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def enter_row(self, document: Document, line_id: str) -> Document:
        """
        Focus moves into ``line_id``.

        Reverts the previously active row if it was left uncommitted.
        """
        if line_id == self._active_line_id:
            return document
        line = document.line(line_id)
        if line is None:
            raise LineNotFoundError(line_id)

        document = self.revert_if_uncommitted(document)

        self._active_line_id = line_id
        self._state = RowState.EDITING
        if line.is_placeholder:
            self._snapshot = None
        else:
            self._snapshot = RowSnapshot(line_id=line_id, line=line)
        logger.debug(
            "row_entered",
            extra={"line_id": line_id, "snapshot_taken": self._snapshot is not None},
        )
        return document

    def leave_row(self, document: Document, overlay: bool = False) -> Document:
        """
        Focus leaves the active row.

        ``overlay`` marks focus moving into a popup that belongs to the row
        (unit picker, product list); that does not count as leaving.
        """
        if overlay or self._active_line_id is None:
            return document
        document = self.revert_if_uncommitted(document)
        self._active_line_id = None
        if self._state != RowState.REVERTED:
            self._state = RowState.IDLE
        return document

    def revert_if_uncommitted(self, document: Document) -> Document:
        """Restore the active row's snapshot if it was never committed."""
        snapshot = self._snapshot
        if snapshot is None or self._state != RowState.EDITING:
            self._snapshot = None
            return document
        self._snapshot = None
        self._state = RowState.REVERTED
        if document.line(snapshot.line_id) is None:
            return document
        with LogContext.bind(line_id=snapshot.line_id):
            logger.info("row_reverted", extra={"product_id": snapshot.line.product_id})
        return document.with_line(snapshot.line)

    def mark_committed(self, line_id: str) -> None:
        """
        Make the row's current values durable (auto-commit or commit).

        A late commit for a row that focus has already left leaves the
        active row and its snapshot alone.
        """
        if line_id != self._active_line_id:
            logger.debug(
                "row_commit_not_active",
                extra={"line_id": line_id, "active_line_id": self._active_line_id},
            )
            return
        self._snapshot = None
        self._state = RowState.COMMITTED

    def forget(self, line_id: str) -> None:
        """Drop any bookkeeping for a deleted row."""
        if self._snapshot is not None and self._snapshot.line_id == line_id:
            self._snapshot = None
        if self._active_line_id == line_id:
            self._active_line_id = None
            self._state = RowState.IDLE

    # ------------------------------------------------------------------
    # Field sequence
    # ------------------------------------------------------------------

    def next_field(self, line: Line, current: LineField) -> LineField | None:
        """
        Field after ``current`` for this row, or None when ``current`` is
        the commit field.  The unit step is skipped when the row offers no
        unit choice.
        """
        nxt = self._profile.next_field(current)
        while nxt == LineField.UNIT and not line.available_units:
            nxt = self._profile.next_field(nxt)
        return nxt

    def commit_if_valid(
        self,
        document: Document,
        line_id: str,
        product: Product | None = None,
    ) -> CommitOutcome:
        """
        Run the commit checks on the row's latest values.

        On success the row is committed and focus moves to the next row,
        appending a placeholder row when the committed row was the last.
        """
        line = document.line(line_id)
        if line is None:
            raise LineNotFoundError(line_id)

        failure = validate_row(
            line,
            self._profile.commit_checks,
            self._profile.final_field,
            product,
        )
        if failure is not None:
            with LogContext.bind(line_id=line_id):
                logger.info(
                    "row_commit_rejected",
                    extra={"check": failure.check, "focus_field": failure.focus_field},
                )
            return CommitOutcome(
                document=document,
                committed=False,
                line_id=line_id,
                focus_line_id=line_id,
                focus_field=FieldFocus.of(failure.focus_field),
                failure=failure,
            )

        self.mark_committed(line_id)
        with LogContext.bind(line_id=line_id):
            logger.info(
                "row_committed",
                extra={"product_id": line.product_id, "total": line.total},
            )

        idx = document.index_of(line_id)
        if idx < len(document.lines) - 1:
            next_id = document.lines[idx + 1].id
        else:
            next_id = self._new_id()
            document = replace(document, lines=document.lines + (Line.blank(next_id),))
        document = self.enter_row(document, next_id)

        return CommitOutcome(
            document=document,
            committed=True,
            line_id=line_id,
            focus_line_id=next_id,
            focus_field=FieldFocus.of(self._profile.first_field),
        )
