"""
DocumentCursor -- first / prev / next / last over saved documents.

The cursor walks the summary list exactly as the document store returned
it; it never re-sorts.  Moves clamp at both ends instead of wrapping, and
``prev`` with nothing loaded jumps to the last document.
"""

from __future__ import annotations

from collections.abc import Sequence

from entry_kernel.domain.types import DocumentSummary
from entry_kernel.logging_config import get_logger

logger = get_logger("services.navigation")


class DocumentCursor:
    """Position within an externally supplied list of saved documents."""

    def __init__(self) -> None:
        self._summaries: tuple[DocumentSummary, ...] = ()
        self._index = -1

    @property
    def summaries(self) -> tuple[DocumentSummary, ...]:
        return self._summaries

    @property
    def index(self) -> int:
        """Current position, or -1 when no saved document is loaded."""
        return self._index

    @property
    def current(self) -> DocumentSummary | None:
        if 0 <= self._index < len(self._summaries):
            return self._summaries[self._index]
        return None

    def sync(
        self,
        summaries: Sequence[DocumentSummary],
        current_document_id: str | None = None,
    ) -> None:
        """Replace the list and point at ``current_document_id`` if present."""
        self._summaries = tuple(summaries)
        self.point_at(current_document_id)

    def point_at(self, document_id: str | None) -> None:
        self._index = -1
        if document_id is None:
            return
        for idx, summary in enumerate(self._summaries):
            if summary.document_id == document_id:
                self._index = idx
                return

    def unset(self) -> None:
        self._index = -1

    def _move(self, idx: int, direction: str) -> DocumentSummary | None:
        if not self._summaries:
            logger.debug("navigation_empty", extra={"direction": direction})
            return None
        self._index = idx
        logger.debug("navigation_moved", extra={"direction": direction, "index": idx})
        return self._summaries[idx]

    def first(self) -> DocumentSummary | None:
        return self._move(0, "first")

    def last(self) -> DocumentSummary | None:
        return self._move(len(self._summaries) - 1, "last")

    def prev(self) -> DocumentSummary | None:
        if self._index < 0:
            return self._move(len(self._summaries) - 1, "prev")
        return self._move(max(self._index - 1, 0), "prev")

    def next(self) -> DocumentSummary | None:
        return self._move(min(self._index + 1, len(self._summaries) - 1), "next")
