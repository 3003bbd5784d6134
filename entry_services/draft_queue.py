"""
DraftQueue -- suspended, not-yet-saved documents.

Responsibility:
    Holds a working document aside with a human-readable summary, restores
    it later, or discards it.  The queue outlives the process through a
    keyed ``DraftStore``.

Architecture position:
    Services.  Depends on a ``DraftStore`` for persistence, a ``Clock``
    for ``held_at`` and an id factory for draft ids.

Invariants enforced:
    - Every queue mutation is one atomic read-modify-write of the whole
      collection via ``DraftStore.update``; a mutator that raises leaves
      the stored collection untouched.
    - A held draft is never mutated in place.  It leaves the queue exactly
      when restored or discarded.
    - Saved documents and documents with no filled line cannot be held.
    - No expiry or eviction: the queue grows until drafts are restored or
      discarded.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from typing import Any, Protocol

from entry_kernel.domain.clock import Clock
from entry_kernel.domain.serialization import held_draft_from_dict, held_draft_to_dict
from entry_kernel.domain.types import Document, DocumentTotals, HeldDraft
from entry_kernel.exceptions import (
    DraftNotFoundError,
    EmptyHoldError,
    SavedDocumentHoldError,
)
from entry_kernel.logging_config import get_logger

logger = get_logger("services.draft_queue")

DraftRecords = list[dict[str, Any]]


class DraftStore(Protocol):
    """Keyed storage of whole draft collections."""

    def load(self, key: str) -> DraftRecords:
        """Current collection for ``key`` (empty when never written)."""
        ...

    def update(
        self, key: str, mutator: Callable[[DraftRecords], DraftRecords]
    ) -> DraftRecords:
        """Atomically replace the collection with ``mutator(current)``."""
        ...


class InMemoryDraftStore:
    """Process-local ``DraftStore``; a lock serialises each update."""

    def __init__(self) -> None:
        self._data: dict[str, DraftRecords] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> DraftRecords:
        with self._lock:
            return copy.deepcopy(self._data.get(key, []))

    def update(
        self, key: str, mutator: Callable[[DraftRecords], DraftRecords]
    ) -> DraftRecords:
        with self._lock:
            current = copy.deepcopy(self._data.get(key, []))
            updated = mutator(current)
            self._data[key] = copy.deepcopy(updated)
            return copy.deepcopy(updated)


class DraftQueue:
    """Hold / restore / discard for one document kind's queue."""

    def __init__(
        self,
        store: DraftStore,
        key: str,
        clock: Clock,
        id_factory: Callable[[], str],
    ):
        self._store = store
        self._key = key
        self._clock = clock
        self._new_id = id_factory

    @property
    def key(self) -> str:
        return self._key

    def hold(
        self,
        document: Document,
        totals: DocumentTotals,
        party_placeholder: str = "No Supplier",
        noun: str = "document",
    ) -> HeldDraft:
        """
        Append ``document`` to the queue.

        Raises:
            SavedDocumentHoldError: If the document has a stored id.
            EmptyHoldError: If no line carries a product.
        """
        if document.is_saved:
            raise SavedDocumentHoldError(document.document_id, noun)
        filled = document.filled_lines
        if not filled:
            raise EmptyHoldError()

        draft = HeldDraft(
            id=self._new_id(),
            held_at=self._clock.now(),
            party_name=document.party_name or party_placeholder,
            item_count=len(filled),
            total=totals.grand_total,
            document=document,
        )
        record = held_draft_to_dict(draft)
        self._store.update(self._key, lambda items: items + [record])
        logger.info(
            "draft_held",
            extra={
                "draft_id": draft.id,
                "queue_key": self._key,
                "item_count": draft.item_count,
                "total": str(draft.total),
            },
        )
        return draft

    def _take(self, draft_id: str) -> HeldDraft:
        taken: list[dict[str, Any]] = []

        def remove(items: DraftRecords) -> DraftRecords:
            kept = [item for item in items if item.get("id") != draft_id]
            if len(kept) == len(items):
                raise DraftNotFoundError(draft_id)
            taken.extend(item for item in items if item.get("id") == draft_id)
            return kept

        self._store.update(self._key, remove)
        return held_draft_from_dict(taken[0])

    def restore(self, draft_id: str) -> HeldDraft:
        """
        Remove a draft from the queue and return it.

        Raises:
            DraftNotFoundError: If no draft has this id.
        """
        draft = self._take(draft_id)
        logger.info("draft_restored", extra={"draft_id": draft_id, "queue_key": self._key})
        return draft

    def discard(self, draft_id: str) -> None:
        """
        Remove a draft without restoring it.

        Raises:
            DraftNotFoundError: If no draft has this id.
        """
        self._take(draft_id)
        logger.info("draft_discarded", extra={"draft_id": draft_id, "queue_key": self._key})

    def list(self) -> tuple[HeldDraft, ...]:
        """Held drafts, oldest first."""
        return tuple(held_draft_from_dict(item) for item in self._store.load(self._key))
