"""
entry_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure engines: the row entry state
    machine, the held-draft queue and its stores, the navigation cursor,
    and the ``EntrySession`` façade the UI layer drives.  This is the only
    layer that awaits collaborators or reads the clock.

Architecture position:
    Services -- stateful orchestration over engines + kernel + config.

    Dependency direction:
        entry_services/ -> entry_engines/, entry_config/, entry_kernel/  (allowed)
        entry_engines/  -> entry_services/                               (FORBIDDEN)
        entry_kernel/   -> entry_services/                               (FORBIDDEN)
"""

from entry_services.contracts import (
    BatchNumberAllocator,
    CatalogGateway,
    DocumentNumberAllocator,
    DocumentStore,
    ReferenceInvoiceSource,
    StockGateway,
)
from entry_services.draft_queue import DraftQueue, DraftStore, InMemoryDraftStore
from entry_services.draft_store import SqlDraftStore
from entry_services.entry_session import EntrySession, FocusTarget
from entry_services.navigation import DocumentCursor
from entry_services.row_state import (
    CommitOutcome,
    FieldFocus,
    RowEntryStateMachine,
    RowState,
)

__all__ = [
    "BatchNumberAllocator",
    "CatalogGateway",
    "CommitOutcome",
    "DocumentCursor",
    "DocumentNumberAllocator",
    "DocumentStore",
    "DraftQueue",
    "DraftStore",
    "EntrySession",
    "FieldFocus",
    "FocusTarget",
    "InMemoryDraftStore",
    "ReferenceInvoiceSource",
    "RowEntryStateMachine",
    "RowState",
    "SqlDraftStore",
    "StockGateway",
]
