"""
Collaborator contracts.

Responsibility:
    Declares the request/response interfaces the entry session depends
    on: catalog and stock lookups, batch and document number allocation,
    the document store, and the sales-invoice source for by-reference
    returns.  Every call is a coroutine; the session awaits them on one
    event loop.

Architecture position:
    Services -- ports only.  Implementations live outside this package
    (HTTP clients, ORM repositories, or the in-memory fakes in tests).

Failure contract:
    - Lookup collaborators may raise anything; the session treats their
      failures as non-fatal and substitutes a fallback.
    - Document store operations raise ``DocumentStoreError`` (or a
      subclass) with a user-facing message; the session propagates it
      unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from entry_kernel.domain.types import (
    DocumentKind,
    DocumentSummary,
    Product,
    ReferenceInvoice,
    SavePayload,
    SaveReceipt,
    StockBatch,
    StoredDocument,
)

# Catalog records are either normalised Products or raw catalog mappings.
CatalogRecord = Product | Mapping[str, Any]


@runtime_checkable
class CatalogGateway(Protocol):
    """Product master data."""

    async def list_products(self) -> Sequence[CatalogRecord]: ...

    async def get_by_id(self, product_id: str) -> CatalogRecord | None: ...

    async def find_by_serial(self, serial: str) -> CatalogRecord | None: ...

    async def find_by_barcode(self, barcode: str) -> CatalogRecord | None: ...

    async def search(self, text: str) -> Sequence[CatalogRecord]: ...

    async def list_stock_batches(self, product_id: str) -> Sequence[StockBatch]: ...


@runtime_checkable
class StockGateway(Protocol):
    """On-hand quantity, for display only."""

    async def get_stock(self, product_id: str) -> Decimal: ...


@runtime_checkable
class BatchNumberAllocator(Protocol):
    async def next_batch_number(self) -> str: ...


@runtime_checkable
class DocumentNumberAllocator(Protocol):
    async def next_document_number(self, kind: DocumentKind) -> str: ...


@runtime_checkable
class DocumentStore(Protocol):
    """
    Persistence of saved documents for one document kind.

    ``create`` and ``update`` return the assigned id and the number of
    batches persisted.
    """

    async def create(self, payload: SavePayload) -> SaveReceipt: ...

    async def update(self, document_id: str, payload: SavePayload) -> SaveReceipt: ...

    async def get_by_id(self, document_id: str) -> StoredDocument: ...

    async def search_by_number(self, document_no: str) -> StoredDocument | None: ...

    async def delete(self, document_id: str) -> None: ...

    async def list_summaries(self) -> Sequence[DocumentSummary]: ...


@runtime_checkable
class ReferenceInvoiceSource(Protocol):
    """Sales invoices that a by-reference return can point at."""

    async def find_by_number(self, invoice_no: str) -> ReferenceInvoice | None: ...
