"""
Pure domain layer.

Values, types and the clock interface, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Collaborators

All domain objects are immutable.
"""

from entry_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from entry_kernel.domain.types import (
    Batch,
    Document,
    DocumentKind,
    DocumentSummary,
    DocumentTotals,
    HeldDraft,
    Line,
    LineField,
    MultiUnit,
    PaymentType,
    Product,
    ProductInfo,
    ReferenceInvoice,
    ReferenceItem,
    ReturnMode,
    SavePayload,
    SaveReceipt,
    SaveResult,
    StockBatch,
    StoredBatch,
    StoredDocument,
    TaxMode,
    UnitOption,
    VatType,
)
from entry_kernel.domain.values import ZERO, parse_numeric_input, round2, to_decimal

__all__ = [
    "Batch",
    "Clock",
    "DeterministicClock",
    "Document",
    "DocumentKind",
    "DocumentSummary",
    "DocumentTotals",
    "HeldDraft",
    "Line",
    "LineField",
    "MultiUnit",
    "PaymentType",
    "Product",
    "ProductInfo",
    "ReferenceInvoice",
    "ReferenceItem",
    "ReturnMode",
    "SavePayload",
    "SaveReceipt",
    "SaveResult",
    "StockBatch",
    "StoredBatch",
    "StoredDocument",
    "SystemClock",
    "TaxMode",
    "UnitOption",
    "VatType",
    "ZERO",
    "parse_numeric_input",
    "round2",
    "to_decimal",
]
