"""
Entry domain types.

Responsibility:
    Immutable value objects for everything the entry engine reasons about:
    catalog products and their unit options, working lines and documents,
    save-time batches, held drafts, and the records exchanged with the
    document store.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  Engines and services build new
    instances with ``dataclasses.replace``; nothing is mutated in place, so
    a row snapshot is simply a reference to the previous ``Line``.

Invariants enforced:
    - Decimal-only numeric fields.
    - ``Document.lines`` is an ordered tuple; insertion order drives batch
      iteration order and row navigation.
    - A ``Line`` with an empty ``product_id`` is a placeholder.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from entry_kernel.domain.values import ZERO


class VatType(str, Enum):
    """Whether the document carries VAT at all."""

    VAT = "Vat"
    NON_VAT = "NonVat"


class TaxMode(str, Enum):
    """Whether a line's rate already contains VAT."""

    INCLUSIVE = "inclusive"  # rate contains the tax
    EXCLUSIVE = "exclusive"  # tax added on top


class PaymentType(str, Enum):
    CASH = "Cash"
    CREDIT = "Credit"


class DocumentKind(str, Enum):
    PURCHASE = "purchase"
    PURCHASE_ORDER = "purchase_order"
    SALES_RETURN = "sales_return"


class ReturnMode(str, Enum):
    """Sales return mode: free-standing or against a sales invoice."""

    ON_ACCOUNT = "OnAccount"
    BY_REFERENCE = "ByRef"


class LineField(str, Enum):
    """Editable row fields, in the vocabulary of the field sequence."""

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


NUMERIC_FIELDS: frozenset[LineField] = frozenset(
    {
        LineField.QUANTITY,
        LineField.PRICE,
        LineField.DISC_PERCENT,
        LineField.DISC_AMOUNT,
        LineField.PROFIT_PERCENT,
        LineField.RETAIL,
        LineField.WHOLESALE,
    }
)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MultiUnit:
    """An alternate packaging of a product (e.g. a carton of 12)."""

    multi_unit_id: str
    unit_id: str
    unit_name: str = "Unit"
    imei: str = ""
    conversion: Decimal | None = None  # pieces contained
    price: Decimal | None = None
    total_price: Decimal | None = None  # legacy bundle price
    retail: Decimal | None = None
    wholesale: Decimal | None = None
    special_price1: Decimal | None = None
    special_price2: Decimal | None = None


@dataclass(frozen=True)
class Product:
    """Catalog item as returned by the catalog collaborator."""

    id: str
    name: str
    code: str = ""
    imei: str = ""
    purchase_price: Decimal = ZERO
    retail_price: Decimal = ZERO
    wholesale_price: Decimal = ZERO
    mrp: Decimal | None = None
    batch_tracking: bool = True
    main_unit_id: str | None = None
    main_unit_name: str = "Main"
    multi_units: tuple[MultiUnit, ...] = ()
    last_vendor: str = "N/A"

    @property
    def serials(self) -> tuple[str, ...]:
        """Every non-blank serial carried by the product or its multi-units."""
        found = [self.imei.strip()] + [mu.imei.strip() for mu in self.multi_units]
        return tuple(s for s in found if s)


@dataclass(frozen=True)
class UnitOption:
    """
    Canonical unit choice for a line.

    The main unit comes first, then packaged multi-units.  Every catalog
    shape is normalised into this one type before derivation runs.
    """

    id: str
    name: str
    is_multi_unit: bool = False
    multi_unit_id: str | None = None
    imei: str = ""
    price: Decimal | None = None  # per-piece price
    conversion: Decimal | None = None
    retail: Decimal | None = None
    wholesale: Decimal | None = None
    special_price1: Decimal | None = None
    special_price2: Decimal | None = None


@dataclass(frozen=True)
class StockBatch:
    """An on-hand inventory batch, offered when returning a product."""

    batch_number: str
    purchase_price: Decimal
    retail: Decimal
    wholesale: Decimal | None = None
    quantity: Decimal = ZERO
    expiry_date: str = ""


# ---------------------------------------------------------------------------
# Working document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Line:
    """One row of the working document."""

    id: str
    product_id: str = ""
    product_code: str = ""
    name: str = ""
    imei: str = ""
    unit_id: str = ""
    unit_name: str = ""
    multi_unit_id: str | None = None
    available_units: tuple[UnitOption, ...] = ()
    quantity: Decimal = ZERO
    price: Decimal = ZERO
    gross: Decimal = ZERO
    disc_percent: Decimal = ZERO
    disc_amount: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total: Decimal = ZERO
    profit_percent: Decimal = ZERO
    mrp: Decimal = ZERO
    retail: Decimal = ZERO
    wholesale: Decimal = ZERO
    special_price1: Decimal = ZERO
    special_price2: Decimal = ZERO
    batch_number: str = ""
    expiry_date: str = ""
    batch_tracking: bool = True

    @classmethod
    def blank(cls, line_id: str) -> Line:
        return cls(id=line_id)

    @property
    def is_placeholder(self) -> bool:
        return not self.product_id

    @property
    def has_identity(self) -> bool:
        """True when the row names a product by id or code."""
        return bool(self.product_id or self.product_code)

    @property
    def net(self) -> Decimal:
        return self.gross - self.disc_amount

    def unit_option(self, unit_id: str) -> UnitOption | None:
        for unit in self.available_units:
            if unit.id == unit_id:
                return unit
        return None


@dataclass(frozen=True)
class Document:
    """
    The working entry: header, ordered lines and document adjustments.

    ``document_id`` is set once the document has been persisted by the
    document store.
    """

    kind: DocumentKind
    lines: tuple[Line, ...]
    document_no: str = ""
    document_date: date | None = None
    vat_type: VatType = VatType.VAT
    tax_mode: TaxMode = TaxMode.INCLUSIVE
    party_id: str | None = None
    party_name: str = ""
    payment_type: PaymentType = PaymentType.CASH
    cash_account_id: str | None = None
    reference_no: str = ""
    other_disc_percent: Decimal = ZERO
    other_discount: Decimal = ZERO
    other_charges: Decimal = ZERO
    freight_charge: Decimal = ZERO
    lend_add_less: Decimal = ZERO
    round_off: Decimal = ZERO
    narration: str = ""
    document_id: str | None = None
    return_mode: ReturnMode = ReturnMode.ON_ACCOUNT
    source_document_id: str | None = None

    @property
    def is_saved(self) -> bool:
        return self.document_id is not None

    @property
    def filled_lines(self) -> tuple[Line, ...]:
        return tuple(line for line in self.lines if not line.is_placeholder)

    def line(self, line_id: str) -> Line | None:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def index_of(self, line_id: str) -> int:
        for idx, line in enumerate(self.lines):
            if line.id == line_id:
                return idx
        return -1

    def with_line(self, updated: Line) -> Document:
        """Replace the line sharing ``updated.id``; other rows untouched."""
        return replace(
            self,
            lines=tuple(updated if l.id == updated.id else l for l in self.lines),
        )


# ---------------------------------------------------------------------------
# Save-time projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Batch:
    """
    Save-time inventory batch.

    Exists only for the duration of a save call.
    """

    product_id: str
    product_code: str
    product_name: str
    purchase_price: Decimal
    expiry_date: str
    total_quantity: Decimal
    disc_amount: Decimal
    vat_amount: Decimal
    gross: Decimal
    total: Decimal
    batch_number: str = ""
    multi_unit_id: str | None = None
    retail: Decimal = ZERO
    wholesale: Decimal = ZERO
    special_price1: Decimal = ZERO
    special_price2: Decimal = ZERO
    line_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentTotals:
    """Document summary figures."""

    items_gross: Decimal = ZERO
    items_discount: Decimal = ZERO
    items_vat: Decimal = ZERO
    vat_from_adjustments: Decimal = ZERO
    total_vat: Decimal = ZERO
    sub_total: Decimal = ZERO
    grand_total: Decimal = ZERO
    total_items: Decimal = ZERO


@dataclass(frozen=True)
class SavePayload:
    """What the document store receives on create/update."""

    document: Document
    batches: tuple[Batch, ...]
    totals: DocumentTotals


@dataclass(frozen=True)
class SaveReceipt:
    """Document store answer to create/update."""

    document_id: str
    batch_count: int


@dataclass(frozen=True)
class SaveResult:
    document_id: str
    batch_count: int
    message: str
    batches: tuple[Batch, ...] = ()


@dataclass(frozen=True)
class DocumentSummary:
    """One entry of the saved-document list used for navigation."""

    document_id: str
    document_no: str
    document_date: date | None = None
    party_name: str = ""
    total: Decimal = ZERO


@dataclass(frozen=True)
class StoredBatch:
    """A persisted batch as returned by ``get_by_id``."""

    product_id: str
    product_code: str
    product_name: str
    purchase_price: Decimal
    quantity: Decimal
    disc_amount: Decimal = ZERO
    retail: Decimal = ZERO
    wholesale: Decimal = ZERO
    special_price1: Decimal = ZERO
    special_price2: Decimal = ZERO
    expiry_date: str = ""
    batch_number: str = ""
    multi_unit_id: str | None = None


@dataclass(frozen=True)
class StoredDocument:
    """A persisted document as returned by the document store."""

    document_id: str
    document_no: str
    batches: tuple[StoredBatch, ...]
    document_date: date | None = None
    vat_type: VatType = VatType.VAT
    tax_mode: TaxMode = TaxMode.INCLUSIVE
    party_id: str | None = None
    party_name: str = ""
    payment_type: PaymentType = PaymentType.CREDIT
    cash_account_id: str | None = None
    reference_no: str = ""
    narration: str = ""
    other_discount: Decimal = ZERO
    other_charges: Decimal = ZERO
    freight_charge: Decimal = ZERO
    lend_add_less: Decimal = ZERO
    round_off: Decimal = ZERO
    return_mode: ReturnMode = ReturnMode.ON_ACCOUNT
    source_document_id: str | None = None


@dataclass(frozen=True)
class ReferenceItem:
    """A line of a sales invoice that a by-reference return points at."""

    product_id: str
    product_code: str
    name: str
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = ZERO
    imei: str = ""
    unit_id: str = ""
    unit_name: str = ""
    batch_number: str = ""


@dataclass(frozen=True)
class ReferenceInvoice:
    invoice_id: str
    invoice_no: str
    items: tuple[ReferenceItem, ...] = ()
    party_id: str | None = None
    party_name: str = ""
    vat_type: VatType = VatType.VAT
    tax_mode: TaxMode = TaxMode.EXCLUSIVE


@dataclass(frozen=True)
class HeldDraft:
    """A suspended working document plus a human-readable summary."""

    id: str
    held_at: datetime
    party_name: str
    item_count: int
    total: Decimal
    document: Document


@dataclass(frozen=True)
class ProductInfo:
    """Figures for the product-info panel of the active row."""

    stock: Decimal
    last_vendor: str
    purchase_rate: Decimal
    retail_price: Decimal
    wholesale_price: Decimal
    pieces_per_unit: Decimal | None = None
