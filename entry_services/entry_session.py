"""
entry_services.entry_session -- The entry engine as seen by the UI layer.

Responsibility:
    Owns the working ``Document`` for one document kind and exposes every
    operation the entry screen performs: header and adjustment edits,
    line mutation, row lifecycle, catalog lookups, save, hold/restore and
    navigation across saved documents.  All collaborators are injected.

Architecture position:
    Services -- the single façade over engines, the row state machine, the
    draft queue and the navigation cursor.  One instance per open entry
    screen; the instance is driven from a single asyncio event loop.

Invariants enforced:
    - The document always has at least one line.
    - Lookup results are applied only if they still pertain to the
      document and row that issued them: every async line operation
      captures (document generation, row selection token) and drops its
      result when either has moved on.
    - Save is not re-entrant; a second save while one is outstanding is
      refused before the store is touched.
    - A failed save leaves the working document untouched.
    - Non-critical lookups (catalog, stock, batch and document numbers,
      summaries) never block entry: failures are logged and replaced by a
      fallback value.

Failure modes:
    - DocumentValidationError subclasses from ``save`` (user-facing).
    - HoldError subclasses from ``hold``, ``restore`` and ``discard``.
    - DocumentStoreError from store operations, message unchanged.
    - LineNotFoundError / UnitNotFoundError for operations naming a row
      or unit that does not exist.
    - SaveInProgressError for a concurrent save.

Usage:
    session = EntrySession(
        profile=get_profile(DocumentKind.PURCHASE),
        catalog=catalog,
        stock=stock,
        batch_numbers=batch_numbers,
        documents=store,
        document_numbers=numbers,
        draft_store=SqlDraftStore(),
    )
    await session.new_entry()
    line_id = session.document.lines[0].id
    await session.scan(line_id, "8901234567890")
    result = await session.save()
"""

from __future__ import annotations

import itertools
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, TypeVar
from uuid import uuid4

from entry_config.schema import DocumentProfile, PriceBasis
from entry_engines.batching import group_into_batches, merge_stock_batches
from entry_engines.derivation import apply_field_edit, derive_line, rederive_lines
from entry_engines.totals import aggregate_totals, other_discount_from_percent
from entry_engines.units import (
    apply_unit_resolution,
    build_product_info,
    product_from_record,
    resolve_unit,
)
from entry_kernel.domain.clock import Clock, SystemClock
from entry_kernel.domain.types import (
    Document,
    DocumentSummary,
    DocumentTotals,
    HeldDraft,
    Line,
    LineField,
    PaymentType,
    Product,
    ProductInfo,
    ReturnMode,
    SavePayload,
    SaveResult,
    StockBatch,
    StoredDocument,
    TaxMode,
    UnitOption,
    VatType,
)
from entry_kernel.domain.values import ZERO, parse_numeric_input, to_decimal
from entry_kernel.exceptions import (
    LineNotFoundError,
    MultiplePlaceholderRowsError,
    NoValidLinesError,
    PartyRequiredError,
    SaveInProgressError,
    SourceDocumentRequiredError,
    UnitNotFoundError,
)
from entry_kernel.logging_config import LogContext, get_logger
from entry_services.contracts import (
    BatchNumberAllocator,
    CatalogGateway,
    CatalogRecord,
    DocumentNumberAllocator,
    DocumentStore,
    ReferenceInvoiceSource,
    StockGateway,
)
from entry_services.document_loader import (
    adopt as adopt_document,
    document_from_stored,
    lines_from_reference,
)
from entry_services.draft_queue import DraftQueue, DraftStore
from entry_services.navigation import DocumentCursor
from entry_services.row_state import (
    CommitOutcome,
    FieldFocus,
    RowEntryStateMachine,
    RowState,
)

logger = get_logger("services.entry_session")

T = TypeVar("T")

_HEADER_FIELDS = frozenset(
    {
        "document_no",
        "document_date",
        "party_id",
        "party_name",
        "payment_type",
        "cash_account_id",
        "reference_no",
        "narration",
    }
)

_TEXT_FIELDS = frozenset({LineField.IMEI, LineField.NAME})


def _new_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class FocusTarget:
    """Where focus goes after ``advance``; ``commit`` is set at the last field."""

    line_id: str
    field: FieldFocus
    commit: CommitOutcome | None = None


@dataclass(frozen=True)
class _Ticket:
    """Identifies the document and row state an async call was issued against."""

    line_id: str
    generation: int
    token: int


class EntrySession:
    """
    Working-document owner for one document kind.

    Collaborators are async; everything else runs synchronously against
    the latest in-memory document.
    """

    def __init__(
        self,
        profile: DocumentProfile,
        catalog: CatalogGateway,
        stock: StockGateway,
        batch_numbers: BatchNumberAllocator,
        documents: DocumentStore,
        document_numbers: DocumentNumberAllocator,
        draft_store: DraftStore,
        reference_source: ReferenceInvoiceSource | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._profile = profile
        self._catalog = catalog
        self._stock = stock
        self._batch_numbers = batch_numbers
        self._documents = documents
        self._document_numbers = document_numbers
        self._reference_source = reference_source
        self._clock = clock or SystemClock()
        self._new_id = id_factory or _new_id

        self._rows = RowEntryStateMachine(profile, self._new_id)
        self._drafts = DraftQueue(
            draft_store, profile.hold_storage_key, self._clock, self._new_id
        )
        self._cursor = DocumentCursor()
        self._products: dict[str, Product] = {}
        self._tokens: dict[str, int] = {}
        self._token_seq = itertools.count(1)
        self._generation = 0
        self._is_saving = False
        self.session_id = self._new_id()
        self._document = self._empty_document("")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def profile(self) -> DocumentProfile:
        return self._profile

    @property
    def document(self) -> Document:
        return self._document

    @property
    def totals(self) -> DocumentTotals:
        return aggregate_totals(
            self._document, self._profile.vat_rate, self._profile.adjustment_fields
        )

    @property
    def is_saving(self) -> bool:
        return self._is_saving

    @property
    def cursor(self) -> DocumentCursor:
        return self._cursor

    @property
    def row_state(self) -> RowState:
        return self._rows.state

    @property
    def active_line_id(self) -> str | None:
        return self._rows.active_line_id

    def cached_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    def _context(self, line_id: str | None = None):
        return LogContext.bind(
            session_id=self.session_id,
            document_kind=self._profile.kind.value,
            document_id=self._document.document_id,
            line_id=line_id,
        )

    def _empty_document(self, document_no: str) -> Document:
        return Document(
            kind=self._profile.kind,
            lines=(Line.blank(self._new_id()),),
            document_no=document_no,
            document_date=self._clock.today(),
            vat_type=self._profile.default_vat_type,
            tax_mode=self._profile.default_tax_mode,
            payment_type=self._profile.default_payment_type,
        )

    def _replace_document(self, document: Document) -> None:
        """Swap in a whole new working document; in-flight lookups go stale."""
        self._document = document
        self._generation += 1
        self._tokens.clear()
        self._rows.reset()

    def _line(self, line_id: str) -> Line:
        line = self._document.line(line_id)
        if line is None:
            raise LineNotFoundError(line_id)
        return line

    def _derive(self, line: Line) -> Line:
        doc = self._document
        return derive_line(line, doc.tax_mode, doc.vat_type, self._profile.vat_rate)

    def _put(self, line: Line) -> Line:
        self._document = self._document.with_line(line)
        return line

    # ------------------------------------------------------------------
    # Stale-response guard
    # ------------------------------------------------------------------

    def _issue(self, line_id: str) -> _Ticket:
        token = next(self._token_seq)
        self._tokens[line_id] = token
        return _Ticket(line_id=line_id, generation=self._generation, token=token)

    def _is_current(self, ticket: _Ticket) -> bool:
        return (
            ticket.generation == self._generation
            and self._tokens.get(ticket.line_id) == ticket.token
            and self._document.line(ticket.line_id) is not None
        )

    def _discard_stale(self, ticket: _Ticket, operation: str) -> None:
        with self._context(ticket.line_id):
            logger.info(
                "stale_response_discarded",
                extra={
                    "operation": operation,
                    "issued_generation": ticket.generation,
                    "current_generation": self._generation,
                },
            )

    async def _lookup(
        self, lookup: str, call: Callable[[], Awaitable[T]], fallback: T, **extra: Any
    ) -> T:
        """Await a non-critical collaborator call; log and fall back on failure."""
        try:
            return await call()
        except Exception:
            with self._context():
                logger.warning(
                    "lookup_failed",
                    extra={"lookup": lookup, **extra},
                    exc_info=True,
                )
            return fallback

    # ------------------------------------------------------------------
    # Header and adjustments
    # ------------------------------------------------------------------

    def set_header(self, **fields: Any) -> Document:
        """
        Update header fields (document number, date, party, payment, ...).

        Raises:
            ValueError: For a name that is not a header field.
        """
        unknown = set(fields) - _HEADER_FIELDS
        if unknown:
            raise ValueError(f"Not header fields: {', '.join(sorted(unknown))}")
        if "payment_type" in fields:
            fields["payment_type"] = PaymentType(fields["payment_type"])
        self._document = replace(self._document, **fields)
        return self._document

    def _rederive_all(self) -> None:
        doc = self._document
        self._document = replace(
            doc,
            lines=rederive_lines(
                doc.lines, doc.tax_mode, doc.vat_type, self._profile.vat_rate
            ),
        )

    def set_vat_type(self, vat_type: VatType | str) -> Document:
        self._document = replace(self._document, vat_type=VatType(vat_type))
        self._rederive_all()
        return self._document

    def set_tax_mode(self, tax_mode: TaxMode | str) -> Document:
        self._document = replace(self._document, tax_mode=TaxMode(tax_mode))
        self._rederive_all()
        return self._document

    def set_adjustment(self, name: str, value: Decimal | int | str | None) -> Document:
        """
        Set ``other_discount`` or one of the kind's additive adjustments.

        Setting ``other_discount`` directly leaves ``other_disc_percent``
        as it is.

        Raises:
            ValueError: For an adjustment this document kind does not use.
        """
        if name != "other_discount" and name not in self._profile.adjustment_fields:
            raise ValueError(f"{name} is not an adjustment of {self._profile.kind.value}")
        amount = parse_numeric_input(value) if isinstance(value, str) else to_decimal(value)
        self._document = replace(self._document, **{name: amount})
        return self._document

    def set_other_disc_percent(self, percent: Decimal | int | str | None) -> Document:
        """Set the percent and recompute ``other_discount`` from the line totals."""
        pct = parse_numeric_input(percent) if isinstance(percent, str) else to_decimal(percent)
        amount = other_discount_from_percent(self.totals.sub_total, pct)
        self._document = replace(
            self._document, other_disc_percent=pct, other_discount=amount
        )
        return self._document

    # ------------------------------------------------------------------
    # Line mutation
    # ------------------------------------------------------------------

    def update_field(
        self, line_id: str, field: LineField | str, value: Decimal | int | str | None
    ) -> Line:
        """Apply a numeric edit to a row; the row becomes the active one."""
        field = LineField(field)
        if field in _TEXT_FIELDS:
            return self.update_text(line_id, field, "" if value is None else str(value))
        self.enter_row(line_id)
        doc = self._document
        updated = apply_field_edit(
            self._line(line_id),
            field,
            value,
            doc.tax_mode,
            doc.vat_type,
            self._profile.vat_rate,
        )
        return self._put(updated)

    def update_text(self, line_id: str, field: LineField | str, text: str) -> Line:
        """
        Typed text in the serial or name cell.

        Raises:
            ValueError: For any other field.
        """
        field = LineField(field)
        if field not in _TEXT_FIELDS:
            raise ValueError(f"Not a text line field: {field.value}")
        self.enter_row(line_id)
        return self._put(replace(self._line(line_id), **{field.value: text}))

    async def select_product(
        self,
        line_id: str,
        record: CatalogRecord,
        imei: str | None = None,
        stock_batch: StockBatch | None = None,
    ) -> Line | None:
        """
        Fill a row from a catalog product and auto-commit it.

        Returns the filled line, or None when the row was deleted or
        re-selected while a lookup was outstanding.
        """
        self.enter_row(line_id)
        return await self._select(self._issue(line_id), record, imei, stock_batch)

    async def _select(
        self,
        ticket: _Ticket,
        record: CatalogRecord,
        imei: str | None,
        stock_batch: StockBatch | None,
    ) -> Line | None:
        product = product_from_record(record)
        self._products[product.id] = product
        line_id = ticket.line_id

        if self._profile.price_basis == PriceBasis.RETAIL and stock_batch is None:
            batches = await self.stock_batches(product.id)
            if not self._is_current(ticket):
                self._discard_stale(ticket, "select_product")
                return None
            if not product.batch_tracking:
                stock_batch = merge_stock_batches(batches)
            elif batches:
                stock_batch = next((b for b in batches if b.quantity > ZERO), batches[0])

        doc = self._document
        resolution = resolve_unit(
            product,
            imei=imei,
            multi_unit_enabled=self._profile.multi_unit_enabled,
        )
        base = replace(
            self._line(line_id),
            product_id=product.id,
            product_code=product.code,
            name=product.name,
            imei=imei or resolution.imei or product.imei,
            mrp=product.mrp if product.mrp is not None else product.retail_price,
            batch_tracking=product.batch_tracking,
            batch_number="",
            expiry_date="",
        )
        line = apply_unit_resolution(
            base, resolution, doc.tax_mode, doc.vat_type, self._profile.vat_rate
        )
        if self._profile.price_basis == PriceBasis.RETAIL:
            line = self._retail_seed(line, product, stock_batch)

        self._put(line)
        self._rows.mark_committed(line_id)
        with self._context(line_id):
            logger.info(
                "product_selected",
                extra={
                    "product_id": product.id,
                    "unit_id": line.unit_id,
                    "price": line.price,
                    "stock_batch": stock_batch.batch_number if stock_batch else None,
                },
            )

        if self._profile.price_basis == PriceBasis.PURCHASE:
            number = await self._lookup(
                "batch_number", self._batch_numbers.next_batch_number, "", product_id=product.id
            )
            if not self._is_current(ticket):
                self._discard_stale(ticket, "batch_number")
                return None
            line = self._put(replace(self._line(line_id), batch_number=number))
        return line

    def _retail_seed(
        self, line: Line, product: Product, stock_batch: StockBatch | None
    ) -> Line:
        """Sales-side pricing: the stock batch's retail, else the catalog's."""
        if stock_batch is not None:
            price = stock_batch.retail
        elif product.retail_price > ZERO:
            price = product.retail_price
        else:
            price = product.purchase_price
        units = line.available_units or (UnitOption(id="pcs", name="Pcs"),)
        seeded = replace(
            line,
            price=price,
            retail=price,
            profit_percent=ZERO,
            available_units=units,
            unit_id=line.unit_id or units[0].id,
            unit_name=line.unit_name or units[0].name,
            batch_number=stock_batch.batch_number if stock_batch else "",
            expiry_date=stock_batch.expiry_date if stock_batch else "",
        )
        return self._derive(seeded)

    def _product_for_line(self, line: Line) -> Product:
        cached = self._products.get(line.product_id)
        if cached is not None:
            return cached
        main = next((u for u in line.available_units if not u.is_multi_unit), None)
        return Product(
            id=line.product_id,
            name=line.name,
            code=line.product_code,
            imei=main.imei if main else line.imei,
            purchase_price=main.price if main and main.price is not None else line.price,
            retail_price=line.retail,
            wholesale_price=line.wholesale,
            batch_tracking=line.batch_tracking,
            main_unit_id=main.id if main else None,
            main_unit_name=main.name if main else "Main",
        )

    def change_unit(self, line_id: str, unit_id: str) -> Line:
        """
        Switch a row to another of its unit options.

        Quantity resets to 1 and both discounts to 0.

        Raises:
            UnitNotFoundError: If the row does not offer ``unit_id``.
        """
        self.enter_row(line_id)
        line = self._line(line_id)
        if line.unit_option(unit_id) is None:
            raise UnitNotFoundError(line_id, unit_id)
        try:
            resolution = resolve_unit(
                self._product_for_line(line),
                requested_unit_id=unit_id,
                units=line.available_units,
            )
        except LookupError as e:
            raise UnitNotFoundError(line_id, unit_id) from e
        doc = self._document
        updated = apply_unit_resolution(
            line, resolution, doc.tax_mode, doc.vat_type, self._profile.vat_rate
        )
        if resolution.imei:
            updated = replace(updated, imei=resolution.imei)
        with self._context(line_id):
            logger.info(
                "unit_changed",
                extra={"unit_id": unit_id, "multi_unit": resolution.is_multi_unit},
            )
        return self._put(updated)

    def edit_extras(
        self,
        line_id: str,
        batch_number: str | None = None,
        expiry_date: str | None = None,
        special_price1: Decimal | int | str | None = None,
        special_price2: Decimal | int | str | None = None,
    ) -> Line:
        """Batch metadata and special prices; None leaves a value unchanged."""
        line = self._line(line_id)
        changes: dict[str, Any] = {}
        if batch_number is not None:
            changes["batch_number"] = batch_number
        if expiry_date is not None:
            changes["expiry_date"] = expiry_date
        if special_price1 is not None:
            changes["special_price1"] = to_decimal(special_price1)
        if special_price2 is not None:
            changes["special_price2"] = to_decimal(special_price2)
        return self._put(replace(line, **changes))

    def add_line(self) -> str:
        line = Line.blank(self._new_id())
        self._document = replace(self._document, lines=self._document.lines + (line,))
        return line.id

    def remove_line(self, line_id: str) -> Document:
        """Delete a row; the last row is replaced by a placeholder."""
        self._line(line_id)
        self._rows.forget(line_id)
        self._tokens.pop(line_id, None)
        remaining = tuple(l for l in self._document.lines if l.id != line_id)
        if not remaining:
            remaining = (Line.blank(self._new_id()),)
        self._document = replace(self._document, lines=remaining)
        with self._context(line_id):
            logger.info("line_removed", extra={"remaining": len(remaining)})
        return self._document

    # ------------------------------------------------------------------
    # Row lifecycle
    # ------------------------------------------------------------------

    def enter_row(self, line_id: str) -> Document:
        self._document = self._rows.enter_row(self._document, line_id)
        return self._document

    def leave_row(self, overlay: bool = False) -> Document:
        self._document = self._rows.leave_row(self._document, overlay=overlay)
        return self._document

    def revert_if_uncommitted(self) -> Document:
        self._document = self._rows.revert_if_uncommitted(self._document)
        return self._document

    def commit_if_valid(self, line_id: str) -> CommitOutcome:
        self.enter_row(line_id)
        line = self._line(line_id)
        outcome = self._rows.commit_if_valid(
            self._document, line_id, self._products.get(line.product_id)
        )
        self._document = outcome.document
        return outcome

    def advance(self, line_id: str, field: LineField | str) -> FocusTarget:
        """
        Enter pressed in ``field`` of a row.

        Enter on an empty name cell of the last row leaves the grid for the
        adjustments block.  Enter on the last field of the sequence runs
        the commit checks.
        """
        field = LineField(field)
        self.enter_row(line_id)
        line = self._line(line_id)
        is_last = self._document.index_of(line_id) == len(self._document.lines) - 1
        if field == LineField.NAME and is_last and line.is_placeholder and not line.name.strip():
            return FocusTarget(line_id=line_id, field=FieldFocus.ADJUSTMENTS)

        nxt = self._rows.next_field(line, field)
        if nxt is not None:
            return FocusTarget(line_id=line_id, field=FieldFocus.of(nxt))
        outcome = self.commit_if_valid(line_id)
        return FocusTarget(
            line_id=outcome.focus_line_id, field=outcome.focus_field, commit=outcome
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def refresh_catalog(self) -> int:
        """Reload the local product cache; returns the number of products."""
        records = await self._lookup("list_products", self._catalog.list_products, [])
        for record in records:
            product = product_from_record(record)
            self._products[product.id] = product
        return len(records)

    async def stock_batches(self, product_id: str) -> Sequence[StockBatch]:
        return await self._lookup(
            "stock_batches",
            lambda: self._catalog.list_stock_batches(product_id),
            [],
            product_id=product_id,
        )

    def _local_code_match(self, code: str) -> Product | None:
        wanted = code.strip().lower()
        for product in self._products.values():
            if product.code.strip().lower() == wanted:
                return product
        return None

    async def scan(self, line_id: str, code: str) -> Line | None:
        """
        Resolve a scanned serial or barcode and select the product.

        Tries serial, then barcode, then an exact product-code match in the
        local cache.  Returns None on a miss or a stale result.
        """
        self._line(line_id)
        term = code.strip()
        if not term:
            return None
        self.enter_row(line_id)
        ticket = self._issue(line_id)

        record = await self._lookup(
            "find_by_serial", lambda: self._catalog.find_by_serial(term), None, term=term
        )
        serial = term if record is not None else None
        if record is None:
            record = await self._lookup(
                "find_by_barcode", lambda: self._catalog.find_by_barcode(term), None, term=term
            )
        if not self._is_current(ticket):
            self._discard_stale(ticket, "scan")
            return None
        if record is None:
            record = self._local_code_match(term)
        if record is None:
            with self._context(line_id):
                logger.info("scan_missed", extra={"term": term})
            return None

        line = await self._select(ticket, record, serial, None)
        if line is None:
            return None
        if self._profile.auto_add_row_after_scan and not any(
            not l.product_code for l in self._document.lines if l.id != line_id
        ):
            self.add_line()
        return line

    async def match_name(self, line_id: str, text: str) -> Line | None:
        """
        Select the product whose name matches ``text``.

        Exact (case-insensitive) match in the local cache first, then a
        catalog search taking an exact match or a sole result.  On a miss a
        filled row gets its product's name back.
        """
        line = self._line(line_id)
        wanted = text.strip().lower()
        if not wanted:
            return None
        self.enter_row(line_id)
        ticket = self._issue(line_id)

        record: CatalogRecord | None = next(
            (p for p in self._products.values() if p.name.strip().lower() == wanted),
            None,
        )
        if record is None:
            results = await self._lookup(
                "search", lambda: self._catalog.search(text.strip()), [], term=text
            )
            if not self._is_current(ticket):
                self._discard_stale(ticket, "match_name")
                return None
            candidates = [product_from_record(r) for r in results]
            record = next(
                (p for p in candidates if p.name.strip().lower() == wanted), None
            )
            if record is None and len(candidates) == 1:
                record = candidates[0]

        if record is not None:
            return await self._select(ticket, record, None, None)

        line = self._line(line_id)
        if not line.is_placeholder:
            product = self._products.get(line.product_id)
            name = product.name if product is not None else line.name
            self._put(replace(line, name=name))
        with self._context(line_id):
            logger.info("name_match_missed", extra={"term": text})
        return None

    async def product_info(self, line_id: str) -> ProductInfo | None:
        """Info panel figures for a filled row; None if the row changed meanwhile."""
        line = self._line(line_id)
        if line.is_placeholder:
            return None
        product = self._product_for_line(line)
        stock = await self._lookup(
            "stock",
            lambda: self._stock.get_stock(line.product_id),
            ZERO,
            product_id=line.product_id,
        )
        current = self._document.line(line_id)
        if current is None or current.product_id != line.product_id:
            return None
        return build_product_info(product, current, to_decimal(stock))

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def _validate_for_save(self, document: Document) -> tuple[Line, ...]:
        if self._profile.require_party and not document.party_id:
            raise PartyRequiredError(self._profile.kind.value)
        placeholders = [l for l in document.lines if not l.has_identity]
        if len(placeholders) > 1:
            raise MultiplePlaceholderRowsError(len(placeholders))
        valid = tuple(l for l in document.lines if l.has_identity)
        if not valid:
            raise NoValidLinesError()
        if (
            document.return_mode == ReturnMode.BY_REFERENCE
            and not document.source_document_id
        ):
            raise SourceDocumentRequiredError()
        return valid

    async def save(self, save_and_new: bool = False) -> SaveResult:
        """
        Validate, batch and persist the working document.

        Creates a new stored document or updates the loaded one.  With
        ``save_and_new`` (or a kind that resets after save) the session
        moves on to a fresh entry.

        Raises:
            SaveInProgressError: If a save is already outstanding.
            DocumentValidationError: If the document cannot be saved.
            DocumentStoreError: If the store rejects the save.
        """
        if self._is_saving:
            raise SaveInProgressError()
        document = self._document
        generation = self._generation
        valid = self._validate_for_save(document)

        self._is_saving = True
        try:
            batches = group_into_batches(valid)
            totals = self.totals
            payload = SavePayload(document=document, batches=batches, totals=totals)
            updating = document.is_saved
            try:
                if updating:
                    receipt = await self._documents.update(document.document_id, payload)
                else:
                    receipt = await self._documents.create(payload)
            except Exception:
                with self._context():
                    logger.warning(
                        "save_failed",
                        extra={"updating": updating, "batch_count": len(batches)},
                        exc_info=True,
                    )
                raise

            verb, action = ("updated", "updated") if updating else ("saved", "created")
            message = (
                f"{self._profile.title} {verb} successfully! "
                f"{receipt.batch_count} batch(es) {action}."
            )
            with LogContext.bind(
                session_id=self.session_id,
                document_kind=self._profile.kind.value,
                document_id=receipt.document_id,
            ):
                logger.info(
                    "document_saved",
                    extra={
                        "updating": updating,
                        "batch_count": receipt.batch_count,
                        "grand_total": totals.grand_total,
                    },
                )

            if generation == self._generation:
                self._document = replace(self._document, document_id=receipt.document_id)
            await self.refresh_document_list()
            if save_and_new or self._profile.reset_after_save:
                await self.new_entry()
            return SaveResult(
                document_id=receipt.document_id,
                batch_count=receipt.batch_count,
                message=message,
                batches=batches,
            )
        finally:
            self._is_saving = False

    # ------------------------------------------------------------------
    # Held drafts
    # ------------------------------------------------------------------

    def held_drafts(self) -> tuple[HeldDraft, ...]:
        return self._drafts.list()

    async def hold(self) -> HeldDraft:
        """Park the working document in the draft queue and start afresh."""
        with self._context():
            draft = self._drafts.hold(
                self._document,
                self.totals,
                self._profile.party_placeholder,
                self._profile.noun,
            )
        await self.new_entry()
        return draft

    def restore(self, draft_id: str) -> Document:
        """Replace the working document with a held draft, dropping the current one."""
        with self._context():
            draft = self._drafts.restore(draft_id)
        self._replace_document(draft.document)
        self._cursor.unset()
        return self._document

    def discard(self, draft_id: str) -> None:
        with self._context():
            self._drafts.discard(draft_id)

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    async def new_entry(self) -> Document:
        """Empty document with the next document number (kept on failure)."""
        current_no = self._document.document_no
        number = await self._lookup(
            "next_document_number",
            lambda: self._document_numbers.next_document_number(self._profile.kind),
            current_no,
        )
        self._replace_document(self._empty_document(number or current_no))
        self._cursor.unset()
        return self._document

    async def clear(self) -> Document:
        return await self.new_entry()

    async def refresh_document_list(self) -> tuple[DocumentSummary, ...]:
        summaries = await self._lookup(
            "list_summaries", self._documents.list_summaries, self._cursor.summaries
        )
        self._cursor.sync(summaries, self._document.document_id)
        return self._cursor.summaries

    async def _products_for(self, stored: StoredDocument) -> dict[str, Product]:
        found: dict[str, Product] = {}
        for product_id in dict.fromkeys(b.product_id for b in stored.batches):
            product = self._products.get(product_id)
            if product is None:
                record = await self._lookup(
                    "get_product",
                    lambda pid=product_id: self._catalog.get_by_id(pid),
                    None,
                    product_id=product_id,
                )
                if record is not None:
                    product = product_from_record(record)
                    self._products[product.id] = product
            if product is not None:
                found[product_id] = product
        return found

    async def _apply_stored(self, stored: StoredDocument, generation: int) -> Document:
        products = await self._products_for(stored)
        if generation != self._generation:
            with self._context():
                logger.info(
                    "stale_response_discarded",
                    extra={"operation": "load", "stored_id": stored.document_id},
                )
            return self._document
        document = document_from_stored(
            stored,
            self._profile.kind,
            products,
            self._new_id,
            self._profile.vat_rate,
            self._profile.multi_unit_enabled,
        )
        self._replace_document(document)
        self._cursor.point_at(document.document_id)
        with self._context():
            logger.info(
                "document_loaded",
                extra={"document_no": document.document_no, "line_count": len(document.lines)},
            )
        return document

    async def load(self, document_id: str) -> Document:
        """
        Replace the working document with a saved one.

        Raises:
            DocumentStoreError: If the store cannot return the document.
        """
        generation = self._generation
        stored = await self._documents.get_by_id(document_id)
        return await self._apply_stored(stored, generation)

    async def search(self, document_no: str) -> Document | None:
        """Load a saved document by number; None when there is none."""
        generation = self._generation
        stored = await self._documents.search_by_number(document_no.strip())
        if stored is None:
            with self._context():
                logger.info("document_search_missed", extra={"document_no": document_no})
            return None
        document = await self._apply_stored(stored, generation)
        await self.refresh_document_list()
        return document

    async def delete(self) -> bool:
        """
        Delete the loaded document from the store and start a new entry.

        Returns False when the working document was never saved.
        """
        document_id = self._document.document_id
        if document_id is None:
            return False
        await self._documents.delete(document_id)
        with self._context():
            logger.info("document_deleted")
        await self.new_entry()
        await self.refresh_document_list()
        return True

    async def _navigate(self, move: Callable[[], DocumentSummary | None]) -> Document | None:
        if not self._cursor.summaries:
            await self.refresh_document_list()
        previous = self._cursor.index
        summary = move()
        if summary is None:
            return None
        try:
            return await self.load(summary.document_id)
        except Exception:
            self._cursor.point_at(
                self._cursor.summaries[previous].document_id if previous >= 0 else None
            )
            raise

    async def first(self) -> Document | None:
        return await self._navigate(self._cursor.first)

    async def prev(self) -> Document | None:
        return await self._navigate(self._cursor.prev)

    async def next(self) -> Document | None:
        return await self._navigate(self._cursor.next)

    async def last(self) -> Document | None:
        return await self._navigate(self._cursor.last)

    async def adopt(self, source: Document) -> Document:
        """Start an unsaved document of this kind from ``source`` (e.g. a purchase order)."""
        number = await self._lookup(
            "next_document_number",
            lambda: self._document_numbers.next_document_number(self._profile.kind),
            self._document.document_no,
        )
        adopted = adopt_document(source, self._profile.kind, self._new_id, self._profile.vat_rate)
        self._replace_document(replace(adopted, document_no=number))
        self._cursor.unset()
        with self._context():
            logger.info(
                "document_adopted",
                extra={
                    "source_kind": source.kind.value,
                    "source_id": source.document_id,
                    "line_count": len(adopted.filled_lines),
                },
            )
        return self._document

    # ------------------------------------------------------------------
    # Sales return modes
    # ------------------------------------------------------------------

    def _require_return_mode(self) -> None:
        if not self._profile.supports_return_mode:
            raise ValueError(f"{self._profile.kind.value} has no return modes")

    def set_return_mode(self, mode: ReturnMode | str) -> Document:
        """Switch on-account / by-reference; leaving by-reference drops the source."""
        self._require_return_mode()
        mode = ReturnMode(mode)
        source = self._document.source_document_id if mode == ReturnMode.BY_REFERENCE else None
        self._document = replace(self._document, return_mode=mode, source_document_id=source)
        return self._document

    async def load_reference_invoice(self, invoice_no: str) -> Document | None:
        """
        Fill the lines from a sales invoice for a by-reference return.

        Returns None when the invoice is unknown or has no items.
        """
        self._require_return_mode()
        if self._reference_source is None:
            raise ValueError("No sales invoice source configured")
        generation = self._generation
        invoice = await self._reference_source.find_by_number(invoice_no.strip())
        if generation != self._generation:
            with self._context():
                logger.info(
                    "stale_response_discarded",
                    extra={"operation": "load_reference_invoice"},
                )
            return None
        if invoice is None or not invoice.items:
            with self._context():
                logger.info("reference_invoice_missed", extra={"invoice_no": invoice_no})
            return None

        lines = lines_from_reference(invoice, self._new_id, self._profile.vat_rate)
        self._replace_document(
            replace(
                self._document,
                lines=lines,
                party_id=invoice.party_id,
                party_name=invoice.party_name,
                vat_type=invoice.vat_type,
                tax_mode=invoice.tax_mode,
                return_mode=ReturnMode.BY_REFERENCE,
                source_document_id=invoice.invoice_id,
            )
        )
        with self._context():
            logger.info(
                "reference_invoice_loaded",
                extra={"invoice_id": invoice.invoice_id, "line_count": len(lines)},
            )
        return self._document
