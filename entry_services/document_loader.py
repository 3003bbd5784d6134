"""
Document loader -- stored documents and reference invoices into lines.

Responsibility:
    Rebuilds a working ``Document`` from what the document store returns,
    copies a document into another kind (posting a purchase order into a
    purchase entry), and turns a referenced sales invoice into return
    lines.

Architecture position:
    Services -- pure functions over collaborator results.  The entry
    session fetches the stored document and the catalog products; this
    module only assembles lines.

Invariants enforced:
    - A rebuilt line has gross = round2(qty x rate), its discount percent
      back-computed from the stored amount, its profit percent from the
      stored retail, and VAT/total derived under the document's tax mode.
    - Unit options come from the catalog product; the stored multi-unit is
      selected when it is still offered, else the first option.
    - ``other_disc_percent`` is back-computed from the stored other
      discount over the sum of line nets.
    - A document with no stored lines gets a single placeholder row.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from decimal import Decimal

from entry_engines.derivation import DEFAULT_VAT_RATE, derive_line, profit_percent_for
from entry_engines.totals import other_disc_percent_from_amount
from entry_engines.units import build_unit_options
from entry_kernel.domain.types import (
    Document,
    DocumentKind,
    Line,
    Product,
    ReferenceInvoice,
    ReturnMode,
    StoredBatch,
    StoredDocument,
    TaxMode,
    UnitOption,
    VatType,
)
from entry_kernel.domain.values import ZERO, percent_of, round2
from entry_kernel.logging_config import get_logger

logger = get_logger("services.document_loader")

IdFactory = Callable[[], str]


def _select_unit(
    options: tuple[UnitOption, ...], multi_unit_id: str | None
) -> UnitOption | None:
    if multi_unit_id:
        for unit in options:
            if unit.multi_unit_id == multi_unit_id:
                return unit
    return options[0] if options else None


def line_from_stored_batch(
    batch: StoredBatch,
    product: Product | None,
    line_id: str,
    tax_mode: TaxMode,
    vat_type: VatType,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
    multi_unit_enabled: bool = True,
) -> Line:
    """Rebuild one working line from a persisted batch."""
    gross = round2(batch.quantity * batch.purchase_price)
    options: tuple[UnitOption, ...] = ()
    unit: UnitOption | None = None
    if product is not None:
        options = build_unit_options(product, multi_unit_enabled)
        unit = _select_unit(options, batch.multi_unit_id)
    imei = unit.imei if unit is not None and unit.imei else ""
    if not imei and product is not None:
        imei = product.imei

    line = Line(
        id=line_id,
        product_id=batch.product_id,
        product_code=batch.product_code,
        name=batch.product_name,
        imei=imei,
        unit_id=unit.id if unit is not None else "",
        unit_name=unit.name if unit is not None else "",
        multi_unit_id=batch.multi_unit_id
        or (unit.multi_unit_id if unit is not None and unit.is_multi_unit else None),
        available_units=options,
        quantity=batch.quantity,
        price=batch.purchase_price,
        gross=gross,
        disc_percent=percent_of(batch.disc_amount, gross) if gross > ZERO else ZERO,
        disc_amount=batch.disc_amount,
        profit_percent=(
            profit_percent_for(batch.purchase_price, batch.retail)
            if batch.retail > ZERO
            else ZERO
        ),
        mrp=batch.retail,
        retail=batch.retail,
        wholesale=batch.wholesale,
        special_price1=batch.special_price1,
        special_price2=batch.special_price2,
        batch_number=batch.batch_number,
        expiry_date=batch.expiry_date,
        batch_tracking=product.batch_tracking if product is not None else True,
    )
    return derive_line(line, tax_mode, vat_type, vat_rate)


def document_from_stored(
    stored: StoredDocument,
    kind: DocumentKind,
    products: Mapping[str, Product],
    id_factory: IdFactory,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
    multi_unit_enabled: bool = True,
) -> Document:
    """
    Working document for a saved one.

    ``products`` maps product id to catalog product; products missing
    from it load without unit options.
    """
    lines = tuple(
        line_from_stored_batch(
            batch,
            products.get(batch.product_id),
            id_factory(),
            stored.tax_mode,
            stored.vat_type,
            vat_rate,
            multi_unit_enabled,
        )
        for batch in stored.batches
    )
    net_sum = sum((l.net for l in lines), ZERO)
    document = Document(
        kind=kind,
        lines=lines or (Line.blank(id_factory()),),
        document_no=stored.document_no,
        document_date=stored.document_date,
        vat_type=stored.vat_type,
        tax_mode=stored.tax_mode,
        party_id=stored.party_id,
        party_name=stored.party_name,
        payment_type=stored.payment_type,
        cash_account_id=stored.cash_account_id,
        reference_no=stored.reference_no,
        other_disc_percent=other_disc_percent_from_amount(net_sum, stored.other_discount),
        other_discount=stored.other_discount,
        other_charges=stored.other_charges,
        freight_charge=stored.freight_charge,
        lend_add_less=stored.lend_add_less,
        round_off=stored.round_off,
        narration=stored.narration,
        document_id=stored.document_id,
        return_mode=stored.return_mode,
        source_document_id=stored.source_document_id,
    )
    missing = sorted({b.product_id for b in stored.batches} - set(products))
    logger.debug(
        "stored_document_rebuilt",
        extra={
            "document_id": stored.document_id,
            "line_count": len(lines),
            "missing_products": missing,
        },
    )
    return document


def adopt(
    document: Document,
    kind: DocumentKind,
    id_factory: IdFactory,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
) -> Document:
    """
    Copy a document into an unsaved document of ``kind``.

    Header, filled lines and adjustments carry over; the copy has no
    stored id and no document number of its own.
    """
    lines = tuple(
        derive_line(replace(line, id=id_factory()), document.tax_mode, document.vat_type, vat_rate)
        for line in document.filled_lines
    )
    return replace(
        document,
        kind=kind,
        lines=lines or (Line.blank(id_factory()),),
        document_no="",
        document_id=None,
        return_mode=ReturnMode.ON_ACCOUNT,
        source_document_id=None,
    )


def lines_from_reference(
    invoice: ReferenceInvoice,
    id_factory: IdFactory,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
) -> tuple[Line, ...]:
    """Return lines for every item of a referenced sales invoice."""
    lines = []
    for item in invoice.items:
        unit = UnitOption(id=item.unit_id or "pcs", name=item.unit_name or "Pcs")
        gross = round2(item.quantity * item.unit_price)
        line = Line(
            id=id_factory(),
            product_id=item.product_id,
            product_code=item.product_code,
            name=item.name,
            imei=item.imei,
            unit_id=unit.id,
            unit_name=unit.name,
            available_units=(unit,),
            quantity=item.quantity,
            price=item.unit_price,
            gross=gross,
            disc_percent=percent_of(item.discount, gross),
            disc_amount=item.discount,
            batch_number=item.batch_number,
        )
        lines.append(derive_line(line, invoice.tax_mode, invoice.vat_type, vat_rate))
    return tuple(lines)
