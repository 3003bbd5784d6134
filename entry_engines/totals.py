"""
Document Totals Aggregator.

Responsibility:
    Sums line values and document adjustments into the summary figures
    shown on the entry screen and handed to the document store.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - grand_total = sum(line.total) - other_discount + additive adjustments.
    - Under Vat, a non-zero net adjustment contributes an implied VAT
      component, always extracted with the inclusive formula, to
      total_vat only; it is never added again into grand_total.
    - other_disc_percent drives other_discount one way only.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from entry_engines.derivation import DEFAULT_VAT_RATE, inclusive_vat_component
from entry_engines.tracer import traced_engine
from entry_kernel.domain.types import Document, DocumentTotals, VatType
from entry_kernel.domain.values import HUNDRED, ZERO, round2

DEFAULT_ADJUSTMENT_FIELDS: tuple[str, ...] = (
    "other_charges",
    "freight_charge",
    "round_off",
)


@traced_engine("totals", "1.0", fingerprint_fields=("document", "adjustment_fields"))
def aggregate_totals(
    document: Document,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
    adjustment_fields: Iterable[str] = DEFAULT_ADJUSTMENT_FIELDS,
) -> DocumentTotals:
    """
    Summary figures for a document.

    ``adjustment_fields`` names the additive document adjustments in play
    for the document kind; ``other_discount`` is always subtracted.
    """
    lines = document.filled_lines
    items_gross = sum((l.gross for l in lines), ZERO)
    items_discount = sum((l.disc_amount for l in lines), ZERO)
    items_vat = sum((l.vat_amount for l in lines), ZERO)
    sub_total = sum((l.total for l in lines), ZERO)
    total_items = sum((l.quantity for l in lines), ZERO)

    additions = sum((getattr(document, name) for name in adjustment_fields), ZERO)
    net_adjustments = additions - document.other_discount

    vat_from_adjustments = ZERO
    if document.vat_type == VatType.VAT and net_adjustments != ZERO:
        vat_from_adjustments = inclusive_vat_component(net_adjustments, vat_rate)

    return DocumentTotals(
        items_gross=items_gross,
        items_discount=items_discount,
        items_vat=items_vat,
        vat_from_adjustments=vat_from_adjustments,
        total_vat=items_vat + vat_from_adjustments,
        sub_total=sub_total,
        grand_total=sub_total + net_adjustments,
        total_items=total_items,
    )


def other_discount_from_percent(sub_total: Decimal, percent: Decimal) -> Decimal:
    return round2(sub_total * percent / HUNDRED)


def other_disc_percent_from_amount(sub_total: Decimal, amount: Decimal) -> Decimal:
    """Back-compute the percent when a saved document is loaded."""
    if sub_total <= ZERO or amount <= ZERO:
        return ZERO
    return round2(amount / sub_total * HUNDRED)
