"""
Numeric Derivation Engine -- per-line amounts and bidirectional pricing.

Responsibility:
    Computes gross, discount, net, VAT and total for one line under a
    document's VAT type and tax mode, and applies single-field edits with
    the bidirectional rules between price, profit percent and
    retail/wholesale.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - gross = round2(quantity x price).
    - net = round2(gross - disc_amount).
    - NonVat: vat_amount = 0, total = net.
    - Vat + inclusive: vat_amount = round2(net x rate / (100 + rate)), total = net.
    - Vat + exclusive: vat_amount = round2(net x rate / 100), total = round2(net + vat).
    - ``derive_line`` is idempotent.
    - Editing price recomputes profit percent from the existing retail,
      never retail from profit.

Failure modes:
    - ValueError from ``apply_field_edit`` for text fields (imei, name,
      unit); those are handled by the unit resolver and entry session.
    - A discount larger than gross yields a negative net; rejecting such
      input is the caller's job.

Usage:
    from entry_engines.derivation import apply_field_edit, derive_line

    line = apply_field_edit(
        line, LineField.PROFIT_PERCENT, "20",
        tax_mode=TaxMode.INCLUSIVE, vat_type=VatType.VAT,
    )
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Iterable

from entry_engines.tracer import traced_engine
from entry_kernel.domain.types import (
    NUMERIC_FIELDS,
    Line,
    LineField,
    TaxMode,
    VatType,
)
from entry_kernel.domain.values import (
    HUNDRED,
    ONE,
    ZERO,
    parse_numeric_input,
    percent_of,
    round2,
    to_decimal,
)
from entry_kernel.logging_config import get_logger

logger = get_logger("engines.derivation")

DEFAULT_VAT_RATE = Decimal("5")


def compute_vat_and_total(
    net: Decimal,
    tax_mode: TaxMode,
    vat_type: VatType,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
) -> tuple[Decimal, Decimal]:
    """Return ``(vat_amount, total)`` for a rounded net amount."""
    if vat_type == VatType.NON_VAT:
        return ZERO, round2(net)
    if tax_mode == TaxMode.INCLUSIVE:
        return round2(net * vat_rate / (HUNDRED + vat_rate)), round2(net)
    vat = round2(net * vat_rate / HUNDRED)
    return vat, round2(net + vat)


def inclusive_vat_component(
    amount: Decimal, vat_rate: Decimal = DEFAULT_VAT_RATE
) -> Decimal:
    """VAT contained in a tax-inclusive amount."""
    return round2(amount * vat_rate / (HUNDRED + vat_rate))


def profit_percent_for(price: Decimal, retail: Decimal) -> Decimal:
    """Markup of ``retail`` over ``price``; zero when price is zero."""
    if price <= ZERO:
        return ZERO
    return percent_of(retail - price, price)


def price_with_profit(price: Decimal, profit_percent: Decimal) -> Decimal:
    return round2(price * (ONE + profit_percent / HUNDRED))


@traced_engine("derivation", "1.0", fingerprint_fields=("line", "tax_mode", "vat_type"))
def derive_line(
    line: Line,
    tax_mode: TaxMode,
    vat_type: VatType,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
) -> Line:
    """
    Recompute gross, VAT and total from quantity, price and discount amount.

    Discount percent, profit and the price fields are left as they are.
    """
    gross = round2(line.quantity * line.price)
    net = round2(gross - line.disc_amount)
    vat, total = compute_vat_and_total(net, tax_mode, vat_type, vat_rate)
    return replace(line, gross=gross, vat_amount=vat, total=total)


@traced_engine("derivation", "1.0", fingerprint_fields=("line", "field", "value"))
def apply_field_edit(
    line: Line,
    field: LineField,
    value: Decimal | int | str | None,
    tax_mode: TaxMode,
    vat_type: VatType,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
) -> Line:
    """
    Apply one numeric field edit and re-derive the line.

    Text input is parsed leniently: a half-typed value such as ``"."``
    or ``"-"`` counts as zero.

    Raises:
        ValueError: If ``field`` is not a numeric field.
    """
    if field not in NUMERIC_FIELDS:
        raise ValueError(f"Not a numeric line field: {field}")

    amount = parse_numeric_input(value) if isinstance(value, str) else to_decimal(value)
    updated = line

    if field == LineField.QUANTITY:
        updated = replace(line, quantity=amount)
    elif field == LineField.PRICE:
        updated = replace(line, price=amount)
        if amount > ZERO and line.retail > ZERO:
            updated = replace(updated, profit_percent=profit_percent_for(amount, line.retail))
    elif field == LineField.DISC_PERCENT:
        gross = round2(line.quantity * line.price)
        updated = replace(
            line,
            disc_percent=amount,
            disc_amount=round2(gross * amount / HUNDRED),
        )
    elif field == LineField.DISC_AMOUNT:
        gross = round2(line.quantity * line.price)
        updated = replace(line, disc_amount=amount, disc_percent=percent_of(amount, gross))
    elif field == LineField.PROFIT_PERCENT:
        updated = replace(line, profit_percent=amount)
        if line.price > ZERO:
            marked_up = price_with_profit(line.price, amount)
            updated = replace(updated, retail=marked_up, wholesale=marked_up)
    elif field == LineField.RETAIL:
        updated = replace(
            line, retail=amount, profit_percent=profit_percent_for(line.price, amount)
        )
    elif field == LineField.WHOLESALE:
        updated = replace(line, wholesale=amount)

    return derive_line(updated, tax_mode, vat_type, vat_rate)


def rederive_lines(
    lines: Iterable[Line],
    tax_mode: TaxMode,
    vat_type: VatType,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
) -> tuple[Line, ...]:
    """Re-derive every filled line, e.g. after a VAT type or tax mode change."""
    result = tuple(
        line if line.is_placeholder else derive_line(line, tax_mode, vat_type, vat_rate)
        for line in lines
    )
    logger.debug(
        "lines_rederived",
        extra={
            "line_count": len(result),
            "tax_mode": tax_mode.value,
            "vat_type": vat_type.value,
        },
    )
    return result
