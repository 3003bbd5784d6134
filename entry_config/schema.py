"""
Document profile schema.

A ``DocumentProfile`` is the parsed, frozen form of one YAML profile.  It
parameterises the single entry engine for one document kind: which fields
make up the row sequence, which checks gate a commit, whether multi-unit
entry is on, which adjustments feed the totals, and the kind's defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from entry_kernel.domain.types import (
    DocumentKind,
    LineField,
    PaymentType,
    TaxMode,
    VatType,
)


class PriceBasis(str, Enum):
    """Which catalog price seeds a freshly selected line."""

    PURCHASE = "purchase"
    RETAIL = "retail"


ADJUSTMENT_FIELDS = frozenset(
    {"other_charges", "freight_charge", "lend_add_less", "round_off"}
)


@dataclass(frozen=True)
class DocumentProfile:
    """Entry behaviour for one document kind."""

    kind: DocumentKind
    title: str
    noun: str
    field_sequence: tuple[LineField, ...]
    commit_checks: tuple[str, ...]
    hold_storage_key: str
    vat_rate: Decimal = Decimal("5")
    default_vat_type: VatType = VatType.VAT
    default_tax_mode: TaxMode = TaxMode.INCLUSIVE
    default_payment_type: PaymentType = PaymentType.CASH
    multi_unit_enabled: bool = True
    price_basis: PriceBasis = PriceBasis.PURCHASE
    adjustment_fields: tuple[str, ...] = ("other_charges", "freight_charge", "round_off")
    require_party: bool = True
    party_placeholder: str = "No Supplier"
    reset_after_save: bool = False
    supports_return_mode: bool = False
    auto_add_row_after_scan: bool = True
    checksum: str = ""

    @property
    def final_field(self) -> LineField:
        """The field whose completion is the commit action."""
        return self.field_sequence[-1]

    @property
    def first_field(self) -> LineField:
        return self.field_sequence[0]

    def next_field(self, current: LineField) -> LineField | None:
        """Field after ``current`` in the sequence, or None at the end."""
        try:
            idx = self.field_sequence.index(current)
        except ValueError:
            return self.first_field
        if idx + 1 >= len(self.field_sequence):
            return None
        return self.field_sequence[idx + 1]
