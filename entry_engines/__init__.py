"""
Module: entry_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: line
    derivation, unit resolution, row validation, batch grouping and
    document totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import entry_kernel (domain, exceptions, logging).
    MUST NOT import entry_services or entry_config.

Invariants enforced:
    - Purity: engines never read the clock or call collaborators.
    - Decimal-only arithmetic with per-step half-up rounding.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` and emit
    ENTRY_ENGINE_TRACE records carrying an input fingerprint.
"""

from entry_engines.batching import (
    MERGED_BATCH_NUMBER,
    batch_key,
    group_into_batches,
    merge_stock_batches,
)
from entry_engines.derivation import (
    DEFAULT_VAT_RATE,
    apply_field_edit,
    compute_vat_and_total,
    derive_line,
    inclusive_vat_component,
    profit_percent_for,
    rederive_lines,
)
from entry_engines.totals import (
    aggregate_totals,
    other_disc_percent_from_amount,
    other_discount_from_percent,
)
from entry_engines.units import (
    UnitResolution,
    apply_unit_resolution,
    build_product_info,
    build_unit_options,
    product_from_record,
    resolve_unit,
)
from entry_engines.validation import CHECKS, validate_row

__all__ = [
    # Derivation
    "DEFAULT_VAT_RATE",
    "apply_field_edit",
    "compute_vat_and_total",
    "derive_line",
    "inclusive_vat_component",
    "profit_percent_for",
    "rederive_lines",
    # Units
    "UnitResolution",
    "apply_unit_resolution",
    "build_product_info",
    "build_unit_options",
    "product_from_record",
    "resolve_unit",
    # Validation
    "CHECKS",
    "validate_row",
    # Batching
    "MERGED_BATCH_NUMBER",
    "batch_key",
    "group_into_batches",
    "merge_stock_batches",
    # Totals
    "aggregate_totals",
    "other_disc_percent_from_amount",
    "other_discount_from_percent",
]
