"""
Profile Loader (``entry_config.loader``).

Responsibility
--------------
Loads document profile YAML files and parses them into frozen
``DocumentProfile`` instances.  Runtime callers go through
``entry_config.get_profile()``; this module is the parsing tooling
behind it.

Invariants enforced
-------------------
* Required keys must be present; unknown enum values, unknown row checks
  and unknown adjustment fields are rejected.
* The field sequence is non-empty and has no duplicates.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structurally invalid profile  -> ``InvalidProfileError`` listing every
  problem found.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from entry_config.schema import ADJUSTMENT_FIELDS, DocumentProfile, PriceBasis
from entry_engines.validation import CHECK_FINAL, CHECKS
from entry_kernel.domain.types import (
    DocumentKind,
    LineField,
    PaymentType,
    TaxMode,
    VatType,
)
from entry_kernel.exceptions import InvalidProfileError

_REQUIRED_KEYS = (
    "kind",
    "title",
    "noun",
    "field_sequence",
    "commit_checks",
    "hold_storage_key",
)

# The final check compares the last field against zero
_NON_NUMERIC_FIELDS = frozenset({LineField.IMEI, LineField.NAME, LineField.UNIT})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _enum(enum_cls: type, value: Any, key: str, errors: list[str]):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        errors.append(f"{key}: {value!r} is not one of {allowed}")
        return None


def parse_profile(data: dict[str, Any], source: str = "<dict>") -> DocumentProfile:
    """
    Parse a ``DocumentProfile`` from a dict.

    Raises:
        InvalidProfileError: listing every structural problem found.
    """
    errors: list[str] = [f"missing key: {k}" for k in _REQUIRED_KEYS if k not in data]
    if errors:
        raise InvalidProfileError(source, errors)

    kind = _enum(DocumentKind, data["kind"], "kind", errors)

    sequence: list[LineField] = []
    for raw in data["field_sequence"] or ():
        field = _enum(LineField, raw, "field_sequence", errors)
        if field is not None:
            sequence.append(field)
    if not sequence:
        errors.append("field_sequence: must not be empty")
    if len(set(sequence)) != len(sequence):
        errors.append("field_sequence: fields must not repeat")

    checks = tuple(data["commit_checks"] or ())
    for check in checks:
        if check not in CHECKS:
            errors.append(f"commit_checks: unknown check {check!r}")
    if CHECK_FINAL in checks and sequence and sequence[-1] in _NON_NUMERIC_FIELDS:
        errors.append(
            f"commit_checks: {CHECK_FINAL!r} needs a numeric last field, "
            f"not {sequence[-1].value!r}"
        )

    adjustments = tuple(data.get("adjustment_fields", ("other_charges", "freight_charge", "round_off")))
    for name in adjustments:
        if name not in ADJUSTMENT_FIELDS:
            errors.append(f"adjustment_fields: unknown field {name!r}")

    try:
        vat_rate = Decimal(str(data.get("vat_rate", "5")))
    except InvalidOperation:
        errors.append(f"vat_rate: {data.get('vat_rate')!r} is not a number")
        vat_rate = Decimal("0")
    if vat_rate < 0:
        errors.append("vat_rate: must not be negative")

    vat_type = _enum(VatType, data.get("default_vat_type", "Vat"), "default_vat_type", errors)
    tax_mode = _enum(TaxMode, data.get("default_tax_mode", "inclusive"), "default_tax_mode", errors)
    payment = _enum(
        PaymentType, data.get("default_payment_type", "Cash"), "default_payment_type", errors
    )
    basis = _enum(PriceBasis, data.get("price_basis", "purchase"), "price_basis", errors)

    if errors:
        raise InvalidProfileError(source, errors)

    return DocumentProfile(
        kind=kind,
        title=data["title"],
        noun=data["noun"],
        field_sequence=tuple(sequence),
        commit_checks=checks,
        hold_storage_key=data["hold_storage_key"],
        vat_rate=vat_rate,
        default_vat_type=vat_type,
        default_tax_mode=tax_mode,
        default_payment_type=payment,
        multi_unit_enabled=bool(data.get("multi_unit_enabled", True)),
        price_basis=basis,
        adjustment_fields=adjustments,
        require_party=bool(data.get("require_party", True)),
        party_placeholder=data.get("party_placeholder", "No Supplier"),
        reset_after_save=bool(data.get("reset_after_save", False)),
        supports_return_mode=bool(data.get("supports_return_mode", False)),
        auto_add_row_after_scan=bool(data.get("auto_add_row_after_scan", True)),
        checksum=compute_checksum(data),
    )


def load_profile_file(path: Path) -> DocumentProfile:
    """Load and parse one profile YAML file."""
    return parse_profile(load_yaml_file(path), source=str(path))
