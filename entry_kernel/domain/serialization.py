"""
JSON-safe (de)serialization of working documents and held drafts.

Decimals travel as strings and dates as ISO text so that a held draft
restores to a ``Document`` equal, field for field, to the one held.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from entry_kernel.domain.types import (
    Document,
    DocumentKind,
    HeldDraft,
    Line,
    PaymentType,
    ReturnMode,
    TaxMode,
    UnitOption,
    VatType,
)

_LINE_DECIMALS = frozenset(
    f.name for f in fields(Line) if f.type in ("Decimal", Decimal)
)
_UNIT_DECIMALS = frozenset(
    f.name for f in fields(UnitOption) if f.type in ("Decimal | None", Decimal)
)
_DOCUMENT_DECIMALS = frozenset(
    f.name for f in fields(Document) if f.type in ("Decimal", Decimal)
)


def _dec(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _undec(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def unit_to_dict(unit: UnitOption) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for f in fields(UnitOption):
        value = getattr(unit, f.name)
        data[f.name] = _dec(value) if f.name in _UNIT_DECIMALS else value
    return data


def unit_from_dict(data: dict[str, Any]) -> UnitOption:
    kwargs = {
        k: (_undec(v) if k in _UNIT_DECIMALS else v)
        for k, v in data.items()
    }
    return UnitOption(**kwargs)


def line_to_dict(line: Line) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for f in fields(Line):
        value = getattr(line, f.name)
        if f.name == "available_units":
            data[f.name] = [unit_to_dict(u) for u in value]
        elif f.name in _LINE_DECIMALS:
            data[f.name] = str(value)
        else:
            data[f.name] = value
    return data


def line_from_dict(data: dict[str, Any]) -> Line:
    kwargs: dict[str, Any] = {}
    for k, v in data.items():
        if k == "available_units":
            kwargs[k] = tuple(unit_from_dict(u) for u in v)
        elif k in _LINE_DECIMALS:
            kwargs[k] = Decimal(str(v))
        else:
            kwargs[k] = v
    return Line(**kwargs)


def document_to_dict(document: Document) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for f in fields(Document):
        value = getattr(document, f.name)
        if f.name == "lines":
            data[f.name] = [line_to_dict(line) for line in value]
        elif f.name in _DOCUMENT_DECIMALS:
            data[f.name] = str(value)
        elif f.name == "document_date":
            data[f.name] = value.isoformat() if value else None
        elif isinstance(value, (VatType, TaxMode, PaymentType, DocumentKind, ReturnMode)):
            data[f.name] = value.value
        else:
            data[f.name] = value
    return data


def document_from_dict(data: dict[str, Any]) -> Document:
    """
    Rebuild a Document from ``document_to_dict`` output.

    Raises:
        KeyError: if ``kind`` or ``lines`` is missing.
        ValueError: on an unknown enum value or malformed date.
    """
    kwargs: dict[str, Any] = dict(data)
    kwargs["kind"] = DocumentKind(data["kind"])
    kwargs["lines"] = tuple(line_from_dict(l) for l in data["lines"])
    for name in _DOCUMENT_DECIMALS:
        if name in data:
            kwargs[name] = Decimal(str(data[name]))
    raw_date = data.get("document_date")
    kwargs["document_date"] = date.fromisoformat(raw_date) if raw_date else None
    if "vat_type" in data:
        kwargs["vat_type"] = VatType(data["vat_type"])
    if "tax_mode" in data:
        kwargs["tax_mode"] = TaxMode(data["tax_mode"])
    if "payment_type" in data:
        kwargs["payment_type"] = PaymentType(data["payment_type"])
    if "return_mode" in data:
        kwargs["return_mode"] = ReturnMode(data["return_mode"])
    return Document(**kwargs)


def held_draft_to_dict(draft: HeldDraft) -> dict[str, Any]:
    return {
        "id": draft.id,
        "held_at": draft.held_at.isoformat(),
        "party_name": draft.party_name,
        "item_count": draft.item_count,
        "total": str(draft.total),
        "document": document_to_dict(draft.document),
    }


def held_draft_from_dict(data: dict[str, Any]) -> HeldDraft:
    return HeldDraft(
        id=data["id"],
        held_at=datetime.fromisoformat(data["held_at"]),
        party_name=data["party_name"],
        item_count=int(data["item_count"]),
        total=Decimal(str(data["total"])),
        document=document_from_dict(data["document"]),
    )
