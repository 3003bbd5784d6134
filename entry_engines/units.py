"""
Unit & Multi-Unit Resolver.

Responsibility:
    Normalises catalog product records into ``Product`` / ``UnitOption``
    values, picks the unit a line should use (explicit choice, scanned
    serial, or first available), and re-seeds a line's pricing for that
    unit.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The catalog is queried
    by the entry session; this module only sees the records it returns.

Invariants enforced:
    - Unit options are ordered: main unit first, then multi-units.
    - Multi-units are offered only when the product disables batch
      tracking and the document kind enables multi-unit entry.
    - A multi-unit's rate is priced as a bundle:
      ``round2(main purchase price x conversion)``.
    - Applying a resolution resets quantity to 1 and both discounts to 0,
      then re-derives the line.

Failure modes:
    - LookupError from ``resolve_unit`` when an explicit unit id is not
      among the options.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from entry_engines.derivation import (
    DEFAULT_VAT_RATE,
    derive_line,
    profit_percent_for,
)
from entry_engines.tracer import traced_engine
from entry_kernel.domain.types import (
    Line,
    MultiUnit,
    Product,
    ProductInfo,
    TaxMode,
    UnitOption,
    VatType,
)
from entry_kernel.domain.values import ONE, ZERO, round2, to_decimal


@dataclass(frozen=True)
class UnitResolution:
    """Pricing seed for a line after a unit has been chosen."""

    unit: UnitOption | None
    available_units: tuple[UnitOption, ...]
    price: Decimal
    retail: Decimal
    wholesale: Decimal
    special_price1: Decimal
    special_price2: Decimal
    profit_percent: Decimal
    imei: str = ""

    @property
    def is_multi_unit(self) -> bool:
        return bool(self.unit and self.unit.is_multi_unit and self.unit.conversion)


# ---------------------------------------------------------------------------
# Catalog record normalisation
# ---------------------------------------------------------------------------


def _unit_ref(value: Any, default_name: str) -> tuple[str, str]:
    """A unit reference is either a bare id or an embedded unit record."""
    if value is None:
        return "", default_name
    if isinstance(value, Mapping):
        unit_id = str(value.get("_id") or value.get("id") or "")
        name = value.get("shortCode") or value.get("name") or default_name
        return unit_id, str(name)
    return str(value), default_name


def _opt_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value)


def _multi_unit_from_record(record: Mapping[str, Any]) -> MultiUnit:
    unit_id, unit_name = _unit_ref(record.get("unitId"), "Unit")
    return MultiUnit(
        multi_unit_id=str(record.get("multiUnitId") or record.get("_id") or ""),
        unit_id=unit_id,
        unit_name=unit_name,
        imei=str(record.get("imei") or ""),
        conversion=_opt_decimal(record.get("conversion")),
        price=_opt_decimal(record.get("price")),
        total_price=_opt_decimal(record.get("totalPrice")),
        retail=_opt_decimal(record.get("retail")),
        wholesale=_opt_decimal(record.get("wholesale")),
        special_price1=_opt_decimal(record.get("specialPrice1")),
        special_price2=_opt_decimal(record.get("specialPrice2")),
    )


def product_from_record(record: Product | Mapping[str, Any]) -> Product:
    """
    Normalise a catalog record into a ``Product``.

    Accepts an already-built ``Product`` unchanged.  Catalog records use
    the catalog's field names (``_id``, ``purchasePrice``,
    ``allowBatches``, ``unitOfMeasureId``, ``multiUnits``...); unit
    references may be ids or embedded records.
    """
    if isinstance(record, Product):
        return record
    main_id, main_name = _unit_ref(
        record.get("unitOfMeasureId") or record.get("unitId"), "Main"
    )
    retail = to_decimal(record.get("retailPrice"))
    return Product(
        id=str(record.get("_id") or record.get("id") or ""),
        name=str(record.get("name") or ""),
        code=str(record.get("code") or ""),
        imei=str(record.get("imei") or ""),
        purchase_price=to_decimal(record.get("purchasePrice")),
        retail_price=retail,
        wholesale_price=to_decimal(record.get("wholesalePrice")),
        mrp=_opt_decimal(record.get("mrp")),
        batch_tracking=record.get("allowBatches") is not False,
        main_unit_id=main_id or None,
        main_unit_name=main_name,
        multi_units=tuple(
            _multi_unit_from_record(mu) for mu in record.get("multiUnits") or ()
        ),
        last_vendor=str(
            record.get("lastVendor") or record.get("lastSupplier") or "N/A"
        ),
    )


# ---------------------------------------------------------------------------
# Unit options and resolution
# ---------------------------------------------------------------------------


def _per_piece_price(mu: MultiUnit) -> Decimal:
    conversion = mu.conversion or ONE
    if mu.wholesale:
        return mu.wholesale / conversion
    if mu.total_price:
        return mu.total_price / conversion
    return mu.price if mu.price is not None else ZERO


def build_unit_options(
    product: Product, multi_unit_enabled: bool = True
) -> tuple[UnitOption, ...]:
    """Main unit first, then multi-units when the product allows them."""
    options: list[UnitOption] = []
    if product.main_unit_id:
        options.append(
            UnitOption(
                id=product.main_unit_id,
                name=product.main_unit_name,
                is_multi_unit=False,
                imei=product.imei,
                price=product.purchase_price,
            )
        )
    if multi_unit_enabled and not product.batch_tracking:
        for mu in product.multi_units:
            if not mu.unit_id:
                continue
            options.append(
                UnitOption(
                    id=mu.unit_id,
                    name=mu.unit_name,
                    is_multi_unit=True,
                    multi_unit_id=mu.multi_unit_id,
                    imei=mu.imei,
                    price=_per_piece_price(mu),
                    conversion=mu.conversion,
                    retail=mu.retail,
                    wholesale=mu.wholesale,
                    special_price1=mu.special_price1,
                    special_price2=mu.special_price2,
                )
            )
    return tuple(options)


def _match_serial(
    product: Product, units: tuple[UnitOption, ...], serial: str
) -> UnitOption | None:
    wanted = serial.strip()
    if not wanted:
        return None
    if product.imei.strip() == wanted:
        for unit in units:
            if not unit.is_multi_unit:
                return unit
    for unit in units:
        if unit.is_multi_unit and unit.imei.strip() == wanted:
            return unit
    return None


@traced_engine("units", "1.0", fingerprint_fields=("product", "requested_unit_id", "imei"))
def resolve_unit(
    product: Product,
    requested_unit_id: str | None = None,
    imei: str | None = None,
    multi_unit_enabled: bool = True,
    units: tuple[UnitOption, ...] | None = None,
) -> UnitResolution:
    """
    Choose a unit and compute the pricing seed for it.

    An explicit ``requested_unit_id`` wins.  Otherwise a scanned serial
    picks the main unit on an exact match with the product's serial, then
    the multi-unit carrying it; failing both, the first option is used.

    Raises:
        LookupError: If ``requested_unit_id`` is not among the options.
    """
    options = units if units is not None else build_unit_options(product, multi_unit_enabled)

    selected: UnitOption | None = None
    if requested_unit_id:
        selected = next((u for u in options if u.id == requested_unit_id), None)
        if selected is None:
            raise LookupError(f"Unit {requested_unit_id} not offered for {product.id}")
    elif imei:
        selected = _match_serial(product, options, imei)
    if selected is None and options:
        selected = options[0]

    is_multi = bool(selected and selected.is_multi_unit and selected.conversion)
    if is_multi:
        price = round2(product.purchase_price * selected.conversion)
    elif selected is not None and selected.price is not None:
        price = round2(selected.price)
    else:
        price = round2(product.purchase_price)

    retail = selected.retail if is_multi and selected.retail else product.retail_price
    wholesale = (
        selected.wholesale if is_multi and selected.wholesale else product.wholesale_price
    )
    special1 = selected.special_price1 if is_multi and selected.special_price1 else ZERO
    special2 = selected.special_price2 if is_multi and selected.special_price2 else ZERO
    profit = profit_percent_for(price, retail) if retail > ZERO else ZERO

    return UnitResolution(
        unit=selected,
        available_units=options,
        price=price,
        retail=retail,
        wholesale=wholesale,
        special_price1=special1,
        special_price2=special2,
        profit_percent=profit,
        imei=selected.imei if selected is not None else "",
    )


def apply_unit_resolution(
    line: Line,
    resolution: UnitResolution,
    tax_mode: TaxMode,
    vat_type: VatType,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
) -> Line:
    """Re-seed a line for a unit: quantity 1, no discount, fresh pricing."""
    unit = resolution.unit
    seeded = replace(
        line,
        unit_id=unit.id if unit else "",
        unit_name=unit.name if unit else "",
        multi_unit_id=unit.multi_unit_id if unit and unit.is_multi_unit else None,
        available_units=resolution.available_units,
        price=resolution.price,
        quantity=ONE,
        disc_percent=ZERO,
        disc_amount=ZERO,
        retail=resolution.retail,
        wholesale=resolution.wholesale,
        special_price1=resolution.special_price1,
        special_price2=resolution.special_price2,
        profit_percent=resolution.profit_percent,
    )
    return derive_line(seeded, tax_mode, vat_type, vat_rate)


def build_product_info(
    product: Product,
    line: Line | None,
    stock: Decimal,
) -> ProductInfo:
    """
    Figures for the product-info panel.

    For a multi-unit line the stock and purchase rate are per package.
    """
    unit = line.unit_option(line.unit_id) if line is not None else None
    if unit is not None and unit.is_multi_unit and unit.conversion:
        return ProductInfo(
            stock=round2(stock / unit.conversion),
            last_vendor=product.last_vendor,
            purchase_rate=line.price,
            retail_price=unit.retail or product.retail_price,
            wholesale_price=unit.wholesale or product.wholesale_price,
            pieces_per_unit=unit.conversion,
        )
    return ProductInfo(
        stock=stock,
        last_vendor=product.last_vendor,
        purchase_rate=product.purchase_price,
        retail_price=product.retail_price,
        wholesale_price=product.wholesale_price,
    )
