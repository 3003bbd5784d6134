"""
Row commit validation.

Responsibility:
    Runs the ordered mandatory-field checks that gate a row commit and
    reports the first failure together with the field that should receive
    focus.

Architecture position:
    Engines -- pure, zero I/O.  Called by the row entry state machine.

Invariants enforced:
    - Checks run in the configured order; the first failure wins and no
      later check runs.
    - Validation never raises for a bad row; it returns a
      ``RowValidationFailure``.

Failure modes:
    - ValueError for an unknown check name (profiles are validated at
      load time, so this indicates a programming error).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from entry_engines.tracer import traced_engine
from entry_kernel.domain.types import Line, LineField, Product
from entry_kernel.domain.values import ZERO
from entry_kernel.exceptions import RowValidationFailure

CHECK_IDENTITY = "identity"
CHECK_CATALOG_IDENTITY = "catalog_identity"
CHECK_SERIAL = "serial"
CHECK_SERIAL_REQUIRED = "serial_required"
CHECK_QUANTITY = "quantity"
CHECK_PRICE = "price"
CHECK_RETAIL = "retail"
CHECK_FINAL = "final"

_Check = Callable[[Line, LineField, "Product | None"], "RowValidationFailure | None"]


def _fail(check: str, field: LineField | str, message: str) -> RowValidationFailure:
    focus = field.value if isinstance(field, LineField) else field
    return RowValidationFailure(check=check, focus_field=focus, message=message)


def _identity(line: Line, final_field: LineField, product: Product | None):
    if not line.product_code.strip() or not line.name.strip():
        return _fail(CHECK_IDENTITY, LineField.NAME, "Item code and name are required")
    return None


def _catalog_identity(line: Line, final_field: LineField, product: Product | None):
    if (
        product is None
        or product.name.strip() != line.name.strip()
        or product.code.strip() != line.product_code.strip()
    ):
        return _fail(
            CHECK_CATALOG_IDENTITY,
            LineField.NAME,
            "Item name and code do not match the catalog",
        )
    return None


def _serial(line: Line, final_field: LineField, product: Product | None):
    if product is None or not product.serials:
        return None
    if line.imei.strip() not in product.serials:
        return _fail(CHECK_SERIAL, LineField.IMEI, "IMEI does not match the product")
    return None


def _serial_required(line: Line, final_field: LineField, product: Product | None):
    if not line.imei.strip():
        return _fail(CHECK_SERIAL_REQUIRED, LineField.IMEI, "IMEI is required")
    return None


def _quantity(line: Line, final_field: LineField, product: Product | None):
    if line.quantity <= ZERO:
        return _fail(CHECK_QUANTITY, LineField.QUANTITY, "Quantity must be greater than 0")
    return None


def _price(line: Line, final_field: LineField, product: Product | None):
    if line.price <= ZERO:
        return _fail(CHECK_PRICE, LineField.PRICE, "Rate must be greater than 0")
    return None


def _retail(line: Line, final_field: LineField, product: Product | None):
    if line.retail <= ZERO:
        return _fail(CHECK_RETAIL, LineField.RETAIL, "Retail price must be greater than 0")
    return None


def _final(line: Line, final_field: LineField, product: Product | None):
    value = getattr(line, final_field.value, ZERO)
    if value <= ZERO:
        return _fail(
            CHECK_FINAL,
            final_field,
            f"{final_field.value.replace('_', ' ').capitalize()} must be greater than 0",
        )
    return None


CHECKS: dict[str, _Check] = {
    CHECK_IDENTITY: _identity,
    CHECK_CATALOG_IDENTITY: _catalog_identity,
    CHECK_SERIAL: _serial,
    CHECK_SERIAL_REQUIRED: _serial_required,
    CHECK_QUANTITY: _quantity,
    CHECK_PRICE: _price,
    CHECK_RETAIL: _retail,
    CHECK_FINAL: _final,
}


@traced_engine("validation", "1.0", fingerprint_fields=("line", "checks"))
def validate_row(
    line: Line,
    checks: Sequence[str],
    final_field: LineField,
    product: Product | None = None,
) -> RowValidationFailure | None:
    """
    Run ``checks`` in order; return the first failure or None.

    ``product`` is the catalog entry for the line, needed only by the
    catalog identity and serial checks.

    Raises:
        ValueError: If a check name is unknown.
    """
    for name in checks:
        check = CHECKS.get(name)
        if check is None:
            raise ValueError(f"Unknown row check: {name}")
        failure = check(line, final_field, product)
        if failure is not None:
            return failure
    return None
