"""
Decimal value helpers.

Responsibility:
    The single place where numeric input is coerced to ``Decimal`` and
    where the two-decimal half-up rounding rule is defined.  Every other
    module rounds through ``round2`` so that per-field values shown to the
    user match the stored values exactly.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: floats are converted through ``str`` so a
      float literal never leaks binary noise into an amount.
    - Half-up rounding to 2 decimal places, applied per step by callers.

Failure modes:
    - ``to_decimal`` raises ValueError for values that cannot be parsed.
    - ``parse_numeric_input`` never raises; unparseable text becomes zero.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

_LEADING_DOT = re.compile(r"^-?\.\d*$")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """
    Coerce a value to Decimal.

    ``None`` and the empty string are treated as zero.

    Raises:
        ValueError: If the value cannot be represented as a Decimal.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    text = str(value).strip()
    if not text:
        return ZERO
    try:
        return Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e


def round2(value: Decimal | int | float | str) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_numeric_input(raw: str | None) -> Decimal:
    """
    Parse text typed into a numeric cell.

    Accepts partially typed values: ``""`` and ``"-"`` are zero, ``".5"``
    is ``0.5``.  Anything unparseable is zero rather than an error because
    the user is still typing.
    """
    if raw is None:
        return ZERO
    text = raw.strip()
    if text in ("", "-", "."):
        return ZERO
    if _LEADING_DOT.match(text):
        text = text.replace(".", "0.", 1)
    try:
        value = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not value.is_finite():
        return ZERO
    return value


def percent_of(amount: Decimal, base: Decimal) -> Decimal:
    """``amount`` as a rounded percentage of ``base``; zero when base is zero."""
    if base == ZERO:
        return ZERO
    return round2(amount / base * HUNDRED)
