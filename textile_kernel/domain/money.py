"""
Money -- fixed-precision arithmetic for settlement amounts and quantities.

Responsibility:
    The single source of truth for remaining-amount computation and
    settlement-status derivation.  Every other module calls ``remaining()``
    and ``derive_status()`` instead of subtracting paid from total itself.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - One numeric representation: ``to_money`` / ``to_quantity`` normalize
      str, int, float and Decimal at the boundary; the core only ever sees
      Decimal.
    - Amounts are compared in integer minor units (rounded half away from
      zero), so binary floating point never leaks into a comparison.
    - TOLERANCE is exactly one minor unit.  It absorbs rounding noise from
      callers that derive amounts from display values and must never be
      widened.
    - remaining() is clamped to zero: a historically over-paid obligation
      reports nothing remaining, never a negative number.

Failure modes:
    - ValidationError when a boundary value is not a finite number.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from textile_kernel.domain.values import ObligationStatus
from textile_kernel.exceptions import ValidationError

MONEY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 3
DEFAULT_ROUNDING = ROUND_HALF_UP

MINOR_UNIT = Decimal("0.01")
QUANTITY_STEP = Decimal("0.001")
TOLERANCE = MINOR_UNIT
ZERO = Decimal("0.00")

_MINOR_UNITS_PER_MAJOR = 10**MONEY_DECIMAL_PLACES


def _to_decimal(value: Any, field: str) -> Decimal:
    if value is None:
        raise ValidationError(field, "value is required")
    if isinstance(value, bool):
        raise ValidationError(field, "boolean is not a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # Through str() so 0.1 becomes Decimal("0.1"), not its binary expansion
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            raise ValidationError(field, f"{value!r} is not a number") from None
    else:
        raise ValidationError(field, f"unsupported type {type(value).__name__}")

    if not result.is_finite():
        raise ValidationError(field, "value must be finite")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to two decimal places, ties away from zero."""
    return value.quantize(MINOR_UNIT, rounding=DEFAULT_ROUNDING)


def round_quantity(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_STEP, rounding=DEFAULT_ROUNDING)


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Normalize a boundary value into a two-place Decimal.

    Accepts Decimal, int, float and numeric strings ("1,250.50" included).

    Raises:
        ValidationError: value missing, boolean, unparsable, NaN or infinite.
    """
    return round_money(_to_decimal(value, field))


def to_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Normalize a boundary value into a three-place Decimal quantity."""
    return round_quantity(_to_decimal(value, field))


def to_minor_units(amount: Decimal) -> int:
    """Convert an amount to integer minor units (paisa / cents)."""
    return int(
        (amount * _MINOR_UNITS_PER_MAJOR).quantize(Decimal(1), rounding=DEFAULT_ROUNDING)
    )


def from_minor_units(units: int) -> Decimal:
    return round_money(Decimal(units) / _MINOR_UNITS_PER_MAJOR)


def remaining(total: Decimal, paid: Decimal) -> Decimal:
    """
    Remaining amount of an obligation.

    Postconditions:
        - Result is a two-place Decimal >= 0.
        - Any result within TOLERANCE of zero is exactly ZERO.
    """
    remaining_units = to_minor_units(Decimal(total)) - to_minor_units(Decimal(paid))
    result = from_minor_units(remaining_units)
    if abs(result) <= TOLERANCE:
        return ZERO
    return max(ZERO, result)


def amounts_equal(a: Decimal, b: Decimal, tolerance: Decimal = TOLERANCE) -> bool:
    """True when two amounts differ by no more than ``tolerance``."""
    return abs(from_minor_units(to_minor_units(Decimal(a)) - to_minor_units(Decimal(b)))) <= tolerance


def exceeds(amount: Decimal, limit: Decimal) -> bool:
    """True when ``amount`` is larger than ``limit`` plus one minor unit."""
    return to_minor_units(Decimal(amount)) > to_minor_units(Decimal(limit) + TOLERANCE)


def derive_status(total: Decimal, paid: Decimal) -> ObligationStatus:
    """
    Settlement status as a pure function of (total, paid).

    - remaining <= TOLERANCE                  -> COMPLETED
    - paid <= TOLERANCE, remaining > TOLERANCE -> PENDING
    - otherwise                               -> PARTIAL

    Never returns CANCELLED.
    """
    if remaining(total, paid) <= TOLERANCE:
        return ObligationStatus.COMPLETED
    if round_money(Decimal(paid)) <= TOLERANCE:
        return ObligationStatus.PENDING
    return ObligationStatus.PARTIAL
