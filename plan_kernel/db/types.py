"""
Module: plan_kernel.db.types
Responsibility: Annotated type aliases and the canonical rounding helpers for
    amounts held in integer minor units (cents).
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    CRITICAL: No floats anywhere in the plan kernel.  Amounts are ``int``
        cents; the only fractional inputs (rate-line quantities) are Decimal
        and are converted back to whole cents by round_cents().
    round_cents() / percent_of() are the ONLY sanctioned rounding functions
        and always round half-up.

Failure modes:
    - TypeError if a non-int / bool is passed where cents are expected.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String


# Integer minor-currency units (cents)
Cents = Annotated[int, BigInteger]

# Fractional quantity (e.g. rate line max_quantity)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

# Short identifier strings (category / support item codes)
ShortCode = Annotated[str, String(50)]

# Long text for notes
LongText = Annotated[str, String(4000)]


DEFAULT_ROUNDING = ROUND_HALF_UP


def is_cents(value: object) -> bool:
    """True for plain ints (bool is rejected even though it subclasses int)."""
    return isinstance(value, int) and not isinstance(value, bool)


def round_cents(value: Decimal, rounding: str = DEFAULT_ROUNDING) -> int:
    """
    Round a Decimal amount of cents to a whole number of cents.

    This is the ONLY sanctioned conversion from a fractional amount back to
    integer cents.  Half-up: Decimal("2.5") -> 3.

    Args:
        value: Amount in cents, possibly fractional.
        rounding: Decimal rounding mode (default: ROUND_HALF_UP).

    Returns:
        Whole cents as ``int``.
    """
    return int(value.quantize(Decimal("1"), rounding=rounding))


def percent_of(part: int, whole: int, rounding: str = DEFAULT_ROUNDING) -> int:
    """
    Integer percentage of ``part`` in ``whole``, rounded half-up.

    Example:
        percent_of(7950, 10000) -> 80

    Raises:
        ZeroDivisionError: If whole is zero.
    """
    if whole == 0:
        raise ZeroDivisionError("percent_of: whole must be non-zero")
    return round_cents(Decimal(part) * Decimal(100) / Decimal(whole), rounding)
