"""Human-unit <-> atomic-unit conversion.

Providers and callers speak human decimals ("1.5"), the ledger and every
comparison speak atomic integers. Conversion runs in a local Decimal context
wide enough for 78-digit values so nothing is rounded silently.
"""
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

Number = Union[str, int, float, Decimal]

_PRECISION = 100


class AmountError(ValueError):
    pass


def parse_decimal(value: Number) -> Decimal:
    # Floats go through their shortest repr, so 0.1 parses as Decimal("0.1")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise AmountError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise AmountError(f"Invalid amount: {value!r}")
    return amount


def to_atomic(amount: Number, decimals: int) -> int:
    """Convert a human-unit amount to an atomic integer.

    Raises AmountError when the amount has more fractional digits than the
    asset supports.
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = parse_decimal(amount) * (Decimal(10) ** int(decimals))
        if scaled != scaled.to_integral_value():
            raise AmountError(f"Amount {amount} exceeds {decimals} decimal places")
        return int(scaled)


def from_atomic(atomic: Number, decimals: int) -> str:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        value = parse_decimal(atomic) / (Decimal(10) ** int(decimals))
        text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def normalize_balance(balance: Number, decimals: int) -> str:
    """Turn a provider-reported human balance into an atomic-unit string.

    Balances finer than the asset precision are truncated toward zero; a
    provider never holds a fraction of an atomic unit, so any excess is
    formatting noise.
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = parse_decimal(balance) * (Decimal(10) ** int(decimals))
        return str(int(scaled))


def to_int(value) -> int:
    """Atomic threshold columns come back as Decimal (or None)."""
    if value is None:
        return 0
    return int(Decimal(str(value)))
