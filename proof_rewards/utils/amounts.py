"""Decimal reward amounts to token base units."""

from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext

from proof_rewards.core.errors import InvalidAmountError

# SPL token amounts are unsigned 64-bit integers.
MAX_BASE_UNITS = 2**64 - 1


def parse_amount(amount: str) -> Decimal:
    """Parse a reward amount string into a finite, non-negative ``Decimal``."""
    text = (amount or "").strip()
    if not text:
        raise InvalidAmountError("Reward amount is empty")
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise InvalidAmountError(
            f"Reward amount is not a decimal number: {text!r}", details={"amount": text}
        ) from e
    if not value.is_finite():
        raise InvalidAmountError(
            f"Reward amount is not finite: {text!r}", details={"amount": text}
        )
    if value < 0:
        raise InvalidAmountError(f"Reward amount is negative: {text!r}", details={"amount": text})
    return value


def to_base_units(amount: str, decimals: int) -> int:
    """Scale ``amount`` by ``10**decimals`` and truncate toward zero.

    >>> to_base_units("1", 9)
    1000000000
    >>> to_base_units("0.0000000004", 9)
    0
    """
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    value = parse_amount(amount)
    with localcontext() as ctx:
        # Wide enough that scaling never rounds the coefficient.
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + decimals)
        return int(value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def check_base_units(base_units: int, amount: str) -> int:
    """Reject amounts a token transfer cannot carry."""
    if base_units <= 0:
        raise InvalidAmountError(
            f"Reward amount {amount} is below the smallest token unit", details={"amount": amount}
        )
    if base_units > MAX_BASE_UNITS:
        raise InvalidAmountError(
            f"Reward amount {amount} exceeds the largest transferable amount",
            details={"amount": amount},
        )
    return base_units
