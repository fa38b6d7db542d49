from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x or 0))


def to_cents(amount) -> int:
    """Montant (Decimal / str / int / float) -> centimes entiers, arrondi half-up."""
    return int((D(amount) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def money2(x) -> Decimal:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_percent(pct) -> Decimal:
    pct = D(pct)
    if pct < 0:
        return Decimal("0")
    if pct > HUNDRED:
        return HUNDRED
    return pct


def percent_of(cents: int, pct) -> int:
    """pct % de `cents`, arrondi au centime (half-up)."""
    value = Decimal(cents) * D(pct) / HUNDRED
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))
