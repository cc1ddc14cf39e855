"""
Fixed-point money and quantity values.

All amounts are stored and computed as integer cents. Decimal input
(strings like "12.50", ints, Decimals) is accepted only at the boundary and
must not carry more than two fractional digits; floats are rejected because
they cannot be converted without rounding ambiguity.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

# Largest amount a single column may hold: 9,999,999.99
MAX_AMOUNT_CENTS = 999_999_999

# Largest quantity an INTEGER stock column can hold
MAX_QUANTITY = 2_147_483_647

_CENT = Decimal("0.01")


class AmountError(ValueError):
    """Raised when a value cannot be read as money or quantity."""


@dataclass(frozen=True, order=True)
class Money:
    cents: int

    def __post_init__(self):
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise AmountError("Money must be built from integer cents")

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def parse(cls, value: Any, *, field: str = "amount") -> "Money":
        """
        Parse a decimal amount ("12.50", 12, Decimal("12.5")) into cents.

        Raises AmountError for floats, booleans, malformed strings and
        amounts with sub-cent precision.
        """
        if isinstance(value, Money):
            return value
        if value is None or isinstance(value, (bool, float)):
            raise AmountError(f"{field} must be a decimal string or integer")
        if isinstance(value, int):
            dec = Decimal(value)
        elif isinstance(value, Decimal):
            dec = value
        elif isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower():
                raise AmountError(f"{field} must be a plain decimal amount")
            try:
                dec = Decimal(stripped)
            except InvalidOperation:
                raise AmountError(f"{field} must be a plain decimal amount")
        else:
            raise AmountError(f"{field} must be a decimal string or integer")

        if not dec.is_finite():
            raise AmountError(f"{field} must be finite")
        if dec != dec.quantize(_CENT):
            raise AmountError(f"{field} cannot have more than two decimal places")

        cents = int(dec.quantize(_CENT) * 100)
        if abs(cents) > MAX_AMOUNT_CENTS:
            raise AmountError(f"{field} is out of range")
        return cls(cents)

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents - other.cents)

    def __mul__(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return NotImplemented
        return Money(self.cents * quantity)

    __rmul__ = __mul__

    def is_negative(self) -> bool:
        return self.cents < 0

    def to_decimal(self) -> Decimal:
        return (Decimal(self.cents) / 100).quantize(_CENT)

    def __str__(self) -> str:
        return str(self.to_decimal())


def money_sum(amounts) -> Money:
    total = Money.zero()
    for amount in amounts:
        total = total + amount
    return total


def coerce_quantity(value: Any, *, field: str = "quantity") -> int:
    """
    Strictly coerce a line quantity to a positive int.

    Rejects booleans, floats, decimals-in-strings and scientific notation.
    """
    if isinstance(value, bool):
        raise AmountError(f"{field} must be an integer")
    if isinstance(value, int):
        qty = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise AmountError(f"{field} must be a plain integer")
        try:
            qty = int(stripped)
        except ValueError:
            raise AmountError(f"{field} must be a plain integer")
    else:
        raise AmountError(f"{field} must be an integer")

    if qty <= 0:
        raise AmountError(f"{field} must be greater than zero")
    if qty > MAX_QUANTITY:
        raise AmountError(f"{field} is out of range")
    return qty


def from_json_number(value: Any) -> Any:
    """
    Turn a JSON number decoded as float back into the Decimal the client wrote.

    repr() of a float parsed from JSON is the shortest literal that round-trips,
    so 12.5 comes back as Decimal("12.5") and 0.105 as Decimal("0.105"), which
    Money.parse still rejects for sub-cent precision. Other values pass through.
    """
    if isinstance(value, float):
        return Decimal(repr(value))
    return value
