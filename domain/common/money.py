"""
Money value object.

Amounts are integers in the currency's minor unit (kobo for NGN, cents for
USD). Major-unit values only enter through ``Money.from_major`` so a naira
figure can never be mistaken for a kobo figure at a boundary.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from domain.common.exceptions import DomainValidationException


MINOR_EXPONENT = 2


@dataclass(frozen=True)
class Money:
    amount: int
    currency: str = "NGN"

    def __post_init__(self) -> None:
        # bool 是 int 的子类，需单独排除
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise DomainValidationException(
                f"Money amount must be an integer number of minor units, got {type(self.amount).__name__}",
                field="amount",
            )
        if self.amount < 0:
            raise DomainValidationException(f"Money amount cannot be negative: {self.amount}", field="amount")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "NGN") -> "Money":
        return cls(0, currency)

    @classmethod
    def from_major(cls, value: Decimal | str | int, currency: str = "NGN") -> "Money":
        """Convert a major-unit amount (e.g. "150.50" naira) into minor units."""
        minor = (Decimal(str(value)) * (Decimal(10) ** MINOR_EXPONENT)).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        return cls(int(minor), currency)

    def to_major(self) -> Decimal:
        return Decimal(self.amount) / (Decimal(10) ** MINOR_EXPONENT)

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise DomainValidationException(
                f"Currency mismatch: {self.currency} vs {other.currency}", field="currency"
            )

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def times(self, quantity: int) -> "Money":
        if quantity < 0:
            raise DomainValidationException("Quantity cannot be negative", field="quantity")
        return Money(self.amount * quantity, self.currency)

    def percent(self, percentage: int) -> "Money":
        """Return ``percentage``% of this amount, rounded half-up to a whole minor unit."""
        if not 0 <= percentage <= 100:
            raise DomainValidationException(f"Percentage out of range: {percentage}", field="percentage")
        value = (Decimal(self.amount) * Decimal(percentage) / Decimal(100)).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        return Money(int(value), self.currency)

    def to_dict(self) -> dict:
        return {"amount": self.amount, "currency": self.currency}

    def __str__(self) -> str:
        return f"{self.to_major():.2f} {self.currency}"
