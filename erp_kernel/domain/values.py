"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides the foundational value types for all document computations:
    Currency, Money, Quantity, and ExchangeRate. These replace primitive
    types (Decimal, str, float) wherever monetary data appears in domain
    logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module. No outward dependencies except
    erp_kernel.domain.currency (CurrencyRegistry) and erp_kernel.exceptions.

Invariants enforced:
    - Money amounts are Decimal, never float.
    - Currency codes are validated at construction time.
    - Combining Money of different currencies raises CurrencyMismatchError;
      there is no implicit conversion.
    - Money.allocate returns buckets that sum exactly to the original
      amount. Each bucket is truncated toward zero at the currency's minor
      unit and the whole remainder goes to the LAST bucket with a non-zero
      weight (for a twelve-month split: December).

Failure modes:
    - InvalidCurrencyError on construction with an unknown currency.
    - TypeError when a float is passed where a Decimal is expected.
    - ValueError on invalid amounts, rates or allocation weights.
    - CurrencyMismatchError when arithmetic mixes different currencies.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from erp_kernel.domain.currency import CurrencyRegistry
from erp_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError


def as_decimal(value: Decimal | int | str, what: str = "value") -> Decimal:
    """Coerce int/str/Decimal to Decimal. Floats are refused."""
    if isinstance(value, float):
        raise TypeError(f"{what} must not be a float: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {what}: {value!r}") from e


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Guarantees:
        - Immutable and hashable
        - code is always uppercase, stripped and registered
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if isinstance(self.code, str) else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise InvalidCurrencyError(str(self.code))
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount, e.g. Decimal('0.01')."""
        return Decimal(1).scaleb(-self.decimal_places)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency -- they are NEVER separated.

    Guarantees:
        - Immutable and hashable
        - amount is always a Decimal (float input is rejected)
        - Arithmetic enforces the same-currency constraint

    Non-goals:
        - Does NOT perform currency conversion (use ExchangeRate.convert)
        - Does NOT auto-round -- callers must explicitly call .round()
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", as_decimal(self.amount, "amount"))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """Factory method: ``Money.of("100000.00", "IDR")``."""
        return cls(amount=as_decimal(amount, "amount"), currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(amount=Decimal("0"), currency=currency)

    @classmethod
    def from_minor_units(cls, units: int, currency: str | Currency) -> Money:
        """Build from an integer count of minor units (cents, sen, ...)."""
        if not isinstance(units, int) or isinstance(units, bool):
            raise TypeError(f"minor units must be int, got {type(units)}")
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=Decimal(units).scaleb(-currency.decimal_places), currency=currency)

    def to_minor_units(self) -> int:
        """
        Integer minor units at the currency scale.

        Raises:
            ValueError: if the amount carries sub-minor precision; round first.
        """
        scaled = self.amount.scaleb(self.currency.decimal_places)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{self} has precision beyond the currency minor unit")
        return int(scaled)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's decimal places (half-up unless told otherwise)."""
        rounded = self.amount.quantize(self.currency.minor_unit, rounding=rounding)
        return Money(amount=rounded, currency=self.currency)

    def allocate(self, weights: Sequence[Decimal | int | str]) -> tuple[Money, ...]:
        """
        Split this amount across weighted buckets without losing a minor unit.

        Preconditions:
            - weights is non-empty, every weight >= 0, and Σ weights > 0.

        Postconditions:
            - len(result) == len(weights)
            - Σ result == self exactly
            - Zero-weight buckets receive zero.
            - Every bucket is its proportional share truncated toward zero
              at the minor unit; the remainder is added to the last bucket
              whose weight is non-zero.
        """
        parsed = [as_decimal(w, "weight") for w in weights]
        if not parsed:
            raise ValueError("allocate requires at least one weight")
        if any(w < 0 for w in parsed):
            raise ValueError("allocation weights cannot be negative")
        total_weight = sum(parsed, Decimal("0"))
        if total_weight <= 0:
            raise ValueError("allocation weights must sum to a positive value")

        quantum = self.currency.minor_unit
        shares = [
            (self.amount * w / total_weight).quantize(quantum, rounding=ROUND_DOWN)
            for w in parsed
        ]
        remainder = self.amount - sum(shares, Decimal("0"))
        last_weighted = max(i for i, w in enumerate(parsed) if w > 0)
        shares[last_weighted] += remainder
        return tuple(Money(amount=s, currency=self.currency) for s in shares)

    def _require_same_currency(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code, operation)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount), currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, float):
            raise TypeError("Money cannot be multiplied by a float")
        if isinstance(factor, (int, str)):
            factor = Decimal(str(factor))
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def sum_money(values: Sequence[Money], currency: str | Currency) -> Money:
    """Sum Money values, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


@dataclass(frozen=True, slots=True)
class Quantity:
    """
    Numeric quantity with unit value object.

    Used for non-monetary amounts such as stock counts.
    """

    value: Decimal
    unit: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", as_decimal(self.value, "quantity value"))
        if not self.unit or not self.unit.strip():
            raise ValueError("Quantity unit is required")
        object.__setattr__(self, "unit", self.unit.strip())

    @classmethod
    def of(cls, value: Decimal | str | int, unit: str) -> Quantity:
        return cls(value=as_decimal(value, "quantity value"), unit=unit)

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    def __add__(self, other: Quantity) -> Quantity:
        if not isinstance(other, Quantity):
            return NotImplemented
        if self.unit != other.unit:
            raise ValueError(
                f"Cannot add Quantity with different units: {self.unit} and {other.unit}"
            )
        return Quantity(value=self.value + other.value, unit=self.unit)

    def __sub__(self, other: Quantity) -> Quantity:
        if not isinstance(other, Quantity):
            return NotImplemented
        if self.unit != other.unit:
            raise ValueError(
                f"Cannot subtract Quantity with different units: {self.unit} and {other.unit}"
            )
        return Quantity(value=self.value - other.value, unit=self.unit)

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """
    Exchange rate between two currencies.

    Contract:
        1 unit of from_currency = rate units of to_currency. The rate is
        positive and Decimal.
    """

    from_currency: Currency
    to_currency: Currency
    rate: Decimal

    def __post_init__(self) -> None:
        if isinstance(self.from_currency, str):
            object.__setattr__(self, "from_currency", Currency(self.from_currency))
        if isinstance(self.to_currency, str):
            object.__setattr__(self, "to_currency", Currency(self.to_currency))
        object.__setattr__(self, "rate", as_decimal(self.rate, "exchange rate"))
        if self.rate <= 0:
            raise ValueError(f"Exchange rate must be positive: {self.rate}")

    @classmethod
    def of(
        cls,
        from_currency: str | Currency,
        to_currency: str | Currency,
        rate: Decimal | str | int,
    ) -> ExchangeRate:
        return cls(from_currency=from_currency, to_currency=to_currency, rate=rate)

    @property
    def is_identity(self) -> bool:
        return self.from_currency == self.to_currency and self.rate == 1

    def convert(self, money: Money) -> Money:
        """
        Convert money into ``to_currency`` (unrounded).

        Raises:
            CurrencyMismatchError: if money is not in from_currency.
        """
        if money.currency != self.from_currency:
            raise CurrencyMismatchError(money.currency.code, self.from_currency.code, "convert")
        return Money(amount=money.amount * self.rate, currency=self.to_currency)

    def inverse(self) -> ExchangeRate:
        return ExchangeRate(
            from_currency=self.to_currency,
            to_currency=self.from_currency,
            rate=Decimal("1") / self.rate,
        )

    def __str__(self) -> str:
        return f"{self.from_currency}/{self.to_currency} = {self.rate}"
