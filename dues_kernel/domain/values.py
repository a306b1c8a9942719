"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides ``Money``, the single monetary type of the dues engine. Every
    amount inside the engine is an integer count of currency minor units
    (e.g. centavos). Conversion to and from major units (pesos, dollars)
    happens only at the I/O boundary via ``Money.from_major`` and
    ``Money.to_major``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module and by all engines.

Invariants enforced:
    - Amounts are ``int`` minor units. Floats, Decimals, strings and bools
      are rejected at construction.
    - Rate application rounds to the nearest minor unit (ROUND_HALF_UP)
      using Decimal arithmetic; floats are converted through ``str``.

Failure modes:
    - ValidationError on construction with a non-integer amount.
    - ValidationError from ``apply_rate`` on non-finite rates.

Audit relevance:
    Integer minor units make every conservation check exact. Penalty and
    allocation totals reconcile to the centavo without tolerance drift.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dues_kernel.exceptions import ValidationError

DEFAULT_DECIMAL_PLACES = 2


def to_rate(value: Decimal | int | float | str) -> Decimal:
    """
    Convert a configured rate to an exact Decimal.

    Floats go through ``str`` so that ``0.05`` becomes ``Decimal("0.05")``
    rather than its binary approximation.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Rate must be numeric, got {value!r}")
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Rate must be numeric, got {value!r}") from e
    if not rate.is_finite():
        raise ValidationError(f"Rate must be finite, got {value!r}")
    return rate


@dataclass(frozen=True, slots=True, order=True)
class Money:
    """
    Monetary amount in integer minor units.

    Contract:
        Wraps an ``int`` count of minor units of the billing currency. There
        is exactly one currency per engine invocation, so no currency code is
        carried.

    Guarantees:
        - Immutable, hashable and totally ordered.
        - ``minor_units`` is always an ``int`` (never float, never bool).
        - Arithmetic only combines Money with Money.

    Non-goals:
        - Does NOT perform currency conversion.
        - Does NOT enforce non-negativity; allocations are signed. Callers
          check sign where it matters.
    """

    minor_units: int

    def __post_init__(self) -> None:
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise ValidationError(
                f"Money requires integer minor units, got "
                f"{type(self.minor_units).__name__} {self.minor_units!r}"
            )

    @classmethod
    def of(cls, value: Money | int) -> Money:
        """Coerce an int (minor units) or Money into Money."""
        if isinstance(value, Money):
            return value
        return cls(value)

    @classmethod
    def zero(cls) -> Money:
        """Create a zero amount."""
        return cls(0)

    @classmethod
    def from_major(
        cls,
        amount: Decimal | str | int,
        decimal_places: int = DEFAULT_DECIMAL_PLACES,
    ) -> Money:
        """
        Convert a major-unit amount (e.g. pesos) to minor units.

        Preconditions:
            - ``amount`` is a Decimal, numeric string or int. Floats are
              refused; convert at the edge with ``str()`` first.

        Postconditions:
            - Returns Money rounded half-up to the nearest minor unit.

        Raises:
            ValidationError: If the amount is a float or not numeric.
        """
        if isinstance(amount, (float, bool)):
            raise ValidationError(f"Refusing float amount {amount!r}; pass a str or Decimal")
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid amount: {amount!r}") from e
        if not value.is_finite():
            raise ValidationError(f"Amount must be finite, got {amount!r}")
        scaled = (value * (Decimal(10) ** decimal_places)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return cls(int(scaled))

    def to_major(self, decimal_places: int = DEFAULT_DECIMAL_PLACES) -> Decimal:
        """Convert back to a major-unit Decimal (boundary use only)."""
        return Decimal(self.minor_units).scaleb(-decimal_places)

    @property
    def is_zero(self) -> bool:
        return self.minor_units == 0

    @property
    def is_positive(self) -> bool:
        return self.minor_units > 0

    @property
    def is_negative(self) -> bool:
        return self.minor_units < 0

    def apply_rate(self, rate: Decimal | int | float | str) -> Money:
        """
        Multiply by a rate and round to the nearest minor unit.

        Postconditions:
            - Result is ``round_half_up(minor_units * rate)``.
        """
        product = Decimal(self.minor_units) * to_rate(rate)
        return Money(int(product.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))

    def split(self, parts: int) -> tuple[Money, Money]:
        """
        Even split into ``parts`` shares.

        Returns:
            ``(share, remainder)`` where ``share * parts + remainder == self``
            and ``0 <= remainder < parts`` for non-negative amounts.
        """
        if parts <= 0:
            raise ValidationError(f"Cannot split into {parts} parts")
        share, remainder = divmod(self.minor_units, parts)
        return Money(share), Money(remainder)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.minor_units + other.minor_units)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.minor_units - other.minor_units)

    def __neg__(self) -> Money:
        return Money(-self.minor_units)

    def __abs__(self) -> Money:
        return Money(abs(self.minor_units))

    def __mul__(self, factor: int) -> Money:
        """Multiply by an integer count."""
        if isinstance(factor, bool) or not isinstance(factor, int):
            return NotImplemented
        return Money(self.minor_units * factor)

    def __rmul__(self, factor: int) -> Money:
        return self.__mul__(factor)

    def __int__(self) -> int:
        return self.minor_units

    def __bool__(self) -> bool:
        return self.minor_units != 0

    def __str__(self) -> str:
        return str(self.minor_units)

    def __repr__(self) -> str:
        return f"Money({self.minor_units})"


ZERO = Money(0)


def sum_money(amounts: Iterable[Money]) -> Money:
    """Sum an iterable of Money (empty -> zero)."""
    total = 0
    for amount in amounts:
        total += amount.minor_units
    return Money(total)
