"""
Bills -- Billing period value objects and derived payment status.

Responsibility:
    Defines ``Bill`` (one billing period for one unit) and the pure
    ``derive_status`` function. Bills are read-only inputs to the engines;
    every change (penalty refresh, payment application) produces a new
    ``Bill`` instance.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - paid_base <= base_charge and paid_penalty <= penalty_amount.
    - No negative amounts.
    - ``status`` is a pure function of the four amounts and is never stored.
    - ``due_date`` is a calendar ``date``; ``datetime`` values are rejected
      so that time-of-day never leaks into due-date grouping.

Failure modes:
    - ValidationError listing every violated field at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from dues_kernel.domain.values import Money
from dues_kernel.exceptions import ValidationError


class BillStatus(str, Enum):
    """Payment status derived from bill amounts."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


def derive_status(
    base_charge: Money,
    penalty_amount: Money,
    paid_base: Money,
    paid_penalty: Money,
) -> BillStatus:
    """
    Derive bill status from amounts.

    - PAID when nothing remains unpaid.
    - PARTIAL when something was paid and something remains.
    - UNPAID otherwise.
    """
    unpaid = (base_charge - paid_base) + (penalty_amount - paid_penalty)
    if not unpaid.is_positive:
        return BillStatus.PAID
    if (paid_base + paid_penalty).is_positive:
        return BillStatus.PARTIAL
    return BillStatus.UNPAID


@dataclass(frozen=True)
class Bill:
    """
    One billing period for one unit.

    Contract:
        ``period`` is an opaque ordering key (``"2026-03"``). The core only
        parses it when a due date must be derived (see
        ``dues_engines.penalty.resolve_due_date``).
    Guarantees:
        - Amount invariants hold for every constructed instance.
        - ``with_*`` helpers return new instances; nothing mutates.
    Non-goals:
        - Does not know which unit or module it belongs to; callers scope
          bills before handing them to the engine.
    """

    bill_id: str
    period: str
    base_charge: Money
    paid_base: Money = Money(0)
    penalty_amount: Money = Money(0)
    paid_penalty: Money = Money(0)
    due_date: date | None = None

    def __post_init__(self) -> None:
        errors: list[str] = []
        if not self.bill_id:
            errors.append("bill_id is required")
        if not self.period:
            errors.append(f"Bill {self.bill_id}: period is required")

        for name in ("base_charge", "paid_base", "penalty_amount", "paid_penalty"):
            value = getattr(self, name)
            if isinstance(value, int) and not isinstance(value, bool):
                value = Money(value)
                object.__setattr__(self, name, value)
            if not isinstance(value, Money):
                errors.append(f"Bill {self.bill_id}: {name} must be Money, got {value!r}")
            elif value.is_negative:
                errors.append(f"Bill {self.bill_id}: {name} cannot be negative ({value})")

        if not errors:
            if self.paid_base > self.base_charge:
                errors.append(
                    f"Bill {self.bill_id}: paid_base {self.paid_base} exceeds "
                    f"base_charge {self.base_charge}"
                )
            if self.paid_penalty > self.penalty_amount:
                errors.append(
                    f"Bill {self.bill_id}: paid_penalty {self.paid_penalty} exceeds "
                    f"penalty_amount {self.penalty_amount}"
                )

        if self.due_date is not None and (
            isinstance(self.due_date, datetime) or not isinstance(self.due_date, date)
        ):
            errors.append(
                f"Bill {self.bill_id}: due_date must be a calendar date, got {self.due_date!r}"
            )

        if errors:
            raise ValidationError(errors)

    @property
    def unpaid_base(self) -> Money:
        return self.base_charge - self.paid_base

    @property
    def unpaid_penalty(self) -> Money:
        return self.penalty_amount - self.paid_penalty

    @property
    def unpaid_total(self) -> Money:
        return self.unpaid_base + self.unpaid_penalty

    @property
    def total_amount(self) -> Money:
        """Base charge plus accrued penalty."""
        return self.base_charge + self.penalty_amount

    @property
    def amount_paid(self) -> Money:
        return self.paid_base + self.paid_penalty

    @property
    def status(self) -> BillStatus:
        return derive_status(
            self.base_charge, self.penalty_amount, self.paid_base, self.paid_penalty
        )

    @property
    def is_paid(self) -> bool:
        return self.status is BillStatus.PAID

    def with_penalty(self, penalty_amount: Money) -> Bill:
        """Return a copy carrying a refreshed penalty amount."""
        return replace(self, penalty_amount=penalty_amount)

    def with_payment(self, base_paid: Money, penalty_paid: Money) -> Bill:
        """Return a copy with a payment applied on top of prior payments."""
        return replace(
            self,
            paid_base=self.paid_base + base_paid,
            paid_penalty=self.paid_penalty + penalty_paid,
        )
