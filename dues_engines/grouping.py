"""
Module: dues_engines.grouping
Responsibility:
    Partition bills into groups that share one resolved due date. A group
    is the unit of penalty calculation: size 1 for monthly billing, size N
    when N periods are billed against one due date (quarterly billing).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Grouping key is the calendar date only (no time-of-day).
    - Groups are returned in ascending due-date order.
    - Bills inside a group are ordered by ascending period, then bill id.
      "Last unpaid bill in the group" therefore has one meaning.

Failure modes:
    - ValidationError when a bill has no due date and no resolver was
      supplied to derive one.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date

from dues_kernel.domain.bills import Bill
from dues_kernel.domain.values import Money, sum_money
from dues_kernel.exceptions import ValidationError
from dues_kernel.logging_config import get_logger

logger = get_logger("engines.grouping")


def period_order_key(bill: Bill) -> tuple[str, str]:
    """Ordering key for bills within a group."""
    return (bill.period, bill.bill_id)


def explicit_due_date(bill: Bill) -> date:
    """Due-date accessor that refuses to guess."""
    if bill.due_date is None:
        raise ValidationError(
            f"Bill {bill.bill_id} has no due date and no configuration to derive one"
        )
    return bill.due_date


@dataclass(frozen=True)
class BillGroup:
    """
    Bills sharing one due date.

    Contract:
        ``bills`` is ordered by ascending period.
    Guarantees:
        - ``unpaid_bills`` preserves that order, so ``unpaid_bills[-1]`` is
          the last unpaid bill by ascending period.
    """

    due_date: date
    bills: tuple[Bill, ...]

    @property
    def key(self) -> str:
        return self.due_date.isoformat()

    @property
    def paid_bills(self) -> tuple[Bill, ...]:
        return tuple(b for b in self.bills if b.is_paid)

    @property
    def unpaid_bills(self) -> tuple[Bill, ...]:
        return tuple(b for b in self.bills if not b.is_paid)

    @property
    def total_unpaid_base(self) -> Money:
        """Unpaid principal across the unpaid bills of the group."""
        return sum_money(b.unpaid_base for b in self.unpaid_bills)

    def __len__(self) -> int:
        return len(self.bills)


class BillGroupResolver:
    """
    Group bills by resolved due date.

    Contract:
        Pure; the due-date accessor is injected so that the penalty
        calculator can resolve missing due dates from period keys.
    Non-goals:
        - Does not decide penalties; see ``PenaltyAccrualCalculator``.
    """

    def __init__(self, due_date_of: Callable[[Bill], date] = explicit_due_date):
        self._due_date_of = due_date_of

    def resolve(self, bills: Sequence[Bill]) -> tuple[BillGroup, ...]:
        """Partition ``bills`` into due-date groups."""
        buckets: dict[date, list[Bill]] = {}
        for bill in bills:
            buckets.setdefault(self._due_date_of(bill), []).append(bill)

        groups = tuple(
            BillGroup(due_date=due, bills=tuple(sorted(members, key=period_order_key)))
            for due, members in sorted(buckets.items())
        )

        logger.debug("bills_grouped", extra={
            "bill_count": len(bills),
            "group_count": len(groups),
            "groups": {g.key: len(g) for g in groups},
        })
        return groups


def group_by_due_date(
    bills: Sequence[Bill],
    due_date_of: Callable[[Bill], date] = explicit_due_date,
) -> tuple[BillGroup, ...]:
    """Convenience wrapper around ``BillGroupResolver.resolve``."""
    return BillGroupResolver(due_date_of).resolve(bills)
