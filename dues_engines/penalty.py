"""
Module: dues_engines.penalty
Responsibility:
    Compute compounding late-payment penalties for a unit's bills as of an
    arbitrary evaluation date: due-date resolution, grace-period math,
    step-by-step compounding, and per-group penalty distribution.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dues_kernel domain values, exceptions and logging.

Invariants enforced:
    - Purity: no clock access. ``as_of_date`` is always an argument, so a
      payment preview and the nightly batch refresh run identical math.
    - Any time past the grace period costs at least one full month.
    - Compounding rounds to the nearest minor unit at every step.
    - A group's penalty is split evenly over its unpaid bills; the last
      unpaid bill by ascending period absorbs the remainder, so the split
      sums to the group penalty exactly.
    - A recalculated penalty never drops below the penalty already paid on
      that bill (paid_penalty <= penalty_amount holds on every output).
    - Penalties are recomputed from the current unpaid principal each time,
      never compounded on top of a previously stored penalty.

Failure modes:
    - ConfigurationError when penalty_rate or penalty_days is missing or
      non-numeric. No defaults.
    - ValidationError on malformed period keys, datetime inputs where a
      calendar date is required, or duplicate bill ids.

Usage:
    from dues_engines.penalty import PenaltyAccrualCalculator

    calculator = PenaltyAccrualCalculator()
    refreshed = calculator.recalculate(bills, date(2025, 9, 15), config)
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from dues_engines.grouping import BillGroup, BillGroupResolver
from dues_engines.tracer import traced_engine
from dues_kernel.domain.billing_config import BillingConfig, validate_penalty_config
from dues_kernel.domain.bills import Bill
from dues_kernel.domain.values import ZERO, Money, sum_money, to_rate
from dues_kernel.exceptions import ValidationError
from dues_kernel.logging_config import get_logger

logger = get_logger("engines.penalty")

DAYS_PER_PENALTY_MONTH = 30

_PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})$")


def _require_date(name: str, value: Any) -> date:
    if isinstance(value, datetime) or not isinstance(value, date):
        raise ValidationError(f"{name} must be a calendar date, got {value!r}")
    return value


def resolve_due_date(bill: Bill, config: BillingConfig) -> date:
    """
    Nominal due date of a bill (no grace applied).

    Uses ``bill.due_date`` when set. Otherwise the period key
    ``"<fiscal_year>-<month_index>"`` (zero-based month index) is mapped to
    the first day of its calendar month. Fiscal years that do not start in
    January are named after the calendar year in which they end: with a July
    start, ``"2026-00"`` is 2025-07-01 and ``"2026-06"`` is 2026-01-01.

    Raises:
        ValidationError: If the period key is malformed.
    """
    if bill.due_date is not None:
        return bill.due_date

    match = _PERIOD_PATTERN.match(bill.period)
    if match is None:
        raise ValidationError(
            f"Bill {bill.bill_id}: cannot derive due date from period {bill.period!r}"
        )
    fiscal_year, month_index = int(match.group(1)), int(match.group(2))
    if not 0 <= month_index <= 11:
        raise ValidationError(
            f"Bill {bill.bill_id}: month index {month_index} outside 0..11"
        )

    start = config.fiscal_year_start_month
    offset = start - 1 + month_index
    first_calendar_year = fiscal_year if start == 1 else fiscal_year - 1
    return date(first_calendar_year + offset // 12, offset % 12 + 1, 1)


def months_overdue(due_date: date, as_of_date: date, grace_days: int) -> int:
    """
    Whole penalty months owed as of ``as_of_date``.

    Returns 0 while ``as_of_date <= due_date + grace_days``. Past that, any
    part of a 30-day month counts as a full month, with a minimum of one.
    """
    _require_date("due_date", due_date)
    _require_date("as_of_date", as_of_date)
    if grace_days < 0:
        raise ValidationError(f"grace_days cannot be negative ({grace_days})")

    grace_end = due_date + timedelta(days=grace_days)
    if as_of_date <= grace_end:
        return 0
    days_past_grace = (as_of_date - grace_end).days
    return max(1, -(-days_past_grace // DAYS_PER_PENALTY_MONTH))


def compound_penalty(
    principal: Money | int,
    months: int,
    rate: Decimal | float | int | str,
) -> Money:
    """
    Compound a monthly penalty with per-step rounding.

    Each month charges ``round(running * rate)`` and adds it to the running
    balance. This replicates month-by-month statement amounts rather than a
    closed-form formula.

    Example:
        ``compound_penalty(100000, 2, 0.05)`` -> 5000 + 5250 = 10250
    """
    principal = Money.of(principal)
    if principal.is_negative:
        raise ValidationError(f"Penalty principal cannot be negative ({principal})")
    rate = to_rate(rate)
    if rate < 0:
        raise ValidationError(f"Penalty rate cannot be negative ({rate})")
    if months <= 0 or principal.is_zero:
        return ZERO

    running = principal
    total = ZERO
    for _ in range(months):
        step = running.apply_rate(rate)
        total += step
        running += step
    return total


@dataclass(frozen=True)
class BillPenaltyChange:
    """Penalty change for one bill produced by a recalculation."""

    bill_id: str
    period: str
    previous: Money
    recalculated: Money
    months_overdue: int

    @property
    def delta(self) -> Money:
        return self.recalculated - self.previous


@dataclass(frozen=True)
class PenaltyRecalculationResult:
    """
    Outcome of one recalculation pass.

    Contract:
        ``bills`` is in the caller's input order; ``changes`` lists only
        bills whose penalty differs from the input.
    Non-goals:
        - Does not persist anything; batch callers save ``changed_bills``.
    """

    as_of_date: date
    bills: tuple[Bill, ...]
    changes: tuple[BillPenaltyChange, ...]
    groups_processed: int
    bills_processed: int
    bills_skipped: int

    @property
    def bills_updated(self) -> int:
        return len(self.changes)

    @property
    def total_penalty_change(self) -> Money:
        return sum_money(c.delta for c in self.changes)

    @property
    def changed_bills(self) -> tuple[Bill, ...]:
        changed = {c.bill_id for c in self.changes}
        return tuple(b for b in self.bills if b.bill_id in changed)


class PenaltyAccrualCalculator:
    """
    Compounding penalty calculator over due-date groups.

    Contract:
        Pure functions; identical inputs always produce identical outputs.
    Guarantees:
        - Recalculating twice with the same ``as_of_date`` and bills yields
          the same penalties.
        - Only ``penalty_amount`` changes on output bills.
    Non-goals:
        - Does not load configuration or bills, and does not persist.
    """

    def resolve_due_date(self, bill: Bill, config: BillingConfig) -> date:
        return resolve_due_date(bill, config)

    def months_overdue(self, due_date: date, as_of_date: date, grace_days: int) -> int:
        return months_overdue(due_date, as_of_date, grace_days)

    def compound_penalty(
        self,
        principal: Money | int,
        months: int,
        rate: Decimal | float | int | str,
    ) -> Money:
        return compound_penalty(principal, months, rate)

    def group_by_due_date(
        self,
        bills: Sequence[Bill],
        config: BillingConfig,
    ) -> tuple[BillGroup, ...]:
        """Group bills by resolved due date (quarterly bills share one group)."""
        return BillGroupResolver(lambda bill: resolve_due_date(bill, config)).resolve(bills)

    def recalculate(
        self,
        bills: Sequence[Bill],
        as_of_date: date,
        config: BillingConfig | Mapping[str, Any],
    ) -> tuple[Bill, ...]:
        """
        Refresh every bill's penalty as of ``as_of_date`` (non-persisting).

        Returns:
            New bills, in input order, with recalculated ``penalty_amount``.
        """
        return self.recalculate_with_summary(bills, as_of_date, config).bills

    @traced_engine("penalty", "1.0", fingerprint_fields=("bills", "as_of_date", "config"))
    def recalculate_with_summary(
        self,
        bills: Sequence[Bill],
        as_of_date: date,
        config: BillingConfig | Mapping[str, Any],
    ) -> PenaltyRecalculationResult:
        """
        Refresh penalties and report what changed.

        Preconditions:
            - Bill ids are unique.
            - ``as_of_date`` is a calendar date.
        Postconditions:
            - Sum of penalties assigned inside a penalized group equals the
              group penalty, except where a bill's paid penalty floor lifts
              its share.
        Raises:
            ConfigurationError: Penalty policy missing or invalid.
            ValidationError: Malformed inputs.
        """
        t0 = time.monotonic()
        cfg = validate_penalty_config(config)
        _require_date("as_of_date", as_of_date)
        require_unique_bill_ids(bills)

        logger.info("penalty_recalculation_started", extra={
            "bill_count": len(bills),
            "as_of_date": as_of_date.isoformat(),
            "penalty_rate": str(cfg.penalty_rate),
            "grace_days": cfg.penalty_days,
        })

        assigned: dict[str, Money] = {}
        months_by_bill: dict[str, int] = {}
        bills_processed = 0
        bills_skipped = 0
        groups = self.group_by_due_date(bills, cfg)

        for group in groups:
            months = months_overdue(group.due_date, as_of_date, cfg.penalty_days)
            unpaid = group.unpaid_bills

            if not unpaid or months == 0:
                for bill in group.bills:
                    assigned[bill.bill_id] = ZERO
                    months_by_bill[bill.bill_id] = 0
                bills_skipped += len(group)
                logger.debug("penalty_group_skipped", extra={
                    "due_date": group.key,
                    "bill_count": len(group),
                    "reason": "all_paid" if not unpaid else "within_grace",
                })
                continue

            group_penalty = compound_penalty(group.total_unpaid_base, months, cfg.penalty_rate)
            assigned.update(_split_group_penalty(group, group_penalty))
            for bill in group.bills:
                months_by_bill[bill.bill_id] = months
            bills_processed += len(group)

            logger.debug("penalty_group_calculated", extra={
                "due_date": group.key,
                "bill_count": len(group),
                "unpaid_count": len(unpaid),
                "total_unpaid": group.total_unpaid_base.minor_units,
                "months_overdue": months,
                "group_penalty": group_penalty.minor_units,
            })

        refreshed: list[Bill] = []
        changes: list[BillPenaltyChange] = []
        for bill in bills:
            # Penalty already collected stays owed.
            penalty = max(assigned[bill.bill_id], bill.paid_penalty)
            refreshed.append(bill.with_penalty(penalty))
            if penalty != bill.penalty_amount:
                changes.append(BillPenaltyChange(
                    bill_id=bill.bill_id,
                    period=bill.period,
                    previous=bill.penalty_amount,
                    recalculated=penalty,
                    months_overdue=months_by_bill[bill.bill_id],
                ))

        result = PenaltyRecalculationResult(
            as_of_date=as_of_date,
            bills=tuple(refreshed),
            changes=tuple(changes),
            groups_processed=len(groups),
            bills_processed=bills_processed,
            bills_skipped=bills_skipped,
        )

        logger.info("penalty_recalculation_completed", extra={
            "groups_processed": result.groups_processed,
            "bills_processed": result.bills_processed,
            "bills_skipped": result.bills_skipped,
            "bills_updated": result.bills_updated,
            "total_penalty_change": result.total_penalty_change.minor_units,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result


def _split_group_penalty(group: BillGroup, group_penalty: Money) -> dict[str, Money]:
    """Even split over unpaid bills; paid bills get zero."""
    unpaid = group.unpaid_bills
    share, remainder = group_penalty.split(len(unpaid))
    last_unpaid = unpaid[-1]

    shares = {bill.bill_id: ZERO for bill in group.paid_bills}
    for bill in unpaid:
        shares[bill.bill_id] = share + remainder if bill is last_unpaid else share

    # INVARIANT: split is exact
    assert sum_money(shares[b.bill_id] for b in unpaid) == group_penalty, (
        f"Penalty split for group {group.key} does not sum to {group_penalty}"
    )
    return shares


def require_unique_bill_ids(bills: Sequence[Bill]) -> None:
    seen: set[str] = set()
    duplicates: list[str] = []
    for bill in bills:
        if not isinstance(bill, Bill):
            raise ValidationError(f"Expected Bill, got {type(bill).__name__}")
        if bill.bill_id in seen:
            duplicates.append(bill.bill_id)
        seen.add(bill.bill_id)
    if duplicates:
        raise ValidationError(f"Duplicate bill ids: {', '.join(sorted(set(duplicates)))}")
