"""
Module: dues_engines.distribution
Responsibility:
    Distribute a payment plus a unit's existing credit across its outstanding
    bills, oldest first, paying penalty before principal inside a partially
    funded bill, and resolve the resulting credit change.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dues_kernel domain values, exceptions and logging, plus
    the penalty engine for backdated payments.

Invariants enforced:
    - Per bill: base_paid <= unpaid_base and penalty_paid <= unpaid_penalty
      as they stood before the payment.
    - Conservation: total_applied == payment_amount + credit_used - overpayment,
      and unapplied_funds == new_credit_balance. Exact in minor units.
    - credit_used and overpayment are never both non-zero.
    - new_credit_balance = prior_credit_balance - credit_used + overpayment
      and is never negative.
    - Every input bill appears in the result, including zero-payment entries.

Failure modes:
    - ValidationError on negative or non-integer amounts, non-Bill entries,
      or duplicate bill ids.
    - ConfigurationError when ``as_of_date`` is given without a billing
      configuration to recalculate penalties with.

Audit relevance:
    ``total_bills_due`` is frozen before bills are walked, so the credit
    resolution recorded for a payment is reproducible from the input bills
    alone.

Usage:
    from dues_engines.distribution import PaymentDistributor

    result = PaymentDistributor(config).distribute(
        bills, payment_amount=60000, prior_credit_balance=0,
        as_of_date=date(2025, 9, 15),
    )
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from dues_engines.penalty import (
    PenaltyAccrualCalculator,
    require_unique_bill_ids,
    resolve_due_date,
)
from dues_engines.tracer import traced_engine
from dues_kernel.domain.billing_config import BillingConfig, validate_penalty_config
from dues_kernel.domain.bills import Bill, BillStatus
from dues_kernel.domain.values import ZERO, Money, sum_money
from dues_kernel.exceptions import ConfigurationError, ValidationError
from dues_kernel.logging_config import get_logger

logger = get_logger("engines.distribution")


class CreditChangeType(str, Enum):
    """Direction of a payment's effect on the unit's credit balance."""

    OVERPAYMENT = "overpayment"
    CREDIT_USED = "credit_used"
    NO_CHANGE = "no_change"


def _require_amount(name: str, value: Any) -> Money:
    if isinstance(value, bool) or not isinstance(value, (Money, int)):
        raise ValidationError(
            f"{name} must be integer minor units, got {type(value).__name__} {value!r}"
        )
    amount = Money.of(value)
    if amount.is_negative:
        raise ValidationError(f"{name} cannot be negative ({amount})")
    return amount


@dataclass(frozen=True)
class BillPayment:
    """
    Funds applied to one bill by one distribution.

    Zero-payment entries carry ``new_status == previous_status``.
    ``due_date`` is the resolved due date when the distributor has a billing
    configuration, otherwise the bill's own (possibly None) due date.
    """

    bill_id: str
    period: str
    due_date: date | None
    base_paid: Money
    penalty_paid: Money
    unpaid_base_before: Money
    unpaid_penalty_before: Money
    previous_status: BillStatus
    new_status: BillStatus

    @property
    def amount_paid(self) -> Money:
        return self.base_paid + self.penalty_paid

    @property
    def total_due_before(self) -> Money:
        return self.unpaid_base_before + self.unpaid_penalty_before

    @property
    def remaining_due(self) -> Money:
        return self.total_due_before - self.amount_paid

    def apply_to(self, bill: Bill) -> Bill:
        """Return ``bill`` with this payment applied."""
        if bill.bill_id != self.bill_id:
            raise ValidationError(
                f"Payment for bill {self.bill_id} cannot be applied to bill {bill.bill_id}"
            )
        return bill.with_payment(self.base_paid, self.penalty_paid)


@dataclass(frozen=True)
class DistributionResult:
    """
    Outcome of distributing one payment.

    Contract:
        ``bill_payments`` and ``bills`` are parallel tuples in walk order
        (oldest first). ``bills`` holds the amounts the walk started from,
        i.e. after any ``as_of_date`` penalty refresh.
    Non-goals:
        - Does not persist; callers save ``updated_bills`` and apply
          ``credit_delta`` atomically.
    """

    bill_payments: tuple[BillPayment, ...]
    bills: tuple[Bill, ...]
    payment_amount: Money
    prior_credit_balance: Money
    total_available_funds: Money
    total_bills_due: Money
    total_base_paid: Money
    total_penalty_paid: Money
    credit_used: Money
    overpayment: Money
    new_credit_balance: Money
    unapplied_funds: Money
    as_of_date: date | None = None

    @property
    def total_applied(self) -> Money:
        return self.total_base_paid + self.total_penalty_paid

    @property
    def credit_delta(self) -> Money:
        """Signed change to the unit's credit balance."""
        return self.overpayment - self.credit_used

    @property
    def credit_change_type(self) -> CreditChangeType:
        if self.overpayment.is_positive:
            return CreditChangeType.OVERPAYMENT
        if self.credit_used.is_positive:
            return CreditChangeType.CREDIT_USED
        return CreditChangeType.NO_CHANGE

    @property
    def updated_bills(self) -> tuple[Bill, ...]:
        """Proposed post-payment bills, in walk order."""
        return tuple(p.apply_to(b) for p, b in zip(self.bill_payments, self.bills))

    @property
    def paid_bills(self) -> tuple[BillPayment, ...]:
        """Entries that received funds."""
        return tuple(p for p in self.bill_payments if p.amount_paid.is_positive)


class PaymentDistributor:
    """
    Oldest-first payment distributor.

    Contract:
        ``distribute`` is a pure function of its arguments and the
        configuration passed at construction.
    Guarantees:
        - Bills are walked in a stable order: resolved due date, then
          period, then bill id.
        - At most one bill ends a distribution partially paid.
    Non-goals:
        - Does not read the credit balance or the clock.
        - Does not round; all amounts are already minor units.
    """

    def __init__(
        self,
        config: BillingConfig | None = None,
        penalty_calculator: PenaltyAccrualCalculator | None = None,
    ):
        self._config = validate_penalty_config(config) if config is not None else None
        self._penalty_calculator = penalty_calculator or PenaltyAccrualCalculator()

    def due_date_of(self, bill: Bill) -> date | None:
        """Explicit or period-derived due date; None only without a config."""
        if self._config is not None:
            return resolve_due_date(bill, self._config)
        return bill.due_date

    def sort_bills(self, bills: Sequence[Bill]) -> tuple[Bill, ...]:
        """Oldest-first ordering; without a config, undated bills sort last."""

        def key(bill: Bill) -> tuple[date, str, str]:
            due = self.due_date_of(bill)
            return (due or date.max, bill.period, bill.bill_id)

        return tuple(sorted(bills, key=key))

    @traced_engine(
        "distribution", "1.0",
        fingerprint_fields=("bills", "payment_amount", "prior_credit_balance", "as_of_date"),
    )
    def distribute(
        self,
        bills: Sequence[Bill],
        payment_amount: Money | int,
        prior_credit_balance: Money | int,
        as_of_date: date | None = None,
    ) -> DistributionResult:
        """
        Distribute ``payment_amount`` plus ``prior_credit_balance``.

        Args:
            bills: Outstanding bills in any order.
            payment_amount: Funds received, minor units.
            prior_credit_balance: Unit credit before this payment.
            as_of_date: Payment date. When given, penalties are recalculated
                as of that date first (backdated payments).

        Returns:
            DistributionResult with one entry per bill.

        Raises:
            ValidationError: Invalid amounts or bills.
            ConfigurationError: ``as_of_date`` without a configuration.
        """
        t0 = time.monotonic()
        payment = _require_amount("payment_amount", payment_amount)
        prior_credit = _require_amount("prior_credit_balance", prior_credit_balance)
        require_unique_bill_ids(bills)

        if as_of_date is not None:
            if self._config is None:
                raise ConfigurationError(
                    "penalty_rate", "as_of_date requires a billing configuration"
                )
            bills = self._penalty_calculator.recalculate(bills, as_of_date, self._config)

        ordered = self.sort_bills(bills)
        total_available = payment + prior_credit
        total_bills_due = sum_money(b.unpaid_total for b in ordered)

        logger.info("distribution_started", extra={
            "bill_count": len(ordered),
            "payment_amount": payment.minor_units,
            "prior_credit_balance": prior_credit.minor_units,
            "total_available": total_available.minor_units,
            "total_bills_due": total_bills_due.minor_units,
            "as_of_date": as_of_date.isoformat() if as_of_date else None,
        })

        remaining = total_available
        payments: list[BillPayment] = []
        for bill in ordered:
            unpaid_penalty = bill.unpaid_penalty
            unpaid_base = bill.unpaid_base
            unpaid_total = bill.unpaid_total

            if remaining.is_zero:
                penalty_paid = base_paid = ZERO
            elif remaining >= unpaid_total:
                penalty_paid, base_paid = unpaid_penalty, unpaid_base
                remaining -= unpaid_total
            else:
                penalty_paid = min(remaining, unpaid_penalty)
                remaining -= penalty_paid
                base_paid = min(remaining, unpaid_base)
                remaining -= base_paid

            entry = BillPayment(
                bill_id=bill.bill_id,
                period=bill.period,
                due_date=self.due_date_of(bill),
                base_paid=base_paid,
                penalty_paid=penalty_paid,
                unpaid_base_before=unpaid_base,
                unpaid_penalty_before=unpaid_penalty,
                previous_status=bill.status,
                new_status=bill.with_payment(base_paid, penalty_paid).status,
            )
            payments.append(entry)

            if entry.amount_paid.is_positive:
                event = (
                    "distribution_bill_paid"
                    if entry.new_status is BillStatus.PAID
                    else "distribution_bill_partial"
                )
                logger.debug(event, extra={
                    "bill_id": bill.bill_id,
                    "period": bill.period,
                    "base_paid": base_paid.minor_units,
                    "penalty_paid": penalty_paid.minor_units,
                    "remaining_funds": remaining.minor_units,
                })

            # INVARIANT: no bill is paid beyond its unpaid amounts
            assert base_paid <= unpaid_base and penalty_paid <= unpaid_penalty, (
                f"Bill {bill.bill_id} overpaid: base {base_paid}/{unpaid_base}, "
                f"penalty {penalty_paid}/{unpaid_penalty}"
            )

        if payment >= total_bills_due:
            credit_used = ZERO
            overpayment = payment - total_bills_due
        else:
            credit_used = min(total_bills_due - payment, prior_credit)
            overpayment = ZERO
        new_credit_balance = prior_credit - credit_used + overpayment

        result = DistributionResult(
            bill_payments=tuple(payments),
            bills=ordered,
            payment_amount=payment,
            prior_credit_balance=prior_credit,
            total_available_funds=total_available,
            total_bills_due=total_bills_due,
            total_base_paid=sum_money(p.base_paid for p in payments),
            total_penalty_paid=sum_money(p.penalty_paid for p in payments),
            credit_used=credit_used,
            overpayment=overpayment,
            new_credit_balance=new_credit_balance,
            unapplied_funds=remaining,
            as_of_date=as_of_date,
        )

        # INVARIANT: conservation of funds
        assert result.total_applied + overpayment == payment + credit_used, (
            f"Applied {result.total_applied} + overpayment {overpayment} != "
            f"payment {payment} + credit used {credit_used}"
        )
        assert remaining == new_credit_balance, (
            f"Unapplied funds {remaining} != new credit balance {new_credit_balance}"
        )
        # INVARIANT: credit is either consumed or added, never both
        assert credit_used.is_zero or overpayment.is_zero
        assert not new_credit_balance.is_negative

        logger.info("distribution_completed", extra={
            "bill_count": len(payments),
            "bills_paid": sum(1 for p in payments if p.amount_paid and p.new_status is BillStatus.PAID),
            "total_base_paid": result.total_base_paid.minor_units,
            "total_penalty_paid": result.total_penalty_paid.minor_units,
            "credit_used": credit_used.minor_units,
            "overpayment": overpayment.minor_units,
            "new_credit_balance": new_credit_balance.minor_units,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result
