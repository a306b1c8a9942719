"""
Module: dues_engines.allocation
Responsibility:
    Turn a DistributionResult into signed, auditable allocation lines (one
    per bill component paid, plus at most one credit line), summarize them,
    and validate that they reconcile with the transaction amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Zero-amount allocations are never emitted.
    - Bill allocations are positive; the credit allocation is positive for
      an overpayment and negative for credit consumed.
    - For a payment transaction the signed sum of allocations equals the
      payment amount exactly.
    - Allocation ids are sequential and deterministic (alloc_001, ...).

Failure modes:
    - ValidationError on an unknown module kind or empty unit id.
    - ``validate`` never raises; it returns every problem it finds.

Audit relevance:
    Downstream ledger writers must refuse to persist a transaction whose
    ``AllocationSummary.is_valid`` is False.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from dues_engines.distribution import DistributionResult
from dues_engines.tracer import traced_engine
from dues_kernel.domain.billing_config import ModuleKind, coerce_module_kind
from dues_kernel.domain.values import ZERO, Money, sum_money
from dues_kernel.exceptions import ValidationError
from dues_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationKind(str, Enum):
    """What an allocation line pays for."""

    BILL_BASE = "bill_base"
    BILL_PENALTY = "bill_penalty"
    CREDIT = "credit"


@dataclass(frozen=True)
class ModuleCategories:
    """Ledger categories used for one billing module."""

    base_category: str
    base_category_name: str
    penalty_category: str
    penalty_category_name: str


MODULE_CATEGORIES: dict[ModuleKind, ModuleCategories] = {
    ModuleKind.WATER: ModuleCategories(
        "water-consumption", "Water Consumption", "water-penalties", "Water Penalties",
    ),
    ModuleKind.HOA: ModuleCategories(
        "hoa-dues", "HOA Dues", "hoa-penalties", "HOA Penalties",
    ),
    ModuleKind.PROPANE: ModuleCategories(
        "propane-charges", "Propane Charges", "propane-penalties", "Propane Penalties",
    ),
}

CREDIT_CATEGORY = "account-credit"
CREDIT_CATEGORY_NAME = "Account Credit"


def module_categories(module_kind: ModuleKind | str) -> ModuleCategories:
    """Look up ledger categories; unknown modules are an error."""
    return MODULE_CATEGORIES[coerce_module_kind(module_kind)]


@dataclass(frozen=True)
class Allocation:
    """
    One signed ledger line linking part of a payment to a bill or to credit.

    Contract:
        ``target_bill_id`` is set for bill lines and None for the credit line.
    """

    allocation_id: str
    kind: AllocationKind
    target_id: str
    target_name: str
    amount: Money
    category: str
    category_name: str
    unit_id: str
    module_kind: ModuleKind
    target_bill_id: str | None = None
    bill_period: str | None = None
    credit_type: str | None = None


@dataclass(frozen=True)
class AllocationSummary:
    """Totals of an allocation set compared against the expected total."""

    total_allocated: Money
    expected_total: Money
    tolerance: Money
    allocation_count: int
    bills_touched: int
    total_base: Money
    total_penalty: Money
    total_credit: Money

    @property
    def difference(self) -> Money:
        return self.total_allocated - self.expected_total

    @property
    def is_valid(self) -> bool:
        return abs(self.difference) <= self.tolerance

    @property
    def has_penalties(self) -> bool:
        return self.total_penalty.is_positive

    @property
    def has_credit(self) -> bool:
        return not self.total_credit.is_zero


@dataclass(frozen=True)
class AllocationValidation:
    """Itemized validation outcome."""

    valid: bool
    errors: tuple[str, ...] = ()


def allocation_id(index: int) -> str:
    """1-based sequential id, zero padded to three digits."""
    return f"alloc_{index:03d}"


class AllocationBuilder:
    """
    Builds and checks allocation lines for one payment.

    Contract:
        Pure; the same DistributionResult always yields the same lines with
        the same ids.
    Guarantees:
        - Bill lines follow the distribution's walk order, base before
          penalty for each bill, then the credit line.
    Non-goals:
        - Does not persist allocations or raise on reconciliation failure;
          the service layer turns an invalid summary into IntegrityError.
    """

    @traced_engine("allocation", "1.0", fingerprint_fields=("unit_id", "module_kind"))
    def build_allocations(
        self,
        distribution: DistributionResult,
        unit_id: str,
        module_kind: ModuleKind | str,
    ) -> tuple[Allocation, ...]:
        if not unit_id:
            raise ValidationError("unit_id is required")
        categories = module_categories(module_kind)
        module = coerce_module_kind(module_kind)

        allocations: list[Allocation] = []

        def next_id() -> str:
            return allocation_id(len(allocations) + 1)

        for payment in distribution.bill_payments:
            if payment.base_paid.is_positive:
                allocations.append(Allocation(
                    allocation_id=next_id(),
                    kind=AllocationKind.BILL_BASE,
                    target_id=f"bill_{payment.bill_id}",
                    target_name=f"{payment.period} - Unit {unit_id}",
                    amount=payment.base_paid,
                    category=categories.base_category,
                    category_name=categories.base_category_name,
                    unit_id=unit_id,
                    module_kind=module,
                    target_bill_id=payment.bill_id,
                    bill_period=payment.period,
                ))
            if payment.penalty_paid.is_positive:
                allocations.append(Allocation(
                    allocation_id=next_id(),
                    kind=AllocationKind.BILL_PENALTY,
                    target_id=f"penalty_{payment.bill_id}",
                    target_name=f"{payment.period} Penalties - Unit {unit_id}",
                    amount=payment.penalty_paid,
                    category=categories.penalty_category,
                    category_name=categories.penalty_category_name,
                    unit_id=unit_id,
                    module_kind=module,
                    target_bill_id=payment.bill_id,
                    bill_period=payment.period,
                ))

        credit_amount = ZERO
        credit_type = None
        if distribution.overpayment.is_positive:
            credit_amount = distribution.overpayment
            credit_type = f"{module.value}_overpayment"
        elif distribution.credit_used.is_positive:
            credit_amount = -distribution.credit_used
            credit_type = f"{module.value}_credit_used"

        if credit_type is not None:
            allocations.append(Allocation(
                allocation_id=next_id(),
                kind=AllocationKind.CREDIT,
                target_id=f"credit_{unit_id}_{module.value}",
                target_name=f"Account Credit - Unit {unit_id}",
                amount=credit_amount,
                category=CREDIT_CATEGORY,
                category_name=CREDIT_CATEGORY_NAME,
                unit_id=unit_id,
                module_kind=module,
                credit_type=credit_type,
            ))

        logger.info("allocations_built", extra={
            "unit_id": unit_id,
            "module_kind": module.value,
            "allocation_count": len(allocations),
            "total_allocated": sum_money(a.amount for a in allocations).minor_units,
        })
        return tuple(allocations)

    def summarize(
        self,
        allocations: Sequence[Allocation],
        expected_total: Money | int,
    ) -> AllocationSummary:
        """
        Signed totals and the reconciliation check.

        Tolerance is one minor unit per distinct bill touched.
        """
        expected = Money.of(expected_total)
        bills_touched = len({a.target_bill_id for a in allocations if a.target_bill_id})

        def total_of(kind: AllocationKind) -> Money:
            return sum_money(a.amount for a in allocations if a.kind is kind)

        return AllocationSummary(
            total_allocated=sum_money(a.amount for a in allocations),
            expected_total=expected,
            tolerance=Money(bills_touched),
            allocation_count=len(allocations),
            bills_touched=bills_touched,
            total_base=total_of(AllocationKind.BILL_BASE),
            total_penalty=total_of(AllocationKind.BILL_PENALTY),
            total_credit=total_of(AllocationKind.CREDIT),
        )

    def validate(
        self,
        allocations: Sequence[Allocation],
        expected_total: Money | int,
    ) -> AllocationValidation:
        """Structural checks plus reconciliation; returns every error found."""
        errors: list[str] = []
        if not allocations:
            errors.append("At least one allocation is required")

        seen_ids: set[str] = set()
        amounts_ok = True
        for index, alloc in enumerate(allocations, start=1):
            label = f"Allocation {index}"
            alloc_id = getattr(alloc, "allocation_id", None)
            if not alloc_id:
                errors.append(f"{label}: missing allocation_id")
            elif alloc_id in seen_ids:
                errors.append(f"{label}: duplicate allocation_id {alloc_id}")
            else:
                seen_ids.add(alloc_id)

            kind = getattr(alloc, "kind", None)
            if not isinstance(kind, AllocationKind):
                errors.append(f"{label}: missing or unknown kind {kind!r}")
            if not getattr(alloc, "target_id", None):
                errors.append(f"{label}: missing target_id")
            if not getattr(alloc, "category", None):
                errors.append(f"{label}: missing category")

            amount = getattr(alloc, "amount", None)
            if not isinstance(amount, Money):
                errors.append(f"{label}: amount must be Money, got {amount!r}")
                amounts_ok = False
                continue

            target_bill_id = getattr(alloc, "target_bill_id", None)
            if kind is AllocationKind.CREDIT:
                if target_bill_id is not None:
                    errors.append(f"{label}: credit allocation cannot target a bill")
                if amount.is_zero:
                    errors.append(f"{label}: credit allocation amount is zero")
            elif isinstance(kind, AllocationKind):
                if not target_bill_id:
                    errors.append(f"{label}: bill allocation requires target_bill_id")
                if not amount.is_positive:
                    errors.append(f"{label}: bill allocation amount must be positive ({amount})")

        if amounts_ok and allocations:
            summary = self.summarize(allocations, expected_total)
            if not summary.is_valid:
                errors.append(
                    f"Total allocations ({summary.total_allocated}) do not match "
                    f"expected total ({summary.expected_total}); difference "
                    f"{summary.difference} exceeds tolerance {summary.tolerance}"
                )

        if errors:
            logger.warning("allocation_validation_failed", extra={
                "error_count": len(errors),
                "errors": errors,
            })
        return AllocationValidation(valid=not errors, errors=tuple(errors))
