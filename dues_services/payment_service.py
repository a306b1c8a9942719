"""
dues_services.payment_service -- Payment preview and recording workflow.

Responsibility:
    Orchestrate one payment for one unit and billing module: load bills,
    configuration and credit; run the distribution and allocation engines;
    and, when recording, refuse unreconciled allocations before writing the
    ledger entry, bill deltas and credit delta.

Architecture position:
    Services -- stateful orchestration over engines + kernel. All I/O goes
    through the collaborator ports in ``dues_services.ports``.

Invariants enforced:
    - Preview and record run the same math; record only adds writes.
    - Penalties are always refreshed as of the payment date (backdated
      payments see backdated penalties).
    - Nothing is written when allocation validation fails (IntegrityError
      is raised first).
    - The credit balance changes only through ``CreditBalanceStore.apply_delta``
      with the signed delta produced by the engine.

Failure modes:
    - ConfigurationError / FileNotFoundError from the config source.
    - ValidationError for invalid amounts, bills or module kinds.
    - IntegrityError when allocations do not reconcile.
    - InsufficientCreditError from the credit store when the stored balance
      moved below what the distribution consumed.

Concurrency:
    Callers must run ``record_payment`` inside one transaction (or an
    optimistic retry loop) covering the bill read and all writes. Two
    concurrent payments for the same unit must not both read the same
    pre-payment bills.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date

from dues_engines.allocation import (
    Allocation,
    AllocationBuilder,
    AllocationSummary,
    AllocationValidation,
)
from dues_engines.distribution import CreditChangeType, DistributionResult, PaymentDistributor
from dues_engines.penalty import PenaltyAccrualCalculator
from dues_kernel.domain.billing_config import ModuleKind, coerce_module_kind
from dues_kernel.domain.clock import Clock, SystemClock
from dues_kernel.domain.values import Money
from dues_kernel.exceptions import IntegrityError, ValidationError
from dues_kernel.logging_config import LogContext, get_logger
from dues_services.ports import (
    BillingConfigSource,
    BillSource,
    BillWriter,
    CreditBalanceStore,
    PaymentLedgerWriter,
)

logger = get_logger("services.payment")

_MODULE_DISPLAY_NAMES = {
    ModuleKind.WATER: "Water",
    ModuleKind.HOA: "HOA",
    ModuleKind.PROPANE: "Propane",
}


def _major(amount: Money) -> str:
    return f"${amount.to_major():,.2f}"


def describe_credit_change(distribution: DistributionResult, module_kind: ModuleKind | str) -> str:
    """Human-readable note for a credit history entry."""
    module = coerce_module_kind(module_kind)
    paid = distribution.paid_bills
    if not paid:
        return f"{module.value} bill overpayment - no bills due"
    periods = ", ".join(p.period for p in paid)
    return (
        f"{_MODULE_DISPLAY_NAMES[module]} bills paid: {periods} "
        f"(Base: {_major(distribution.total_base_paid)}, "
        f"Penalties: {_major(distribution.total_penalty_paid)})"
    )


@dataclass(frozen=True)
class PaymentPreview:
    """Everything a payment would do, computed without writing."""

    client_id: str
    unit_id: str
    module_kind: ModuleKind
    payment_date: date
    distribution: DistributionResult
    allocations: tuple[Allocation, ...]
    summary: AllocationSummary
    validation: AllocationValidation

    @property
    def is_valid(self) -> bool:
        return self.validation.valid


@dataclass(frozen=True)
class PaymentReceipt:
    """A recorded payment, as handed to the ledger writer."""

    transaction_id: str
    preview: PaymentPreview
    credit_note: str

    @property
    def distribution(self) -> DistributionResult:
        return self.preview.distribution

    @property
    def allocations(self) -> tuple[Allocation, ...]:
        return self.preview.allocations

    @property
    def credit_type(self) -> str | None:
        """``<module>_overpayment`` / ``<module>_credit_used``, or None."""
        change = self.distribution.credit_change_type
        if change is CreditChangeType.NO_CHANGE:
            return None
        return f"{self.preview.module_kind.value}_{change.value}"


class PaymentService:
    """
    Payment workflow for one client.

    Contract:
        Collaborators are injected; the service holds no per-payment state.
    Non-goals:
        - Does not manage transactions; see the module docstring.
    """

    def __init__(
        self,
        bill_source: BillSource,
        config_source: BillingConfigSource,
        credit_store: CreditBalanceStore,
        ledger_writer: PaymentLedgerWriter,
        bill_writer: BillWriter,
        clock: Clock | None = None,
        penalty_calculator: PenaltyAccrualCalculator | None = None,
    ):
        self._bills = bill_source
        self._configs = config_source
        self._credit = credit_store
        self._ledger = ledger_writer
        self._bill_writer = bill_writer
        self._clock = clock or SystemClock()
        self._penalty_calculator = penalty_calculator or PenaltyAccrualCalculator()
        self._allocation_builder = AllocationBuilder()

    def preview_payment(
        self,
        client_id: str,
        unit_id: str,
        module_kind: ModuleKind | str,
        payment_amount: Money | int,
        payment_date: date | None = None,
    ) -> PaymentPreview:
        """Compute distribution and allocations for a payment. No writes."""
        module = coerce_module_kind(module_kind)
        as_of = payment_date or self._clock.today()

        with LogContext.bind(client_id=client_id, unit_id=unit_id, module_kind=module.value):
            config = self._configs.get_billing_config(client_id, module)
            bills = self._bills.get_outstanding_bills(client_id, unit_id, module)
            prior_credit = self._credit.get_credit_balance(client_id, unit_id)

            distributor = PaymentDistributor(config, self._penalty_calculator)
            distribution = distributor.distribute(
                bills, payment_amount, prior_credit, as_of_date=as_of,
            )

            builder = self._allocation_builder
            allocations = builder.build_allocations(distribution, unit_id, module)
            summary = builder.summarize(allocations, distribution.payment_amount)
            validation = builder.validate(allocations, distribution.payment_amount)

            logger.info("payment_previewed", extra={
                "payment_date": as_of.isoformat(),
                "payment_amount": distribution.payment_amount.minor_units,
                "allocation_count": len(allocations),
                "credit_delta": distribution.credit_delta.minor_units,
                "valid": validation.valid,
            })

        return PaymentPreview(
            client_id=client_id,
            unit_id=unit_id,
            module_kind=module,
            payment_date=as_of,
            distribution=distribution,
            allocations=allocations,
            summary=summary,
            validation=validation,
        )

    def record_payment(
        self,
        client_id: str,
        unit_id: str,
        module_kind: ModuleKind | str,
        payment_amount: Money | int,
        transaction_id: str,
        payment_date: date | None = None,
    ) -> PaymentReceipt:
        """
        Record a payment.

        Writes, in order: ledger entry, updated bills, credit delta.

        Raises:
            IntegrityError: Allocations do not reconcile (nothing written).
        """
        if not transaction_id:
            raise ValidationError("transaction_id is required")

        t0 = time.monotonic()
        preview = self.preview_payment(
            client_id, unit_id, module_kind, payment_amount, payment_date,
        )
        distribution = preview.distribution

        with LogContext.bind(
            client_id=client_id,
            unit_id=unit_id,
            module_kind=preview.module_kind.value,
            payment_id=transaction_id,
        ):
            if not preview.is_valid:
                logger.error("payment_rejected_integrity", extra={
                    "expected_total": preview.summary.expected_total.minor_units,
                    "total_allocated": preview.summary.total_allocated.minor_units,
                    "errors": list(preview.validation.errors),
                })
                raise IntegrityError(
                    expected_total=preview.summary.expected_total.minor_units,
                    total_allocated=preview.summary.total_allocated.minor_units,
                    errors=preview.validation.errors,
                )

            receipt = PaymentReceipt(
                transaction_id=transaction_id,
                preview=preview,
                credit_note=describe_credit_change(distribution, preview.module_kind),
            )

            self._ledger.write_payment(receipt)
            self._bill_writer.save_bills(
                client_id, unit_id, preview.module_kind, distribution.updated_bills,
            )
            if receipt.credit_type is not None:
                self._credit.apply_delta(
                    client_id,
                    unit_id,
                    distribution.credit_delta,
                    change_type=receipt.credit_type,
                    module_kind=preview.module_kind,
                    transaction_id=transaction_id,
                    note=receipt.credit_note,
                )

            logger.info("payment_recorded", extra={
                "payment_amount": distribution.payment_amount.minor_units,
                "total_applied": distribution.total_applied.minor_units,
                "credit_delta": distribution.credit_delta.minor_units,
                "new_credit_balance": distribution.new_credit_balance.minor_units,
                "bills_paid": len(distribution.paid_bills),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })
        return receipt
