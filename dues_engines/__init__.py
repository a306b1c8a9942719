"""
Module: dues_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines. This is the canonical import surface for
    dues_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dues_kernel domain values, exceptions and logging.
    MUST NOT import dues_config or dues_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Evaluation dates are explicit parameters supplied by services.
    - Integer minor units only; no float arithmetic on money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine`` (see
    ``dues_engines.tracer``), emitting DUES_ENGINE_TRACE log records with
    engine name, version, input fingerprint and duration.

Usage:
    from dues_engines import PaymentDistributor, AllocationBuilder

    result = PaymentDistributor(config).distribute(bills, 60000, 0)
    allocations = AllocationBuilder().build_allocations(result, "A-101", "hoa")
"""

from dues_engines.allocation import (
    Allocation,
    AllocationBuilder,
    AllocationKind,
    AllocationSummary,
    AllocationValidation,
    module_categories,
)
from dues_engines.distribution import (
    BillPayment,
    CreditChangeType,
    DistributionResult,
    PaymentDistributor,
)
from dues_engines.grouping import BillGroup, BillGroupResolver
from dues_engines.penalty import (
    BillPenaltyChange,
    PenaltyAccrualCalculator,
    PenaltyRecalculationResult,
    compound_penalty,
    months_overdue,
    resolve_due_date,
)
from dues_engines.tracer import traced_engine

__all__ = [
    "Allocation",
    "AllocationBuilder",
    "AllocationKind",
    "AllocationSummary",
    "AllocationValidation",
    "BillGroup",
    "BillGroupResolver",
    "BillPayment",
    "BillPenaltyChange",
    "CreditChangeType",
    "DistributionResult",
    "PaymentDistributor",
    "PenaltyAccrualCalculator",
    "PenaltyRecalculationResult",
    "compound_penalty",
    "module_categories",
    "months_overdue",
    "resolve_due_date",
    "traced_engine",
]
