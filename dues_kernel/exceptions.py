"""
Typed Exception Hierarchy for the Dues Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Billing errors must be handled precisely. Callers catch by type and read
structured attributes; they never parse message strings.

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        result = distributor.distribute(bills, payment, credit)
    except ValidationError as e:
        return {"error": e.code, "details": list(e.errors)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DuesEngineError (base)
    |
    +-- ConfigurationError         penalty_rate / penalty_days missing or invalid
    |
    +-- ValidationError            caller contract violation (negative amounts,
    |                              malformed bills, bad period keys)
    |
    +-- IntegrityError             allocations do not reconcile with the
    |                              transaction total; blocks persistence
    |
    +-- CreditBalanceError
        +-- InsufficientCreditError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Penalty policy field absent/non-numeric
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed engine input
----------------|-----------------------------|-----------------------------------------
Integrity       | ALLOCATION_INTEGRITY_ERROR  | Allocation sum != transaction total
----------------|-----------------------------|-----------------------------------------
Credit          | CREDIT_BALANCE_ERROR        | Credit store failure
                | INSUFFICIENT_CREDIT         | Delta would drive balance below zero

===============================================================================
PROPAGATION
===============================================================================

Engines never retry (they have no I/O) and never return partial results.
Allocation integrity is *reported* by the engine through
``AllocationSummary.is_valid``; only the service layer raises
``IntegrityError``, before any write happens.
"""

from __future__ import annotations

from collections.abc import Iterable


class DuesEngineError(Exception):
    """
    Base exception for all dues engine errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "DUES_ENGINE_ERROR"


class ConfigurationError(DuesEngineError):
    """A required billing configuration field is missing or invalid.

    Raised immediately; the engine never substitutes a default for the
    penalty policy.
    """

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid billing configuration '{field}': {reason}")


class ValidationError(DuesEngineError):
    """Engine input violates the caller contract.

    Carries every problem found so callers can present them at once.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, errors: str | Iterable[str]):
        if isinstance(errors, str):
            errors = (errors,)
        self.errors = tuple(errors)
        super().__init__("; ".join(self.errors) or "Validation failed")


class IntegrityError(DuesEngineError):
    """
    Allocations do not reconcile with the expected transaction total.

    Raised by the service layer when ``AllocationBuilder.validate`` reports
    problems. Persistence must not happen after this error.
    """

    code: str = "ALLOCATION_INTEGRITY_ERROR"

    def __init__(
        self,
        expected_total: int,
        total_allocated: int,
        errors: Iterable[str] = (),
    ):
        self.expected_total = expected_total
        self.total_allocated = total_allocated
        self.errors = tuple(errors)
        super().__init__(
            f"Allocations total {total_allocated} does not reconcile with "
            f"expected {expected_total}: {'; '.join(self.errors)}"
        )


# Credit balance exceptions


class CreditBalanceError(DuesEngineError):
    """Base exception for credit balance store errors."""

    code: str = "CREDIT_BALANCE_ERROR"


class InsufficientCreditError(CreditBalanceError):
    """Applying the delta would make the unit's credit balance negative."""

    code: str = "INSUFFICIENT_CREDIT"

    def __init__(self, unit_id: str, balance: int, delta: int):
        self.unit_id = unit_id
        self.balance = balance
        self.delta = delta
        super().__init__(
            f"Credit delta {delta} would overdraw unit {unit_id} "
            f"(balance {balance})"
        )
