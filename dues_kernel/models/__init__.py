"""ORM models for the reference credit ledger."""

from dues_kernel.models.credit import CreditBalanceEntry, UnitCreditBalance

__all__ = [
    "CreditBalanceEntry",
    "UnitCreditBalance",
]
