"""
Dues services -- stateful orchestration over engines and kernel.

Exports:
    PaymentService           Payment preview and recording.
    PenaltyRefreshService    Batch penalty recalculation (commits).
    SqlAlchemyCreditBalanceStore  Reference credit-balance store.
"""

from dues_services.credit_store import SqlAlchemyCreditBalanceStore
from dues_services.payment_service import (
    PaymentPreview,
    PaymentReceipt,
    PaymentService,
    describe_credit_change,
)
from dues_services.penalty_refresh import PenaltyRefreshService
from dues_services.ports import (
    BillingConfigSource,
    BillSource,
    BillWriter,
    CreditBalanceStore,
    PaymentLedgerWriter,
)

__all__ = [
    "BillSource",
    "BillWriter",
    "BillingConfigSource",
    "CreditBalanceStore",
    "PaymentLedgerWriter",
    "PaymentPreview",
    "PaymentReceipt",
    "PaymentService",
    "PenaltyRefreshService",
    "SqlAlchemyCreditBalanceStore",
    "describe_credit_change",
]
