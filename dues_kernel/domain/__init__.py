"""
Pure domain layer of the dues kernel.

Everything here is immutable and free of I/O: ``Money``, ``Bill``,
``BillingConfig`` and the ``Clock`` abstraction.
"""

from dues_kernel.domain.billing_config import (
    BillingConfig,
    BillingFrequency,
    ModuleKind,
    coerce_module_kind,
    validate_penalty_config,
)
from dues_kernel.domain.bills import Bill, BillStatus, derive_status
from dues_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from dues_kernel.domain.values import ZERO, Money, sum_money, to_rate

__all__ = [
    "Bill",
    "BillStatus",
    "BillingConfig",
    "BillingFrequency",
    "Clock",
    "DeterministicClock",
    "ModuleKind",
    "Money",
    "SystemClock",
    "ZERO",
    "coerce_module_kind",
    "derive_status",
    "sum_money",
    "to_rate",
    "validate_penalty_config",
]
