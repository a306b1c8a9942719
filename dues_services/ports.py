"""
dues_services.ports -- Collaborator interfaces consumed by the services.

The engines never fetch anything; services receive these collaborators by
constructor injection. Implementations in this repository:
``dues_config.YamlBillingConfigSource`` and
``dues_services.credit_store.SqlAlchemyCreditBalanceStore``. Bill storage
and the transaction ledger belong to the host application.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from dues_kernel.domain.billing_config import BillingConfig, ModuleKind
from dues_kernel.domain.bills import Bill
from dues_kernel.domain.values import Money

if TYPE_CHECKING:
    from dues_services.payment_service import PaymentReceipt


@runtime_checkable
class BillSource(Protocol):
    """Reads a unit's unpaid and partially paid bills, in any order."""

    def get_outstanding_bills(
        self, client_id: str, unit_id: str, module_kind: ModuleKind,
    ) -> Sequence[Bill]:
        ...


@runtime_checkable
class BillingConfigSource(Protocol):
    """Resolves billing configuration; must fail loudly when policy is absent."""

    def get_billing_config(self, client_id: str, module_kind: ModuleKind) -> BillingConfig:
        ...


@runtime_checkable
class CreditBalanceStore(Protocol):
    """Unit credit pool shared across billing modules."""

    def get_credit_balance(self, client_id: str, unit_id: str) -> Money:
        ...

    def apply_delta(
        self,
        client_id: str,
        unit_id: str,
        delta: Money,
        *,
        change_type: str,
        module_kind: ModuleKind | None = None,
        transaction_id: str | None = None,
        note: str | None = None,
    ) -> Money:
        """Apply a signed delta atomically and return the new balance.

        Raises:
            InsufficientCreditError: If the balance would go negative.
        """
        ...


@runtime_checkable
class BillWriter(Protocol):
    """Persists updated bills (payment deltas or refreshed penalties)."""

    def save_bills(
        self, client_id: str, unit_id: str, module_kind: ModuleKind, bills: Sequence[Bill],
    ) -> None:
        ...


@runtime_checkable
class PaymentLedgerWriter(Protocol):
    """Writes the payment transaction and its allocation lines."""

    def write_payment(self, receipt: PaymentReceipt) -> None:
        ...
