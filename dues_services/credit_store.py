"""
dues_services.credit_store -- SQLAlchemy-backed unit credit balances.

Responsibility:
    Reference ``CreditBalanceStore``: reads a unit's credit balance and
    applies signed deltas as atomic increments, appending one history entry
    per change.

Architecture position:
    Services -- persistence adapter. Receives a Session by constructor
    injection; the caller owns the transaction (see
    ``dues_kernel.db.session_scope``).

Invariants enforced:
    - Balances change only via ``UPDATE ... SET balance = balance + :delta
      WHERE balance + :delta >= 0``. No read-modify-write, so concurrent
      deltas from different billing modules never lose updates.
    - A balance never goes negative.
    - A zero delta writes nothing.

Failure modes:
    - InsufficientCreditError when a negative delta exceeds the balance.
    - sqlalchemy IntegrityError if two sessions create the same unit's
      first balance row concurrently; the caller retries.
"""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from dues_kernel.domain.billing_config import ModuleKind
from dues_kernel.domain.values import ZERO, Money
from dues_kernel.exceptions import InsufficientCreditError
from dues_kernel.logging_config import get_logger
from dues_kernel.models.credit import CreditBalanceEntry, UnitCreditBalance

logger = get_logger("services.credit_store")


class SqlAlchemyCreditBalanceStore:
    """Credit balances in ``unit_credit_balances`` with append-only history."""

    def __init__(self, session: Session):
        self._session = session

    def get_credit_balance(self, client_id: str, unit_id: str) -> Money:
        balance = self._session.scalar(
            select(UnitCreditBalance.balance).where(
                UnitCreditBalance.client_id == client_id,
                UnitCreditBalance.unit_id == unit_id,
            )
        )
        return ZERO if balance is None else Money(balance)

    def apply_delta(
        self,
        client_id: str,
        unit_id: str,
        delta: Money | int,
        *,
        change_type: str,
        module_kind: ModuleKind | str | None = None,
        transaction_id: str | None = None,
        note: str | None = None,
    ) -> Money:
        """
        Atomically add ``delta`` (signed) to the unit's balance.

        Returns:
            The balance after the change.

        Raises:
            InsufficientCreditError: If the result would be negative.
        """
        delta = Money.of(delta)
        if delta.is_zero:
            return self.get_credit_balance(client_id, unit_id)

        amount = delta.minor_units
        result = self._session.execute(
            update(UnitCreditBalance)
            .where(
                UnitCreditBalance.client_id == client_id,
                UnitCreditBalance.unit_id == unit_id,
                UnitCreditBalance.balance + amount >= 0,
            )
            .values(balance=UnitCreditBalance.balance + amount)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current = self._session.scalar(
                select(UnitCreditBalance.balance).where(
                    UnitCreditBalance.client_id == client_id,
                    UnitCreditBalance.unit_id == unit_id,
                )
            )
            if current is not None or delta.is_negative:
                logger.warning("credit_delta_rejected", extra={
                    "client_id": client_id,
                    "unit_id": unit_id,
                    "balance": current or 0,
                    "delta": amount,
                })
                raise InsufficientCreditError(unit_id, current or 0, amount)
            self._session.add(
                UnitCreditBalance(client_id=client_id, unit_id=unit_id, balance=amount)
            )
            self._session.flush()

        new_balance = self.get_credit_balance(client_id, unit_id)
        last_entry = self._session.scalar(
            select(func.max(CreditBalanceEntry.entry_number)).where(
                CreditBalanceEntry.client_id == client_id,
                CreditBalanceEntry.unit_id == unit_id,
            )
        )
        entry = CreditBalanceEntry(
            client_id=client_id,
            unit_id=unit_id,
            entry_number=(last_entry or 0) + 1,
            amount=amount,
            balance_after=new_balance.minor_units,
            change_type=change_type,
            module_kind=ModuleKind(module_kind).value if module_kind is not None else None,
            transaction_id=transaction_id,
            note=note,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info("credit_balance_changed", extra={
            "client_id": client_id,
            "unit_id": unit_id,
            "delta": amount,
            "balance_after": new_balance.minor_units,
            "change_type": change_type,
            "transaction_id": transaction_id,
        })
        return new_balance

    def get_history(self, client_id: str, unit_id: str) -> list[CreditBalanceEntry]:
        """History entries in the order they were applied."""
        return list(self._session.scalars(
            select(CreditBalanceEntry)
            .where(
                CreditBalanceEntry.client_id == client_id,
                CreditBalanceEntry.unit_id == unit_id,
            )
            .order_by(CreditBalanceEntry.entry_number)
        ))
