"""
Module: dues_kernel.models.credit
Responsibility: ORM persistence for unit credit balances and their
    append-only history of signed changes.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One balance row per (client_id, unit_id) (uq_unit_credit_balance).
    - balance is integer minor units and never negative
      (ck_unit_credit_balance_non_negative).
    - History entries are append-only; each records the signed amount and
      the balance immediately after it was applied.

Failure modes:
    - IntegrityError on a duplicate (client_id, unit_id) balance row.
    - IntegrityError if an UPDATE would drive a balance negative.

Audit relevance:
    Replaying a unit's entries in ``entry_number`` order reproduces its
    current balance.  Each entry links back to the payment transaction that
    caused it.
"""

from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dues_kernel.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UnitCreditBalance(Base):
    """
    Current credit pool of one unit, shared across billing modules.

    Contract:
        Only changed through atomic increments
        (``SqlAlchemyCreditBalanceStore.apply_delta``).
    """

    __tablename__ = "unit_credit_balances"

    __table_args__ = (
        UniqueConstraint("client_id", "unit_id", name="uq_unit_credit_balance"),
        CheckConstraint("balance >= 0", name="ck_unit_credit_balance_non_negative"),
    )

    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_id: Mapped[str] = mapped_column(String(100), nullable=False)
    balance: Mapped[int] = mapped_column(nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<UnitCreditBalance {self.client_id}/{self.unit_id}: {self.balance}>"


class CreditBalanceEntry(Base):
    """One signed change to a unit's credit balance (append-only)."""

    __tablename__ = "credit_balance_entries"

    __table_args__ = (
        UniqueConstraint(
            "client_id", "unit_id", "entry_number", name="uq_credit_entry_number",
        ),
        Index("idx_credit_entry_unit", "client_id", "unit_id"),
        Index("idx_credit_entry_transaction", "transaction_id"),
    )

    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entry_number: Mapped[int] = mapped_column(nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)
    balance_after: Mapped[int] = mapped_column(nullable=False)
    change_type: Mapped[str] = mapped_column(String(50), nullable=False)
    module_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<CreditBalanceEntry {self.client_id}/{self.unit_id} "
            f"#{self.entry_number}: {self.amount:+d}>"
        )
