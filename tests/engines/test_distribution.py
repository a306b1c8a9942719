"""
Tests for the payment distributor.

Covers:
- Oldest-first walk with penalty-before-principal on the partial bill
- Credit / overpayment resolution from the payment amount alone
- Zero-payment entries for bills the funds never reached
- Backdated payments (penalty refresh as of the payment date)
- Input validation
"""

from datetime import date

import pytest

from dues_engines.distribution import CreditChangeType, PaymentDistributor
from dues_kernel.domain import BillStatus, Money
from dues_kernel.exceptions import ConfigurationError, ValidationError
from tests.factories import make_bill

JULY_1 = date(2025, 7, 1)
AUG_1 = date(2025, 8, 1)


class TestDistributionScenarios:
    """Worked scenarios with hand-checked amounts."""

    def setup_method(self):
        self.distributor = PaymentDistributor()

    def test_full_then_partial_penalty_first(self):
        bills = [
            make_bill("b1", 50000, due=JULY_1),
            make_bill("b2", 27000, due=AUG_1, penalty=3000),
        ]

        result = self.distributor.distribute(bills, 60000, 0)

        first, second = result.bill_payments
        assert first.amount_paid == Money(50000)
        assert first.new_status is BillStatus.PAID
        assert second.penalty_paid == Money(3000)
        assert second.base_paid == Money(7000)
        assert second.new_status is BillStatus.PARTIAL
        assert result.total_bills_due == Money(80000)
        assert result.credit_used == Money(0)
        assert result.overpayment == Money(0)
        assert result.new_credit_balance == Money(0)

    def test_overpayment(self):
        result = self.distributor.distribute([make_bill("b1", 20000, due=JULY_1)], 25000, 0)

        assert result.bill_payments[0].new_status is BillStatus.PAID
        assert result.overpayment == Money(5000)
        assert result.new_credit_balance == Money(5000)
        assert result.credit_delta == Money(5000)
        assert result.credit_change_type is CreditChangeType.OVERPAYMENT

    def test_credit_shortfall(self):
        bill = make_bill("b1", 28000, due=JULY_1, penalty=2000)

        result = self.distributor.distribute([bill], 15000, 10000)

        payment = result.bill_payments[0]
        assert result.total_available_funds == Money(25000)
        assert payment.penalty_paid == Money(2000)
        assert payment.base_paid == Money(23000)
        assert payment.new_status is BillStatus.PARTIAL
        assert result.credit_used == Money(10000)
        assert result.overpayment == Money(0)
        assert result.new_credit_balance == Money(0)
        assert result.credit_delta == Money(-10000)
        assert result.credit_change_type is CreditChangeType.CREDIT_USED

    def test_partial_use_of_credit(self):
        result = self.distributor.distribute([make_bill("b1", 3000, due=JULY_1)], 0, 5000)

        assert result.credit_used == Money(3000)
        assert result.new_credit_balance == Money(2000)
        assert result.unapplied_funds == Money(2000)

    def test_overpayment_keeps_prior_credit(self):
        result = self.distributor.distribute([make_bill("b1", 30000, due=JULY_1)], 50000, 2000)

        assert result.credit_used == Money(0)
        assert result.overpayment == Money(20000)
        assert result.new_credit_balance == Money(22000)
        assert result.unapplied_funds == Money(22000)

    def test_no_bills(self):
        result = self.distributor.distribute([], 1000, 0)

        assert result.bill_payments == ()
        assert result.overpayment == Money(1000)

    def test_exact_payment_is_no_change(self):
        result = self.distributor.distribute([make_bill("b1", 1000, due=JULY_1)], 1000, 0)

        assert result.credit_change_type is CreditChangeType.NO_CHANGE
        assert result.credit_delta == Money(0)


class TestWalk:

    def setup_method(self):
        self.distributor = PaymentDistributor()

    def test_every_bill_has_an_entry(self):
        bills = [
            make_bill("b1", 1000, due=JULY_1),
            make_bill("b2", 1000, due=AUG_1, paid_base=400),
            make_bill("b3", 1000, due=date(2025, 9, 1)),
        ]

        result = self.distributor.distribute(bills, 500, 0)

        assert [p.bill_id for p in result.bill_payments] == ["b1", "b2", "b3"]
        untouched = result.bill_payments[1:]
        assert all(p.amount_paid == Money(0) for p in untouched)
        assert [p.new_status for p in untouched] == [BillStatus.PARTIAL, BillStatus.UNPAID]
        assert [p.previous_status for p in untouched] == [BillStatus.PARTIAL, BillStatus.UNPAID]

    def test_sorts_oldest_first(self):
        bills = [
            make_bill("undated", 1000, period="2025-01"),
            make_bill("newer", 1000, due=AUG_1),
            make_bill("older", 1000, due=JULY_1),
        ]

        result = self.distributor.distribute(bills, 1500, 0)

        assert [p.bill_id for p in result.bill_payments] == ["older", "newer", "undated"]
        assert result.bill_payments[0].amount_paid == Money(1000)
        assert result.bill_payments[1].amount_paid == Money(500)

    def test_same_due_date_sorted_by_period(self):
        bills = [
            make_bill("b2", 1000, period="2026-01", due=JULY_1),
            make_bill("b1", 1000, period="2026-00", due=JULY_1),
        ]

        result = self.distributor.distribute(bills, 1000, 0)

        assert result.bill_payments[0].bill_id == "b1"
        assert result.bill_payments[0].new_status is BillStatus.PAID

    def test_updated_bills(self):
        bills = [make_bill("b1", 1000, due=JULY_1, penalty=100)]

        result = self.distributor.distribute(bills, 600, 0)

        (updated,) = result.updated_bills
        assert updated.paid_penalty == Money(100)
        assert updated.paid_base == Money(500)
        assert updated.status is BillStatus.PARTIAL
        assert result.bill_payments[0].remaining_due == Money(500)

    def test_money_arguments_accepted(self):
        result = self.distributor.distribute([], Money(10), Money(5))
        assert result.new_credit_balance == Money(15)

    def test_entries_carry_period_derived_due_date(self, quarterly_config):
        bills = [make_bill("b1", 1000, period="2026-01")]

        with_config = PaymentDistributor(quarterly_config).distribute(bills, 1000, 0)
        without_config = self.distributor.distribute(bills, 1000, 0)

        assert with_config.bill_payments[0].due_date == AUG_1
        assert without_config.bill_payments[0].due_date is None


class TestBackdatedPayments:

    def test_penalties_refreshed_as_of_payment_date(self, monthly_config):
        bill = make_bill("b1", 100000, due=JULY_1)

        result = PaymentDistributor(monthly_config).distribute(
            [bill], 110250, 0, as_of_date=date(2025, 8, 15),
        )

        payment = result.bill_payments[0]
        assert result.total_bills_due == Money(110250)
        assert payment.penalty_paid == Money(10250)
        assert payment.new_status is BillStatus.PAID
        assert result.overpayment == Money(0)

    def test_backdated_within_grace_clears_penalty(self, monthly_config):
        bill = make_bill("b1", 100000, due=JULY_1, penalty=10250)

        result = PaymentDistributor(monthly_config).distribute(
            [bill], 100000, 0, as_of_date=date(2025, 7, 10),
        )

        assert result.total_bills_due == Money(100000)
        assert result.bill_payments[0].new_status is BillStatus.PAID

    def test_as_of_without_config(self):
        with pytest.raises(ConfigurationError):
            PaymentDistributor().distribute(
                [make_bill("b1", 1000, due=JULY_1)], 1000, 0, as_of_date=AUG_1,
            )


class TestValidation:

    def setup_method(self):
        self.distributor = PaymentDistributor()

    @pytest.mark.parametrize("payment, credit", [(-1, 0), (0, -1)])
    def test_negative_amounts(self, payment, credit):
        with pytest.raises(ValidationError, match="negative"):
            self.distributor.distribute([], payment, credit)

    @pytest.mark.parametrize("payment", [10.5, "100", True, None])
    def test_non_integer_payment(self, payment):
        with pytest.raises(ValidationError):
            self.distributor.distribute([], payment, 0)

    def test_duplicate_bill_ids(self):
        bills = [make_bill("b1", 1000, due=JULY_1), make_bill("b1", 1000, due=AUG_1)]
        with pytest.raises(ValidationError, match="Duplicate"):
            self.distributor.distribute(bills, 1000, 0)

    def test_non_bill_entries(self):
        with pytest.raises(ValidationError):
            self.distributor.distribute([{"bill_id": "b1"}], 1000, 0)


class TestDistributionLogging:

    def test_lifecycle_records(self, captured_logs):
        bills = [make_bill("b1", 1000, due=JULY_1), make_bill("b2", 1000, due=AUG_1)]

        PaymentDistributor().distribute(bills, 1500, 0)

        messages = [r["message"] for r in captured_logs()]
        assert "distribution_started" in messages
        assert "distribution_bill_paid" in messages
        assert "distribution_bill_partial" in messages
        assert "distribution_completed" in messages
        assert "DUES_ENGINE_TRACE" in messages
