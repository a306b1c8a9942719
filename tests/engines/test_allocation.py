"""
Tests for the allocation builder.

Covers:
- Allocation lines per bill component and for credit
- Module categories and target naming
- Summary reconciliation and tolerance
- Structural validation (itemized, never raising)
"""

from dataclasses import replace
from datetime import date

import pytest

from dues_engines.allocation import (
    Allocation,
    AllocationBuilder,
    AllocationKind,
    module_categories,
)
from dues_engines.distribution import PaymentDistributor
from dues_kernel.domain import ModuleKind, Money
from dues_kernel.exceptions import ValidationError
from tests.factories import make_bill

JULY_1 = date(2025, 7, 1)
AUG_1 = date(2025, 8, 1)


def _distribute(bills, payment, credit=0):
    return PaymentDistributor().distribute(bills, payment, credit)


class TestBuildAllocations:

    def setup_method(self):
        self.builder = AllocationBuilder()

    def test_base_and_penalty_lines(self):
        distribution = _distribute([
            make_bill("b1", 50000, period="2025-07", due=JULY_1),
            make_bill("b2", 27000, period="2025-08", due=AUG_1, penalty=3000),
        ], 60000)

        allocations = self.builder.build_allocations(distribution, "A-101", ModuleKind.HOA)

        assert [a.allocation_id for a in allocations] == ["alloc_001", "alloc_002", "alloc_003"]
        assert [a.kind for a in allocations] == [
            AllocationKind.BILL_BASE, AllocationKind.BILL_BASE, AllocationKind.BILL_PENALTY,
        ]
        assert [a.amount for a in allocations] == [Money(50000), Money(7000), Money(3000)]
        base, _, penalty = allocations
        assert base.target_id == "bill_b1"
        assert base.target_name == "2025-07 - Unit A-101"
        assert base.category == "hoa-dues"
        assert base.category_name == "HOA Dues"
        assert penalty.target_id == "penalty_b2"
        assert penalty.target_name == "2025-08 Penalties - Unit A-101"
        assert penalty.category == "hoa-penalties"
        assert penalty.target_bill_id == "b2"

    def test_overpayment_credit_line_is_positive(self):
        distribution = _distribute([make_bill("b1", 20000, due=JULY_1)], 25000)

        allocations = self.builder.build_allocations(distribution, "A-101", "water")

        credit = allocations[-1]
        assert credit.kind is AllocationKind.CREDIT
        assert credit.amount == Money(5000)
        assert credit.target_id == "credit_A-101_water"
        assert credit.target_name == "Account Credit - Unit A-101"
        assert credit.category == "account-credit"
        assert credit.credit_type == "water_overpayment"
        assert credit.target_bill_id is None
        assert allocations[0].category == "water-consumption"

    def test_credit_used_line_is_negative(self):
        distribution = _distribute([make_bill("b1", 30000, due=JULY_1)], 15000, 10000)

        allocations = self.builder.build_allocations(distribution, "A-101", "propane")

        credit = allocations[-1]
        assert credit.amount == Money(-10000)
        assert credit.credit_type == "propane_credit_used"
        assert sum(a.amount.minor_units for a in allocations) == 15000

    def test_unreached_bills_produce_no_lines(self):
        distribution = _distribute([
            make_bill("b1", 1000, due=JULY_1),
            make_bill("b2", 1000, due=AUG_1),
        ], 1000)

        allocations = self.builder.build_allocations(distribution, "A-101", "hoa")

        assert len(allocations) == 1
        assert allocations[0].target_bill_id == "b1"

    def test_unknown_module_rejected(self):
        distribution = _distribute([make_bill("b1", 1000, due=JULY_1)], 1000)
        with pytest.raises(ValidationError, match="Unknown module"):
            self.builder.build_allocations(distribution, "A-101", "electric")

    def test_module_categories(self):
        assert module_categories("propane").base_category_name == "Propane Charges"
        assert module_categories(ModuleKind.WATER).penalty_category == "water-penalties"


class TestSummarize:

    def setup_method(self):
        self.builder = AllocationBuilder()

    def test_signed_total_matches_payment(self):
        distribution = _distribute(
            [make_bill("b1", 28000, due=JULY_1, penalty=2000)], 15000, 10000,
        )
        allocations = self.builder.build_allocations(distribution, "A-101", "hoa")

        summary = self.builder.summarize(allocations, 15000)

        assert summary.total_allocated == Money(15000)
        assert summary.difference == Money(0)
        assert summary.is_valid
        assert summary.bills_touched == 1
        assert summary.tolerance == Money(1)
        assert summary.total_base == Money(23000)
        assert summary.total_penalty == Money(2000)
        assert summary.total_credit == Money(-10000)
        assert summary.has_penalties
        assert summary.has_credit

    def test_tolerance_is_one_unit_per_bill(self):
        distribution = _distribute([
            make_bill("b1", 1000, due=JULY_1),
            make_bill("b2", 1000, due=AUG_1),
        ], 2000)
        allocations = self.builder.build_allocations(distribution, "A-101", "hoa")

        assert self.builder.summarize(allocations, 2002).is_valid
        assert not self.builder.summarize(allocations, 2003).is_valid


class TestValidate:

    def setup_method(self):
        self.builder = AllocationBuilder()
        distribution = _distribute([make_bill("b1", 1000, due=JULY_1)], 1500)
        self.allocations = self.builder.build_allocations(distribution, "A-101", "hoa")

    def test_valid_set(self):
        result = self.builder.validate(self.allocations, 1500)
        assert result.valid
        assert result.errors == ()

    def test_empty_set(self):
        result = self.builder.validate([], 0)
        assert not result.valid
        assert "At least one allocation is required" in result.errors

    def test_reports_every_problem(self):
        bad = [
            replace(self.allocations[0], allocation_id="", category=""),
            replace(self.allocations[1], target_bill_id="b1"),
        ]

        result = self.builder.validate(bad, 1500)

        assert not result.valid
        assert len(result.errors) == 3

    def test_total_mismatch(self):
        result = self.builder.validate(self.allocations, 9999)
        assert not result.valid
        assert "do not match" in result.errors[0]

    def test_non_money_amount(self):
        bad = [replace(self.allocations[0], amount=10.0)]
        result = self.builder.validate(bad, 1000)
        assert not result.valid
        assert "amount must be Money" in result.errors[0]

    def test_duplicate_ids(self):
        dup = replace(self.allocations[1], allocation_id="alloc_001")
        result = self.builder.validate([self.allocations[0], dup], 1500)
        assert any("duplicate" in e for e in result.errors)

    def test_bill_line_requires_positive_amount(self):
        line = Allocation(
            allocation_id="alloc_001",
            kind=AllocationKind.BILL_BASE,
            target_id="bill_b1",
            target_name="2025-07 - Unit A-101",
            amount=Money(-5),
            category="hoa-dues",
            category_name="HOA Dues",
            unit_id="A-101",
            module_kind=ModuleKind.HOA,
            target_bill_id="b1",
        )
        result = self.builder.validate([line], -5)
        assert any("must be positive" in e for e in result.errors)
