"""
Tests for the penalty accrual calculator.

Covers:
- Due-date resolution from period keys and fiscal year starts
- Grace boundary and month rounding
- Step-by-step compounding
- Group penalty split and remainder placement
- Paid penalty floor, idempotence, configuration failures
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from dues_engines.penalty import (
    PenaltyAccrualCalculator,
    compound_penalty,
    months_overdue,
    resolve_due_date,
)
from dues_kernel.domain import Money
from dues_kernel.exceptions import ConfigurationError, ValidationError
from tests.factories import make_bill

JULY_1 = date(2025, 7, 1)


class TestResolveDueDate:

    def test_explicit_due_date_wins(self, quarterly_config):
        bill = make_bill("b1", 1000, period="2026-05", due=date(2025, 8, 20))
        assert resolve_due_date(bill, quarterly_config) == date(2025, 8, 20)

    @pytest.mark.parametrize("period, expected", [
        ("2026-00", date(2026, 1, 1)),
        ("2026-11", date(2026, 12, 1)),
    ])
    def test_calendar_fiscal_year(self, monthly_config, period, expected):
        assert resolve_due_date(make_bill("b", 1, period=period), monthly_config) == expected

    @pytest.mark.parametrize("period, expected", [
        ("2026-00", date(2025, 7, 1)),
        ("2026-05", date(2025, 12, 1)),
        ("2026-06", date(2026, 1, 1)),
        ("2026-11", date(2026, 6, 1)),
    ])
    def test_july_fiscal_year(self, quarterly_config, period, expected):
        assert resolve_due_date(make_bill("b", 1, period=period), quarterly_config) == expected

    @pytest.mark.parametrize("period", ["2026/03", "March", "2026-12"])
    def test_malformed_period(self, monthly_config, period):
        with pytest.raises(ValidationError):
            resolve_due_date(make_bill("b", 1, period=period), monthly_config)


class TestMonthsOverdue:

    def test_on_grace_boundary_is_zero(self):
        assert months_overdue(JULY_1, date(2025, 7, 11), 10) == 0

    def test_one_day_past_grace_is_one_month(self):
        assert months_overdue(JULY_1, date(2025, 7, 12), 10) == 1

    def test_thirty_days_past_grace_is_still_one(self):
        assert months_overdue(JULY_1, date(2025, 8, 10), 10) == 1

    def test_partial_month_rounds_up(self):
        assert months_overdue(JULY_1, date(2025, 8, 11), 10) == 2

    def test_before_due_date(self):
        assert months_overdue(JULY_1, date(2025, 6, 1), 10) == 0

    def test_negative_grace_rejected(self):
        with pytest.raises(ValidationError):
            months_overdue(JULY_1, date(2025, 8, 1), -1)

    def test_datetime_rejected(self):
        with pytest.raises(ValidationError):
            months_overdue(JULY_1, datetime(2025, 8, 1, 9, 30), 10)


class TestCompoundPenalty:

    def test_two_month_example(self):
        assert compound_penalty(100000, 2, 0.05) == Money(10250)

    def test_per_step_rounding(self):
        # 5000 + 5250 + round(110250 * 0.05 = 5512.5) = 15763
        assert compound_penalty(Money(100000), 3, Decimal("0.05")) == Money(15763)

    def test_zero_months(self):
        assert compound_penalty(100000, 0, 0.05) == Money(0)

    def test_zero_principal(self):
        assert compound_penalty(0, 5, 0.05) == Money(0)

    def test_negative_principal_rejected(self):
        with pytest.raises(ValidationError):
            compound_penalty(-1, 1, 0.05)


class TestRecalculate:

    def setup_method(self):
        self.calculator = PenaltyAccrualCalculator()

    def test_single_bill_two_months(self, monthly_config):
        bill = make_bill("b1", 100000, due=JULY_1)

        (result,) = self.calculator.recalculate([bill], date(2025, 8, 15), monthly_config)

        assert result.penalty_amount == Money(10250)
        assert result.base_charge == bill.base_charge

    def test_within_grace_resets_stale_penalty(self, monthly_config):
        bill = make_bill("b1", 100000, due=JULY_1, penalty=777)

        (result,) = self.calculator.recalculate([bill], date(2025, 7, 5), monthly_config)

        assert result.penalty_amount == Money(0)

    def test_group_split_with_remainder_to_last_unpaid(self, monthly_config):
        # 30020 * 0.05 = 1501 -> 500, 500, 501
        bills = [
            make_bill("b1", 10020, period="2026-00", due=JULY_1),
            make_bill("b2", 10000, period="2026-01", due=JULY_1),
            make_bill("b3", 10000, period="2026-02", due=JULY_1),
        ]

        result = self.calculator.recalculate(bills, date(2025, 7, 20), monthly_config)

        assert [b.penalty_amount for b in result] == [Money(500), Money(500), Money(501)]

    def test_remainder_skips_paid_bills(self, monthly_config):
        # Unpaid principal 20020 -> 1001 -> 500 + 501 on the last unpaid bill
        bills = [
            make_bill("b1", 10020, period="2026-00", due=JULY_1),
            make_bill("b2", 10000, period="2026-01", due=JULY_1),
            make_bill("b3", 10000, period="2026-02", due=JULY_1, paid_base=10000),
        ]

        result = self.calculator.recalculate(bills, date(2025, 7, 20), monthly_config)

        assert [b.penalty_amount for b in result] == [Money(500), Money(501), Money(0)]

    def test_partial_payment_reduces_principal(self, monthly_config):
        bill = make_bill("b1", 100000, due=JULY_1, paid_base=50000)

        (result,) = self.calculator.recalculate([bill], date(2025, 8, 15), monthly_config)

        assert result.penalty_amount == compound_penalty(50000, 2, "0.05")

    def test_paid_penalty_is_a_floor(self, monthly_config):
        bill = make_bill("b1", 10000, due=JULY_1, penalty=2000, paid_penalty=2000)

        (result,) = self.calculator.recalculate([bill], date(2025, 7, 5), monthly_config)

        assert result.penalty_amount == Money(2000)
        assert result.paid_penalty == Money(2000)

    def test_input_order_preserved(self, monthly_config):
        bills = [
            make_bill("late", 1000, due=date(2025, 8, 1)),
            make_bill("early", 1000, due=JULY_1),
        ]

        result = self.calculator.recalculate(bills, date(2025, 9, 1), monthly_config)

        assert [b.bill_id for b in result] == ["late", "early"]

    def test_idempotent(self, monthly_config):
        bills = [
            make_bill("b1", 100000, due=JULY_1),
            make_bill("b2", 55555, due=date(2025, 8, 1), paid_base=1234),
        ]
        as_of = date(2025, 10, 3)

        first = self.calculator.recalculate(bills, as_of, monthly_config)
        second = self.calculator.recalculate(bills, as_of, monthly_config)
        third = self.calculator.recalculate(first, as_of, monthly_config)

        assert first == second == third

    def test_period_keys_resolve_due_dates(self, quarterly_config):
        bills = [
            make_bill("explicit", 1000, period="2026-00", due=JULY_1),
            make_bill("derived", 1000, period="2026-00"),
            make_bill("next", 1000, period="2026-01"),
        ]

        groups = self.calculator.group_by_due_date(bills, quarterly_config)

        assert [g.due_date for g in groups] == [JULY_1, date(2025, 8, 1)]
        assert [b.bill_id for b in groups[0].bills] == ["derived", "explicit"]

    def test_raw_mapping_config_accepted(self):
        bill = make_bill("b1", 100000, due=JULY_1)
        (result,) = self.calculator.recalculate(
            [bill], date(2025, 8, 15), {"penaltyRate": 0.05, "penaltyDays": 10},
        )
        assert result.penalty_amount == Money(10250)

    def test_missing_penalty_days_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            self.calculator.recalculate(
                [make_bill("b1", 1000, due=JULY_1)], date(2025, 8, 1), {"penalty_rate": 0.05},
            )

    def test_duplicate_bill_ids_rejected(self, monthly_config):
        bills = [make_bill("b1", 1000, due=JULY_1), make_bill("b1", 2000, due=JULY_1)]
        with pytest.raises(ValidationError, match="Duplicate"):
            self.calculator.recalculate(bills, date(2025, 8, 1), monthly_config)

    def test_datetime_as_of_rejected(self, monthly_config):
        with pytest.raises(ValidationError):
            self.calculator.recalculate(
                [make_bill("b1", 1000, due=JULY_1)], datetime(2025, 8, 1), monthly_config,
            )


class TestRecalculationSummary:

    def setup_method(self):
        self.calculator = PenaltyAccrualCalculator()

    def test_statistics(self, monthly_config):
        bills = [
            make_bill("overdue", 100000, due=JULY_1),
            make_bill("fresh", 5000, due=date(2025, 8, 10)),
            make_bill("settled", 5000, due=JULY_1, paid_base=5000),
        ]

        result = self.calculator.recalculate_with_summary(bills, date(2025, 8, 15), monthly_config)

        assert result.groups_processed == 2
        assert result.bills_processed == 2
        assert result.bills_skipped == 1
        assert result.bills_updated == 1
        assert result.total_penalty_change == Money(10250)
        (change,) = result.changes
        assert change.bill_id == "overdue"
        assert change.previous == Money(0)
        assert change.recalculated == Money(10250)
        assert change.months_overdue == 2
        assert [b.bill_id for b in result.changed_bills] == ["overdue"]

    def test_unchanged_bills_not_reported(self, monthly_config):
        bill = make_bill("b1", 100000, due=JULY_1, penalty=10250)

        result = self.calculator.recalculate_with_summary([bill], date(2025, 8, 15), monthly_config)

        assert result.changes == ()
        assert result.total_penalty_change == Money(0)

    def test_emits_engine_trace(self, monthly_config, captured_logs):
        bills = [make_bill("b1", 1000, due=JULY_1)]
        self.calculator.recalculate(bills, date(2025, 8, 1), monthly_config)

        traces = [r for r in captured_logs() if r["message"] == "DUES_ENGINE_TRACE"]
        assert traces[0]["engine_name"] == "penalty"
        assert len(traces[0]["input_fingerprint"]) == 16
        messages = [r["message"] for r in captured_logs()]
        assert "penalty_recalculation_completed" in messages
