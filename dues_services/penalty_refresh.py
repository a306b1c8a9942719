"""
dues_services.penalty_refresh -- Batch penalty recalculation that commits.

Responsibility:
    Refresh stored penalties for one or many units of a client as of a
    single evaluation date, saving only the bills whose penalty changed.

Architecture position:
    Services -- orchestration. Uses the same
    ``PenaltyAccrualCalculator`` as payment preview, so nightly refresh and
    payment recording never diverge in their math.

Failure modes:
    - ConfigurationError / FileNotFoundError from the config source.
    - ValidationError on an unknown module kind or malformed bills. The
      batch stops at the first failing unit; earlier units are already saved.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from dues_engines.penalty import PenaltyAccrualCalculator, PenaltyRecalculationResult
from dues_kernel.domain.billing_config import BillingConfig, ModuleKind, coerce_module_kind
from dues_kernel.domain.clock import Clock, SystemClock
from dues_kernel.logging_config import LogContext, get_logger
from dues_services.ports import BillingConfigSource, BillSource, BillWriter

logger = get_logger("services.penalty_refresh")


class PenaltyRefreshService:
    """Recalculates and persists penalties for units of one client."""

    def __init__(
        self,
        bill_source: BillSource,
        config_source: BillingConfigSource,
        bill_writer: BillWriter,
        clock: Clock | None = None,
        penalty_calculator: PenaltyAccrualCalculator | None = None,
    ):
        self._bills = bill_source
        self._configs = config_source
        self._bill_writer = bill_writer
        self._clock = clock or SystemClock()
        self._calculator = penalty_calculator or PenaltyAccrualCalculator()

    def refresh_unit(
        self,
        client_id: str,
        unit_id: str,
        module_kind: ModuleKind | str,
        as_of_date: date | None = None,
    ) -> PenaltyRecalculationResult:
        """Refresh one unit; saves changed bills only."""
        module = coerce_module_kind(module_kind)
        config = self._configs.get_billing_config(client_id, module)
        return self._refresh(client_id, unit_id, module, config, as_of_date or self._clock.today())

    def refresh_units(
        self,
        client_id: str,
        unit_ids: Iterable[str],
        module_kind: ModuleKind | str,
        as_of_date: date | None = None,
    ) -> dict[str, PenaltyRecalculationResult]:
        """
        Refresh several units with one configuration and one evaluation date.

        Returns:
            Results keyed by unit id, in processing order.
        """
        module = coerce_module_kind(module_kind)
        config = self._configs.get_billing_config(client_id, module)
        as_of = as_of_date or self._clock.today()

        results: dict[str, PenaltyRecalculationResult] = {}
        for unit_id in unit_ids:
            results[unit_id] = self._refresh(client_id, unit_id, module, config, as_of)

        logger.info("penalty_refresh_batch_completed", extra={
            "client_id": client_id,
            "module_kind": module.value,
            "as_of_date": as_of.isoformat(),
            "units_processed": len(results),
            "bills_updated": sum(r.bills_updated for r in results.values()),
            "total_penalty_change": sum(
                r.total_penalty_change.minor_units for r in results.values()
            ),
        })
        return results

    def _refresh(
        self,
        client_id: str,
        unit_id: str,
        module: ModuleKind,
        config: BillingConfig,
        as_of: date,
    ) -> PenaltyRecalculationResult:
        with LogContext.bind(client_id=client_id, unit_id=unit_id, module_kind=module.value):
            bills = self._bills.get_outstanding_bills(client_id, unit_id, module)
            result = self._calculator.recalculate_with_summary(bills, as_of, config)
            if result.changed_bills:
                self._bill_writer.save_bills(client_id, unit_id, module, result.changed_bills)
            logger.info("penalty_refresh_unit_completed", extra={
                "as_of_date": as_of.isoformat(),
                "bills_updated": result.bills_updated,
                "total_penalty_change": result.total_penalty_change.minor_units,
            })
        return result
