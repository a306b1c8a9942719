"""
Billing configuration value objects.

Responsibility:
    ``BillingConfig`` carries the penalty policy (rate, grace days) and the
    calendar facts (billing frequency, fiscal-year start month) the engines
    need. ``ModuleKind`` names the billing modules that share a unit's
    credit pool.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Built by ``dues_config`` (YAML) or by
    callers from their own stores.

Invariants enforced:
    - penalty_rate and penalty_days are REQUIRED. A missing, None, boolean,
      string, non-finite or negative value raises ConfigurationError. The
      kernel never substitutes a default for the penalty policy.
    - penalty_rate is held as an exact Decimal.
    - fiscal_year_start_month is in 1..12.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from dues_kernel.exceptions import ConfigurationError, ValidationError


class ModuleKind(str, Enum):
    """Billing module that produced a bill."""

    WATER = "water"
    HOA = "hoa"
    PROPANE = "propane"


def coerce_module_kind(module_kind: ModuleKind | str) -> ModuleKind:
    """``ModuleKind`` from an enum member or its value; unknown -> ValidationError."""
    try:
        return ModuleKind(module_kind)
    except ValueError as e:
        raise ValidationError(f"Unknown module kind: {module_kind!r}") from e


class BillingFrequency(str, Enum):
    """How often bills are issued. Quarterly bills share one due date."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


# Accepted keys for the two required penalty fields (storage documents use
# camelCase, YAML uses snake_case).
_RATE_KEYS = ("penalty_rate", "penaltyRate")
_DAYS_KEYS = ("penalty_days", "penaltyDays")


def _require_number(field: str, value: Any) -> None:
    if value is None:
        raise ConfigurationError(field, "is required")
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ConfigurationError(field, f"must be numeric, got {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ConfigurationError(field, f"must be finite, got {value!r}")
    if isinstance(value, Decimal) and not value.is_finite():
        raise ConfigurationError(field, f"must be finite, got {value!r}")
    if value < 0:
        raise ConfigurationError(field, f"must be non-negative, got {value!r}")


@dataclass(frozen=True)
class BillingConfig:
    """
    Penalty and calendar configuration for one client's billing module.

    Contract:
        Validated on construction; an instance always carries a usable
        penalty policy.
    Guarantees:
        - ``penalty_rate`` is a non-negative finite Decimal.
        - ``penalty_days`` is a non-negative int.
    Non-goals:
        - Does not load itself; see ``dues_config.get_billing_config``.
    """

    penalty_rate: Decimal
    penalty_days: int
    billing_period: BillingFrequency = BillingFrequency.MONTHLY
    fiscal_year_start_month: int = 1

    def __post_init__(self) -> None:
        _require_number("penalty_rate", self.penalty_rate)
        _require_number("penalty_days", self.penalty_days)
        if not isinstance(self.penalty_rate, Decimal):
            object.__setattr__(self, "penalty_rate", Decimal(str(self.penalty_rate)))
        if isinstance(self.penalty_days, int):
            days = self.penalty_days
        elif float(self.penalty_days).is_integer():
            days = int(self.penalty_days)
        else:
            raise ConfigurationError(
                "penalty_days", f"must be a whole number of days, got {self.penalty_days!r}"
            )
        object.__setattr__(self, "penalty_days", days)

        try:
            object.__setattr__(self, "billing_period", BillingFrequency(self.billing_period))
        except ValueError as e:
            raise ConfigurationError(
                "billing_period", f"unknown billing period {self.billing_period!r}"
            ) from e

        month = self.fiscal_year_start_month
        if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
            raise ConfigurationError(
                "fiscal_year_start_month", f"must be an int in 1..12, got {month!r}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BillingConfig:
        """
        Build from a raw document/dict.

        Raises:
            ConfigurationError: If a penalty field is absent or invalid.
        """
        rate = next((data[k] for k in _RATE_KEYS if k in data), None)
        days = next((data[k] for k in _DAYS_KEYS if k in data), None)
        _require_number("penalty_rate", rate)
        _require_number("penalty_days", days)
        return cls(
            penalty_rate=rate,
            penalty_days=days,
            billing_period=data.get("billing_period", data.get("billingPeriod", "monthly")),
            fiscal_year_start_month=data.get(
                "fiscal_year_start_month", data.get("fiscalYearStartMonth", 1)
            ),
        )


def validate_penalty_config(config: BillingConfig | Mapping[str, Any] | None) -> BillingConfig:
    """
    Return a validated ``BillingConfig``.

    Accepts an already-built config (returned as is) or a raw mapping.

    Raises:
        ConfigurationError: If config is missing or its penalty fields are
            absent or non-numeric.
    """
    if config is None:
        raise ConfigurationError("config", "billing configuration is required")
    if isinstance(config, BillingConfig):
        return config
    if isinstance(config, Mapping):
        return BillingConfig.from_mapping(config)
    raise ConfigurationError("config", f"unsupported configuration type {type(config).__name__}")
