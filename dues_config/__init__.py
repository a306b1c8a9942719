"""
dues_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides the ONLY runtime way to obtain a client's billing
    configuration through ``get_billing_config()``. Engines never read
    files; services receive a ``BillingConfigSource`` and this package
    supplies the YAML-backed one.

Architecture position:
    Configuration -- sits above ``dues_kernel`` and below
    ``dues_services``. The kernel MUST NEVER import from ``dues_config``.

Invariants enforced:
    - Single entrypoint: all runtime billing config flows through
      ``get_billing_config()``.
    - No silent defaults for penalty policy.

Failure modes:
    - ``FileNotFoundError`` -- no billing file for the client.
    - ``ConfigurationError`` -- missing module block or invalid policy.

Audit relevance:
    Every successful ``get_billing_config()`` call emits a
    ``DUES_CONFIG_TRACE`` log entry with the client, module and checksum of
    the block that governed the calculation.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dues_config.loader import (
    billing_file_path,
    compute_checksum,
    load_yaml_file,
    module_block,
)
from dues_kernel.domain.billing_config import BillingConfig, ModuleKind

_logger = logging.getLogger("dues_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_billing_config(
    client_id: str,
    module_kind: ModuleKind | str,
    config_dir: Path | None = None,
) -> BillingConfig:
    """The ONLY public configuration entrypoint.

    Args:
        client_id: Client (HOA) identifier; names the sets subdirectory.
        module_kind: Billing module (water, hoa, propane).
        config_dir: Override path to the sets directory. Defaults to
            dues_config/sets/.

    Returns:
        Validated ``BillingConfig``.

    Raises:
        FileNotFoundError: If the client has no billing file.
        ConfigurationError: If the module block is missing or invalid.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = billing_file_path(sets_dir, client_id)
    if not path.is_file():
        raise FileNotFoundError(f"No billing configuration for client '{client_id}' at {path}")

    block = module_block(load_yaml_file(path), client_id, module_kind)
    config = BillingConfig.from_mapping(block)

    _logger.info(
        "DUES_CONFIG_TRACE",
        extra={
            "trace_type": "DUES_CONFIG_TRACE",
            "client_id": client_id,
            "module_kind": ModuleKind(module_kind).value,
            "checksum": compute_checksum(block),
            "penalty_rate": str(config.penalty_rate),
            "penalty_days": config.penalty_days,
            "billing_period": config.billing_period.value,
            "source": str(path),
        },
    )
    return config


class YamlBillingConfigSource:
    """``BillingConfigSource`` backed by per-client YAML files."""

    def __init__(self, config_dir: Path | None = None):
        self._config_dir = config_dir

    def get_billing_config(self, client_id: str, module_kind: ModuleKind | str) -> BillingConfig:
        return get_billing_config(client_id, module_kind, self._config_dir)


__all__ = [
    "YamlBillingConfigSource",
    "get_billing_config",
]
