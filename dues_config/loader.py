"""
Billing Configuration Loader (``dues_config.loader``).

Responsibility
--------------
Loads per-client ``billing.yaml`` files and parses module blocks into
``dues_kernel.domain.BillingConfig`` instances.  Runtime callers use
``dues_config.get_billing_config()``; these helpers are exposed for
tooling and tests.

Architecture position
---------------------
**Config layer**.  Depends on the kernel domain only; the kernel never
imports this package.

Invariants enforced
-------------------
* The penalty policy (``penalty_rate``, ``penalty_days``) is never
  defaulted; absence raises ``ConfigurationError``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed module block for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Client id mismatch, missing ``modules`` mapping or module block
  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from dues_kernel.domain.billing_config import BillingConfig, ModuleKind
from dues_kernel.exceptions import ConfigurationError

BILLING_FILE_NAME = "billing.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def billing_file_path(sets_dir: Path, client_id: str) -> Path:
    """Location of a client's billing file under ``sets_dir``."""
    if not client_id or "/" in client_id or client_id.startswith("."):
        raise ConfigurationError("client_id", f"invalid client id {client_id!r}")
    return sets_dir / client_id / BILLING_FILE_NAME


def module_block(
    data: dict[str, Any],
    client_id: str,
    module_kind: ModuleKind | str,
) -> dict[str, Any]:
    """Extract the raw block for one module from a parsed billing file."""
    declared = data.get("client_id")
    if declared is not None and declared != client_id:
        raise ConfigurationError(
            "client_id", f"file declares {declared!r}, expected {client_id!r}"
        )

    try:
        module = ModuleKind(module_kind)
    except ValueError as e:
        raise ConfigurationError("module_kind", f"unknown module {module_kind!r}") from e

    modules = data.get("modules")
    if not isinstance(modules, dict):
        raise ConfigurationError("modules", f"client {client_id} has no modules mapping")
    block = modules.get(module.value)
    if not isinstance(block, dict):
        raise ConfigurationError(
            "modules", f"client {client_id} has no {module.value} billing block"
        )
    return block


def parse_billing_config(
    data: dict[str, Any],
    client_id: str,
    module_kind: ModuleKind | str,
) -> BillingConfig:
    """
    Parse one module's ``BillingConfig`` from a billing file's contents.

    Raises:
        ConfigurationError: missing block or invalid penalty policy.
    """
    return BillingConfig.from_mapping(module_block(data, client_id, module_kind))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
