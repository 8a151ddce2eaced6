"""
Configuration Loader (``mfg_config.loader``).

Loads a YAML configuration file and parses it into a frozen
``WorkflowConfig``.  The single public entry point for runtime config is
``mfg_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown enum values or out-of-range numbers  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from mfg_config.schema import SUPPORTED_SCHEMA_VERSION, IdentifierPrefixes, WorkflowConfig
from mfg_kernel.domain.matching import ProductType
from mfg_kernel.domain.policies import DispatchCardinality, OrderTotalPolicy


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_prefixes(data: dict[str, Any]) -> IdentifierPrefixes:
    defaults = IdentifierPrefixes()
    return IdentifierPrefixes(
        order=data.get("order", defaults.order),
        dispatch=data.get("dispatch", defaults.dispatch),
        raw_material=data.get("raw_material", defaults.raw_material),
        roll=data.get("roll", defaults.roll),
        bundle=data.get("bundle", defaults.bundle),
        production_batch=data.get("production_batch", defaults.production_batch),
    )


def parse_match_attributes(data: dict[str, Any]) -> dict[ProductType, tuple[str, ...]]:
    return {ProductType(key): tuple(attrs) for key, attrs in data.items()}


def parse_workflow_config(data: dict[str, Any]) -> WorkflowConfig:
    """
    Parse a configuration document.

    Sections other than ``schema_version`` are optional; missing values
    fall back to the WorkflowConfig defaults.
    """
    version = data["schema_version"]
    if version != SUPPORTED_SCHEMA_VERSION:
        raise ValueError(
            f"Unsupported config schema_version {version}; "
            f"expected {SUPPORTED_SCHEMA_VERSION}"
        )

    defaults = WorkflowConfig()
    transactions = data.get("transactions") or {}
    identifiers = data.get("identifiers") or {}
    dispatch = data.get("dispatch") or {}
    matching = data.get("product_matching")

    return WorkflowConfig(
        transaction_timeout_seconds=float(
            transactions.get("timeout_seconds", defaults.transaction_timeout_seconds)
        ),
        identifier_retry_attempts=int(
            transactions.get("identifier_retry_attempts", defaults.identifier_retry_attempts)
        ),
        identifier_width=int(identifiers.get("width", defaults.identifier_width)),
        date_scoped_orders=bool(
            identifiers.get("date_scoped_orders", defaults.date_scoped_orders)
        ),
        prefixes=parse_prefixes(identifiers.get("prefixes") or {}),
        order_total_policy=OrderTotalPolicy(
            dispatch.get("order_total_policy", defaults.order_total_policy.value)
        ),
        dispatch_cardinality=DispatchCardinality(
            dispatch.get("cardinality", defaults.dispatch_cardinality.value)
        ),
        match_attributes=(
            parse_match_attributes(matching) if matching else dict(defaults.match_attributes)
        ),
        checksum=compute_checksum(data),
    )
