"""
mfg_config -- single public entrypoint for kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``, returning a frozen ``WorkflowConfig``.
    Services receive the config by injection; none of them reads files or
    environment variables.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``mfg_config_loaded`` log entry with the source path and checksum, so
    every dispatch can be traced back to the policy that governed it.
"""

from __future__ import annotations

from pathlib import Path

from mfg_config.loader import load_yaml_file, parse_workflow_config
from mfg_config.schema import IdentifierPrefixes, WorkflowConfig
from mfg_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> WorkflowConfig:
    """
    Load and validate the configuration at ``path`` (defaults.yaml if None).

    Raises:
        FileNotFoundError, yaml.YAMLError, KeyError, ValueError -- see loader.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_workflow_config(load_yaml_file(source))
    logger.info(
        "mfg_config_loaded",
        extra={
            "source": str(source),
            "checksum": config.checksum,
            "order_total_policy": config.order_total_policy.value,
            "dispatch_cardinality": config.dispatch_cardinality.value,
            "transaction_timeout_seconds": config.transaction_timeout_seconds,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "IdentifierPrefixes",
    "WorkflowConfig",
    "get_active_config",
]
