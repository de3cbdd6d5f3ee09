"""
settlement_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the one way services and scripts obtain settings at runtime:
    ``get_active_config()``.  Engines never read files themselves; they are
    handed the frozen ``EngineSettings`` (or its sections) by the caller.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` -- unknown keys or values of the wrong type.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SETTLEMENT_CONFIG_TRACE`` log entry with the source path, version and
    checksum, tying each reconciliation run to the settings that shaped it.
"""

from __future__ import annotations

from pathlib import Path

from settlement_config.loader import compute_checksum, load_yaml_file, parse_settings
from settlement_config.schema import (
    AllocationSettings,
    CashDiscountSettings,
    CombinationSettings,
    EngineSettings,
    ReconciliationSettings,
)
from settlement_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> EngineSettings:
    """Load, validate and return the active engine settings.

    Args:
        config_path: YAML settings file; the packaged ``defaults.yaml`` when
            omitted.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    settings = parse_settings(data)

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SETTLEMENT_CONFIG_TRACE",
            "config_path": str(path),
            "config_version": settings.version,
            "checksum": compute_checksum(data)[:16],
        },
    )
    return settings


__all__ = [
    "AllocationSettings",
    "CashDiscountSettings",
    "CombinationSettings",
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "ReconciliationSettings",
    "get_active_config",
]
