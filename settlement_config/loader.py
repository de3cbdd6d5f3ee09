"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the typed
``settlement_config.schema`` dataclasses.  Services and scripts go through
``settlement_config.get_active_config()``; this module is the parsing layer
underneath it.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Missing sections or keys fall back to the schema defaults; unknown keys
  and values of the wrong type raise ``ValueError``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  data for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    AllocationSettings,
    CashDiscountSettings,
    CombinationSettings,
    EngineSettings,
    ReconciliationSettings,
)

_SECTIONS: dict[str, type] = {
    "allocation": AllocationSettings,
    "combination": CombinationSettings,
    "reconciliation": ReconciliationSettings,
    "cash_discount": CashDiscountSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def _coerce(value: Any, target: type, where: str) -> Any:
    """Convert a YAML scalar into the annotated field type."""
    if target is Decimal:
        if isinstance(value, bool):
            raise ValueError(f"{where}: expected a number, got {value!r}")
        try:
            # str() first so YAML floats such as 0.1 keep their written digits
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"{where}: expected a number, got {value!r}") from exc
    if target is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{where}: expected true/false, got {value!r}")
        return value
    if target is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{where}: expected an integer, got {value!r}")
        return value
    if target is str:
        if not isinstance(value, str):
            raise ValueError(f"{where}: expected text, got {value!r}")
        return value
    raise ValueError(f"{where}: unsupported field type {target!r}")


_TYPE_NAMES: dict[str, type] = {
    "Decimal": Decimal,
    "bool": bool,
    "int": int,
    "str": str,
}


def parse_section(name: str, data: dict[str, Any] | None) -> Any:
    """Parse one settings section into its dataclass."""
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{name}: section must be a mapping")

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"{name}: unknown keys {unknown}")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        # Annotations are strings under postponed evaluation
        target = _TYPE_NAMES[str(known[key].type)]
        kwargs[key] = _coerce(value, target, f"{name}.{key}")
    return cls(**kwargs)


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse a whole settings document into ``EngineSettings``."""
    unknown = sorted(set(data) - set(_SECTIONS) - {"version"})
    if unknown:
        raise ValueError(f"Unknown settings sections: {unknown}")

    version = data.get("version", "1")
    return EngineSettings(
        version=str(version),
        **{name: parse_section(name, data.get(name)) for name in _SECTIONS},
    )


def load_settings(path: Path) -> EngineSettings:
    """Load and parse a YAML settings file."""
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a settings document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
