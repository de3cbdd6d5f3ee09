"""
settlement_engines.tracer -- SETTLEMENT_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine entry point and, when it returns,
    logs one structured record naming the engine, its version, how long the
    call took and a short fingerprint of the inputs that shape the result.
    Two calls with the same fingerprint fields produce the same fingerprint,
    whether the arguments were passed by position or by keyword.

Architecture position:
    Engines -- support code for the pure calculation layer.  Emits a log
    record only; never touches the database or the clock used for results.

Failure modes:
    - Exceptions from the wrapped call propagate untouched and no trace is
      written for that call.
    - A fingerprint field the call does not bind is fingerprinted as "null".
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from settlement_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonical(value: Any) -> str:
    """Stable text form of a fingerprinted value."""
    match value:
        case None:
            return "null"
        case Enum():
            return str(value.value)
        case bool() | int() | str():
            return str(value)
        case Decimal():
            # 10 and 10.00 are the same amount
            if value == value.to_integral_value():
                return str(value.to_integral_value())
            return str(value.normalize())
        case Mapping():
            return "{" + ",".join(
                f"{k}:{_canonical(v)}" for k, v in sorted(value.items())
            ) + "}"
        case list() | tuple():
            return "[" + ",".join(_canonical(v) for v in value) + "]"
        case _:
            return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """16 hex characters of SHA-256 over the selected ``arguments``."""
    canonical = "|".join(
        f"{name}={_canonical(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorate an engine method so each successful call is traced.

    Args:
        engine_name: e.g. "allocation", "reconciliation".
        engine_version: Bumped when the engine's results change.
        fingerprint_fields: Parameter names hashed into ``input_fingerprint``.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

            _logger.info("SETTLEMENT_ENGINE_TRACE", extra={
                "trace_type": "SETTLEMENT_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint,
                "duration_ms": elapsed_ms,
                "function": func.__qualname__,
            })
            return result

        return wrapper

    return decorator
