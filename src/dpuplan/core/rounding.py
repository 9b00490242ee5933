"""Rounding helpers shared by every DPU computation.

All DPU values go through :func:`round2` so dashboard and report figures never
drift apart. Rounding is half-up on the shortest decimal repr of the float
(``0.385 -> 0.39``), not banker's rounding.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from dpuplan.core.errors import InvalidMetricInput


def round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def round2(value: float) -> float:
    """Round to 2 decimals, half-up."""
    return round_half_up(value, 2)


def check_count(value, *, field: str) -> int:
    """Validate an inspected/fault count and return it as int.

    Accepts ints and integral floats (``12.0``). Raises InvalidMetricInput
    for None, bools, negatives, NaN/inf and fractional values.
    """
    if value is None or isinstance(value, bool):
        raise InvalidMetricInput(f"{field}: expected a count, got {value!r}")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidMetricInput(f"{field}: non-finite value {value!r}")
        if not value.is_integer():
            raise InvalidMetricInput(f"{field}: fractional count {value!r}")
    try:
        n = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidMetricInput(f"{field}: expected a count, got {value!r}") from exc
    if n != value:
        raise InvalidMetricInput(f"{field}: expected a count, got {value!r}")
    if n < 0:
        raise InvalidMetricInput(f"{field}: negative count {n}")
    return n


def check_dpu_value(value, *, field: str) -> float:
    """Validate a DPU-like target value (finite, >= 0)."""
    if value is None or isinstance(value, bool):
        raise InvalidMetricInput(f"{field}: expected a number, got {value!r}")
    try:
        v = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidMetricInput(f"{field}: expected a number, got {value!r}") from exc
    if not math.isfinite(v):
        raise InvalidMetricInput(f"{field}: non-finite value {value!r}")
    if v < 0:
        raise InvalidMetricInput(f"{field}: negative value {v}")
    return v


def calculate_dpu(inspected, faults) -> float:
    """Defects per unit for one stage.

    Returns 0.0 when nothing was inspected (stage not started yet), otherwise
    ``faults / inspected`` rounded half-up to 2 decimals.

    Examples:
        >>> calculate_dpu(200, 77)
        0.39
        >>> calculate_dpu(0, 5)
        0.0
    """
    n_inspected = check_count(inspected, field="inspected")
    n_faults = check_count(faults, field="faults")
    if n_inspected == 0:
        return 0.0
    return round2(n_faults / n_inspected)
