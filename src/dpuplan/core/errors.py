"""Exceptions raised by the DPU engine.

Contract violations (bad counts, unknown stages, missing baselines) raise.
Expected states such as "no data yet" are returned as values instead.
"""

from __future__ import annotations


class DpuError(Exception):
    """Base class for all engine errors."""


class InvalidMetricInput(DpuError, ValueError):
    """Negative, non-finite or fractional counts / targets."""


class DuplicateStageError(DpuError, ValueError):
    pass


class StageNotFoundError(DpuError, KeyError):
    def __init__(self, stage_name: str, month_label: str | None = None):
        self.stage_name = stage_name
        self.month_label = month_label
        where = f" in {month_label}" if month_label else ""
        super().__init__(f"stage {stage_name!r} not found{where}")

    def __str__(self) -> str:
        return str(self.args[0])


class BaselineNotFoundError(DpuError, LookupError):
    """The configured baseline month has no record with real data."""

    def __init__(self, month_label: str, reason: str = "no matching record"):
        self.month_label = month_label
        self.reason = reason
        super().__init__(f"baseline month {month_label!r}: {reason}")
