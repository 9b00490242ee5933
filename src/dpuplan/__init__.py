"""DPU (defects per unit) targets, glide paths and forecasts.

The engine is pure: callers pass MonthlyRecord values in and get new values
back. Persistence and presentation live outside this package.
"""

from dpuplan.core.errors import (
    BaselineNotFoundError,
    DpuError,
    DuplicateStageError,
    InvalidMetricInput,
    StageNotFoundError,
)
from dpuplan.core.metrics import calculate_dpu, recalculate_totals, round2
from dpuplan.core.models import MonthlyRecord, StageRecord, StageTarget
from dpuplan.settings import EngineSettings, default_settings

__version__ = "0.1.0"

__all__ = [
    "BaselineNotFoundError",
    "DpuError",
    "DuplicateStageError",
    "EngineSettings",
    "InvalidMetricInput",
    "MonthlyRecord",
    "StageNotFoundError",
    "StageRecord",
    "StageTarget",
    "calculate_dpu",
    "default_settings",
    "recalculate_totals",
    "round2",
]
