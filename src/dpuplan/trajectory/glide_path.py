"""Glide path: the ideal monthly DPU trajectory from a baseline to a target.

The risk thresholds (On Track <= 1.0, At Risk <= 2.0 DPU/month) and the
2.0 DPU/month achievability ceiling are business rules; they live in
EngineSettings so they can be tuned without touching this module.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from dpuplan.core.models import MonthlyRecord, TotalsView
from dpuplan.core.months import check_month_index, format_month_label, parse_month_label
from dpuplan.settings import EngineSettings, default_settings
from dpuplan.targets.allocator import find_baseline

logger = logging.getLogger(__name__)


class RiskAssessment(str, Enum):
    ON_TRACK = "On Track"
    AT_RISK = "At Risk"
    CRITICAL = "Critical"


class ProgressStatus(str, Enum):
    AHEAD = "Ahead"
    ON_TRACK = "On Track"
    BEHIND = "Behind"


@dataclass(frozen=True)
class GlidePoint:
    month: str
    target_dpu: float
    cumulative_reduction: float
    is_achievable: bool


@dataclass(frozen=True)
class GlidePath:
    start_month: str
    start_dpu: float
    target_dpu: float
    months_remaining: int
    required_monthly_reduction: float
    monthly_targets: tuple[GlidePoint, ...]
    risk_assessment: RiskAssessment
    daily_reduction_required: float

    def expected_at(self, months_elapsed: float) -> float:
        """Where the path says DPU should be after ``months_elapsed`` months.

        Linear interpolation between the start value and the monthly points;
        0 gives the start value, anything past the end gives the target.
        """
        if months_elapsed <= 0:
            return self.start_dpu
        if months_elapsed >= len(self.monthly_targets):
            return self.target_dpu
        values = [self.start_dpu] + [p.target_dpu for p in self.monthly_targets]
        lower = int(math.floor(months_elapsed))
        frac = months_elapsed - lower
        return values[lower] + (values[lower + 1] - values[lower]) * frac


@dataclass(frozen=True)
class MonthlyProgress:
    actual_reduction: float
    target_reduction: float
    variance: float
    status: ProgressStatus


@dataclass(frozen=True)
class GlideProgress:
    progress_percent: float
    expected_percent: float
    on_track: bool


def months_between(*, current_month: int, current_year: int, target_month: int, target_year: int) -> int:
    """Months from the current month to the target month, floored at 1."""
    current_month = check_month_index(current_month, field="current_month")
    target_month = check_month_index(target_month, field="target_month")
    # Across one year boundary this is (11 - current) + (target + 1).
    months = 12 * (int(target_year) - int(current_year)) + (target_month - current_month)
    return max(1, months)


def assess_risk(required_monthly_reduction: float, settings: EngineSettings | None = None) -> RiskAssessment:
    settings = settings or default_settings()
    if required_monthly_reduction <= settings.on_track_max_reduction:
        return RiskAssessment.ON_TRACK
    if required_monthly_reduction <= settings.at_risk_max_reduction:
        return RiskAssessment.AT_RISK
    return RiskAssessment.CRITICAL


def calculate_glide_path(
    *,
    current_dpu: float,
    target_dpu: float,
    current_month: int,
    current_year: int,
    target_month: int,
    target_year: int,
    settings: EngineSettings | None = None,
) -> GlidePath:
    """Linear monthly trajectory from ``current_dpu`` to ``target_dpu``.

    A negative required reduction (DPU allowed to rise) is kept as-is. Each
    monthly point steps by the required reduction and is clamped so it never
    goes below the final target, whichever way the path runs.
    """
    settings = settings or default_settings()
    months_remaining = months_between(
        current_month=current_month,
        current_year=current_year,
        target_month=target_month,
        target_year=target_year,
    )
    rate = (current_dpu - target_dpu) / months_remaining
    achievable = rate <= settings.max_achievable_monthly_reduction

    points: list[GlidePoint] = []
    projected = current_dpu
    for i in range(months_remaining):
        projected = projected - rate
        value = max(projected, target_dpu)
        points.append(
            GlidePoint(
                month=format_month_label(current_year, current_month + i + 1),
                target_dpu=value,
                cumulative_reduction=(i + 1) * rate,
                is_achievable=achievable,
            )
        )

    logger.debug(
        "Glide path %.2f -> %.2f over %d month(s): %.3f/month",
        current_dpu,
        target_dpu,
        months_remaining,
        rate,
    )
    return GlidePath(
        start_month=format_month_label(current_year, current_month),
        start_dpu=current_dpu,
        target_dpu=target_dpu,
        months_remaining=months_remaining,
        required_monthly_reduction=rate,
        monthly_targets=tuple(points),
        risk_assessment=assess_risk(rate, settings),
        daily_reduction_required=rate / settings.days_per_month,
    )


def glide_path_from_records(
    records: Iterable[MonthlyRecord],
    *,
    baseline_month: str,
    target_dpu: float,
    target_label: str,
    view: TotalsView | str = TotalsView.COMBINED,
    settings: EngineSettings | None = None,
) -> GlidePath:
    """Glide path starting at a recorded baseline month.

    Raises BaselineNotFoundError when the baseline month is missing or empty.
    """
    baseline = find_baseline(records, baseline_month)
    current_year, current_month = parse_month_label(baseline.date_label)
    target_year, target_month = parse_month_label(target_label)
    return calculate_glide_path(
        current_dpu=baseline.totals(view).total_dpu,
        target_dpu=target_dpu,
        current_month=current_month,
        current_year=current_year,
        target_month=target_month,
        target_year=target_year,
        settings=settings,
    )


def monthly_progress(
    current_dpu: float,
    last_month_dpu: float,
    target_reduction: float,
    settings: EngineSettings | None = None,
) -> MonthlyProgress:
    """Compare one month's actual reduction with the path's monthly step."""
    settings = settings or default_settings()
    actual = last_month_dpu - current_dpu
    variance = actual - target_reduction
    tolerance = settings.monthly_progress_tolerance
    if variance > tolerance:
        status = ProgressStatus.AHEAD
    elif variance >= -tolerance:
        status = ProgressStatus.ON_TRACK
    else:
        status = ProgressStatus.BEHIND
    return MonthlyProgress(
        actual_reduction=actual,
        target_reduction=target_reduction,
        variance=variance,
        status=status,
    )


def glide_progress(
    *,
    start_dpu: float,
    current_dpu: float,
    target_dpu: float,
    months_elapsed: int,
    months_available: int,
    settings: EngineSettings | None = None,
) -> GlideProgress:
    """Share of the total reduction achieved vs share of time used."""
    settings = settings or default_settings()
    total = start_dpu - target_dpu
    progress = 0.0 if total == 0 else (start_dpu - current_dpu) / total * 100.0
    expected = 0.0 if months_available <= 0 else months_elapsed / months_available * 100.0
    return GlideProgress(
        progress_percent=progress,
        expected_percent=expected,
        on_track=progress >= expected - settings.glide_progress_tolerance_pct,
    )


def reduction_label(value: float) -> str:
    """``1.5 -> "-1.50"``, ``-0.4 -> "+0.40"`` (a reduction shows as a minus)."""
    return f"-{value:.2f}" if value > 0 else f"+{abs(value):.2f}"
