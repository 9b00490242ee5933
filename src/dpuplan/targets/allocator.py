"""Allocation of an aggregate year-end DPU target down to stage targets.

Strategies:
  proportional  stage_dpu / total_dpu * aggregate (keeps each stage's share)
  weighted      stage_faults / total_faults * aggregate (optionally volume adjusted)
  hybrid        tier-based reduction per stage, rescaled to the aggregate

Stage targets are rounded to cents with a largest-remainder pass so that the
rounded targets add up to the rounded aggregate exactly.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Iterable, Sequence

from dpuplan.core.errors import BaselineNotFoundError
from dpuplan.core.metrics import find_month
from dpuplan.core.models import (
    AllocationStrategy,
    Baseline,
    MonthlyRecord,
    StageRecord,
    StageTarget,
    TotalsView,
    YearTarget,
)
from dpuplan.core.rounding import check_dpu_value, round2, round_half_up
from dpuplan.settings import EngineSettings, default_settings

logger = logging.getLogger(__name__)


class PerformanceTier(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    NEEDS_IMPROVEMENT = "Needs Improvement"
    CRITICAL = "Critical"


# Share of the current DPU kept as target for each tier.
TIER_FACTORS: dict[PerformanceTier, float] = {
    PerformanceTier.EXCELLENT: 0.8,
    PerformanceTier.GOOD: 0.6,
    PerformanceTier.NEEDS_IMPROVEMENT: 0.5,
    PerformanceTier.CRITICAL: 0.4,
}


def performance_tier(dpu: float) -> PerformanceTier:
    if dpu < 0.5:
        return PerformanceTier.EXCELLENT
    if dpu < 1.0:
        return PerformanceTier.GOOD
    if dpu < 2.0:
        return PerformanceTier.NEEDS_IMPROVEMENT
    return PerformanceTier.CRITICAL


def tier_factor(tier: PerformanceTier) -> float:
    return TIER_FACTORS[tier]


def reduction_percentage(current: float, target: float) -> float:
    if current == 0:
        return 0.0
    return (current - target) / current * 100.0


def _apportion(weights: Sequence[float], total: float) -> list[float]:
    """Split ``total`` proportionally to ``weights`` in whole cents.

    Largest-remainder method: floor every share, then hand the missing cents
    to the shares with the largest fractional parts. The result sums to
    ``round2(total)`` and is never negative.
    """
    weight_sum = math.fsum(weights)
    if weight_sum <= 0:
        return [0.0 for _ in weights]

    total_cents = int(round_half_up(total * 100))
    raw = [w / weight_sum * total_cents for w in weights]
    cents = [math.floor(r) for r in raw]
    missing = total_cents - sum(cents)

    # Ties broken by position so the result is deterministic.
    by_remainder = sorted(range(len(raw)), key=lambda i: (-(raw[i] - cents[i]), i))
    for i in by_remainder[:missing]:
        cents[i] += 1
    return [c / 100 for c in cents]


def _active_stages(baseline: MonthlyRecord, view: TotalsView | str) -> list[StageRecord]:
    return [s for s in baseline.stages_in(view) if s.inspected > 0]


def _proportional_weights(stages: list[StageRecord]) -> list[float]:
    return [s.dpu for s in stages]


def _weighted_weights(stages: list[StageRecord], *, volume_adjusted: bool) -> list[float]:
    if not volume_adjusted:
        return [float(s.faults) for s in stages]
    mean_inspected = sum(s.inspected for s in stages) / len(stages)
    # Larger inspected volume softens the target: absolute faults drive the split.
    return [s.faults * (s.inspected / mean_inspected) for s in stages]


def _hybrid_weights(stages: list[StageRecord]) -> list[float]:
    return [s.dpu * tier_factor(performance_tier(s.dpu)) for s in stages]


def allocate_targets(
    baseline: MonthlyRecord,
    aggregate_target: float,
    strategy: AllocationStrategy | str = AllocationStrategy.PROPORTIONAL,
    *,
    view: TotalsView | str = TotalsView.COMBINED,
    volume_adjusted: bool = False,
) -> list[StageTarget]:
    """Distribute ``aggregate_target`` over the baseline's active stages.

    Args:
        baseline: Month whose stage values drive the split.
        aggregate_target: Total DPU the stage targets must add up to.
        strategy: proportional | weighted | hybrid.
        view: Restrict to production or dpdi stages (default: all stages).
        volume_adjusted: Weighted strategy only, scale fault weights by
            relative inspected volume.

    Returns:
        One StageTarget per stage with inspected > 0, in baseline order.
        When every weight is zero (no DPU / no faults) all targets are 0.
    """
    aggregate_target = check_dpu_value(aggregate_target, field="aggregate_target")
    strategy = AllocationStrategy(strategy)
    stages = _active_stages(baseline, view)
    if not stages:
        logger.warning("Baseline %s has no active stages; nothing to allocate", baseline.date_label)
        return []

    if strategy == AllocationStrategy.PROPORTIONAL:
        weights = _proportional_weights(stages)
    elif strategy == AllocationStrategy.WEIGHTED:
        weights = _weighted_weights(stages, volume_adjusted=volume_adjusted)
    else:
        weights = _hybrid_weights(stages)

    if math.fsum(weights) <= 0:
        logger.warning(
            "Baseline %s has zero %s weight; all stage targets set to 0",
            baseline.date_label,
            strategy.value,
        )

    values = _apportion(weights, aggregate_target)
    return [StageTarget(stage_name=s.name, target_dpu=v) for s, v in zip(stages, values)]


def set_manual_target(targets: Iterable[StageTarget], stage_name: str, target_dpu: float) -> list[StageTarget]:
    """Override one stage's target and flag it as manual."""
    value = round2(check_dpu_value(target_dpu, field=f"{stage_name}.target_dpu"))
    out: list[StageTarget] = []
    found = False
    for t in targets:
        if t.stage_name == stage_name:
            out.append(StageTarget(stage_name=stage_name, target_dpu=value, is_manual=True))
            found = True
        else:
            out.append(t)
    if not found:
        out.append(StageTarget(stage_name=stage_name, target_dpu=value, is_manual=True))
    return out


def recalculate_targets(
    baseline: MonthlyRecord,
    aggregate_target: float,
    strategy: AllocationStrategy | str,
    existing: Iterable[StageTarget],
    *,
    view: TotalsView | str = TotalsView.COMBINED,
    volume_adjusted: bool = False,
) -> list[StageTarget]:
    """Recompute auto targets while leaving manual overrides untouched.

    The sum of the result is not guaranteed to match the aggregate once
    manual overrides are present.
    """
    manual = {t.stage_name: t for t in existing if t.is_manual}
    fresh = allocate_targets(
        baseline, aggregate_target, strategy, view=view, volume_adjusted=volume_adjusted
    )
    out = [manual.pop(t.stage_name, t) for t in fresh]
    # Manual targets for stages inactive in this baseline are kept as-is.
    out.extend(manual.values())
    return out


def allocation_delta(targets: Iterable[StageTarget], aggregate_target: float) -> float:
    """``sum(targets) - aggregate``, positive when stages over-allocate."""
    return round2(math.fsum(t.target_dpu for t in targets) - aggregate_target)


def validate_targets(
    targets: Iterable[StageTarget],
    aggregate_target: float,
    tolerance: float | None = None,
    settings: EngineSettings | None = None,
) -> bool:
    """True when the stage targets add up to the aggregate within tolerance."""
    if tolerance is None:
        tolerance = (settings or default_settings()).allocation_tolerance
    return abs(allocation_delta(targets, aggregate_target)) <= tolerance


def get_stage_target(targets: Iterable[StageTarget], stage_name: str) -> float | None:
    for t in targets:
        if t.stage_name == stage_name:
            return t.target_dpu
    return None


def find_baseline(records: Iterable[MonthlyRecord], month_label: str) -> MonthlyRecord:
    """Return the baseline month, which must exist and carry real data."""
    month = find_month(records, month_label)
    if month is None:
        raise BaselineNotFoundError(month_label)
    if not month.has_data():
        raise BaselineNotFoundError(month_label, "month has no inspection data")
    return month


def snapshot_baseline(record: MonthlyRecord) -> Baseline:
    if not record.has_data():
        raise BaselineNotFoundError(record.date_label, "month has no inspection data")
    return Baseline(
        month_label=record.date_label,
        combined_dpu=record.combined_total_dpu,
        production_dpu=record.production_total_dpu,
        dpdi_dpu=record.dpdi_total_dpu,
    )


def build_year_target(
    records: Iterable[MonthlyRecord],
    *,
    year: int,
    baseline_month: str,
    combined_target: float,
    production_target: float,
    dpdi_target: float,
    strategy: AllocationStrategy | str = AllocationStrategy.PROPORTIONAL,
) -> YearTarget:
    """Snapshot the baseline and allocate the combined target to stages."""
    baseline = find_baseline(records, baseline_month)
    stage_targets = allocate_targets(baseline, combined_target, strategy)
    logger.info(
        "Year %s targets from baseline %s (%.2f DPU): combined %.2f via %s",
        year,
        baseline.date_label,
        baseline.combined_total_dpu,
        combined_target,
        AllocationStrategy(strategy).value,
    )
    return YearTarget(
        year=year,
        combined_target=combined_target,
        production_target=production_target,
        dpdi_target=dpdi_target,
        allocation_strategy=strategy,
        baseline=snapshot_baseline(baseline),
        stage_targets=tuple(stage_targets),
    )
