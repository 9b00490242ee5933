"""Intervention projections: how planned actions move the year-end DPU."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable

from dpuplan.core.models import ConfidenceLevel, Intervention, InterventionStatus
from dpuplan.core.rounding import round_half_up
from dpuplan.settings import EngineSettings, default_settings
from dpuplan.trajectory.forecast import Likelihood, RiskLevel, forecast_outlook

logger = logging.getLogger(__name__)

CONFIDENCE_MULTIPLIERS: dict[ConfidenceLevel, float] = {
    ConfidenceLevel.HIGH: 0.9,
    ConfidenceLevel.MEDIUM: 0.7,
    ConfidenceLevel.LOW: 0.5,
}

# Cancelled has no entry: cancelled interventions never count.
STATUS_MULTIPLIERS: dict[InterventionStatus, float] = {
    InterventionStatus.COMPLETED: 1.0,
    InterventionStatus.IN_PROGRESS: 0.8,
    InterventionStatus.PLANNED: 0.6,
    InterventionStatus.DELAYED: 0.4,
}


@dataclass(frozen=True)
class CurrentState:
    current_dpu: float
    target_dpu: float
    gap: float
    months_remaining: int
    required_rate: float

    @classmethod
    def from_targets(cls, *, current_dpu: float, target_dpu: float, months_remaining: int) -> "CurrentState":
        months = max(1, int(months_remaining))
        gap = current_dpu - target_dpu
        return cls(
            current_dpu=current_dpu,
            target_dpu=target_dpu,
            gap=gap,
            months_remaining=months,
            required_rate=gap / months,
        )


@dataclass(frozen=True)
class InterventionProjection:
    baseline_projection: float
    adjusted_projection: float
    total_expected_impact: float
    confidence_score: int


@dataclass(frozen=True)
class ForecastScenario:
    name: str
    projected_dec: float
    success_likelihood: Likelihood
    risk_level: RiskLevel
    risk_percentage: float
    description: str


@dataclass(frozen=True)
class ScenarioImprovement:
    dpu_reduction: float
    risk_reduction: float
    likelihood_change: str


@dataclass(frozen=True)
class DualForecast:
    baseline: ForecastScenario
    with_interventions: ForecastScenario | None = None
    improvement: ScenarioImprovement | None = None


def active_interventions(interventions: Iterable[Intervention]) -> list[Intervention]:
    return [i for i in interventions if not i.is_cancelled]


def expected_impact(intervention: Intervention) -> float:
    """Estimated reduction discounted by confidence and delivery status."""
    if intervention.is_cancelled:
        return 0.0
    return (
        intervention.estimated_dpu_reduction
        * CONFIDENCE_MULTIPLIERS[intervention.confidence_level]
        * STATUS_MULTIPLIERS[intervention.status]
    )


def project_interventions(state: CurrentState, interventions: Iterable[Intervention]) -> InterventionProjection:
    """Year-end DPU with and without the (non-cancelled) interventions.

    The baseline projection is the linear extrapolation of the current gap,
    ``current + (gap / months) * months``, i.e. ``current + gap``.
    """
    active = active_interventions(interventions)
    total_impact = sum(expected_impact(i) for i in active)
    baseline_projection = state.current_dpu + state.gap
    if active:
        mean_confidence = sum(CONFIDENCE_MULTIPLIERS[i.confidence_level] for i in active) / len(active)
        confidence_score = int(round_half_up(100 * mean_confidence))
    else:
        confidence_score = 0
    return InterventionProjection(
        baseline_projection=baseline_projection,
        adjusted_projection=baseline_projection - total_impact,
        total_expected_impact=total_impact,
        confidence_score=confidence_score,
    )


@dataclass(frozen=True)
class InterventionPlan:
    """All interventions one stage owner plans for a year.

    Cancelled interventions stay in ``interventions`` for the record; they are
    left out of ``projections``.
    """
    stage_id: str
    stage_name: str
    year: int
    current_state: CurrentState
    interventions: tuple[Intervention, ...] = ()
    created_by: str | None = None
    projections: InterventionProjection = field(init=False)

    def __post_init__(self) -> None:
        interventions = tuple(self.interventions)
        object.__setattr__(self, "interventions", interventions)
        object.__setattr__(self, "projections", project_interventions(self.current_state, interventions))

    def get(self, intervention_id: str) -> Intervention | None:
        for i in self.interventions:
            if i.id == intervention_id:
                return i
        return None


def add_intervention(plan: InterventionPlan, intervention: Intervention) -> InterventionPlan:
    if plan.get(intervention.id) is not None:
        raise ValueError(f"intervention {intervention.id!r} already in plan for {plan.stage_name}")
    logger.debug("Plan %s/%s: added intervention %s", plan.stage_name, plan.year, intervention.id)
    return replace(plan, interventions=plan.interventions + (intervention,))


def update_intervention(plan: InterventionPlan, intervention_id: str, **changes) -> InterventionPlan:
    """Replace fields on one intervention, e.g. ``status="Completed"``."""
    if plan.get(intervention_id) is None:
        raise KeyError(intervention_id)
    interventions = tuple(
        replace(i, **changes) if i.id == intervention_id else i for i in plan.interventions
    )
    return replace(plan, interventions=interventions)


def remove_intervention(plan: InterventionPlan, intervention_id: str) -> InterventionPlan:
    if plan.get(intervention_id) is None:
        raise KeyError(intervention_id)
    return replace(plan, interventions=tuple(i for i in plan.interventions if i.id != intervention_id))


def _scenario(name: str, projected: float, target: float, description: str, settings: EngineSettings) -> ForecastScenario:
    outlook = forecast_outlook(projected, target, settings)
    return ForecastScenario(
        name=name,
        projected_dec=projected,
        success_likelihood=outlook.likelihood,
        risk_level=outlook.risk_level,
        risk_percentage=max(0.0, outlook.miss_percentage),
        description=description,
    )


def dual_forecast(
    state: CurrentState,
    interventions: Iterable[Intervention],
    settings: EngineSettings | None = None,
) -> DualForecast:
    """Baseline scenario, plus a with-interventions scenario when any are active."""
    settings = settings or default_settings()
    interventions = list(interventions)
    projection = project_interventions(state, interventions)
    baseline = _scenario(
        "Baseline",
        projection.baseline_projection,
        state.target_dpu,
        "Current trajectory without interventions",
        settings,
    )
    active = active_interventions(interventions)
    if not active:
        return DualForecast(baseline=baseline)

    adjusted = _scenario(
        "With Interventions",
        projection.adjusted_projection,
        state.target_dpu,
        f"Projection with {len(active)} active intervention(s), confidence {projection.confidence_score}%",
        settings,
    )
    if adjusted.success_likelihood == baseline.success_likelihood:
        change = f"No change ({baseline.success_likelihood.value})"
    else:
        change = f"{baseline.success_likelihood.value} -> {adjusted.success_likelihood.value}"
    improvement = ScenarioImprovement(
        dpu_reduction=projection.total_expected_impact,
        risk_reduction=baseline.risk_percentage - adjusted.risk_percentage,
        likelihood_change=change,
    )
    return DualForecast(baseline=baseline, with_interventions=adjusted, improvement=improvement)
