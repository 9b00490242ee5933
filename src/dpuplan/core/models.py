from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from dpuplan.core.errors import DuplicateStageError, InvalidMetricInput
from dpuplan.core.months import parse_month_label
from dpuplan.core.rounding import calculate_dpu, check_count, check_dpu_value, round2


class StageArea(str, Enum):
    PRODUCTION = "production"
    DPDI = "dpdi"


class TotalsView(str, Enum):
    """The three parallel aggregate views over one month's stages."""
    PRODUCTION = "production"
    DPDI = "dpdi"
    COMBINED = "combined"


class AllocationStrategy(str, Enum):
    PROPORTIONAL = "proportional"
    WEIGHTED = "weighted"
    HYBRID = "hybrid"


class InterventionType(str, Enum):
    PROCESS = "Process"
    TRAINING = "Training"
    TOOLING = "Tooling"
    DESIGN = "Design"
    QUALITY_CHECK = "Quality Check"
    SUPPLIER = "Supplier"
    OTHER = "Other"


class InterventionStatus(str, Enum):
    PLANNED = "Planned"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    DELAYED = "Delayed"
    CANCELLED = "Cancelled"


class ConfidenceLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


def stage_id_from_name(name: str) -> str:
    """``"SIP 1A" -> "sip1a"``."""
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


@dataclass(frozen=True)
class StageRecord:
    """One inspection stage's counts for one month.

    ``dpu`` is derived from the counts on construction (and on
    ``dataclasses.replace``), so it can never go stale.
    """
    name: str
    inspected: int = 0
    faults: int = 0
    area: StageArea = StageArea.PRODUCTION
    stage_id: str = ""
    dpu: float = field(init=False)

    def __post_init__(self) -> None:
        name = str(self.name or "").strip()
        if not name:
            raise InvalidMetricInput("stage name is empty")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "inspected", check_count(self.inspected, field=f"{name}.inspected"))
        object.__setattr__(self, "faults", check_count(self.faults, field=f"{name}.faults"))
        object.__setattr__(self, "area", StageArea(self.area))
        if not self.stage_id:
            object.__setattr__(self, "stage_id", stage_id_from_name(name))
        object.__setattr__(self, "dpu", calculate_dpu(self.inspected, self.faults))

    @property
    def is_active(self) -> bool:
        return self.inspected > 0


@dataclass(frozen=True)
class StageTotals:
    total_inspected: int = 0
    total_faults: int = 0
    total_dpu: float = 0.0


def recalculate_totals(stages) -> StageTotals:
    """Sum counts and per-stage DPU.

    ``total_dpu`` is the rounded sum of stage DPU values, NOT
    ``total_faults / total_inspected``.
    """
    stages = list(stages)
    return StageTotals(
        total_inspected=sum(s.inspected for s in stages),
        total_faults=sum(s.faults for s in stages),
        total_dpu=round2(sum(s.dpu for s in stages)),
    )


@dataclass(frozen=True)
class MonthlyRecord:
    """One calendar month: its stages plus the derived totals."""
    date_label: str
    stages: tuple[StageRecord, ...] = ()
    signout_stage: str = "SIGN"
    year: int = field(init=False)
    production_totals: StageTotals = field(init=False)
    dpdi_totals: StageTotals = field(init=False)
    combined_totals: StageTotals = field(init=False)

    def __post_init__(self) -> None:
        year, _ = parse_month_label(self.date_label)
        stages = tuple(self.stages)
        seen: set[str] = set()
        for s in stages:
            if s.name in seen:
                raise DuplicateStageError(f"duplicate stage {s.name!r} in {self.date_label}")
            seen.add(s.name)
        object.__setattr__(self, "stages", stages)
        object.__setattr__(self, "year", year)
        object.__setattr__(
            self, "production_totals",
            recalculate_totals(s for s in stages if s.area == StageArea.PRODUCTION),
        )
        object.__setattr__(
            self, "dpdi_totals",
            recalculate_totals(s for s in stages if s.area == StageArea.DPDI),
        )
        object.__setattr__(self, "combined_totals", recalculate_totals(stages))

    def totals(self, view: TotalsView | str = TotalsView.COMBINED) -> StageTotals:
        view = TotalsView(view)
        if view == TotalsView.PRODUCTION:
            return self.production_totals
        if view == TotalsView.DPDI:
            return self.dpdi_totals
        return self.combined_totals

    def has_data(self, view: TotalsView | str = TotalsView.COMBINED) -> bool:
        return self.totals(view).total_dpu > 0

    def stage(self, name: str) -> StageRecord | None:
        for s in self.stages:
            if s.name == name:
                return s
        return None

    def stages_in(self, view: TotalsView | str = TotalsView.COMBINED) -> tuple[StageRecord, ...]:
        view = TotalsView(view)
        if view == TotalsView.COMBINED:
            return self.stages
        return tuple(s for s in self.stages if s.area.value == view.value)

    @property
    def build_volume(self) -> int:
        """Signout volume: units inspected at the signout stage."""
        s = self.stage(self.signout_stage)
        return s.inspected if s else 0

    @property
    def production_total_dpu(self) -> float:
        return self.production_totals.total_dpu

    @property
    def dpdi_total_dpu(self) -> float:
        return self.dpdi_totals.total_dpu

    @property
    def production_total_inspected(self) -> int:
        return self.production_totals.total_inspected

    @property
    def production_total_faults(self) -> int:
        return self.production_totals.total_faults

    @property
    def dpdi_total_inspected(self) -> int:
        return self.dpdi_totals.total_inspected

    @property
    def dpdi_total_faults(self) -> int:
        return self.dpdi_totals.total_faults

    @property
    def combined_total_dpu(self) -> float:
        return self.combined_totals.total_dpu

    @property
    def combined_total_inspected(self) -> int:
        return self.combined_totals.total_inspected

    @property
    def combined_total_faults(self) -> int:
        return self.combined_totals.total_faults


@dataclass(frozen=True)
class StageTarget:
    stage_name: str
    target_dpu: float
    is_manual: bool = False


@dataclass(frozen=True)
class Baseline:
    """Reference month snapshot for reduction percentages and glide paths."""
    month_label: str
    combined_dpu: float
    production_dpu: float
    dpdi_dpu: float

    def dpu_for(self, view: TotalsView | str = TotalsView.COMBINED) -> float:
        view = TotalsView(view)
        if view == TotalsView.PRODUCTION:
            return self.production_dpu
        if view == TotalsView.DPDI:
            return self.dpdi_dpu
        return self.combined_dpu


@dataclass(frozen=True)
class YearTarget:
    year: int
    combined_target: float
    production_target: float
    dpdi_target: float
    allocation_strategy: AllocationStrategy
    baseline: Baseline
    stage_targets: tuple[StageTarget, ...] = ()

    def __post_init__(self) -> None:
        for name in ("combined_target", "production_target", "dpdi_target"):
            object.__setattr__(self, name, check_dpu_value(getattr(self, name), field=name))
        object.__setattr__(self, "allocation_strategy", AllocationStrategy(self.allocation_strategy))
        object.__setattr__(self, "stage_targets", tuple(self.stage_targets))

    def target_for(self, view: TotalsView | str = TotalsView.COMBINED) -> float:
        view = TotalsView(view)
        if view == TotalsView.PRODUCTION:
            return self.production_target
        if view == TotalsView.DPDI:
            return self.dpdi_target
        return self.combined_target


@dataclass(frozen=True)
class Intervention:
    """A planned corrective action.

    ``estimated_dpu_reduction`` is positive for a reduction.
    """
    id: str
    title: str
    estimated_dpu_reduction: float
    cut_in_date: str
    owner: str
    type: InterventionType = InterventionType.PROCESS
    status: InterventionStatus = InterventionStatus.PLANNED
    confidence_level: ConfidenceLevel = ConfidenceLevel.MEDIUM
    description: str = ""
    investment_cost: float | None = None
    notes: str | None = None
    actual_impact: float | None = None
    completed_date: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", InterventionType(self.type))
        object.__setattr__(self, "status", InterventionStatus(self.status))
        object.__setattr__(self, "confidence_level", ConfidenceLevel(self.confidence_level))

    @property
    def is_cancelled(self) -> bool:
        return self.status == InterventionStatus.CANCELLED
