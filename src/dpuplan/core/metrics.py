"""Metric engine: DPU derivation and month/stage aggregation.

Every function is pure: records are never mutated, updates return new
records with totals recomputed from scratch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable

import pandas as pd

from dpuplan.core.errors import DuplicateStageError, InvalidMetricInput, StageNotFoundError
from dpuplan.core.models import (
    MonthlyRecord,
    StageArea,
    StageRecord,
    TotalsView,
    recalculate_totals,
)
from dpuplan.core.months import month_sort_key, year_month_labels
from dpuplan.core.rounding import calculate_dpu, round2
from dpuplan.settings import EngineSettings, default_settings

logger = logging.getLogger(__name__)

__all__ = [
    "add_stage",
    "calculate_dpu",
    "find_month",
    "generate_year_records",
    "get_stage_performance_summary",
    "is_protected_stage",
    "latest_month_with_data",
    "recalculate_totals",
    "records_to_frame",
    "remove_stage",
    "round2",
    "sort_records",
    "stage_names",
    "update_month",
    "update_stage",
    "validate_stage_name",
    "ytd_average",
]

_STAGE_NAME_RE = re.compile(r"^[A-Z0-9\s]+$")

FRAME_COLUMNS = ["month", "year", "position", "stage", "area", "inspected", "faults", "dpu"]


def update_stage(stage: StageRecord, *, inspected: int | None = None, faults: int | None = None) -> StageRecord:
    """Apply the provided counts (None = unchanged) and recompute DPU."""
    changes = {}
    if inspected is not None:
        changes["inspected"] = inspected
    if faults is not None:
        changes["faults"] = faults
    return replace(stage, **changes)


def update_month(
    record: MonthlyRecord,
    stage_name: str,
    *,
    inspected: int | None = None,
    faults: int | None = None,
) -> MonthlyRecord:
    if record.stage(stage_name) is None:
        raise StageNotFoundError(stage_name, record.date_label)
    stages = tuple(
        update_stage(s, inspected=inspected, faults=faults) if s.name == stage_name else s
        for s in record.stages
    )
    return replace(record, stages=stages)


def validate_stage_name(name: str) -> bool:
    """Stage names are upper-case letters, digits and spaces."""
    s = str(name or "").strip()
    return bool(s) and bool(_STAGE_NAME_RE.match(s))


def is_protected_stage(name: str, settings: EngineSettings | None = None) -> bool:
    settings = settings or default_settings()
    return str(name or "").strip().upper() in settings.protected_stages


def add_stage(
    records: Iterable[MonthlyRecord],
    name: str,
    *,
    area: StageArea | str | None = None,
    settings: EngineSettings | None = None,
) -> list[MonthlyRecord]:
    """Append a zero-count stage to every month."""
    settings = settings or default_settings()
    name = str(name or "").strip()
    if not validate_stage_name(name):
        raise InvalidMetricInput(f"invalid stage name: {name!r}")
    if area is None:
        area = StageArea.DPDI if settings.is_dpdi_stage(name) else StageArea.PRODUCTION
    new_stage = StageRecord(name=name, area=area)

    out: list[MonthlyRecord] = []
    for month in records:
        if month.stage(name) is not None:
            raise DuplicateStageError(f"stage {name!r} already exists in {month.date_label}")
        out.append(replace(month, stages=month.stages + (new_stage,)))
    logger.debug("Added stage %s (%s) to %d months", name, new_stage.area.value, len(out))
    return out


def remove_stage(records: Iterable[MonthlyRecord], name: str) -> list[MonthlyRecord]:
    """Drop a stage from every month.

    Protected stages are not refused here; callers enforce the confirmation
    policy with :func:`is_protected_stage`.
    """
    out = [
        replace(month, stages=tuple(s for s in month.stages if s.name != name))
        for month in records
    ]
    logger.debug("Removed stage %s from %d months", name, len(out))
    return out


def stage_names(records: Iterable[MonthlyRecord]) -> list[str]:
    """Distinct stage names across all months, in first-seen order."""
    names: dict[str, None] = {}
    for month in records:
        for s in month.stages:
            names.setdefault(s.name, None)
    return list(names)


def sort_records(records: Iterable[MonthlyRecord]) -> list[MonthlyRecord]:
    return sorted(records, key=lambda m: month_sort_key(m.date_label))


def find_month(records: Iterable[MonthlyRecord], label: str) -> MonthlyRecord | None:
    for month in records:
        if month.date_label == label:
            return month
    return None


def latest_month_with_data(
    records: Iterable[MonthlyRecord],
    view: TotalsView | str = TotalsView.COMBINED,
) -> MonthlyRecord | None:
    """Most recent month whose totals show real data (default baseline)."""
    with_data = [m for m in sort_records(records) if m.has_data(view)]
    return with_data[-1] if with_data else None


def ytd_average(records: Iterable[MonthlyRecord], year: int) -> dict[str, float]:
    """Mean total DPU per view over the months of ``year`` that have data."""
    months = [m for m in records if m.year == year and m.has_data()]
    if not months:
        return {"combined": 0.0, "production": 0.0, "dpdi": 0.0}
    n = len(months)
    return {
        "combined": sum(m.combined_total_dpu for m in months) / n,
        "production": sum(m.production_total_dpu for m in months) / n,
        "dpdi": sum(m.dpdi_total_dpu for m in months) / n,
    }


def generate_year_records(
    year: int,
    names: Iterable[str],
    *,
    settings: EngineSettings | None = None,
) -> list[MonthlyRecord]:
    """Twelve placeholder months with zero counts for every stage."""
    settings = settings or default_settings()
    stages = tuple(
        StageRecord(
            name=n,
            area=StageArea.DPDI if settings.is_dpdi_stage(n) else StageArea.PRODUCTION,
        )
        for n in names
    )
    return [
        MonthlyRecord(date_label=label, stages=stages, signout_stage=settings.signout_stage)
        for label in year_month_labels(year)
    ]


def records_to_frame(records: Iterable[MonthlyRecord]) -> pd.DataFrame:
    """Long-form frame: one row per (month, stage)."""
    rows = [
        {
            "month": month.date_label,
            "year": month.year,
            "position": pos,
            "stage": s.name,
            "area": s.area.value,
            "inspected": s.inspected,
            "faults": s.faults,
            "dpu": s.dpu,
        }
        for month in records
        for pos, s in enumerate(month.stages)
    ]
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def get_stage_performance_summary(records: Iterable[MonthlyRecord]) -> list[dict]:
    """Aggregate each stage over the months where it is present.

    Returns dicts with name, total_inspected, total_faults, avg_dpu, max_dpu
    and min_dpu, worst average DPU first. Months without the stage are
    skipped rather than counted as zero.
    """
    records = list(records)
    df = records_to_frame(records)
    if df.empty:
        return []

    order = {name: idx for idx, name in enumerate(stage_names(records))}
    grouped = df.groupby("stage", sort=False).agg(
        total_inspected=("inspected", "sum"),
        total_faults=("faults", "sum"),
        avg_dpu=("dpu", "mean"),
        max_dpu=("dpu", "max"),
        min_dpu=("dpu", "min"),
    )
    grouped["first_seen"] = [order[name] for name in grouped.index]
    grouped["avg_dpu"] = grouped["avg_dpu"].map(round2)
    grouped = grouped.sort_values(["avg_dpu", "first_seen"], ascending=[False, True], kind="mergesort")

    return [
        {
            "name": str(name),
            "total_inspected": int(row.total_inspected),
            "total_faults": int(row.total_faults),
            "avg_dpu": float(row.avg_dpu),
            "max_dpu": float(row.max_dpu),
            "min_dpu": float(row.min_dpu),
        }
        for name, row in grouped.iterrows()
    ]
