"""Trajectory package.

Glide paths (where DPU should be), forecasts (where it is heading) and
intervention projections (what planned actions change).
"""

from dpuplan.trajectory.forecast import fit_trend, gap_analysis, pearson_correlation, project
from dpuplan.trajectory.glide_path import GlidePath, calculate_glide_path, glide_path_from_records
from dpuplan.trajectory.interventions import InterventionPlan, dual_forecast, project_interventions

__all__ = [
    "GlidePath",
    "InterventionPlan",
    "calculate_glide_path",
    "dual_forecast",
    "fit_trend",
    "gap_analysis",
    "glide_path_from_records",
    "pearson_correlation",
    "project",
    "project_interventions",
]
