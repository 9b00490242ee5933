"""Trajectory forecasting from historical monthly series.

Only points with a value > 0 count as actual data; zero/None months are
placeholders (stage not started, month not reached yet).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol, Sequence

import numpy as np

from dpuplan.core.metrics import sort_records
from dpuplan.core.models import MonthlyRecord, TotalsView
from dpuplan.core.months import is_month_label, shift_month_label
from dpuplan.core.rounding import round2
from dpuplan.settings import EngineSettings, default_settings
from dpuplan.trajectory.glide_path import GlidePath

logger = logging.getLogger(__name__)


class ForecastStatus(str, Enum):
    OK = "OK"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


class TrendDirection(str, Enum):
    IMPROVING = "Improving"
    DETERIORATING = "Deteriorating"


class Likelihood(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class SeriesPoint:
    month: str
    value: float | None

    @property
    def is_actual(self) -> bool:
        return self.value is not None and self.value > 0


@dataclass(frozen=True)
class TrendFit:
    status: ForecastStatus
    n_points: int
    slope: float | None = None
    intercept: float | None = None
    direction: TrendDirection | None = None
    last_value: float | None = None
    last_month: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == ForecastStatus.OK

    @property
    def total_change(self) -> float:
        """Predicted change across the fitted window (negative = DPU falling)."""
        if not self.ok:
            return 0.0
        return self.slope * (self.n_points - 1)

    @property
    def monthly_reduction(self) -> float:
        """Trend reduction per month, positive when DPU is falling."""
        return -self.slope if self.ok else 0.0


@dataclass(frozen=True)
class ForecastPoint:
    month: str
    value: float


@dataclass(frozen=True)
class Forecast:
    status: ForecastStatus
    trend: TrendFit
    points: tuple[ForecastPoint, ...] = ()


@dataclass(frozen=True)
class GapAnalysis:
    actual: float
    expected: float
    gap: float
    months_remaining: int
    required_rate: float
    acceleration_needed: float

    @property
    def is_behind(self) -> bool:
        return self.gap > 0


@dataclass(frozen=True)
class TrajectoryPoint:
    month: str
    actual: float | None
    target: float
    variance: float
    is_above_target: bool


@dataclass(frozen=True)
class Outlook:
    projected: float
    target: float
    likelihood: Likelihood
    miss_percentage: float
    risk_level: RiskLevel


class JitterSource(Protocol):
    def sample(self, metric: str) -> float: ...


class NoJitter:
    """Default jitter source: forecasts stay deterministic."""

    def sample(self, metric: str) -> float:
        return 0.0


class UniformJitter:
    """Uniform noise in ``[-amplitude/2, amplitude/2)`` per metric."""

    def __init__(self, amplitudes: dict[str, float] | None = None, *, seed: int | None = None):
        self.amplitudes = amplitudes if amplitudes is not None else {"total_dpu": 1.0, "dpu": 1.0, "volume": 100.0}
        self._rng = random.Random(seed)

    def sample(self, metric: str) -> float:
        amplitude = self.amplitudes.get(metric, 0.0)
        return (self._rng.random() - 0.5) * amplitude


def series_from_records(
    records: Iterable[MonthlyRecord],
    *,
    view: TotalsView | str = TotalsView.COMBINED,
    stage: str | None = None,
    metric: str = "dpu",
) -> list[SeriesPoint]:
    """Chronological series of total (or single-stage) DPU or build volume."""
    out: list[SeriesPoint] = []
    for month in sort_records(records):
        if metric == "volume":
            value: float | None = float(month.build_volume)
        elif stage is not None:
            s = month.stage(stage)
            value = s.dpu if s is not None else None
        else:
            value = month.totals(view).total_dpu
        out.append(SeriesPoint(month=month.date_label, value=value))
    return out


def _actual(series: Iterable[SeriesPoint]) -> list[SeriesPoint]:
    return [p for p in series if p.is_actual]


def fit_trend(
    series: Sequence[SeriesPoint],
    *,
    window: int | None = None,
    settings: EngineSettings | None = None,
) -> TrendFit:
    """Least-squares line over the last ``window`` actual points.

    Fewer than 2 actual points gives ``status == INSUFFICIENT_DATA``.
    """
    settings = settings or default_settings()
    window = window or settings.trend_window
    actual = _actual(series)
    if len(actual) < 2:
        logger.debug("Trend fit skipped: %d actual point(s)", len(actual))
        return TrendFit(status=ForecastStatus.INSUFFICIENT_DATA, n_points=len(actual))

    recent = actual[-window:]
    x = np.arange(len(recent), dtype=float)
    y = np.array([p.value for p in recent], dtype=float)
    dx = x - x.mean()
    slope = float(np.sum(dx * (y - y.mean())) / np.sum(dx * dx))
    intercept = float(y.mean() - slope * x.mean())
    direction = TrendDirection.IMPROVING if slope * (len(recent) - 1) <= 0 else TrendDirection.DETERIORATING
    return TrendFit(
        status=ForecastStatus.OK,
        n_points=len(recent),
        slope=slope,
        intercept=intercept,
        direction=direction,
        last_value=float(recent[-1].value),
        last_month=recent[-1].month,
    )


def project(
    series: Sequence[SeriesPoint],
    months: int = 3,
    *,
    metric: str = "total_dpu",
    jitter: JitterSource | None = None,
    settings: EngineSettings | None = None,
) -> Forecast:
    """Extend the trend ``months`` ahead.

    Each value blends the trend extrapolation with the last actual value
    (``settings.trend_weight`` on the trend), is clamped into the metric's
    configured band, then gets jitter (none by default). ``metric`` is
    ``"total_dpu"`` for a totals series, ``"dpu"`` for a single stage and
    ``"volume"`` for build volume; only totals and volume carry a band.
    """
    settings = settings or default_settings()
    jitter = jitter or NoJitter()
    trend = fit_trend(series, settings=settings)
    if not trend.ok:
        return Forecast(status=ForecastStatus.INSUFFICIENT_DATA, trend=trend)

    weight = settings.trend_weight
    band = settings.forecast_band(metric)
    points: list[ForecastPoint] = []
    for i in range(months):
        predicted = trend.slope * (trend.n_points + i) + trend.intercept
        predicted = predicted * weight + trend.last_value * (1 - weight)
        if band is not None:
            predicted = max(band[0], min(band[1], predicted))
        predicted += jitter.sample(metric)
        if is_month_label(trend.last_month):
            label = shift_month_label(trend.last_month, i + 1)
        else:
            label = f"Forecast-{i + 1}"
        points.append(ForecastPoint(month=label, value=round2(predicted)))

    return Forecast(status=ForecastStatus.OK, trend=trend, points=tuple(points))


def gap_analysis(
    *,
    actual: float,
    expected: float,
    required_rate: float,
    months_remaining: int,
) -> GapAnalysis:
    """Gap between actual and glide-path-expected DPU (positive = behind).

    When behind, the gap must be recovered over the remaining months on top
    of the required rate.
    """
    months_remaining = max(1, int(months_remaining))
    gap = actual - expected
    acceleration = required_rate + gap / months_remaining if gap > 0 else required_rate
    return GapAnalysis(
        actual=actual,
        expected=expected,
        gap=gap,
        months_remaining=months_remaining,
        required_rate=required_rate,
        acceleration_needed=acceleration,
    )


def gap_against_glide_path(path: GlidePath, actual: float, months_elapsed: float) -> GapAnalysis:
    return gap_analysis(
        actual=actual,
        expected=path.expected_at(months_elapsed),
        required_rate=path.required_monthly_reduction,
        months_remaining=int(path.months_remaining - months_elapsed),
    )


def pearson_correlation(xs: Sequence[float | None], ys: Sequence[float | None]) -> float:
    """Pearson r over the pairs where both values are present and non-zero.

    Returns 0.0 with fewer than 2 pairs or when either side is constant.
    """
    pairs = [
        (float(x), float(y))
        for x, y in zip(xs, ys)
        if x is not None and y is not None and x != 0 and y != 0
    ]
    if len(pairs) < 2:
        return 0.0
    x = np.array([p[0] for p in pairs])
    y = np.array([p[1] for p in pairs])
    if np.all(x == x[0]) or np.all(y == y[0]):
        return 0.0
    dx = x - x.mean()
    dy = y - y.mean()
    denom = float(np.sqrt(np.sum(dx * dx) * np.sum(dy * dy)))
    if denom == 0:
        return 0.0
    return float(np.sum(dx * dy) / denom)


def is_steady(series: Iterable[SeriesPoint]) -> bool:
    """True when every actual point is <= the one before it."""
    actual = _actual(series)
    return all(cur.value <= prev.value for prev, cur in zip(actual, actual[1:]))


def track_against_glide_path(series: Iterable[SeriesPoint], path: GlidePath) -> list[TrajectoryPoint]:
    """Per-month actual vs path target for the months the path covers."""
    targets = {path.start_month: path.start_dpu}
    targets.update({p.month: p.target_dpu for p in path.monthly_targets})
    out: list[TrajectoryPoint] = []
    for point in series:
        target = targets.get(point.month)
        if target is None:
            continue
        if point.is_actual:
            variance = point.value - target
            out.append(TrajectoryPoint(point.month, point.value, target, variance, variance > 0))
        else:
            out.append(TrajectoryPoint(point.month, None, target, 0.0, False))
    return out


def forecast_outlook(projected: float, target: float, settings: EngineSettings | None = None) -> Outlook:
    """Likelihood of hitting ``target`` and how far a projection misses it."""
    settings = settings or default_settings()
    if projected <= target:
        likelihood = Likelihood.HIGH
    elif projected <= target * settings.medium_likelihood_factor:
        likelihood = Likelihood.MEDIUM
    else:
        likelihood = Likelihood.LOW

    miss_pct = 0.0 if target == 0 else (projected - target) / target * 100.0
    if miss_pct <= settings.low_risk_miss_pct:
        risk = RiskLevel.LOW
    elif miss_pct <= settings.medium_risk_miss_pct:
        risk = RiskLevel.MEDIUM
    else:
        risk = RiskLevel.HIGH
    return Outlook(
        projected=projected,
        target=target,
        likelihood=likelihood,
        miss_percentage=miss_pct,
        risk_level=risk,
    )
