import pytest

from dpuplan.settings import EngineSettings
from dpuplan.trajectory.forecast import (
    ForecastStatus,
    Likelihood,
    NoJitter,
    RiskLevel,
    SeriesPoint,
    TrendDirection,
    UniformJitter,
    fit_trend,
    forecast_outlook,
    gap_against_glide_path,
    gap_analysis,
    is_steady,
    pearson_correlation,
    project,
    series_from_records,
    track_against_glide_path,
)
from dpuplan.trajectory.glide_path import calculate_glide_path

from fixtures_dpu import make_dpu_month, make_history, make_month


def _series(values, start_labels=("Jan-25", "Feb-25", "Mar-25", "Apr-25", "May-25", "Jun-25", "Jul-25", "Aug-25")):
    return [SeriesPoint(month=m, value=v) for m, v in zip(start_labels, values)]


@pytest.fixture()
def falling():
    # exactly linear, slope -1
    return _series([20.0, 19.0, 18.0, 17.0, 16.0, 15.0])


def test_series_from_records():
    history = make_history()
    series = series_from_records(history)
    assert [p.month for p in series] == ["Jun-25", "Jul-25", "Aug-25", "Sep-25", "Oct-25"]
    assert series[3].value == 22.86
    assert not series[4].is_actual

    dpdi = series_from_records(history, view="dpdi")
    assert dpdi[0].value == 11.0

    stage = series_from_records(history, stage="SIP6")
    assert [p.value for p in stage[:4]] == [5.1, 5.0, 4.9, 4.76]
    assert series_from_records(history, stage="NOPE")[0].value is None

    volume = series_from_records([make_dpu_month("Jan-25", 10.0)], metric="volume")
    assert volume[0].value == 0.0


def test_fit_trend_on_linear_series(falling):
    trend = fit_trend(falling)
    assert trend.status == ForecastStatus.OK
    assert trend.ok
    assert trend.n_points == 6
    assert trend.slope == pytest.approx(-1.0)
    assert trend.intercept == pytest.approx(20.0)
    assert trend.total_change == pytest.approx(-5.0)
    assert trend.monthly_reduction == pytest.approx(1.0)
    assert trend.direction == TrendDirection.IMPROVING
    assert trend.last_value == 15.0
    assert trend.last_month == "Jun-25"


def test_fit_trend_uses_only_recent_actual_points():
    series = _series([1.0, 1.0, 10.0, 11.0, 0.0, 12.0, 13.0, 14.0])
    trend = fit_trend(series, window=4)
    # zero month skipped, window keeps 11, 12, 13, 14
    assert trend.n_points == 4
    assert trend.slope == pytest.approx(1.0)
    assert trend.direction == TrendDirection.DETERIORATING


def test_fit_trend_window_from_settings():
    series = _series([30.0, 1.0, 2.0, 3.0])
    assert fit_trend(series, settings=EngineSettings(trend_window=3)).slope == pytest.approx(1.0)


def test_flat_series_counts_as_improving():
    assert fit_trend(_series([5.0, 5.0, 5.0])).direction == TrendDirection.IMPROVING


@pytest.mark.parametrize("values", [[], [0.0, 0.0], [12.0], [0.0, 12.0, 0.0], [None, 9.0]])
def test_insufficient_data(values):
    series = _series(values)
    trend = fit_trend(series)
    assert trend.status == ForecastStatus.INSUFFICIENT_DATA
    assert trend.slope is None
    assert trend.total_change == 0.0

    forecast = project(series)
    assert forecast.status == ForecastStatus.INSUFFICIENT_DATA
    assert forecast.points == ()


def test_project_blends_trend_with_last_value(falling):
    forecast = project(falling, months=3)
    assert forecast.status == ForecastStatus.OK
    # trend 14, 13, 12 blended 70/30 with last actual 15
    assert [(p.month, p.value) for p in forecast.points] == [
        ("Jul-25", 14.3),
        ("Aug-25", 13.6),
        ("Sep-25", 12.9),
    ]


def test_project_clamps_into_band():
    series = _series([10.0, 9.0, 8.5, 8.1])
    values = [p.value for p in project(series, months=4).points]
    assert values == [8.0, 8.0, 8.0, 8.0]

    rising = _series([15.0, 18.0, 21.0, 24.0])
    assert all(p.value == 20.0 for p in project(rising).points)


def test_project_band_is_per_metric(falling):
    # no band configured for this metric
    values = [p.value for p in project(_series([10.0, 9.0, 8.5, 8.1]), metric="scrap").points]
    assert values[0] < 8.0

    volume = _series([1500.0, 1600.0, 1700.0, 1800.0])
    assert all(p.value == 1800.0 for p in project(volume, metric="volume").points)

    wide = EngineSettings(forecast_bands={"total_dpu": (0.0, 100.0)})
    assert project(_series([10.0, 9.0, 8.5, 8.1]), settings=wide).points[0].value < 8.0


def test_stage_series_is_not_clamped_to_total_band():
    stage = series_from_records(make_history(), stage="SIP6")
    forecast = project(stage, metric="dpu")
    # SIP6 5.10 -> 4.76 over Jun-Sep: slope -0.112, blended 70/30 with 4.76
    assert [(p.month, p.value) for p in forecast.points] == [
        ("Oct-25", 4.69),
        ("Nov-25", 4.61),
        ("Dec-25", 4.53),
    ]
    assert all(p.value < 5.0 for p in forecast.points)

    # the same numbers as a totals series would be lifted to the band floor
    assert all(p.value == 8.0 for p in project(stage).points)


def test_project_without_month_labels():
    series = [SeriesPoint("week 1", 14.0), SeriesPoint("week 2", 13.0)]
    assert [p.month for p in project(series, months=2).points] == ["Forecast-1", "Forecast-2"]


def test_project_is_deterministic_without_jitter(falling):
    assert project(falling) == project(falling)
    assert project(falling, jitter=NoJitter()) == project(falling)


def test_uniform_jitter_is_seeded_and_bounded(falling):
    a = project(falling, months=6, jitter=UniformJitter(seed=7))
    b = project(falling, months=6, jitter=UniformJitter(seed=7))
    assert a == b
    plain = project(falling, months=6)
    for noisy, base in zip(a.points, plain.points):
        assert abs(noisy.value - base.value) <= 0.5 + 0.01

    assert UniformJitter({"dpu": 1.0}, seed=1).sample("volume") == 0.0


def test_gap_analysis_behind_and_ahead():
    behind = gap_analysis(actual=12.0, expected=10.0, required_rate=1.0, months_remaining=4)
    assert behind.gap == 2.0
    assert behind.is_behind
    assert behind.acceleration_needed == 1.5

    ahead = gap_analysis(actual=9.0, expected=10.0, required_rate=1.0, months_remaining=4)
    assert ahead.gap == -1.0
    assert not ahead.is_behind
    assert ahead.acceleration_needed == 1.0


def test_gap_analysis_floors_months_remaining():
    result = gap_analysis(actual=12.0, expected=10.0, required_rate=1.0, months_remaining=0)
    assert result.months_remaining == 1
    assert result.acceleration_needed == 3.0


def test_gap_against_glide_path():
    path = calculate_glide_path(
        current_dpu=12.0, target_dpu=9.0, current_month=8, current_year=2025, target_month=11, target_year=2025
    )
    result = gap_against_glide_path(path, actual=11.5, months_elapsed=1)
    assert result.expected == 11.0
    assert result.gap == 0.5
    assert result.months_remaining == 2
    assert result.acceleration_needed == pytest.approx(1.25)


def test_pearson_correlation():
    assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
    assert pearson_correlation([1, 2, 3], [6, 4, 2]) == pytest.approx(-1.0)
    # zero and missing pairs are dropped
    assert pearson_correlation([0, 1, None, 2, 3], [5, 2, 4, 4, 6]) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "xs,ys",
    [
        ([], []),
        ([1], [2]),
        ([1, 0], [2, 3]),
        ([2, 2, 2], [1, 2, 3]),
        ([1, 2, 3], [0.1, 0.1, 0.1]),
    ],
)
def test_pearson_degenerate_inputs_give_zero(xs, ys):
    assert pearson_correlation(xs, ys) == 0.0


def test_dpu_vs_volume_correlation_from_records():
    months = [
        make_month_with_volume("Jan-25", dpu=10.0, volume=1000),
        make_month_with_volume("Feb-25", dpu=11.0, volume=1200),
        make_month_with_volume("Mar-25", dpu=12.0, volume=1400),
    ]
    dpu = [p.value for p in series_from_records(months)]
    volume = [p.value for p in series_from_records(months, metric="volume")]
    assert volume == [1000.0, 1200.0, 1400.0]
    assert pearson_correlation(dpu, volume) == pytest.approx(1.0)


def make_month_with_volume(label, *, dpu, volume):
    return make_month(label, [("CFC", 100, int(dpu * 100), "production"), ("SIGN", volume, 0, "production")])


def test_is_steady():
    assert is_steady(_series([12.0, 11.0, 11.0, 0.0, 10.0]))
    assert not is_steady(_series([12.0, 11.0, 11.5]))
    assert is_steady([])


def test_track_against_glide_path():
    path = calculate_glide_path(
        current_dpu=12.0, target_dpu=9.0, current_month=8, current_year=2025, target_month=11, target_year=2025
    )
    series = [
        SeriesPoint("Aug-25", 13.0),
        SeriesPoint("Sep-25", 12.0),
        SeriesPoint("Oct-25", 11.5),
        SeriesPoint("Nov-25", 0.0),
    ]
    points = track_against_glide_path(series, path)
    assert [p.month for p in points] == ["Sep-25", "Oct-25", "Nov-25"]
    assert points[0].variance == 0.0 and not points[0].is_above_target
    assert points[1].target == 11.0
    assert points[1].variance == 0.5 and points[1].is_above_target
    assert points[2].actual is None


@pytest.mark.parametrize(
    "projected,likelihood,risk",
    [
        (9.0, Likelihood.HIGH, RiskLevel.LOW),
        (11.5, Likelihood.MEDIUM, RiskLevel.LOW),
        (13.0, Likelihood.LOW, RiskLevel.MEDIUM),
        (16.0, Likelihood.LOW, RiskLevel.HIGH),
    ],
)
def test_forecast_outlook(projected, likelihood, risk):
    outlook = forecast_outlook(projected, 10.0)
    assert outlook.likelihood == likelihood
    assert outlook.risk_level == risk


def test_forecast_outlook_zero_target():
    outlook = forecast_outlook(3.0, 0.0)
    assert outlook.miss_percentage == 0.0
    assert outlook.likelihood == Likelihood.LOW
