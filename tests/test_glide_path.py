import pytest

from dpuplan.core.errors import BaselineNotFoundError, InvalidMetricInput
from dpuplan.trajectory.glide_path import (
    ProgressStatus,
    RiskAssessment,
    assess_risk,
    calculate_glide_path,
    glide_path_from_records,
    glide_progress,
    monthly_progress,
    months_between,
    reduction_label,
)

from fixtures_dpu import make_history

SEP, OCT, NOV, DEC = 8, 9, 10, 11


def _path(current, target, *, start=(2025, SEP), end=(2025, DEC)):
    return calculate_glide_path(
        current_dpu=current,
        target_dpu=target,
        current_month=start[1],
        current_year=start[0],
        target_month=end[1],
        target_year=end[0],
    )


def test_linear_path_sep_to_dec():
    path = _path(12.0, 9.0)
    assert path.start_month == "Sep-25"
    assert path.months_remaining == 3
    assert path.required_monthly_reduction == 1.0
    assert path.risk_assessment == RiskAssessment.ON_TRACK
    assert path.daily_reduction_required == pytest.approx(1.0 / 30)
    assert [(p.month, p.target_dpu) for p in path.monthly_targets] == [
        ("Oct-25", 11.0),
        ("Nov-25", 10.0),
        ("Dec-25", 9.0),
    ]
    assert [p.cumulative_reduction for p in path.monthly_targets] == [1.0, 2.0, 3.0]
    assert all(p.is_achievable for p in path.monthly_targets)


def test_months_between_across_year_end():
    assert months_between(current_month=NOV, current_year=2025, target_month=1, target_year=2026) == 3
    assert months_between(current_month=SEP, current_year=2025, target_month=SEP, target_year=2027) == 24


def test_months_remaining_never_below_one():
    assert months_between(current_month=SEP, current_year=2025, target_month=SEP, target_year=2025) == 1
    assert months_between(current_month=DEC, current_year=2025, target_month=SEP, target_year=2025) == 1
    path = _path(10.0, 8.0, start=(2025, DEC), end=(2025, DEC))
    assert path.months_remaining == 1
    assert path.required_monthly_reduction == 2.0
    assert [p.month for p in path.monthly_targets] == ["Jan-26"]


def test_invalid_month_index():
    with pytest.raises(InvalidMetricInput):
        _path(10.0, 8.0, start=(2025, 12))


@pytest.mark.parametrize(
    "rate,risk",
    [
        (-0.5, RiskAssessment.ON_TRACK),
        (1.0, RiskAssessment.ON_TRACK),
        (1.01, RiskAssessment.AT_RISK),
        (2.0, RiskAssessment.AT_RISK),
        (2.01, RiskAssessment.CRITICAL),
    ],
)
def test_risk_boundaries(rate, risk):
    assert assess_risk(rate) == risk


def test_risk_boundary_through_path():
    # 3.0 over 3 months is exactly 1.0/month
    assert _path(12.0, 9.0).risk_assessment == RiskAssessment.ON_TRACK
    # 6.03 over 3 months is 2.01/month
    critical = _path(12.03, 6.0)
    assert critical.required_monthly_reduction == pytest.approx(2.01)
    assert critical.risk_assessment == RiskAssessment.CRITICAL
    assert not any(p.is_achievable for p in critical.monthly_targets)


def test_points_never_pass_target():
    path = _path(10.0, 9.0)  # 1/3 per month
    values = [p.target_dpu for p in path.monthly_targets]
    assert all(v >= 9.0 for v in values)
    assert values[-1] == pytest.approx(9.0)
    assert values == sorted(values, reverse=True)


def test_target_above_current_gives_negative_rate():
    path = _path(8.0, 10.0, end=(2025, NOV))
    assert path.required_monthly_reduction == -1.0
    assert path.risk_assessment == RiskAssessment.ON_TRACK
    # points are floored at the target, so a rising path sits on it from the first month
    assert [p.target_dpu for p in path.monthly_targets] == [10.0, 10.0]
    assert all(p.target_dpu >= 10.0 for p in path.monthly_targets)
    assert [p.cumulative_reduction for p in path.monthly_targets] == [-1.0, -2.0]


def test_expected_at_interpolates():
    path = _path(12.0, 9.0)
    assert path.expected_at(0) == 12.0
    assert path.expected_at(1) == 11.0
    assert path.expected_at(1.5) == pytest.approx(10.5)
    assert path.expected_at(3) == 9.0
    assert path.expected_at(10) == 9.0


def test_glide_path_from_records():
    path = glide_path_from_records(make_history(), baseline_month="Sep-25", target_dpu=10.0, target_label="Dec-25")
    assert path.start_dpu == 22.86
    assert path.months_remaining == 3
    assert path.required_monthly_reduction == pytest.approx(4.2867, abs=1e-4)
    assert path.risk_assessment == RiskAssessment.CRITICAL

    dpdi = glide_path_from_records(
        make_history(), baseline_month="Sep-25", target_dpu=9.1, target_label="Dec-25", view="dpdi"
    )
    assert dpdi.start_dpu == 10.1
    assert dpdi.risk_assessment == RiskAssessment.ON_TRACK


def test_glide_path_from_records_missing_baseline():
    with pytest.raises(BaselineNotFoundError):
        glide_path_from_records(make_history(), baseline_month="Jan-25", target_dpu=10.0, target_label="Dec-25")
    with pytest.raises(BaselineNotFoundError):
        glide_path_from_records(make_history(), baseline_month="Oct-25", target_dpu=10.0, target_label="Dec-25")


@pytest.mark.parametrize(
    "current,status",
    [(10.0, ProgressStatus.ON_TRACK), (10.5, ProgressStatus.BEHIND), (9.5, ProgressStatus.AHEAD)],
)
def test_monthly_progress(current, status):
    result = monthly_progress(current, 11.0, 1.0)
    assert result.status == status
    assert result.actual_reduction == pytest.approx(11.0 - current)


def test_glide_progress():
    on = glide_progress(start_dpu=12.0, current_dpu=10.0, target_dpu=8.0, months_elapsed=2, months_available=4)
    assert on.progress_percent == pytest.approx(50.0)
    assert on.expected_percent == pytest.approx(50.0)
    assert on.on_track

    behind = glide_progress(start_dpu=12.0, current_dpu=11.5, target_dpu=8.0, months_elapsed=2, months_available=4)
    assert behind.progress_percent == pytest.approx(12.5)
    assert not behind.on_track

    flat = glide_progress(start_dpu=8.0, current_dpu=8.0, target_dpu=8.0, months_elapsed=0, months_available=0)
    assert flat.progress_percent == 0.0
    assert flat.expected_percent == 0.0
    assert flat.on_track


def test_reduction_label():
    assert reduction_label(1.5) == "-1.50"
    assert reduction_label(-0.4) == "+0.40"
    assert reduction_label(0.0) == "+0.00"


def test_glide_path_is_deterministic():
    assert _path(22.86, 10.0) == _path(22.86, 10.0)
