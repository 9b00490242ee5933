import pytest

from dpuplan.settings import DEFAULT_DPDI_STAGES, EngineSettings, default_settings, settings_from_mapping
from dpuplan.trajectory.glide_path import RiskAssessment, assess_risk


def test_defaults():
    s = default_settings()
    assert s is default_settings()
    assert s.trend_weight == 0.7
    assert s.trend_window == 6
    assert s.forecast_band("total_dpu") == (8.0, 20.0)
    assert s.forecast_band("volume") == (1000.0, 1800.0)
    assert s.forecast_band("unknown") is None
    # stage-level series have no band
    assert s.forecast_band("dpu") is None
    assert s.dpdi_stages == DEFAULT_DPDI_STAGES
    assert s.is_dpdi_stage("dval")
    assert "SIGN" in s.protected_stages


def test_settings_from_mapping_coerces_strings():
    s = settings_from_mapping(
        {
            "trend_window": "4",
            "trend_weight": "0.5",
            "on_track_max_reduction": "1.5",
            "dpdi_stages": "dpdi, dx ,",
            "signout_stage": "FINAL",
            "forecast_band.dpu": "5,25",
            "forecast_band.scrap": "0,3",
        }
    )
    assert s.trend_window == 4
    assert s.trend_weight == 0.5
    assert s.dpdi_stages == frozenset({"DPDI", "DX"})
    assert s.signout_stage == "FINAL"
    assert s.forecast_band("dpu") == (5.0, 25.0)
    assert s.forecast_band("scrap") == (0.0, 3.0)
    # untouched band survives
    assert s.forecast_band("volume") == (1000.0, 1800.0)
    # defaults are not mutated
    assert default_settings().forecast_band("total_dpu") == (8.0, 20.0)


def test_settings_from_mapping_rejects_unknown_keys_and_bad_bands():
    with pytest.raises(ValueError, match="unknown setting"):
        settings_from_mapping({"trend_windw": "4"})
    with pytest.raises(ValueError):
        settings_from_mapping({"forecast_band.dpu": "20,8"})


def test_custom_thresholds_flow_into_risk():
    strict = EngineSettings(on_track_max_reduction=0.5, at_risk_max_reduction=1.0)
    assert assess_risk(0.8) == RiskAssessment.ON_TRACK
    assert assess_risk(0.8, strict) == RiskAssessment.AT_RISK
    assert assess_risk(1.2, strict) == RiskAssessment.CRITICAL


def test_forecast_bands_are_read_only():
    s = default_settings()
    with pytest.raises(TypeError):
        s.forecast_bands["total_dpu"] = (0.0, 100.0)
    assert default_settings().forecast_band("total_dpu") == (8.0, 20.0)


def test_settings_are_hashable_and_copy_their_bands():
    assert hash(default_settings()) == hash(EngineSettings())
    assert default_settings() == EngineSettings()

    bands = {"total_dpu": (0.0, 50.0)}
    s = EngineSettings(forecast_bands=bands)
    bands["total_dpu"] = (1.0, 2.0)
    assert s.forecast_band("total_dpu") == (0.0, 50.0)
    assert {s: "wide"}[s] == "wide"
