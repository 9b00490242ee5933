from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Mapping

# Core stages that callers must not delete without explicit confirmation.
DEFAULT_PROTECTED_STAGES = frozenset({
    "UV2", "CABWT", "SIP6", "CFC", "CABSIP", "UV3", "SIGN",
    "SIP1", "SIP2", "SIP3", "SIP4", "SIP5", "SIP7", "SIP8",
    "LECREC", "CT", "CABIP", "CABWT2", "UV4", "FINAL",
})

DEFAULT_DPDI_STAGES = frozenset({"DPDI", "DVAL", "DCONF"})


def _default_forecast_bands() -> dict[str, tuple[float, float]]:
    return {"total_dpu": (8.0, 20.0), "volume": (1000.0, 1800.0)}


@dataclass(frozen=True)
class EngineSettings:
    # Glide path
    max_achievable_monthly_reduction: float = 2.0
    on_track_max_reduction: float = 1.0
    at_risk_max_reduction: float = 2.0
    days_per_month: int = 30

    # Forecast
    trend_window: int = 6
    trend_weight: float = 0.7
    # Clamp bands keyed by forecast metric. Stage series ("dpu") have none.
    forecast_bands: Mapping[str, tuple[float, float]] = field(default_factory=_default_forecast_bands, hash=False)

    # Progress / outlook bands
    monthly_progress_tolerance: float = 0.1
    glide_progress_tolerance_pct: float = 10.0
    medium_likelihood_factor: float = 1.2
    low_risk_miss_pct: float = 20.0
    medium_risk_miss_pct: float = 50.0

    # Allocation
    allocation_tolerance: float = 0.1

    # Stages
    protected_stages: frozenset[str] = DEFAULT_PROTECTED_STAGES
    dpdi_stages: frozenset[str] = DEFAULT_DPDI_STAGES
    signout_stage: str = "SIGN"

    def __post_init__(self) -> None:
        object.__setattr__(self, "forecast_bands", MappingProxyType(dict(self.forecast_bands)))

    def is_dpdi_stage(self, name: str) -> bool:
        return str(name or "").strip().upper() in self.dpdi_stages

    def forecast_band(self, metric: str) -> tuple[float, float] | None:
        return self.forecast_bands.get(metric)


_DEFAULT = EngineSettings()


def default_settings() -> EngineSettings:
    return _DEFAULT


def _split_names(raw: str) -> frozenset[str]:
    return frozenset(p.strip().upper() for p in str(raw).split(",") if p.strip())


def settings_from_mapping(values: Mapping[str, Any], *, base: EngineSettings | None = None) -> EngineSettings:
    """Build settings from a key/value mapping (e.g. rows of a config table).

    Values may be strings. Stage sets are comma-separated names and
    ``forecast_bands`` entries are given as ``forecast_band.<metric>="lo,hi"``.
    Unknown keys raise ValueError.
    """
    base = base or _DEFAULT
    known = {f.name: f for f in fields(EngineSettings)}
    changes: dict[str, Any] = {}
    bands = dict(base.forecast_bands)

    for key, raw in values.items():
        if key.startswith("forecast_band."):
            metric = key.split(".", 1)[1]
            lo, hi = (float(x) for x in str(raw).split(","))
            if lo > hi:
                raise ValueError(f"{key}: lower bound {lo} above upper bound {hi}")
            bands[metric] = (lo, hi)
            continue
        if key not in known or key == "forecast_bands":
            raise ValueError(f"unknown setting: {key!r}")
        current = getattr(base, key)
        if isinstance(current, frozenset):
            changes[key] = raw if isinstance(raw, frozenset) else _split_names(raw)
        elif isinstance(current, bool):
            changes[key] = str(raw).strip().lower() in {"1", "true", "yes"}
        elif isinstance(current, int):
            changes[key] = int(raw)
        elif isinstance(current, float):
            changes[key] = float(raw)
        else:
            changes[key] = str(raw)

    changes["forecast_bands"] = bands
    return replace(base, **changes)
