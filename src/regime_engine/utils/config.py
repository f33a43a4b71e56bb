from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, model_validator

from regime_engine.exceptions.core import ConfigError


class RegimeThresholds(BaseModel):
    high_spread_mult: float = Field(1.35, gt=0, description="HS = high_spread_mult * baseline")
    low_spread_mult: float = Field(0.80, gt=0, description="LS = low_spread_mult * baseline")
    dd_up: float = Field(1.5e6, description="Expansion entry threshold on dd")
    dd_up_hold: float = Field(1.2e6, description="Expansion threshold while already in Expansion")
    dd_down: float = Field(-0.8e6, description="Markdown entry threshold on dd")
    dd_down_hold: float = Field(-0.6e6, description="Markdown threshold while already in Markdown")
    dd_balance_band: float = Field(0.3e6, gt=0, description="Half-width of the Balance band on |dd|")
    dd_accumulation: float = Field(0.35e6, description="Minimum dd for directional Accumulation")
    dd_distribution_cap: float = Field(0.6e6, description="Maximum dd for Distribution")


class AlertThresholds(BaseModel):
    ignition_up_dd: float = 2.0e6
    ignition_up_spread_mult: float = 1.2
    ignition_down_dd: float = -0.8e6
    ignition_down_spread_mult: float = 1.35
    exhaustion_up_dd: float = 0.6e6
    exhaustion_down_dd: float = -0.3e6
    dd_slope: float = Field(0.8e6, gt=0, description="Absolute dd slope that triggers DD_SLOPE_*")


class RegimeConfig(BaseModel):
    baseline_window: int = Field(60, gt=0, description="Ticks in the rolling spread baseline.")
    dwell_threshold: int = Field(3, ge=0, description="Dissenting calls required before a change is adopted.")
    slope_lag: int = Field(10, gt=0, description="Lag (ticks) of the dd slope.")
    retention: int = Field(1440, gt=0, description="History ring buffer size.")
    regime: RegimeThresholds = Field(default_factory=RegimeThresholds)
    alerts: AlertThresholds = Field(default_factory=AlertThresholds)

    @model_validator(mode="after")
    def _check_retention(self) -> "RegimeConfig":
        need = max(self.baseline_window, self.slope_lag + 1)
        if self.retention < need:
            raise ValueError(f"retention={self.retention} must be >= {need} (baseline window / slope lag)")
        return self


def load_regime_config(path: str | Path) -> RegimeConfig:
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        return RegimeConfig.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(f"invalid regime config {p}: {exc}") from exc
