from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from regime_engine.exceptions.core import ConfigError
from regime_engine.utils.config import RegimeConfig, load_regime_config

CONFIGS = Path(__file__).resolve().parents[3] / "configs"


def test_shipped_config_matches_defaults() -> None:
    cfg = load_regime_config(CONFIGS / "regime.json")
    assert cfg == RegimeConfig()


def test_defaults() -> None:
    cfg = RegimeConfig()
    assert cfg.baseline_window == 60
    assert cfg.dwell_threshold == 3
    assert cfg.slope_lag == 10
    assert cfg.retention == 1440
    assert cfg.regime.high_spread_mult == 1.35
    assert cfg.regime.dd_down_hold == -0.6e6
    assert cfg.alerts.dd_slope == 0.8e6


def test_partial_override_keeps_nested_defaults(tmp_path: Path) -> None:
    p = tmp_path / "regime.json"
    p.write_text(json.dumps({"dwell_threshold": 5, "regime": {"dd_up": 2.0e6}}), encoding="utf-8")

    cfg = load_regime_config(p)

    assert cfg.dwell_threshold == 5
    assert cfg.regime.dd_up == 2.0e6
    assert cfg.regime.dd_up_hold == 1.2e6
    assert cfg.alerts.ignition_up_dd == 2.0e6


def test_retention_must_cover_windows() -> None:
    with pytest.raises(ValidationError):
        RegimeConfig(retention=30)
    with pytest.raises(ValidationError):
        RegimeConfig(baseline_window=5, slope_lag=10, retention=10)
    assert RegimeConfig(baseline_window=5, slope_lag=10, retention=11).retention == 11


def test_negative_dwell_threshold_rejected() -> None:
    with pytest.raises(ValidationError):
        RegimeConfig(dwell_threshold=-1)


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"baseline_window": 0}),
        json.dumps({"regime": {"high_spread_mult": "wide"}}),
    ],
)
def test_bad_config_file_raises_config_error(tmp_path: Path, content: str) -> None:
    p = tmp_path / "regime.json"
    p.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_regime_config(p)


def test_missing_config_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_regime_config(tmp_path / "nope.json")
