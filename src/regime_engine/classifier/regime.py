from __future__ import annotations

from enum import Enum


class Regime(str, Enum):
    """Adopted market-state label. Closed set."""

    BALANCE = "Balance"
    ACCUMULATION = "Accumulation"
    EXPANSION = "Expansion"
    DISTRIBUTION = "Distribution"
    MARKDOWN = "Markdown"


NEUTRAL = Regime.BALANCE


class Alert(str, Enum):
    """Transient per-tick signals; any subset may fire on one tick."""

    IGNITION_UP = "IGNITION_UP"
    IGNITION_DOWN = "IGNITION_DOWN"
    EXHAUSTION_UP = "EXHAUSTION_UP"
    EXHAUSTION_DOWN = "EXHAUSTION_DOWN"
    DD_SLOPE_UP = "DD_SLOPE_UP"
    DD_SLOPE_DOWN = "DD_SLOPE_DOWN"
