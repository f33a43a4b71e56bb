from __future__ import annotations

from regime_engine.classifier.dwell import DwellState, Stable
from regime_engine.classifier.history import TickHistory
from regime_engine.classifier.regime import NEUTRAL, Regime


class EngineState:
    """
    Mutable per-symbol classifier state.

    Owned by the caller and handed to `RegimeEngine.process`; one instance per
    monitored symbol, mutated by a single consumer in tick-arrival order.
    """

    def __init__(self, retention: int = 1440, *, baseline_window: int = 60, slope_lag: int = 10):
        need = max(int(baseline_window), int(slope_lag) + 1)
        if retention < need:
            raise ValueError(f"retention={retention} must be >= {need} (baseline window / slope lag)")
        self.history = TickHistory(retention=retention)
        self.dwell: DwellState = Stable(NEUTRAL)

    @property
    def current_regime(self) -> Regime:
        return self.dwell.regime

    @property
    def dwell_count(self) -> int:
        return self.dwell.count

    def reset(self) -> None:
        """Back to a cold start (used on snapshot resync)."""
        self.history.clear()
        self.dwell = Stable(NEUTRAL)

    def __repr__(self) -> str:
        return (
            f"EngineState(regime={self.current_regime.value}, dwell_count={self.dwell_count}, "
            f"history={len(self.history)}/{self.history.retention})"
        )
