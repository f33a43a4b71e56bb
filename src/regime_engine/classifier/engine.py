from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from ingestion.contracts.tick import Tick
from regime_engine.classifier.dwell import advance
from regime_engine.classifier.regime import Alert, Regime
from regime_engine.classifier.state import EngineState
from regime_engine.exceptions.core import DuplicateTickError, OutOfOrderTickError
from regime_engine.utils.config import AlertThresholds, RegimeConfig, RegimeThresholds
from regime_engine.utils.logger import get_logger, log_debug


@dataclass(frozen=True)
class Classification:
    """
    Output of one `process` call.

    Unpacks as the public triple `(regime, baseline, alerts)`; `candidate`
    and `dd_slope` are carried for diagnostics.
    """

    timestamp: int
    regime: Regime
    baseline: float
    alerts: tuple[Alert, ...]
    candidate: Regime
    dd_slope: float

    def __iter__(self) -> Iterator[object]:
        yield self.regime
        yield self.baseline
        yield list(self.alerts)


def classify_candidate(
    tick: Tick,
    prev: Regime,
    baseline: float,
    th: RegimeThresholds | None = None,
) -> Regime:
    """Instantaneous regime proposal; first matching rule wins, no match holds `prev`."""
    th = th or RegimeThresholds()
    b = baseline
    hs = th.high_spread_mult * b
    ls = th.low_spread_mult * b

    # hysteresis: the boundary is easier to stay beyond than to cross
    up = th.dd_up_hold if prev == Regime.EXPANSION else th.dd_up
    down = th.dd_down_hold if prev == Regime.MARKDOWN else th.dd_down

    dd, spread = tick.dd, tick.spread
    if dd <= down:
        return Regime.MARKDOWN
    if dd >= up and spread >= hs:
        return Regime.EXPANSION
    if abs(dd) < th.dd_balance_band and ls <= spread <= hs:
        return Regime.BALANCE
    if (dd >= th.dd_accumulation and spread <= b) or (tick.mm_net > 0 and tick.ad_net < 0 and spread <= b):
        return Regime.ACCUMULATION
    if tick.mm_net < 0 and tick.ad_net > 0 and dd <= th.dd_distribution_cap:
        return Regime.DISTRIBUTION
    return prev


def evaluate_alerts(
    tick: Tick,
    regime: Regime,
    baseline: float,
    dd_slope: float,
    th: AlertThresholds | None = None,
) -> tuple[Alert, ...]:
    """Every rule is checked on every call; order is fixed."""
    th = th or AlertThresholds()
    b = baseline
    dd, spread = tick.dd, tick.spread

    out: list[Alert] = []
    if dd >= th.ignition_up_dd and spread < th.ignition_up_spread_mult * b:
        out.append(Alert.IGNITION_UP)
    if dd <= th.ignition_down_dd and spread >= th.ignition_down_spread_mult * b:
        out.append(Alert.IGNITION_DOWN)
    if regime == Regime.EXPANSION and dd <= th.exhaustion_up_dd:
        out.append(Alert.EXHAUSTION_UP)
    if regime == Regime.MARKDOWN and dd >= th.exhaustion_down_dd and spread <= b:
        out.append(Alert.EXHAUSTION_DOWN)
    if dd_slope >= th.dd_slope:
        out.append(Alert.DD_SLOPE_UP)
    if dd_slope <= -th.dd_slope:
        out.append(Alert.DD_SLOPE_DOWN)
    return tuple(out)


class RegimeEngine:
    """
    Streaming regime classifier.

    The engine holds configuration only. All mutable state lives in the
    `EngineState` passed to `process`, so one engine can serve any number
    of independent symbol states. `process` is synchronous, IO-free and
    deterministic; callers serialize calls per state.
    """

    def __init__(self, config: RegimeConfig | None = None):
        self.config = config or RegimeConfig()
        self._logger = get_logger(__name__)

    def new_state(self) -> EngineState:
        cfg = self.config
        return EngineState(cfg.retention, baseline_window=cfg.baseline_window, slope_lag=cfg.slope_lag)

    def process(self, state: EngineState, tick: Tick) -> Classification:
        """
        Append `tick` to the state's history and classify it.

        Raises OutOfOrderTickError (DuplicateTickError for a repeated
        timestamp) without touching the state when `tick` does not advance
        past the last processed timestamp.
        """
        cfg = self.config
        last_ts = state.history.last_timestamp()
        if last_ts is not None and tick.timestamp <= last_ts:
            if tick.timestamp == last_ts:
                raise DuplicateTickError(tick.timestamp, last_ts)
            raise OutOfOrderTickError(tick.timestamp, last_ts)

        state.history.append(tick)
        b = state.history.baseline(cfg.baseline_window)

        prev = state.current_regime
        candidate = classify_candidate(tick, prev, b, cfg.regime)
        state.dwell = advance(state.dwell, candidate, cfg.dwell_threshold)
        regime = state.current_regime

        slope = state.history.dd_slope(cfg.slope_lag)
        alerts = evaluate_alerts(tick, regime, b, slope, cfg.alerts)

        log_debug(
            self._logger,
            "engine.processed",
            timestamp=tick.timestamp,
            prev=prev,
            candidate=candidate,
            regime=regime,
            dwell_count=state.dwell_count,
            baseline=b,
            dd_slope=slope,
            alerts=alerts,
        )
        return Classification(
            timestamp=tick.timestamp,
            regime=regime,
            baseline=b,
            alerts=alerts,
            candidate=candidate,
            dd_slope=slope,
        )
