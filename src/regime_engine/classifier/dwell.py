from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from regime_engine.classifier.regime import NEUTRAL, Regime

"""
Dwell-time smoothing as an explicit state machine.

    Stable(r)            : r adopted, no dissent pending
    Pending(r, k)        : r still adopted, k consecutive dissenting calls seen

Transitions for a candidate c (threshold T, default 3):

    c == r                     -> Stable(r)
    c != r and k >= T          -> Stable(c)          (adopted)
    c != r and k <  T          -> Pending(r, k + 1)

k counts calls that disagree with r, whatever they propose; it is only
cleared when r is confirmed or replaced. A change therefore lands on the
(T + 1)-th consecutive dissenting call.
"""


@dataclass(frozen=True)
class Stable:
    regime: Regime = NEUTRAL

    @property
    def count(self) -> int:
        return 0


@dataclass(frozen=True)
class Pending:
    regime: Regime
    count: int


DwellState = Union[Stable, Pending]


def advance(state: DwellState, candidate: Regime, threshold: int = 3) -> DwellState:
    if candidate == state.regime:
        return Stable(state.regime)
    if state.count >= threshold:
        return Stable(candidate)
    return Pending(state.regime, state.count + 1)
