from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TickKind(Enum):
    """Provenance marker. Never consulted by classification."""

    SNAPSHOT = "snapshot"
    LIVE = "tick"


@dataclass(frozen=True)
class Tick:
    """
    Canonical per-interval marketflow observation.

    This is the ONLY object allowed to cross the boundary:
        Ingestion -> Feed -> RegimeEngine

    Semantics:
        - `kind`      : snapshot backfill or live update
        - `timestamp` : interval timestamp (epoch ms int, UTC)
        - `price`     : candle close for the interval (informational)
        - `mm_net`    : market-maker net flow
        - `ad_net`    : accumulator/distributor net flow
        - `dd`        : directional diff, primary regime driver
        - `spread`    : non-negative spread/liquidity proxy
    """

    kind: TickKind
    timestamp: int
    price: float
    mm_net: float
    ad_net: float
    dd: float
    spread: float

    @property
    def iso_ts(self) -> str:
        """UTC ISO-8601 rendering with millisecond precision."""
        dt = datetime.fromtimestamp(self.timestamp / 1000.0, tz=timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def coerce_epoch_ms(x: Any) -> int:
    """Coerce seconds-or-ms epoch (number, numeric string or ISO string) into epoch ms int.

    Heuristic: seconds are ~1e9, ms are ~1e12.
    """
    if x is None:
        raise ValueError("timestamp cannot be None")
    # bool is an int subclass; reject it
    if isinstance(x, bool):
        raise ValueError("invalid timestamp type: bool")
    if isinstance(x, (int, float)):
        v = float(x)
    elif isinstance(x, str):
        try:
            v = float(x)
        except ValueError:
            try:
                dt = datetime.fromisoformat(x.strip().replace("Z", "+00:00"))
            except ValueError as e:
                raise ValueError(f"invalid timestamp: {x!r}") from e
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return int(round(dt.timestamp() * 1000.0))
    else:
        try:
            v = float(x)  # numpy scalars
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid timestamp: {x!r}") from e

    if not math.isfinite(v):
        raise ValueError(f"invalid timestamp: {x!r}")
    if v < 10_000_000_000:  # seconds
        return int(round(v * 1000.0))
    return int(round(v))


def coerce_float(x: Any, field: str) -> float:
    """Strict float conversion; the field name is carried into the error."""
    if x is None or isinstance(x, bool):
        raise ValueError(f"{field}: expected a number, got {x!r}")
    try:
        v = float(x)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field}: expected a number, got {x!r}") from e
    if not math.isfinite(v):
        raise ValueError(f"{field}: non-finite value {x!r}")
    return v
