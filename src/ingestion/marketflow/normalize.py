from __future__ import annotations

from typing import Any, Mapping, Sequence

import pandas as pd

from ingestion.contracts.normalize import Normalizer
from ingestion.contracts.tick import Tick, TickKind, coerce_epoch_ms, coerce_float

"""
Snapshot payload (backfill, one per seed/resync):
    {
      "ticker": "SOL-USD", "period": "1h",
      "mm_net_data":           [[ts_ms, value], ...],
      "acc_dis_net_data":      [[ts_ms, value], ...],
      "spread_data":           [[ts_ms, value], ...],
      "directional_diff_data": [[ts_ms, value], ...],
      "candles": {"ohlc": [[ts_ms, o, h, l, c], ...]}
    }

Live payload (one per elapsed interval):
    {
      "type": "minute_update", "v": 1, "ticker": "SOL-USD", "ts_ms": 1700000000000,
      "nets": {"mm_net_value": .., "acc_dis_net_value": .., "spread": .., "directional_diff": ..},
      "candle": {"o": .., "h": .., "l": .., "c": .., "vol": ..}
    }
"""

LIVE_MESSAGE_TYPE = "minute_update"

# payload key -> Tick field
_SNAPSHOT_SERIES = (
    ("mm_net_data", "mm_net"),
    ("acc_dis_net_data", "ad_net"),
    ("spread_data", "spread"),
    ("directional_diff_data", "dd"),
)

_TICK_FIELDS = ["price", "mm_net", "ad_net", "dd", "spread"]

_LIVE_NETS = (
    ("mm_net_value", "mm_net"),
    ("acc_dis_net_value", "ad_net"),
    ("spread", "spread"),
    ("directional_diff", "dd"),
)


def _require_mapping(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    obj = raw.get(key)
    if not isinstance(obj, Mapping):
        raise ValueError(f"payload missing object {key!r}")
    return obj


def _require_rows(obj: Mapping[str, Any], key: str) -> Sequence[Any]:
    rows = obj.get(key)
    if not isinstance(rows, (list, tuple)):
        raise ValueError(f"payload missing series {key!r}")
    return rows


def _series_frame(rows: Sequence[Any], key: str, field: str, value_index: int = 1) -> pd.DataFrame:
    """[[ts, ..., value, ...], ...] -> single-column frame indexed by epoch-ms timestamp."""
    ts_out: list[int] = []
    val_out: list[float] = []
    for i, row in enumerate(rows):
        if not isinstance(row, (list, tuple)) or len(row) <= value_index:
            raise ValueError(f"{key}[{i}]: expected at least {value_index + 1} columns, got {row!r}")
        ts_out.append(coerce_epoch_ms(row[0]))
        val_out.append(coerce_float(row[value_index], f"{key}[{i}]"))

    df = pd.DataFrame({
        "timestamp": pd.Series(ts_out, dtype="int64"),
        field: pd.Series(val_out, dtype="float64"),
    })
    # a repeated timestamp inside one series keeps its latest value
    df = df.drop_duplicates(subset="timestamp", keep="last")
    return df.set_index("timestamp")


class MarketflowSnapshotNormalizer(Normalizer):
    """
    Merge a backfill snapshot's parallel series into SNAPSHOT ticks.

    One Tick per distinct timestamp present in any series, ascending.
    Fields missing at a timestamp default to 0; price is the candle close.
    """

    kind = TickKind.SNAPSHOT

    def __init__(self, symbol: str | None = None):
        self.symbol = symbol

    def normalize(self, *, raw: Mapping[str, Any]) -> list[Tick]:
        if not isinstance(raw, Mapping):
            raise ValueError(f"snapshot payload must be an object, got {type(raw).__name__}")

        frames = [
            _series_frame(_require_rows(raw, key), key, field)
            for key, field in _SNAPSHOT_SERIES
        ]
        candles = _require_mapping(raw, "candles")
        # ohlc rows: [ts, open, high, low, close, ...]
        frames.append(_series_frame(_require_rows(candles, "ohlc"), "candles.ohlc", "price", value_index=4))

        merged = pd.concat(frames, axis=1, join="outer")
        if merged.empty:
            return []
        merged = merged.reindex(columns=_TICK_FIELDS).fillna(0.0).sort_index(kind="mergesort")
        negative = merged.index[merged["spread"] < 0]
        if len(negative):
            raise ValueError(f"spread_data: negative spread at timestamp {int(negative[0])}")

        return [
            Tick(
                kind=self.kind,
                timestamp=int(ts),
                price=float(price),
                mm_net=float(mm_net),
                ad_net=float(ad_net),
                dd=float(dd),
                spread=float(spread),
            )
            for ts, price, mm_net, ad_net, dd, spread in merged.itertuples(index=True, name=None)
        ]


class MarketflowLiveNormalizer(Normalizer):
    """
    Adapt one `minute_update` message into exactly one LIVE Tick.

    Other message types (acks, heartbeats) yield None.
    """

    kind = TickKind.LIVE

    def __init__(self, symbol: str | None = None):
        self.symbol = symbol

    def normalize(self, *, raw: Mapping[str, Any]) -> Tick | None:
        if not isinstance(raw, Mapping):
            raise ValueError(f"live payload must be an object, got {type(raw).__name__}")
        if raw.get("type") != LIVE_MESSAGE_TYPE:
            return None

        ticker = raw.get("ticker")
        if self.symbol is not None and ticker is not None and str(ticker) != self.symbol:
            raise ValueError(f"live payload for {ticker!r}, expected {self.symbol!r}")

        nets = _require_mapping(raw, "nets")
        candle = _require_mapping(raw, "candle")

        values = {field: coerce_float(nets.get(key), f"nets.{key}") for key, field in _LIVE_NETS}
        if values["spread"] < 0:
            raise ValueError(f"nets.spread must be >= 0, got {values['spread']}")
        return Tick(
            kind=self.kind,
            timestamp=coerce_epoch_ms(raw.get("ts_ms")),
            price=coerce_float(candle.get("c"), "candle.c"),
            **values,
        )
