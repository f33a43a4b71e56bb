from __future__ import annotations

import copy

import pytest

from ingestion.contracts.tick import Tick, TickKind
from ingestion.marketflow.normalize import MarketflowLiveNormalizer, MarketflowSnapshotNormalizer
from tests.helpers.ticks import live_message, snapshot_payload, ts

T0, T1, T2 = ts(0), ts(1), ts(2)


def _ragged_payload() -> dict:
    return {
        "ticker": "SOL-USD",
        "period": "1h",
        "mm_net_data": [[T0, 1.5], [T1, -2.0]],
        "acc_dis_net_data": [[T1, 3.0]],
        "spread_data": [[T0, 0.5], [T2, 0.7]],
        "directional_diff_data": [[T2, 1_000_000], [T0, -200_000]],
        "candles": {"ohlc": [[T0, 10, 11, 9, 10.5], [T1, 10.5, 12, 10, 11.5]]},
    }


def test_snapshot_merges_series_by_timestamp_with_zero_defaults() -> None:
    ticks = MarketflowSnapshotNormalizer().normalize(raw=_ragged_payload())

    assert ticks == [
        Tick(TickKind.SNAPSHOT, T0, price=10.5, mm_net=1.5, ad_net=0.0, dd=-200_000.0, spread=0.5),
        Tick(TickKind.SNAPSHOT, T1, price=11.5, mm_net=-2.0, ad_net=3.0, dd=0.0, spread=0.0),
        Tick(TickKind.SNAPSHOT, T2, price=0.0, mm_net=0.0, ad_net=0.0, dd=1_000_000.0, spread=0.7),
    ]
    assert all(isinstance(t.timestamp, int) for t in ticks)
    assert all(isinstance(t.price, float) for t in ticks)


def test_snapshot_adaptation_is_idempotent_and_does_not_mutate_payload() -> None:
    payload = _ragged_payload()
    before = copy.deepcopy(payload)
    normalizer = MarketflowSnapshotNormalizer()

    first = normalizer.normalize(raw=payload)
    second = normalizer.normalize(raw=payload)
    third = MarketflowSnapshotNormalizer().normalize(raw=payload)

    assert first == second == third
    assert payload == before


def test_snapshot_repeated_timestamp_in_one_series_keeps_last_value() -> None:
    payload = snapshot_payload(2)
    payload["spread_data"].append([ts(1), 9.0])

    ticks = MarketflowSnapshotNormalizer().normalize(raw=payload)

    assert [t.timestamp for t in ticks] == [ts(0), ts(1)]
    assert ticks[1].spread == 9.0


def test_snapshot_accepts_numeric_strings_and_second_timestamps() -> None:
    payload = snapshot_payload(1)
    payload["spread_data"] = [[T0 // 1000, "0.25"]]

    (tick,) = MarketflowSnapshotNormalizer().normalize(raw=payload)

    assert tick.timestamp == T0
    assert tick.spread == 0.25


def test_snapshot_empty_series_yield_no_ticks() -> None:
    payload = {
        "mm_net_data": [],
        "acc_dis_net_data": [],
        "spread_data": [],
        "directional_diff_data": [],
        "candles": {"ohlc": []},
    }
    assert MarketflowSnapshotNormalizer().normalize(raw=payload) == []


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p.pop("spread_data"),
        lambda p: p.pop("candles"),
        lambda p: p["candles"].pop("ohlc"),
        lambda p: p["directional_diff_data"].append([ts(5), "abc"]),
        lambda p: p["mm_net_data"].append([ts(5)]),
        lambda p: p["candles"]["ohlc"].append([ts(5), 1, 2, 3]),
        lambda p: p["acc_dis_net_data"].append([None, 1.0]),
    ],
)
def test_snapshot_malformed_payload_raises_value_error(mutate) -> None:
    payload = snapshot_payload(3)
    mutate(payload)
    with pytest.raises(ValueError):
        MarketflowSnapshotNormalizer().normalize(raw=payload)


def test_live_message_adapts_to_one_live_tick() -> None:
    msg = live_message(0, dd=5e5, spread=0.4, mm_net=1.0, ad_net=-1.0, close=101.5)

    tick = MarketflowLiveNormalizer(symbol="SOL-USD").normalize(raw=msg)

    assert tick == Tick(TickKind.LIVE, T0, price=101.5, mm_net=1.0, ad_net=-1.0, dd=5e5, spread=0.4)


def test_live_non_minute_update_is_ignored() -> None:
    normalizer = MarketflowLiveNormalizer()
    assert normalizer.normalize(raw={"type": "heartbeat", "ts_ms": T0}) is None
    assert normalizer.normalize(raw={"type": "subscribed"}) is None


@pytest.mark.parametrize(
    "mutate",
    [
        lambda m: m.pop("nets"),
        lambda m: m.pop("candle"),
        lambda m: m.pop("ts_ms"),
        lambda m: m["nets"].pop("directional_diff"),
        lambda m: m["nets"].__setitem__("spread", "wide"),
        lambda m: m["candle"].__setitem__("c", None),
        lambda m: m.__setitem__("ticker", "BTC-USD"),
    ],
)
def test_live_malformed_message_raises_value_error(mutate) -> None:
    msg = live_message(0)
    mutate(msg)
    with pytest.raises(ValueError):
        MarketflowLiveNormalizer(symbol="SOL-USD").normalize(raw=msg)


def test_live_without_bound_symbol_accepts_any_ticker() -> None:
    tick = MarketflowLiveNormalizer().normalize(raw=live_message(0, ticker="BTC-USD"))
    assert tick is not None
    assert tick.kind is TickKind.LIVE


def test_snapshot_negative_spread_is_rejected() -> None:
    payload = snapshot_payload(3)
    payload["spread_data"][1][1] = -0.25

    with pytest.raises(ValueError, match="negative spread"):
        MarketflowSnapshotNormalizer().normalize(raw=payload)


def test_live_negative_spread_is_rejected() -> None:
    with pytest.raises(ValueError, match="nets.spread"):
        MarketflowLiveNormalizer(symbol="SOL-USD").normalize(raw=live_message(0, spread=-0.01))
    # zero is a valid spread
    assert MarketflowLiveNormalizer().normalize(raw=live_message(0, spread=0.0)).spread == 0.0
