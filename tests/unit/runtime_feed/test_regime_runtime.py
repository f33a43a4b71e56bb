from __future__ import annotations

import asyncio
import logging

import pytest

from ingestion.contracts.tick import TickKind
from ingestion.marketflow.worker import SnapshotBatch
from regime_engine.classifier.engine import RegimeEngine
from regime_engine.classifier.regime import Alert, Regime
from regime_engine.runtime.feed import TickFeed
from regime_engine.runtime.realtime import RegimeRuntime
from tests.helpers.ticks import make_tick


def _runtime(**kw) -> RegimeRuntime:
    return RegimeRuntime(engine=RegimeEngine(), feed=TickFeed(symbol="SOL-USD"), symbol="SOL-USD", **kw)


def _messages(caplog, event: str) -> list[logging.LogRecord]:
    return [rec for rec in caplog.records if rec.getMessage() == event]


def test_reseed_resets_state_before_replaying_batch():
    rt = _runtime()
    markdown = SnapshotBatch(ticks=tuple(make_tick(i, dd=-1e6, kind=TickKind.SNAPSHOT) for i in range(4)))
    rt.reseed(markdown)
    assert rt.state.current_regime is Regime.MARKDOWN
    assert len(rt.state.history) == 4

    # an older, quiet backfill is accepted after the reset
    quiet = SnapshotBatch(ticks=tuple(make_tick(i, kind=TickKind.SNAPSHOT) for i in range(2)))
    rt.reseed(quiet)

    assert rt.state.current_regime is Regime.BALANCE
    assert len(rt.state.history) == 2
    assert rt.resyncs == 2
    assert rt.rejected == 0
    assert rt.processed == 6


def test_rejected_tick_is_logged_and_skipped(caplog):
    rt = _runtime()
    assert rt.step(make_tick(3)) is not None

    with caplog.at_level(logging.WARNING):
        assert rt.step(make_tick(3)) is None
        assert rt.step(make_tick(1)) is None

    assert rt.rejected == 2
    assert rt.processed == 1
    recs = _messages(caplog, "engine.tick_rejected")
    assert [r.context["err_type"] for r in recs] == ["DuplicateTickError", "OutOfOrderTickError"]
    assert recs[0].context["category"] == "data_integrity"


def test_regime_change_is_logged_once(caplog):
    rt = _runtime()
    with caplog.at_level(logging.INFO):
        for i in range(6):
            rt.step(make_tick(i, dd=-1e6))

    recs = _messages(caplog, "engine.regime_change")
    assert len(recs) == 1
    assert recs[0].context["prev"] == "Balance"
    assert recs[0].context["regime"] == "Markdown"
    assert recs[0].context["timestamp"] == make_tick(3).timestamp


def test_recent_alerts_are_bounded(caplog):
    rt = _runtime(recent_alerts=2)
    with caplog.at_level(logging.INFO):
        for i in range(5):
            rt.step(make_tick(i, dd=2.5e6))

    assert list(rt.recent_alerts) == [Alert.IGNITION_UP, Alert.IGNITION_UP]
    assert len(_messages(caplog, "engine.alerts")) == 5
    assert rt.last is not None and rt.last.alerts == (Alert.IGNITION_UP,)


def test_heartbeat_every_n_processed_ticks(caplog):
    rt = _runtime(heartbeat_every=2)
    with caplog.at_level(logging.INFO):
        for i in range(5):
            rt.step(make_tick(i))

    recs = _messages(caplog, "runtime.heartbeat")
    assert [r.context["processed"] for r in recs] == [2, 4]


def test_failing_callback_does_not_stop_processing(caplog):
    seen: list = []

    def on_result(tick, result):
        seen.append(tick.timestamp)
        raise RuntimeError("sink down")

    rt = _runtime(on_result=on_result)
    with caplog.at_level(logging.ERROR):
        rt.step(make_tick(0))
        rt.step(make_tick(1))

    assert rt.processed == 2
    assert len(seen) == 2
    assert len(_messages(caplog, "runtime.callback_error")) == 2


@pytest.mark.asyncio
async def test_run_drains_feed_until_closed():
    results = []
    rt = _runtime(on_result=lambda tick, result: results.append((tick.kind, result.regime)))

    await rt.feed.put(SnapshotBatch(ticks=tuple(make_tick(i, kind=TickKind.SNAPSHOT) for i in range(3))))
    for i in range(3, 7):
        await rt.feed.put(make_tick(i, dd=-1e6))
    await rt.feed.close()

    await asyncio.wait_for(rt.run(), timeout=2.0)

    assert rt.resyncs == 1
    assert rt.processed == 7
    assert [k for k, _ in results] == [TickKind.SNAPSHOT] * 3 + [TickKind.LIVE] * 4
    assert results[-1][1] is Regime.MARKDOWN


@pytest.mark.asyncio
async def test_run_stops_on_cancel(caplog):
    rt = _runtime()
    with caplog.at_level(logging.INFO):
        task = asyncio.create_task(rt.run())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    stop = _messages(caplog, "runtime.stop")
    assert stop and stop[-1].context["stop_reason"] == "cancelled"
