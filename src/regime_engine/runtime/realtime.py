from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable

from ingestion.contracts.tick import Tick
from ingestion.marketflow.worker import MarketflowWorker, SnapshotBatch
from regime_engine.classifier.engine import Classification, RegimeEngine
from regime_engine.classifier.regime import Alert
from regime_engine.exceptions.core import OutOfOrderTickError
from regime_engine.runtime.feed import TickFeed
from regime_engine.utils.logger import (
    get_logger,
    log_alert,
    log_data_integrity,
    log_exception,
    log_heartbeat,
    log_info,
    log_regime,
)

ResultCallback = Callable[[Tick, Classification], None]

_HEARTBEAT_EVERY = 60


class RegimeRuntime:
    """
    Single consumer driving one EngineState from a TickFeed.

    Semantics:
      - Items are processed strictly in delivery order, one at a time.
      - A SnapshotBatch resets the state and replays the batch (resync).
      - Rejected ticks (out of order / duplicate) are logged and skipped.
      - The engine keeps no output history; `last` and `recent_alerts` are
        the runtime's own bounded view for consumers.
    """

    def __init__(
        self,
        *,
        engine: RegimeEngine,
        feed: TickFeed,
        symbol: str,
        on_result: ResultCallback | None = None,
        recent_alerts: int = 20,
        heartbeat_every: int = _HEARTBEAT_EVERY,
    ):
        self.engine = engine
        self.feed = feed
        self.symbol = symbol
        self.state = engine.new_state()
        self.on_result = on_result
        self.last: Classification | None = None
        self.recent_alerts: deque[Alert] = deque(maxlen=recent_alerts)
        self.processed = 0
        self.rejected = 0
        self.resyncs = 0
        self._heartbeat_every = int(heartbeat_every)
        self._logger = get_logger(__name__)

    async def run(self) -> None:
        log_info(self._logger, "runtime.start", symbol=self.symbol, config=self.engine.config.model_dump())
        stop_reason = "exit"
        try:
            while True:
                item = await self.feed.get()
                if item is None:
                    break
                if isinstance(item, SnapshotBatch):
                    self.reseed(item)
                else:
                    self.step(item)
                # keep the loop cooperative during long backfills
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            stop_reason = "cancelled"
            raise
        except Exception:
            stop_reason = "error"
            log_exception(self._logger, "runtime.error", symbol=self.symbol, processed=self.processed)
            raise
        finally:
            log_info(
                self._logger,
                "runtime.stop",
                symbol=self.symbol,
                stop_reason=stop_reason,
                processed=self.processed,
                rejected=self.rejected,
                regime=self.state.current_regime,
            )

    def reseed(self, batch: SnapshotBatch) -> None:
        self.resyncs += 1
        self.state.reset()
        log_info(self._logger, "runtime.resync", symbol=self.symbol, n_ticks=len(batch), resyncs=self.resyncs)
        for tick in batch.ticks:
            self.step(tick)

    def step(self, tick: Tick) -> Classification | None:
        prev = self.state.current_regime
        try:
            result = self.engine.process(self.state, tick)
        except OutOfOrderTickError as exc:
            self.rejected += 1
            log_data_integrity(
                self._logger,
                "engine.tick_rejected",
                symbol=self.symbol,
                kind=tick.kind,
                timestamp=exc.timestamp,
                last_timestamp=exc.last_timestamp,
                err_type=type(exc).__name__,
            )
            return None

        self.processed += 1
        self.last = result

        if result.regime != prev:
            log_regime(
                self._logger,
                "engine.regime_change",
                symbol=self.symbol,
                timestamp=tick.timestamp,
                kind=tick.kind,
                prev=prev,
                regime=result.regime,
                baseline=result.baseline,
                dd=tick.dd,
                spread=tick.spread,
            )
        if result.alerts:
            self.recent_alerts.extend(result.alerts)
            log_alert(
                self._logger,
                "engine.alerts",
                symbol=self.symbol,
                timestamp=tick.timestamp,
                kind=tick.kind,
                regime=result.regime,
                alerts=result.alerts,
                dd=tick.dd,
                dd_slope=result.dd_slope,
                spread=tick.spread,
                baseline=result.baseline,
            )
        if self._heartbeat_every > 0 and self.processed % self._heartbeat_every == 0:
            log_heartbeat(
                self._logger,
                "runtime.heartbeat",
                symbol=self.symbol,
                processed=self.processed,
                rejected=self.rejected,
                backlog=self.feed.qsize(),
                last_ts=tick.timestamp,
            )

        if self.on_result is not None:
            try:
                self.on_result(tick, result)
            except Exception:
                log_exception(self._logger, "runtime.callback_error", symbol=self.symbol, timestamp=tick.timestamp)
        return result


async def run_pipeline(worker: MarketflowWorker, runtime: RegimeRuntime) -> None:
    """
    Run ingestion and classification concurrently for one symbol.

    The feed is closed when the worker finishes, so the runtime drains what
    is queued and returns. If either side fails the other is cancelled and
    the failure is re-raised. Cancelling the caller cancels both.
    """

    async def _produce() -> None:
        await worker.run(emit=runtime.feed.put)
        await runtime.feed.close()

    producer = asyncio.create_task(_produce())
    consumer = asyncio.create_task(runtime.run())
    tasks = (producer, consumer)
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        for t in tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    for t in tasks:
        exc = None if t.cancelled() else t.exception()
        if exc is not None:
            raise exc
