from __future__ import annotations

import asyncio
from typing import Union

from ingestion.contracts.tick import Tick
from ingestion.marketflow.worker import SnapshotBatch
from regime_engine.utils.logger import get_logger, log_data_integrity

FeedItem = Union[Tick, SnapshotBatch]

_WAKE = object()
_END = object()


class TickFeed:
    """
    Bounded single-consumer channel between ingestion and the engine.

    - Live ticks queue in arrival order and are never dropped: a full queue
      makes the producer wait, and the stall is logged.
    - Snapshot backfill does not queue. The newest batch waits in one slot,
      trimmed to its last `max_backfill` ticks; a newer batch replaces an
      unconsumed older one. The consumer always receives a pending batch
      before further live ticks, and queued live ticks the batch already
      covers are discarded on the way out.
    """

    def __init__(self, maxsize: int = 1024, max_backfill: int = 1440, symbol: str | None = None):
        if maxsize <= 0:
            raise ValueError("TickFeed maxsize must be > 0")
        if max_backfill <= 0:
            raise ValueError("TickFeed max_backfill must be > 0")
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._pending: SnapshotBatch | None = None
        self._floor_ts: int | None = None
        self.max_backfill = int(max_backfill)
        self.symbol = symbol
        self.backpressure_events = 0
        self.dropped_backfill = 0
        self.superseded = 0
        self._logger = get_logger(__name__)

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def has_pending_snapshot(self) -> bool:
        return self._pending is not None

    async def put(self, item: FeedItem) -> None:
        """Usable directly as a worker's `emit`."""
        if isinstance(item, SnapshotBatch):
            self.put_snapshot(item)
        elif isinstance(item, Tick):
            await self.put_live(item)
        else:
            raise TypeError(f"TickFeed accepts Tick or SnapshotBatch, got {type(item).__name__}")

    def put_snapshot(self, batch: SnapshotBatch) -> None:
        ticks = batch.ticks
        dropped = 0
        if len(ticks) > self.max_backfill:
            dropped = len(ticks) - self.max_backfill
            ticks = ticks[-self.max_backfill:]
        if self._pending is not None:
            dropped += len(self._pending.ticks)
        if dropped:
            self.dropped_backfill += dropped
            log_data_integrity(
                self._logger,
                "feed.backfill_coalesced",
                symbol=self.symbol,
                dropped=dropped,
                kept=len(ticks),
            )
        self._pending = SnapshotBatch(ticks=tuple(ticks))
        if not self._queue.full():
            self._queue.put_nowait(_WAKE)

    async def put_live(self, tick: Tick) -> None:
        if self._queue.full():
            self.backpressure_events += 1
            log_data_integrity(
                self._logger,
                "feed.backpressure",
                symbol=self.symbol,
                timestamp=tick.timestamp,
                backlog=self._queue.qsize(),
            )
        await self._queue.put(tick)

    async def get(self) -> FeedItem | None:
        """Next item in delivery order; None once the feed is closed."""
        while True:
            if self._pending is not None:
                batch, self._pending = self._pending, None
                if batch.ticks:
                    self._floor_ts = batch.ticks[-1].timestamp
                return batch

            item = await self._queue.get()
            if item is _WAKE:
                continue
            if item is _END:
                return None
            assert isinstance(item, Tick)
            if self._floor_ts is not None and item.timestamp <= self._floor_ts:
                self.superseded += 1
                log_data_integrity(
                    self._logger,
                    "feed.live_superseded",
                    symbol=self.symbol,
                    timestamp=item.timestamp,
                    floor_ts=self._floor_ts,
                )
                continue
            return item

    async def close(self) -> None:
        await self._queue.put(_END)
