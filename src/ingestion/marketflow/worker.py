from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, Protocol

from ingestion.contracts.source import Raw
from ingestion.contracts.tick import Tick
from ingestion.contracts.worker import Emit, IngestWorker
from ingestion.marketflow.normalize import MarketflowLiveNormalizer, MarketflowSnapshotNormalizer

_LOG_SAMPLE_EVERY = 100
_DOMAIN = "marketflow"


@dataclass(frozen=True)
class SnapshotBatch:
    """A full backfill, delivered as one unit. Consumers reseed engine state from it."""

    ticks: tuple[Tick, ...]

    def __len__(self) -> int:
        return len(self.ticks)


class SnapshotFetcher(Protocol):
    def fetch(self) -> Raw:
        ...


def _log(logger: logging.Logger, level: int, event: str, **ctx: Any) -> None:
    # ingestion does not depend on regime_engine; keep context JSON-safe here
    safe: dict[str, Any] = {}
    for k, v in ctx.items():
        if v is None or isinstance(v, (str, int, float, bool)):
            safe[str(k)] = v
        else:
            safe[str(k)] = repr(v)
    logger.log(level, event, extra={"context": safe})


class MarketflowWorker(IngestWorker):
    """
    Marketflow ingestion worker.

    Responsibilities:
        snapshot -> normalize -> emit SnapshotBatch   (once, and on resync)
        live raw -> normalize -> de-dupe -> emit Tick (continuous)

    Ordering and backpressure toward the engine belong to the consumer.
    """

    def __init__(
        self,
        *,
        symbol: str,
        snapshot_source: SnapshotFetcher | None = None,
        live_source: AsyncIterable[Raw] | None = None,
        snapshot_normalizer: MarketflowSnapshotNormalizer | None = None,
        live_normalizer: MarketflowLiveNormalizer | None = None,
        logger: logging.Logger | None = None,
    ):
        if snapshot_source is None and live_source is None:
            raise ValueError("MarketflowWorker needs a snapshot_source, a live_source, or both")
        self._symbol = symbol
        self._snapshot_source = snapshot_source
        self._live_source = live_source
        self._snapshot_normalizer = snapshot_normalizer or MarketflowSnapshotNormalizer(symbol=symbol)
        self._live_normalizer = live_normalizer or MarketflowLiveNormalizer(symbol=symbol)
        self._logger = logger or logging.getLogger(f"ingestion.{_DOMAIN}.{self.__class__.__name__}")
        self._seq = 0
        self._last_ts: int | None = None
        self.dropped_duplicates = 0
        self.dropped_malformed = 0

    @property
    def last_ts(self) -> int | None:
        return self._last_ts

    async def run(self, emit: Emit) -> None:
        _log(
            self._logger,
            logging.INFO,
            "ingestion.worker_start",
            worker=type(self).__name__,
            symbol=self._symbol,
            domain=_DOMAIN,
            snapshot=type(self._snapshot_source).__name__ if self._snapshot_source is not None else None,
            live=type(self._live_source).__name__ if self._live_source is not None else None,
        )
        stop_reason = "exit"
        try:
            if self._snapshot_source is not None:
                await self.resync(emit)
            if self._live_source is not None:
                async for raw in self._live_source:
                    self._seq += 1
                    if self._seq % _LOG_SAMPLE_EVERY == 0:
                        _log(
                            self._logger,
                            logging.INFO,
                            "ingestion.live_progress",
                            worker=type(self).__name__,
                            symbol=self._symbol,
                            seq=self._seq,
                            last_ts=self._last_ts,
                            dropped_duplicates=self.dropped_duplicates,
                            dropped_malformed=self.dropped_malformed,
                        )
                    tick = self._normalize_live(raw)
                    if tick is not None:
                        await _emit(emit, tick)
                    # cooperative yield so the consumer keeps up
                    await asyncio.sleep(0)
        except asyncio.CancelledError:
            stop_reason = "cancelled"
            raise
        except Exception as exc:
            _log(
                self._logger,
                logging.WARNING,
                "ingestion.source_error",
                worker=type(self).__name__,
                symbol=self._symbol,
                err_type=type(exc).__name__,
                err=str(exc),
                seq=self._seq,
            )
            stop_reason = "error"
            raise
        finally:
            _log(
                self._logger,
                logging.INFO,
                "ingestion.worker_stop",
                worker=type(self).__name__,
                symbol=self._symbol,
                stop_reason=stop_reason,
                seq=self._seq,
            )

    async def resync(self, emit: Emit) -> SnapshotBatch | None:
        """Fetch and emit a fresh snapshot. A failed seed is logged and skipped."""
        if self._snapshot_source is None:
            return None
        try:
            raw = await asyncio.to_thread(self._snapshot_source.fetch)
            ticks = self._snapshot_normalizer.normalize(raw=raw)
        except Exception as exc:
            _log(
                self._logger,
                logging.WARNING,
                "ingestion.snapshot_error",
                worker=type(self).__name__,
                symbol=self._symbol,
                err_type=type(exc).__name__,
                err=str(exc),
            )
            return None

        batch = SnapshotBatch(ticks=tuple(ticks))
        if batch.ticks:
            self._last_ts = batch.ticks[-1].timestamp
        _log(
            self._logger,
            logging.INFO,
            "ingestion.snapshot_seeded",
            worker=type(self).__name__,
            symbol=self._symbol,
            n_ticks=len(batch),
            first_ts=batch.ticks[0].timestamp if batch.ticks else None,
            last_ts=self._last_ts,
        )
        await _emit(emit, batch)
        return batch

    def _normalize_live(self, raw: Raw) -> Tick | None:
        try:
            tick = self._live_normalizer.normalize(raw=raw)
        except ValueError as exc:
            self.dropped_malformed += 1
            _log(
                self._logger,
                logging.WARNING,
                "ingestion.normalize_drop",
                worker=type(self).__name__,
                symbol=self._symbol,
                raw_ts=_extract_raw_ts(raw),
                raw_type=type(raw).__name__,
                err_type=type(exc).__name__,
                err=str(exc),
                seq=self._seq,
            )
            return None
        if tick is None:
            return None

        # same-interval repeats are expected from the feed
        if tick.timestamp == self._last_ts:
            self.dropped_duplicates += 1
            _log(
                self._logger,
                logging.DEBUG,
                "ingestion.duplicate_drop",
                symbol=self._symbol,
                timestamp=tick.timestamp,
            )
            return None
        self._last_ts = tick.timestamp
        return tick


async def _emit(emit: Emit, item: Tick | SnapshotBatch) -> None:
    r = emit(item)
    if inspect.isawaitable(r):
        await r


def _extract_raw_ts(raw: Any) -> str | int | float | None:
    if isinstance(raw, dict):
        for key in ("ts_ms", "timestamp", "ts"):
            if key in raw:
                return raw.get(key)
    return None
