from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, AsyncIterable, AsyncIterator, Iterator
from urllib.parse import urlencode

import requests

from ingestion.contracts.source import AsyncSource, Raw, Source

"""
Upstream collaborators:
    - snapshot backfill: GET <base>/marketflow/?ticker=..&period=..&start_ms=..&end_ms=..
    - live feed: push stream of `minute_update` JSON messages
"""

# UI period label -> backend period code
PERIOD_MAP = {
    "1 minute": "1min",
    "5 minutes": "5min",
    "15 minutes": "15min",
    "1 hour": "1h",
    "4 hours": "4h",
    "1 day": "1d",
    "1 week": "1w",
}

DEFAULT_TICKER = "SOL-USD"
DEFAULT_PERIOD = "1h"
DEFAULT_SEED_MINUTES = 60


def _now_ms() -> int:
    return int(time.time() * 1000.0)


def build_snapshot_url(
    base: str,
    ticker: str = DEFAULT_TICKER,
    period: str = DEFAULT_PERIOD,
    start_ms: int | None = None,
    end_ms: int | None = None,
) -> str:
    params: dict[str, Any] = {"ticker": ticker, "period": period}
    if start_ms is not None:
        params["start_ms"] = int(start_ms)
    if end_ms is not None:
        params["end_ms"] = int(end_ms)
    return base.rstrip("/") + "/marketflow/?" + urlencode(params)


class MarketflowSnapshotRESTSource(Source):
    """
    One-shot snapshot backfill over HTTP.

    `fetch()` covers the last `seed_minutes` minutes ending at `end_ms`
    (wall-clock now by default). Iterating the source yields that single payload.
    """

    def __init__(
        self,
        *,
        base_url: str,
        ticker: str = DEFAULT_TICKER,
        period: str = DEFAULT_PERIOD,
        seed_minutes: int = DEFAULT_SEED_MINUTES,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        if seed_minutes <= 0:
            raise ValueError(f"seed_minutes must be > 0, got {seed_minutes}")
        self._base_url = base_url
        self._ticker = ticker
        self._period = PERIOD_MAP.get(period, period)
        self._seed_minutes = int(seed_minutes)
        self._timeout = float(timeout)
        self._session = session or requests.Session()

    @property
    def ticker(self) -> str:
        return self._ticker

    def url(self, end_ms: int | None = None) -> str:
        end = int(end_ms) if end_ms is not None else _now_ms()
        start = end - self._seed_minutes * 60_000
        return build_snapshot_url(self._base_url, self._ticker, self._period, start, end)

    def fetch(self, end_ms: int | None = None) -> Raw:
        r = self._session.get(self.url(end_ms), headers={"Cache-Control": "no-store"}, timeout=self._timeout)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected snapshot response type: {type(data)!r}")
        return data

    def __iter__(self) -> Iterator[Raw]:
        yield self.fetch()


class MarketflowWebSocketSource(AsyncSource):
    """
    Live `minute_update` feed.

    Iterates an injected async stream when given (tests / replay); otherwise
    connects to `url` with `websockets` and yields decoded JSON objects.
    Reconnect policy belongs to the caller.
    """

    def __init__(self, *, url: str | None = None, stream: AsyncIterable[Raw] | None = None):
        if url is None and stream is None:
            raise ValueError("one of url or stream must be provided")
        self._url = url
        self._stream = stream

    def __aiter__(self) -> AsyncIterator[Raw]:
        if self._stream is not None:
            return self._iter_stream()
        return self._iter_socket()

    async def _iter_stream(self) -> AsyncIterator[Raw]:
        assert self._stream is not None
        async for msg in self._stream:
            yield msg

    async def _iter_socket(self) -> AsyncIterator[Raw]:
        import websockets

        assert self._url is not None
        async with websockets.connect(self._url) as ws:
            async for frame in ws:
                try:
                    msg = json.loads(frame)
                except (TypeError, ValueError):
                    continue
                if not isinstance(msg, dict):
                    continue
                yield msg


class MarketflowSnapshotFileSource(Source):
    """Snapshot payload stored as one JSON document (replay / fixtures)."""

    def __init__(self, *, path: str | Path):
        self._path = Path(path)
        if not self._path.exists():
            raise FileNotFoundError(f"snapshot file does not exist: {self._path}")

    def fetch(self) -> Raw:
        with self._path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"snapshot file {self._path} must hold a JSON object")
        return data

    def __iter__(self) -> Iterator[Raw]:
        yield self.fetch()


class MarketflowJSONLSource(AsyncSource):
    """Live messages replayed from a JSON-lines file, one message per line."""

    def __init__(self, *, path: str | Path):
        self._path = Path(path)
        if not self._path.exists():
            raise FileNotFoundError(f"live replay file does not exist: {self._path}")

    async def __aiter__(self) -> AsyncIterator[Raw]:
        with self._path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    msg = json.loads(line)
                except ValueError:
                    # keep the line so the worker logs it as malformed
                    msg = {"type": "minute_update", "_raw": line}
                yield msg
