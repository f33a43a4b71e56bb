from __future__ import annotations

import argparse
import asyncio
import uuid

from ingestion.marketflow.source import (
    DEFAULT_PERIOD,
    DEFAULT_SEED_MINUTES,
    DEFAULT_TICKER,
    MarketflowSnapshotRESTSource,
    MarketflowWebSocketSource,
)
from ingestion.marketflow.worker import MarketflowWorker
from regime_engine.classifier.engine import RegimeEngine
from regime_engine.runtime.feed import TickFeed
from regime_engine.runtime.realtime import RegimeRuntime, run_pipeline
from regime_engine.utils.config import RegimeConfig, load_regime_config
from regime_engine.utils.logger import get_logger, init_logging

logger = get_logger(__name__)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Live marketflow regime classifier (one symbol)")
    p.add_argument("--http-base", required=True, help="snapshot API base URL")
    p.add_argument("--ws-url", required=True, help="live minute_update WebSocket URL")
    p.add_argument("--ticker", default=DEFAULT_TICKER)
    p.add_argument("--period", default=DEFAULT_PERIOD)
    p.add_argument("--seed-minutes", type=int, default=DEFAULT_SEED_MINUTES)
    p.add_argument("--config", default=None, help="regime config JSON (defaults if omitted)")
    p.add_argument("--log-config", default="configs/logging.json")
    p.add_argument("--log-profile", default=None)
    p.add_argument("--queue-size", type=int, default=1024)
    return p.parse_args()


async def main() -> None:
    args = _parse_args()
    init_logging(args.log_config, run_id=uuid.uuid4().hex[:8], symbol=args.ticker, profile=args.log_profile)

    config = load_regime_config(args.config) if args.config else RegimeConfig()
    engine = RegimeEngine(config)
    feed = TickFeed(maxsize=args.queue_size, max_backfill=config.retention, symbol=args.ticker)
    runtime = RegimeRuntime(engine=engine, feed=feed, symbol=args.ticker)

    worker = MarketflowWorker(
        symbol=args.ticker,
        snapshot_source=MarketflowSnapshotRESTSource(
            base_url=args.http_base,
            ticker=args.ticker,
            period=args.period,
            seed_minutes=args.seed_minutes,
        ),
        live_source=MarketflowWebSocketSource(url=args.ws_url),
    )

    logger.info("Starting marketflow regime pipeline...")
    try:
        await run_pipeline(worker, runtime)
    finally:
        logger.info("Pipeline stopped.")


if __name__ == "__main__":
    asyncio.run(main())
