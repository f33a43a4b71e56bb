from __future__ import annotations

import argparse
import asyncio

from ingestion.contracts.tick import Tick
from ingestion.marketflow.source import MarketflowJSONLSource, MarketflowSnapshotFileSource
from ingestion.marketflow.worker import MarketflowWorker
from regime_engine.classifier.engine import Classification, RegimeEngine
from regime_engine.runtime.feed import TickFeed
from regime_engine.runtime.realtime import RegimeRuntime, run_pipeline
from regime_engine.utils.config import RegimeConfig, load_regime_config
from regime_engine.utils.logger import init_logging


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Replay a recorded snapshot + live feed through the classifier")
    p.add_argument("--snapshot", default=None, help="snapshot JSON file")
    p.add_argument("--live", default=None, help="live minute_update JSONL file")
    p.add_argument("--ticker", default="SOL-USD")
    p.add_argument("--config", default=None)
    p.add_argument("--log-config", default="configs/logging.json")
    p.add_argument("--log-profile", default=None)
    return p.parse_args()


def _print_result(tick: Tick, result: Classification) -> None:
    alerts = ",".join(a.value for a in result.alerts) or "-"
    print(
        f"{tick.iso_ts} {tick.kind.value:<8} dd={tick.dd:>14.1f} spread={tick.spread:>10.4f} "
        f"base={result.baseline:>10.4f} regime={result.regime.value:<12} alerts={alerts}"
    )


async def main() -> None:
    args = _parse_args()
    if args.snapshot is None and args.live is None:
        raise SystemExit("nothing to replay: pass --snapshot and/or --live")
    init_logging(args.log_config, run_id="replay", symbol=args.ticker, profile=args.log_profile)

    config = load_regime_config(args.config) if args.config else RegimeConfig()
    engine = RegimeEngine(config)
    feed = TickFeed(max_backfill=config.retention, symbol=args.ticker)
    runtime = RegimeRuntime(engine=engine, feed=feed, symbol=args.ticker, on_result=_print_result)

    worker = MarketflowWorker(
        symbol=args.ticker,
        snapshot_source=MarketflowSnapshotFileSource(path=args.snapshot) if args.snapshot else None,
        live_source=MarketflowJSONLSource(path=args.live) if args.live else None,
    )
    await run_pipeline(worker, runtime)


if __name__ == "__main__":
    asyncio.run(main())
