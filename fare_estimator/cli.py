"""Command-line interface for the fare estimator.

Run:
    python -m fare_estimator estimate --input points.csv --output fares.csv
    python -m fare_estimator serve --config config.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from time import perf_counter

from fare_estimator.config import AppConfig, load_config
from fare_estimator.context import AppContext
from fare_estimator.core.errors import ConfigurationError, TransportError
from fare_estimator.logging_setup import configure_logging
from fare_estimator.pipeline import FarePipeline, PipelineResult


def _load(args: argparse.Namespace) -> AppConfig:
    config = load_config(args.config)
    if getattr(args, "log_level", None):
        config.logging.level = args.log_level
    return config


async def _estimate(ctx: AppContext) -> PipelineResult:
    pipeline = FarePipeline.from_config(ctx.config, ctx.stats, logger=ctx.logger)
    ctx.pipeline = pipeline
    return await pipeline.run()


def _cmd_estimate(args: argparse.Namespace) -> int:
    try:
        config = _load(args)
        config.input.csv_path = args.input
        config.output.csv_path = args.output
        # One-shot runs always use the in-process transport with every stage.
        config.broker.backend = "memory"
        config.pipeline.stages = ["ingest", "fare", "writer"]
        if args.batch_size is not None:
            config.output.batch_size = args.batch_size
        if args.concurrency is not None:
            config.workers.concurrency = args.concurrency
        if args.dead_letter is not None:
            config.output.dead_letter_path = args.dead_letter
        config.validate()
    except ConfigurationError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return 1

    logger = configure_logging(config.logging)
    ctx = AppContext.create(config, logger)

    started = perf_counter()
    try:
        result = asyncio.run(_estimate(ctx))
    except (OSError, TransportError) as exc:
        logger.error("estimate_failed", error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1
    elapsed = perf_counter() - started

    snapshot = ctx.stats.snapshot()
    rejected = snapshot["ingest"]["rejected"]
    persistence = snapshot["persistence"]
    print(f"points={snapshot['ingest']['points_received']}, "
          f"segments={snapshot['ingest']['segments_created']}, "
          f"rejected={sum(rejected.values())}")
    print(f"trips={result.trips_published}, fares={result.fares_received}, "
          f"written={persistence['records_flushed']}, lost={persistence['records_lost']}")
    print(f"output={config.output.csv_path} ({elapsed:.2f}s)")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from fare_estimator.main import create_app

    try:
        config = _load(args)
    except ConfigurationError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return 1

    config.server.host = args.host or config.server.host
    config.server.port = args.port or config.server.port
    # The app gets this config object, so command-line overrides reach it too.
    uvicorn.run(create_app(config=config), host=config.server.host, port=config.server.port,
                log_level=config.logging.level)
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=str, default=None, help="YAML config path (default: ./config.yaml)")
    common.add_argument("--log-level", type=str, default=None, help="override logging.level")

    p = argparse.ArgumentParser(prog="fare-estimator", description="Delivery trip fare estimator")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_est = sub.add_parser("estimate", parents=[common], help="estimate fares for a CSV of GPS points")
    p_est.add_argument("--input", type=str, required=True, help="input CSV: id,lat,lng,timestamp")
    p_est.add_argument("--output", type=str, required=True, help="output CSV: id,fare (appended)")
    p_est.add_argument("--batch-size", type=int, default=None, help="records per sink write")
    p_est.add_argument("--concurrency", type=int, default=None, help="fare worker count")
    p_est.add_argument("--dead-letter", type=str, default=None,
                       help="JSONL file for records the sink rejected ('' disables)")
    p_est.set_defaults(func=_cmd_estimate)

    p_srv = sub.add_parser("serve", parents=[common], help="run the HTTP API and the configured pipeline stages")
    p_srv.add_argument("--host", type=str, default=None)
    p_srv.add_argument("--port", type=int, default=None)
    p_srv.set_defaults(func=_cmd_serve)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
