"""News sentiment signal validation pipeline entry point.

Usage:
    python run_pipeline.py fetch                 # archive new Finnhub/RSS articles
    python run_pipeline.py ingest                # classify one batch of pending articles
    python run_pipeline.py validate              # score aged predictions against prices
    python run_pipeline.py report                # accuracy report as JSON
    python run_pipeline.py check-ticker AAPL     # ask every provider about a symbol
    python run_pipeline.py serve                 # run fetch/ingest/validate on their timers

Loads config.yaml (``--config``) and .env, runs the requested job, and reports
success/failure to stdout and the pipeline log.
"""

import argparse
import json
import sys
from dataclasses import asdict, is_dataclass
from dotenv import load_dotenv

load_dotenv()  # must precede signalcheck imports so env vars are available at module load

from signalcheck.core.config import load_config  # noqa: E402
from signalcheck.core.logger import logger  # noqa: E402
from signalcheck.pipeline.engine import PipelineEngine  # noqa: E402


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="News sentiment signal validation pipeline")
    parser.add_argument("--config", default="config.yaml", help="path to config.yaml")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("fetch", help="poll news sources and archive new articles")
    commands.add_parser("ingest", help="classify the next batch of pending articles")
    validate = commands.add_parser("validate", help="validate aged predictions against prices")
    validate.add_argument("--mode", choices=["daily", "intraday"], help="override validation.mode")
    commands.add_parser("report", help="print the accuracy report as JSON")
    check = commands.add_parser("check-ticker", help="ask every price provider whether TICKER exists")
    check.add_argument("ticker")
    commands.add_parser("serve", help="run all jobs on their configured intervals")
    return parser


def _run(engine: PipelineEngine, args: argparse.Namespace):
    if args.command == "fetch":
        return engine.fetch_news()
    if args.command == "ingest":
        return engine.ingest()
    if args.command == "validate":
        return engine.validate()
    if args.command == "report":
        return engine.report()
    if args.command == "check-ticker":
        return engine.check_ticker(args.ticker)
    engine.serve()
    return None


def main(argv=None) -> int:
    """Run one job. Returns 0 on success, 1 on failure."""
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error(f"run_pipeline: failed to load config: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if getattr(args, "mode", None):
        config["validation"]["mode"] = args.mode

    try:
        result = _run(PipelineEngine(config=config), args)
    except Exception as exc:
        logger.error(f"run_pipeline: '{args.command}' raised: {exc}", exc_info=True)
        print(f"ERROR: {args.command} failed: {exc}", file=sys.stderr)
        return 1

    if result is not None:
        payload = asdict(result) if is_dataclass(result) else result
        print(json.dumps(payload, indent=2, default=str))
    logger.info(f"run_pipeline: '{args.command}' completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
