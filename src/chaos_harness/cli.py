"""
Command line entry point for the chaos harness.

    chaos-harness run --time-scale 0.01 --reports-dir logs/chaos
    chaos-harness paths --format dot --output-dir docs
"""

import argparse
import asyncio
import json
import logging
import random
import sys
from typing import List, Optional

from chaos_harness.config import HarnessSettings
from chaos_harness.experiments.definitions import load_sequence
from chaos_harness.experiments.runner import ChaosTestingSequence
from chaos_harness.tracing import initialize_tracing, shutdown_tracing
from chaos_harness.validation.recovery_paths import (
    DEFAULT_RECOVERY_PATHS,
    MAP_FORMATS,
    load_recovery_paths,
    render_recovery_path_map,
    write_recovery_path_map,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chaos-harness",
        description="Chaos engineering and resilience verification harness",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the full sequence 100x faster than real time
  chaos-harness run --time-scale 0.01

  # Render the recovery path map as a GraphViz graph
  chaos-harness paths --format dot --output-dir docs
        """,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the chaos testing sequence")
    run.add_argument("--config", metavar="FILE", default="config/chaos.yaml",
                     help="Harness configuration file (YAML or JSON)")
    run.add_argument("--sequence", metavar="FILE", help="Sequence definition file (YAML)")
    run.add_argument("--recovery-paths", metavar="FILE", help="Recovery paths file (YAML or JSON)")
    run.add_argument("--reports-dir", metavar="DIR", help="Directory for report artifacts")
    run.add_argument("--time-scale", type=float, default=1.0,
                     help="Multiplier applied to every duration (default: 1.0)")
    run.add_argument("--seed", type=int, help="Seed for probabilistic outcomes")
    run.add_argument("--no-process-metrics", action="store_true",
                     help="Do not sample process and host metrics")
    run.add_argument("--trace-console", action="store_true", help="Print OpenTelemetry spans")

    paths = subparsers.add_parser("paths", help="Render the recovery path map")
    paths.add_argument("--recovery-paths", metavar="FILE", help="Recovery paths file (YAML or JSON)")
    paths.add_argument("--format", choices=MAP_FORMATS, default="markdown", dest="fmt")
    paths.add_argument("--output-dir", metavar="DIR", help="Write the map here instead of stdout")

    return parser


def _run(args: argparse.Namespace) -> int:
    settings = HarnessSettings.from_file(args.config)
    if args.reports_dir:
        settings.reports_dir = args.reports_dir
    settings.validate()

    if args.trace_console:
        initialize_tracing(console=True)

    sequence = ChaosTestingSequence(
        settings,
        sequence=load_sequence(args.sequence) if args.sequence else None,
        recovery_paths=load_recovery_paths(args.recovery_paths) if args.recovery_paths else None,
        time_scale=args.time_scale,
        rng=random.Random(args.seed) if args.seed is not None else None,
        process_metrics=not args.no_process_metrics,
    )
    try:
        summary = asyncio.run(sequence.run())
    finally:
        shutdown_tracing()

    print(json.dumps(summary, indent=2, default=str))
    return 1 if summary.get("error") else 0


def _paths(args: argparse.Namespace) -> int:
    paths = load_recovery_paths(args.recovery_paths) if args.recovery_paths else DEFAULT_RECOVERY_PATHS
    if args.output_dir:
        target = write_recovery_path_map(paths, args.fmt, args.output_dir)
        print(f"Recovery path map saved to: {target}")
    else:
        print(render_recovery_path_map(paths, args.fmt))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    handlers = {"run": _run, "paths": _paths}
    try:
        return handlers[args.command](args)
    except (ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
