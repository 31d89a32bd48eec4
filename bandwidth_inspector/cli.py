"""Command-line entry point for the bandwidth inspector."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Sequence

from .analyzer import analyze_project
from .config import AnalysisConfig, AnalysisMode
from .errors import InspectorError
from .estimator import monthly_bandwidth
from .host import SnapshotHost
from .manual import load_manual_inputs
from .models import OptimizationMode
from .report import compose_markdown, report_to_dict
from .utils import format_bytes

logger = logging.getLogger("bandwidth_inspector.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("analyze", *argv)


def _add_analyze_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("snapshot", type=Path, help="Exported project snapshot (JSON)")
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="ID",
        help="Page id to leave out of the analysis (repeatable)",
    )
    parser.add_argument(
        "--manual",
        type=Path,
        default=None,
        help="JSON file with manual collection estimates",
    )
    parser.add_argument(
        "--no-optimization",
        action="store_true",
        help="Estimate source files instead of re-encoded images",
    )
    parser.add_argument(
        "--published",
        action="store_true",
        help="Also measure the published site",
    )
    parser.add_argument(
        "--render",
        action="store_true",
        help="Render the published site with Playwright instead of a plain fetch",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the report as JSON instead of Markdown",
    )
    parser.add_argument(
        "--visits",
        type=int,
        default=None,
        help="Monthly visits used for the bandwidth projection",
    )
    parser.add_argument(
        "--pages-per-visit",
        type=float,
        default=1.0,
        help="Average number of pages viewed per visit",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Timeout in seconds for each network request",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_monthly_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("bytes", type=float, help="Bytes transferred per visit")
    parser.add_argument("visits", type=float, help="Visits per month")
    parser.add_argument(
        "--no-optimization",
        action="store_true",
        help="Use the calibration factor for unoptimized source files",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Estimate the network weight of a design project and suggest optimizations.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze", help="Analyze a project snapshot and print a report"
    )
    _add_analyze_arguments(analyze_parser)

    monthly_parser = subparsers.add_parser(
        "monthly", help="Project monthly bandwidth from a per-visit payload"
    )
    _add_monthly_arguments(monthly_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _optimization_mode(args: argparse.Namespace) -> OptimizationMode:
    return OptimizationMode.SOURCE if args.no_optimization else OptimizationMode.OPTIMIZED


def _run_analyze(args: argparse.Namespace) -> None:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    config = AnalysisConfig(
        optimization_mode=_optimization_mode(args),
        mode=AnalysisMode.PUBLISHED if args.published or args.render else AnalysisMode.CANVAS,
        render_published=args.render,
        request_timeout=args.timeout,
    )

    try:
        host = SnapshotHost.from_file(args.snapshot)
        manual = load_manual_inputs(args.manual) if args.manual else []
        report = asyncio.run(
            analyze_project(
                host,
                host,
                host,
                excluded_route_ids=args.exclude,
                manual_estimates=manual,
                config=config,
            )
        )
    except InspectorError as exc:
        logger.error("Analysis failed [%s]: %s", exc.code.value, exc.message)
        raise SystemExit(1) from exc

    if args.json:
        data = report_to_dict(report, config.optimization_mode, args.visits, args.pages_per_visit)
        sys.stdout.write(json.dumps(data, indent=2) + "\n")
    else:
        sys.stdout.write(
            compose_markdown(report, config.optimization_mode, args.visits, args.pages_per_visit)
        )
    sys.stdout.flush()


def _run_monthly(args: argparse.Namespace) -> None:
    estimate = monthly_bandwidth(args.bytes, args.visits, _optimization_mode(args))
    sys.stdout.write(
        f"Realistic: {format_bytes(estimate.realistic)}\n"
        f"Worst case: {format_bytes(estimate.worst_case)}\n"
    )


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    if args.command == "analyze":
        _run_analyze(args)
    else:
        _run_monthly(args)


if __name__ == "__main__":
    main()
