"""Command-line entry point for slimpage."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from .config import DEFAULT_OUTPUT, DEFAULT_VIEWPORT, VIEWPORTS, PipelineConfig
from .pipeline import run_pipeline, run_report

logger = logging.getLogger("slimpage.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("optimize", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", help="URL of the page to process")
    parser.add_argument(
        "--source",
        type=Path,
        default=None,
        help="Serve this HTML file in place of the page's own response",
    )
    parser.add_argument(
        "--viewport",
        choices=sorted(VIEWPORTS),
        default=DEFAULT_VIEWPORT,
        help="Device profile used for every render pass",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Navigation timeout in seconds",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=0.0,
        help="Seconds to wait after the page settles before reading it",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window instead of running headless",
    )
    parser.add_argument(
        "--no-font-retype",
        action="store_true",
        help="Pass font requests through instead of re-serving them with a fixed content type",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Render a page with Playwright and emit a pruned, self-contained copy "
            "or a compression size report."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    optimize_parser = subparsers.add_parser(
        "optimize", help="Write a minimised, localized copy of the page"
    )
    _add_common_arguments(optimize_parser)
    optimize_parser.add_argument(
        "--output",
        default=DEFAULT_OUTPUT,
        type=Path,
        help="Directory recreated to hold index.html and localized resources",
    )

    report_parser = subparsers.add_parser(
        "report", help="Compare transfer sizes under brotli and gzip"
    )
    _add_common_arguments(report_parser)
    report_parser.add_argument(
        "--from-output",
        type=Path,
        default=None,
        help="Measure a previous optimize output directory instead of the live page",
    )
    report_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON",
    )

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_config(args: argparse.Namespace) -> PipelineConfig:
    source_html = None
    if args.source is not None:
        source_html = args.source.read_text(encoding="utf-8")
    return PipelineConfig(
        url=args.url,
        output_root=Path(getattr(args, "output", DEFAULT_OUTPUT)).resolve(),
        viewport=VIEWPORTS[args.viewport],
        headless=not args.headful,
        navigation_timeout=args.timeout,
        wait_after_load=args.wait,
        retype_fonts=not args.no_font_retype,
        source_html=source_html,
    )


def _run_optimize(config: PipelineConfig) -> None:
    metrics = asyncio.run(run_pipeline(config))
    logger.info(
        "Finished %s in %.2fs (%d files written, %d skipped, %d rules removed)",
        metrics.url,
        metrics.total_seconds,
        metrics.files_written,
        metrics.files_skipped,
        metrics.rules_removed,
    )


def _run_report(config: PipelineConfig, args: argparse.Namespace) -> None:
    output_dir = args.from_output.resolve() if args.from_output else None
    report = asyncio.run(run_report(config, output_dir))
    if args.json:
        sys.stdout.write(json.dumps(report.to_dict(), indent=2) + "\n")
    else:
        sys.stdout.write(report.render() + "\n")
    sys.stdout.flush()


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    config = build_config(args)
    try:
        if args.command == "optimize":
            _run_optimize(config)
        else:
            _run_report(config, args)
    except PlaywrightError as exc:
        logger.error("Rendering failed for %s: %s", config.url, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
