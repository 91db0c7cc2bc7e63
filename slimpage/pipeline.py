"""High-level orchestration of the optimisation and reporting passes."""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .browser import launch_engine
from .config import PipelineConfig
from .localize import LocalizationResult, optimize_and_output
from .report import SizeReport, analyze_sizes
from .snapshot import normalize_snapshot
from .visibility import remove_hidden_elements

logger = logging.getLogger("slimpage")


@dataclass
class PipelineMetrics:
    """Timing details for an optimised page."""

    url: str
    output_path: Path
    files_written: int
    files_skipped: int
    rules_removed: int
    total_seconds: float


def prepare_output_dir(output_root: Path) -> None:
    """Recreate the output directory so no file of a previous run survives."""
    if output_root.exists():
        shutil.rmtree(output_root)
    output_root.mkdir(parents=True)


async def run_stages(engine, config: PipelineConfig) -> LocalizationResult:
    """Run snapshot, visibility pruning and localization in order."""
    prepare_output_dir(config.output_root)

    start = time.perf_counter()
    source = await normalize_snapshot(engine, config)
    logger.info("Snapshot ready in %.2fs", time.perf_counter() - start)

    start = time.perf_counter()
    source = await remove_hidden_elements(engine, config, source)
    logger.info("Hidden elements removed in %.2fs", time.perf_counter() - start)

    start = time.perf_counter()
    result = await optimize_and_output(engine, config, source)
    logger.info("Resources localized in %.2fs", time.perf_counter() - start)
    return result


async def run_pipeline(config: PipelineConfig) -> PipelineMetrics:
    """Launch the browser and produce the optimised page for ``config.url``."""
    overall_start = time.perf_counter()
    async with launch_engine(config) as engine:
        result = await run_stages(engine, config)
    return PipelineMetrics(
        url=config.url,
        output_path=result.output_path,
        files_written=len(result.files),
        files_skipped=len(result.skipped),
        rules_removed=result.rules_removed,
        total_seconds=time.perf_counter() - overall_start,
    )


async def run_report(
    config: PipelineConfig, output_dir: Optional[Path] = None
) -> SizeReport:
    """Launch the browser and measure ``config.url`` (or a previous output)."""
    async with launch_engine(config) as engine:
        return await analyze_sizes(engine, config, output_dir)
