"""MCP server exposing slimpage optimize/report tools."""

from __future__ import annotations

import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import PipelineConfig
from .pipeline import run_pipeline, run_report

logger = logging.getLogger("slimpage.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="slimpage")


@mcp.tool()
async def optimize(url: str, output_dir: str = "out") -> str:
    """Write a minimised, self-contained copy of a web page to a directory."""
    config = PipelineConfig(url=url, output_root=Path(output_dir).expanduser().resolve())
    metrics = await run_pipeline(config)
    return (
        f"Wrote {metrics.output_path} with {metrics.files_written} localized "
        f"resource(s); {metrics.files_skipped} skipped, "
        f"{metrics.rules_removed} unused style rule(s) removed "
        f"in {metrics.total_seconds:.2f}s."
    )


@mcp.tool()
async def size_report(url: str) -> str:
    """Compare original, brotli and gzip sizes of a page's documents, styles and scripts."""
    report = await run_report(PipelineConfig(url=url))
    return report.render()


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
