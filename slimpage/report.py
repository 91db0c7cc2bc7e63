"""Read-only render pass comparing compression strategies per resource."""

from __future__ import annotations

import asyncio
import gzip
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import brotli
from playwright.async_api import Error as PlaywrightError

from .browser import open_session
from .capture import NetworkSubstitution, ResourceCapture, local_files_from_directory
from .config import PipelineConfig
from .errors import UnknownContentLength
from .models import UNKNOWN, CapturedResource, ResourceType, Size, SizeReportEntry
from .utils import format_size

logger = logging.getLogger("slimpage")

REPORTED_TYPES = (ResourceType.DOCUMENT, ResourceType.STYLESHEET, ResourceType.SCRIPT)
COMBINED_TYPES = (ResourceType.STYLESHEET, ResourceType.SCRIPT)

PRIMARY_CODEC = "brotli"
SECONDARY_CODEC = "gzip"


def brotli_size(data: bytes) -> int:
    return len(brotli.compress(data, quality=11))


def gzip_size(data: bytes) -> int:
    return len(gzip.compress(data, compresslevel=9, mtime=0))


async def compressed_sizes(data: bytes) -> Tuple[int, int]:
    """Compress ``data`` with both codecs in worker threads."""
    primary, secondary = await asyncio.gather(
        asyncio.to_thread(brotli_size, data),
        asyncio.to_thread(gzip_size, data),
    )
    return primary, secondary


def declared_size(resource: CapturedResource) -> Size:
    try:
        return resource.content_length
    except UnknownContentLength:
        return UNKNOWN


def total_size(sizes: List[Size]) -> Size:
    """Sum declared sizes; a single unknown member makes the total unknown."""
    if any(size == UNKNOWN for size in sizes):
        return UNKNOWN
    return sum(sizes)


@dataclass
class SizeReport:
    """Per-resource and combined per-type size entries."""

    url: str
    entries: List[SizeReportEntry] = field(default_factory=list)

    @property
    def resources(self) -> List[SizeReportEntry]:
        return [entry for entry in self.entries if not entry.combined]

    @property
    def combined(self) -> List[SizeReportEntry]:
        return [entry for entry in self.entries if entry.combined]

    def render(self) -> str:
        lines = [
            f"Size report for {self.url}",
            f"{'type':<11} {'original':>10} {PRIMARY_CODEC:>10} {SECONDARY_CODEC:>10}  resource",
        ]
        for entry in self.entries:
            label = "(combined)" if entry.combined else entry.url
            lines.append(
                f"{entry.type.value:<11} "
                f"{format_size(entry.original_size):>10} "
                f"{format_size(entry.primary_size):>10} "
                f"{format_size(entry.secondary_size):>10}  {label}"
            )
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "codecs": {"primary": PRIMARY_CODEC, "secondary": SECONDARY_CODEC},
            "entries": [
                {
                    "type": entry.type.value,
                    "url": entry.url,
                    "combined": entry.combined,
                    "original_size": entry.original_size,
                    "primary_size": entry.primary_size,
                    "secondary_size": entry.secondary_size,
                }
                for entry in self.entries
            ],
        }


async def _measure(
    resource: CapturedResource,
) -> Optional[Tuple[CapturedResource, bytes, SizeReportEntry]]:
    try:
        body = await resource.body()
    except PlaywrightError as exc:
        logger.warning("Failed to read %s: %s", resource.request_url, exc)
        return None
    primary, secondary = await compressed_sizes(body)
    entry = SizeReportEntry(
        type=resource.resource_type,
        url=resource.request_url,
        original_size=declared_size(resource),
        primary_size=primary,
        secondary_size=secondary,
    )
    return resource, body, entry


async def _combine(
    resource_type: ResourceType,
    measured: List[Tuple[CapturedResource, bytes, SizeReportEntry]],
) -> SizeReportEntry:
    members = [item for item in measured if item[0].resource_type == resource_type]
    concatenated = b"".join(body for _, body, _ in members)
    primary, secondary = await compressed_sizes(concatenated)
    return SizeReportEntry(
        type=resource_type,
        url=None,
        original_size=total_size([entry.original_size for _, _, entry in members]),
        primary_size=primary,
        secondary_size=secondary,
        combined=True,
    )


async def build_report(url: str, resources: List[CapturedResource]) -> SizeReport:
    """Measure captured documents, stylesheets and scripts.

    Resources are measured concurrently; the combined stylesheet and script
    entries compress the bodies of their class concatenated in capture
    order. A resource whose body cannot be read is left out of both.
    """
    candidates = [r for r in resources if r.resource_type in REPORTED_TYPES]
    results = await asyncio.gather(*(_measure(r) for r in candidates))
    measured = [result for result in results if result is not None]

    combined = await asyncio.gather(
        *(_combine(resource_type, measured) for resource_type in COMBINED_TYPES)
    )
    report = SizeReport(url=url)
    report.entries.extend(entry for _, _, entry in measured)
    report.entries.extend(combined)
    return report


async def analyze_sizes(
    engine,
    config: PipelineConfig,
    output_dir: Optional[Path] = None,
) -> SizeReport:
    """Load the page to network idle and report transfer and compressed sizes.

    With ``output_dir`` the page is replayed from a previous run's
    ``index.html`` and localized files instead of the network.
    """
    async with open_session(engine, config, block_service_workers=True) as session:
        capture = ResourceCapture()
        capture.attach(session)

        page_body = config.source_html
        local_files: Dict[str, Path] = {}
        if output_dir is not None:
            page_body = (output_dir / "index.html").read_text(encoding="utf-8")
            local_files = local_files_from_directory(output_dir, config.url)
        if page_body is not None or local_files:
            substitution = NetworkSubstitution(
                config.url,
                page_body=page_body,
                retype_fonts=config.retype_fonts,
                local_files=local_files,
            )
            await substitution.attach(session)

        logger.info("Measuring %s", config.url)
        await session.navigate(config.url, wait_until="networkidle")
        await session.settle(config.wait_after_load)
        return await build_report(config.url, capture.resources)
