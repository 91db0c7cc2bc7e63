"""Configuration objects and constants for the optimisation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from .utils import normalize_page_url


@dataclass(frozen=True)
class Viewport:
    """Device profile used for every render pass of a run."""

    width: int
    height: int
    device_scale_factor: float
    is_mobile: bool = True
    has_touch: bool = True


VIEWPORTS: Dict[str, Viewport] = {
    "mobile": Viewport(width=1080 // 3, height=1920 // 3, device_scale_factor=3),
    "ipad": Viewport(width=768, height=1024, device_scale_factor=2),
    # touch stays on to avoid a reload when emulation changes
    "macbook": Viewport(width=2560 // 2, height=1600 // 2, device_scale_factor=2),
}
DEFAULT_VIEWPORT = "mobile"
DEFAULT_OUTPUT = Path("out")


@dataclass
class PipelineConfig:
    """Per-run settings threaded through every stage."""

    url: str
    output_root: Path = DEFAULT_OUTPUT
    viewport: Viewport = field(default_factory=lambda: VIEWPORTS[DEFAULT_VIEWPORT])
    headless: bool = True
    navigation_timeout: float = 30.0
    wait_after_load: float = 0.0
    retype_fonts: bool = True
    source_html: Optional[str] = None

    def __post_init__(self) -> None:
        self.url = normalize_page_url(self.url)
        self.output_root = Path(self.output_root)
