"""Data models used throughout the optimisation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

from .errors import UnknownContentLength

UNKNOWN = "unknown"

Size = Union[int, str]


class ResourceType(str, Enum):
    """Resource classes the pipeline distinguishes."""

    DOCUMENT = "document"
    STYLESHEET = "stylesheet"
    SCRIPT = "script"
    IMAGE = "image"
    FONT = "font"
    OTHER = "other"

    @classmethod
    def from_engine(cls, value: Optional[str]) -> "ResourceType":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


@dataclass
class CapturedResource:
    """A completed network exchange observed during a render pass."""

    request_url: str
    final_url: str
    resource_type: ResourceType
    response_headers: Dict[str, str]
    loader: Callable[[], Awaitable[bytes]] = field(repr=False)
    _body: Optional[bytes] = field(default=None, init=False, repr=False)

    @property
    def content_type(self) -> str:
        return self.response_headers.get("content-type", "")

    @property
    def content_length(self) -> int:
        """Declared transfer size; raises UnknownContentLength when absent."""
        value = self.response_headers.get("content-length")
        if value is None or not value.strip().isdigit():
            raise UnknownContentLength(self.request_url)
        return int(value)

    async def body(self) -> bytes:
        if self._body is None:
            self._body = await self.loader()
        return self._body


@dataclass
class SrcsetCandidate:
    """One entry of a responsive image source list."""

    url: Optional[str]
    width: Optional[int] = None
    density: Optional[float] = None


@dataclass
class ElementVisualState:
    """Computed box and style of an element at sampling time."""

    tag: str
    width: float
    height: float
    opacity: str
    visibility: str
    overflow: str
    display: str


@dataclass
class StyleRuleNode:
    """A rule of a stylesheet as extracted from the page's CSSOM."""

    kind: str
    text: str = ""
    selector: Optional[str] = None
    prelude: Optional[str] = None
    children: List["StyleRuleNode"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "StyleRuleNode":
        return cls(
            kind=data.get("kind", "other"),
            text=data.get("text") or "",
            selector=data.get("selector"),
            prelude=data.get("prelude"),
            children=[cls.from_dict(child) for child in data.get("children") or []],
        )


@dataclass
class SizeReportEntry:
    """Original and compressed sizes for one resource or resource class."""

    type: ResourceType
    url: Optional[str]
    original_size: Size
    primary_size: int
    secondary_size: int
    combined: bool = False
