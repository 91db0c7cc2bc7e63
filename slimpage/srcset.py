"""Parsing and rendering of the responsive image ``srcset`` micro-syntax."""

from __future__ import annotations

import re
from typing import Iterable, List

from .errors import ConflictingDescriptors, InvalidDescriptor, MissingUrl
from .models import SrcsetCandidate
from .utils import resolve_url

_INTEGER_PATTERN = re.compile(r"^-?\d+$")
_WHITESPACE = " \t\n\r\f"


def _split_candidates(value: str) -> Iterable[List[str]]:
    """Yield the whitespace separated tokens of each candidate.

    A candidate ends at a comma that follows its URL or its descriptors;
    commas inside the URL itself (``data:`` URIs) are kept.
    """
    pos = 0
    length = len(value)
    while True:
        while pos < length and (value[pos] in _WHITESPACE or value[pos] == ","):
            pos += 1
        if pos >= length:
            return

        start = pos
        while pos < length and value[pos] not in _WHITESPACE:
            pos += 1
        url = value[start:pos]
        if url.endswith(","):
            yield [url.rstrip(",")]
            continue

        start = pos
        depth = 0
        while pos < length:
            char = value[pos]
            if char == "(":
                depth += 1
            elif char == ")" and depth:
                depth -= 1
            elif char == "," and not depth:
                break
            pos += 1
        yield [url, *value[start:pos].split()]
        pos += 1


def _parse_candidate(tokens: List[str]) -> SrcsetCandidate:
    candidate = SrcsetCandidate(url=tokens[0])
    for token in tokens[1:]:
        number, suffix = token[:-1], token[-1:]
        if suffix == "w" and _INTEGER_PATTERN.match(number):
            width = int(number)
            if width <= 0:
                raise InvalidDescriptor("Width descriptor must be greater than zero")
            candidate.width = width
        elif suffix == "x":
            try:
                density = float(number)
            except ValueError as exc:
                raise InvalidDescriptor(f"Invalid srcset descriptor: {token}") from exc
            if not density > 0:
                raise InvalidDescriptor(
                    "Pixel density descriptor must be greater than zero"
                )
            candidate.density = density
        else:
            raise InvalidDescriptor(f"Invalid srcset descriptor: {token}")

        if candidate.width is not None and candidate.density is not None:
            raise ConflictingDescriptors(
                "Image candidate string cannot have both width descriptor "
                "and pixel density descriptor"
            )
    return candidate


def _format_density(density: float) -> str:
    text = repr(float(density))
    return text[:-2] if text.endswith(".0") else text


def _render(candidate: SrcsetCandidate) -> str:
    if not candidate.url:
        raise MissingUrl("URL is required")
    parts = [candidate.url]
    if candidate.width:
        parts.append(f"{candidate.width}w")
    if candidate.density:
        parts.append(f"{_format_density(candidate.density)}x")
    return " ".join(parts)


def parse(value: str) -> List[SrcsetCandidate]:
    """Parse a srcset value into sorted, de-duplicated candidates."""
    candidates = [_parse_candidate(tokens) for tokens in _split_candidates(value)]
    ordered = sorted(candidates, key=_render)
    return [
        candidate
        for index, candidate in enumerate(ordered)
        if index == 0 or candidate != ordered[index - 1]
    ]


def serialize(candidates: Iterable[SrcsetCandidate]) -> str:
    """Render candidates back to a srcset value."""
    rendered: List[str] = []
    for candidate in candidates:
        text = _render(candidate)
        if text not in rendered:
            rendered.append(text)
    return ", ".join(rendered)


def resolve(value: str, base_url: str) -> str:
    """Rewrite every candidate URL of ``value`` to absolute form."""
    candidates = parse(value)
    for candidate in candidates:
        if not candidate.url.startswith("data:"):
            candidate.url = resolve_url(candidate.url, base_url)
    return serialize(candidates)
