"""Stylesheet URL rewriting and unused rule elimination."""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional

from .errors import AmbiguousSelector
from .models import StyleRuleNode
from .utils import resolve_url

logger = logging.getLogger("slimpage")

CSS_URL_PATTERN = re.compile(r"url\(\s*(['\"]?)(.*?)\1\s*\)", re.IGNORECASE | re.DOTALL)

# Pseudo-elements never match through querySelector, so a rule styling one
# is tested against the element it belongs to.
PSEUDO_ELEMENT_PATTERN = re.compile(r"::?(?:before|after)\b", re.IGNORECASE)

STYLE = "style"
GROUP = "group"
IMPORT = "import"
OTHER = "other"

SelectorTest = Callable[[str], bool]


def _absolute(reference: str, base_url: str) -> Optional[str]:
    reference = reference.strip()
    if not reference or reference.startswith(("#", "data:")):
        return None
    return resolve_url(reference, base_url)


def rewrite_css_urls(css: str, base_url: str) -> str:
    """Resolve every ``url(...)`` reference in ``css`` against ``base_url``."""

    def _replace(match: re.Match) -> str:
        absolute = _absolute(match.group(2), base_url)
        if absolute is None:
            return match.group(0)
        return f'url("{absolute}")'

    return CSS_URL_PATTERN.sub(_replace, css)


def strip_pseudo_elements(selector: str) -> str:
    return PSEUDO_ELEMENT_PATTERN.sub("", selector).strip()


def collect_selectors(rules: Iterable[StyleRuleNode]) -> List[str]:
    """Return the distinct testable selectors of a rule forest, in order."""
    selectors: Dict[str, None] = {}
    for rule in rules:
        if rule.kind == STYLE and rule.selector is not None:
            selectors.setdefault(strip_pseudo_elements(rule.selector))
        elif rule.kind == GROUP:
            for selector in collect_selectors(rule.children):
                selectors.setdefault(selector)
    return list(selectors)


def selector_test(results: Dict[str, Optional[bool]]) -> SelectorTest:
    """Build an ``exists`` callable from batched in-page query results.

    ``results`` maps a selector to whether it matched, or to ``None`` when
    the page rejected it as an invalid query.
    """

    def exists(selector: str) -> bool:
        matched = results.get(selector)
        if matched is None:
            raise AmbiguousSelector(f"Selector cannot be evaluated: {selector!r}")
        return bool(matched)

    return exists


def prune_rules(rules: List[StyleRuleNode], exists: SelectorTest) -> int:
    """Delete rules that cannot apply to the document, in place.

    Style rules whose selector matches nothing are dropped, import rules are
    always dropped and grouping rules go once they are empty. A selector the
    document cannot evaluate keeps its rule. This assumes the document has
    reached its final state: classes toggled later by script are not seen.
    Returns the number of rules removed, nested ones included.
    """
    removed = 0
    indexes_to_delete: List[int] = []
    for index, rule in enumerate(rules):
        if rule.kind == STYLE:
            selector = strip_pseudo_elements(rule.selector or "")
            try:
                if not exists(selector):
                    indexes_to_delete.append(index)
            except AmbiguousSelector as exc:
                logger.warning("Keeping rule: %s", exc)
        elif rule.kind == GROUP:
            removed += prune_rules(rule.children, exists)
            if not rule.children:
                indexes_to_delete.append(index)
        elif rule.kind == IMPORT:
            indexes_to_delete.append(index)

    for index in reversed(indexes_to_delete):
        del rules[index]
    return removed + len(indexes_to_delete)


def serialize_rule(rule: StyleRuleNode) -> str:
    if rule.kind == GROUP:
        body = "".join(serialize_rule(child) for child in rule.children)
        return f"{rule.prelude or ''}{{{body}}}"
    return rule.text


def serialize_rules(rules: Iterable[StyleRuleNode]) -> str:
    return "".join(serialize_rule(rule) for rule in rules)
