"""Third render pass: inline, prune and localize the page's resources."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import minify_html
from playwright.async_api import Error as PlaywrightError

from .browser import open_session
from .capture import NetworkSubstitution, ResourceCapture
from .config import PipelineConfig
from .css import (
    collect_selectors,
    prune_rules,
    rewrite_css_urls,
    selector_test,
    serialize_rules,
)
from .errors import (
    LocalizationError,
    ResourceWriteFailure,
    SrcsetError,
    UnresolvableExtension,
)
from .models import CapturedResource, ResourceType, StyleRuleNode
from .srcset import resolve as resolve_srcset
from .utils import url_variants

logger = logging.getLogger("slimpage")

URL_EXTENSION_PATTERN = re.compile(r"\.([A-Za-z][A-Za-z0-9]{2,5})$")

_MIME_TYPES = mimetypes.MimeTypes()
for _content_type, _extension in (
    ("application/font-woff2", ".woff2"),
    ("font/woff2", ".woff2"),
    ("font/woff", ".woff"),
    ("font/ttf", ".ttf"),
    ("font/otf", ".otf"),
    ("image/webp", ".webp"),
    ("image/avif", ".avif"),
    ("text/javascript", ".js"),
    ("application/javascript", ".js"),
):
    _MIME_TYPES.add_type(_content_type, _extension)

PRIVATE_ATTRIBUTE_PREFIX = "data-"
DENIED_ATTRIBUTES = ("contenteditable", "spellcheck")
PLACEHOLDER_TAGS = ("input", "textarea")

INLINE_STYLES_SCRIPT = """
() => [...document.querySelectorAll('style')].map((el) => el.textContent || '')
"""

APPLY_STYLES_SCRIPT = """
({ inlineStyles, externalStyles, prefix, denied, placeholderTags }) => {
  for (const [i, style] of [...document.querySelectorAll('style')].entries()) {
    if (i < inlineStyles.length) style.textContent = inlineStyles[i];
  }

  for (const link of document.querySelectorAll('link[rel=stylesheet]')) {
    const source = externalStyles[link.href];
    if (source === undefined) continue;
    const style = document.createElement('style');
    if (link.media) style.media = link.media;
    style.textContent = source;
    link.after(style);
    link.remove();
  }

  for (const img of document.querySelectorAll('img')) {
    if (img.hasAttribute('src')) img.src = img.src;
  }

  for (const el of document.querySelectorAll('iframe, script, link[rel=preload]')) {
    el.remove();
  }

  for (const el of document.querySelectorAll('*')) {
    for (const name of el.getAttributeNames()) {
      if (
        name.startsWith(prefix) ||
        denied.includes(name) ||
        (name === 'placeholder' && !placeholderTags.includes(el.localName))
      ) {
        el.removeAttribute(name);
      }
    }
  }
}
"""

COLLECT_ATTRIBUTES_SCRIPT = """
() => {
  const withSrcset = [...document.querySelectorAll('img[srcset], source[srcset]')];
  const withStyle = [...document.querySelectorAll('[style]')];
  window.__slimpageAttributes = { withSrcset, withStyle };
  return {
    srcset: withSrcset.map((el) => el.getAttribute('srcset')),
    style: withStyle.map((el) => el.getAttribute('style')),
  };
}
"""

WRITE_ATTRIBUTES_SCRIPT = """
({ srcset, style }) => {
  const { withSrcset, withStyle } = window.__slimpageAttributes;
  srcset.forEach((value, i) => {
    if (value !== null) withSrcset[i].setAttribute('srcset', value);
  });
  style.forEach((value, i) => {
    if (value !== null) withStyle[i].setAttribute('style', value);
  });
  delete window.__slimpageAttributes;
}
"""

COLLECT_RULES_SCRIPT = """
() => {
  const groupTypes = ['CSSMediaRule', 'CSSSupportsRule', 'CSSContainerRule', 'CSSLayerBlockRule']
    .map((name) => window[name])
    .filter(Boolean);
  const describe = (rule) => {
    if (rule instanceof CSSStyleRule) {
      return { kind: 'style', selector: rule.selectorText, text: rule.cssText };
    }
    if (rule instanceof CSSImportRule) {
      return { kind: 'import', text: rule.cssText };
    }
    if (groupTypes.some((type) => rule instanceof type)) {
      const text = rule.cssText;
      return {
        kind: 'group',
        prelude: text.slice(0, text.indexOf('{')).trim(),
        children: [...rule.cssRules].map(describe),
      };
    }
    return { kind: 'other', text: rule.cssText };
  };

  const sheets = [...document.styleSheets];
  window.__slimpageSheets = sheets;
  return sheets.map((sheet) => {
    if (!sheet.ownerNode || sheet.ownerNode.localName !== 'style') return null;
    try {
      return [...sheet.cssRules].map(describe);
    } catch (err) {
      return null;
    }
  });
}
"""

MATCH_SELECTORS_SCRIPT = """
(selectors) => {
  const results = {};
  for (const selector of selectors) {
    try {
      results[selector] = document.querySelector(selector) !== null;
    } catch (err) {
      results[selector] = null;
    }
  }
  return results;
}
"""

WRITE_SHEETS_SCRIPT = """
(texts) => {
  const sheets = window.__slimpageSheets || [];
  texts.forEach((text, i) => {
    const node = sheets[i] && sheets[i].ownerNode;
    if (text === null || !node) return;
    if (text === '') {
      node.remove();
    } else {
      node.textContent = text;
    }
  });
  delete window.__slimpageSheets;
}
"""


@dataclass
class LocalizationResult:
    """Summary of the files written by the localizing pass."""

    output_path: Path
    files: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    rules_removed: int = 0


def extension_for(resource: CapturedResource) -> str:
    """Pick a file extension from the content type, then from the URL path."""
    content_type = resource.content_type.split(";")[0].strip().lower()
    if content_type:
        guessed = _MIME_TYPES.guess_extension(content_type)
        if guessed:
            return guessed.lstrip(".")
    match = URL_EXTENSION_PATTERN.search(urlparse(resource.request_url).path)
    if match:
        return match.group(1)
    raise UnresolvableExtension(
        f"Can't find extension for {resource.content_type or '(no type)'} "
        f"{resource.request_url}"
    )


def referenced_resources(
    resources: Iterable[CapturedResource], markup: str
) -> List[CapturedResource]:
    """Keep resources whose URL still appears in ``markup``, in capture order."""
    return [
        resource
        for resource in resources
        if any(variant in markup for variant in url_variants(resource.request_url))
    ]


async def _write_resource(
    resource: CapturedResource, index: int, output_root: Path
) -> Tuple[str, Optional[str]]:
    url = resource.request_url
    try:
        file_name = f"{index}.{extension_for(resource)}"
        try:
            body = await resource.body()
            await asyncio.to_thread((output_root / file_name).write_bytes, body)
        except (PlaywrightError, OSError) as exc:
            raise ResourceWriteFailure(
                f"Failed to write response from {resource.content_type} {url}: {exc}"
            ) from exc
    except LocalizationError as exc:
        logger.warning("%s", exc)
        return url, None
    return url, file_name


async def write_resources(
    resources: List[CapturedResource], output_root: Path
) -> Tuple[Dict[str, str], List[str]]:
    """Write every resource body to ``{ordinal}.{extension}`` concurrently.

    Returns the URL rewrite map and the URLs that could not be localized.
    """
    results = await asyncio.gather(
        *(
            _write_resource(resource, index, output_root)
            for index, resource in enumerate(resources)
        )
    )
    url_map = {url: name for url, name in results if name}
    skipped = [url for url, name in results if not name]
    return url_map, skipped


def apply_rewrite_map(markup: str, url_map: Dict[str, str]) -> str:
    """Replace each localized URL, in every spelling, by its file name."""
    for url in sorted(url_map, key=len, reverse=True):
        for variant in url_variants(url):
            markup = markup.replace(variant, url_map[url])
    return markup


def minify_document(markup: str) -> str:
    return minify_html.minify(
        markup,
        minify_css=True,
        minify_doctype=True,
        remove_processing_instructions=True,
    )


async def _rewrite_stylesheet(resource: CapturedResource) -> Optional[Tuple[str, str]]:
    try:
        body = await resource.body()
    except PlaywrightError as exc:
        logger.warning("Failed to read stylesheet %s: %s", resource.request_url, exc)
        return None
    css = body.decode("utf-8", errors="replace")
    return resource.request_url, rewrite_css_urls(css, resource.final_url)


async def rewrite_external_stylesheets(
    resources: List[CapturedResource],
) -> Dict[str, str]:
    results = await asyncio.gather(*(_rewrite_stylesheet(r) for r in resources))
    return dict(result for result in results if result)


def _resolve_srcset(value: str, page_url: str) -> Optional[str]:
    try:
        return resolve_srcset(value, page_url)
    except SrcsetError as exc:
        logger.warning("Leaving srcset %r unchanged: %s", value, exc)
        return None


async def rewrite_attributes(session, page_url: str) -> None:
    """Make srcset candidates and inline style URLs absolute."""
    values = await session.evaluate(COLLECT_ATTRIBUTES_SCRIPT)
    await session.evaluate(
        WRITE_ATTRIBUTES_SCRIPT,
        {
            "srcset": [_resolve_srcset(value, page_url) for value in values["srcset"]],
            "style": [rewrite_css_urls(value, page_url) for value in values["style"]],
        },
    )


async def prune_stylesheets(session) -> int:
    """Drop rules that match nothing in the page from every inline stylesheet."""
    forests: List[Optional[List[StyleRuleNode]]] = [
        None if sheet is None else [StyleRuleNode.from_dict(rule) for rule in sheet]
        for sheet in await session.evaluate(COLLECT_RULES_SCRIPT)
    ]
    selectors = collect_selectors(
        rule for forest in forests if forest for rule in forest
    )
    exists = selector_test(await session.evaluate(MATCH_SELECTORS_SCRIPT, selectors))

    removed = 0
    texts: List[Optional[str]] = []
    for forest in forests:
        if forest is None:
            texts.append(None)
            continue
        removed += prune_rules(forest, exists)
        texts.append(serialize_rules(forest))
    await session.evaluate(WRITE_SHEETS_SCRIPT, texts)
    return removed


async def optimize_and_output(
    engine, config: PipelineConfig, source: str
) -> LocalizationResult:
    """Replay ``source``, inline and prune its styles and localize resources.

    Writes ``index.html`` and one file per still-referenced resource into
    ``config.output_root``, which must already exist.
    """
    result = LocalizationResult(output_path=config.output_root / "index.html")
    async with open_session(engine, config, block_service_workers=True) as session:
        capture = ResourceCapture(exclude_url=config.url)
        capture.attach(session)
        substitution = NetworkSubstitution(
            config.url, page_body=source, retype_fonts=config.retype_fonts
        )
        await substitution.attach(session)
        await session.navigate(config.url, wait_until="load")
        await session.settle(config.wait_after_load)

        external_styles = await rewrite_external_stylesheets(
            capture.of_type(ResourceType.STYLESHEET)
        )
        inline_styles = [
            rewrite_css_urls(css, config.url)
            for css in await session.evaluate(INLINE_STYLES_SCRIPT)
        ]
        await session.evaluate(
            APPLY_STYLES_SCRIPT,
            {
                "inlineStyles": inline_styles,
                "externalStyles": external_styles,
                "prefix": PRIVATE_ATTRIBUTE_PREFIX,
                "denied": list(DENIED_ATTRIBUTES),
                "placeholderTags": list(PLACEHOLDER_TAGS),
            },
        )
        await rewrite_attributes(session, config.url)
        result.rules_removed = await prune_stylesheets(session)
        logger.info("Removed %d unused style rule(s)", result.rules_removed)

        markup = await session.serialize()
        referenced = referenced_resources(capture.resources, markup)
        logger.info(
            "%d of %d captured resources are still referenced",
            len(referenced),
            len(capture.resources),
        )
        result.files, result.skipped = await write_resources(
            referenced, config.output_root
        )

    markup = minify_document(apply_rewrite_map(markup, result.files))
    result.output_path.write_text(markup, encoding="utf-8")
    logger.info("Saved optimised page to %s", result.output_path)
    return result
