"""First render pass: load the live page and normalise it into static markup."""

from __future__ import annotations

import logging

from .browser import open_session
from .capture import NetworkSubstitution
from .config import PipelineConfig

logger = logging.getLogger("slimpage")

NON_VISUAL_SELECTOR = 'iframe, script, link[rel=preload], img[src=""]'

NORMALIZE_SCRIPT = """
(selector) => {
  let removed = 0;
  for (const el of document.querySelectorAll(selector)) {
    el.remove();
    removed += 1;
  }

  const viewport = window.visualViewport || { width: innerWidth, height: innerHeight };
  const images = [...document.querySelectorAll('img')].map((el) => [
    el,
    el.getBoundingClientRect(),
    el.computedStyleMap ? String(el.computedStyleMap().get('height')) : null,
  ]);

  let sized = 0;
  let deferred = 0;
  for (const [el, rect, height] of images) {
    if (!el.hasAttribute('width') && height === 'auto' && el.naturalWidth) {
      el.width = el.naturalWidth;
      el.height = el.naturalHeight;
      el.style.height = 'auto';
      sized += 1;
    }
    if (rect.left > viewport.width || rect.top > viewport.height) {
      el.loading = 'lazy';
      deferred += 1;
    }
  }
  return { removed, sized, deferred };
}
"""

UNREGISTER_SERVICE_WORKERS_SCRIPT = """
async () => {
  if (!navigator.serviceWorker) return 0;
  const registrations = await navigator.serviceWorker.getRegistrations();
  await Promise.all(registrations.map((registration) => registration.unregister()));
  return registrations.length;
}
"""


async def normalize_snapshot(engine, config: PipelineConfig) -> str:
    """Render ``config.url`` to network idle and return normalised markup.

    Scripts, frames, preloads and empty images are dropped, images without
    explicit dimensions get their natural size, images outside the first
    viewport are deferred and service workers are unregistered.
    """
    async with open_session(engine, config) as session:
        if config.source_html is not None:
            substitution = NetworkSubstitution(
                config.url,
                page_body=config.source_html,
                retype_fonts=config.retype_fonts,
            )
            await substitution.attach(session)

        logger.info("Loading %s", config.url)
        await session.navigate(config.url, wait_until="networkidle")
        await session.settle(config.wait_after_load)

        stats = await session.evaluate(NORMALIZE_SCRIPT, NON_VISUAL_SELECTOR)
        logger.debug(
            "Normalised snapshot: removed=%d sized=%d deferred=%d",
            stats["removed"],
            stats["sized"],
            stats["deferred"],
        )
        workers = await session.evaluate(UNREGISTER_SERVICE_WORKERS_SCRIPT)
        if workers:
            logger.info("Unregistered %d service worker(s)", workers)

        return await session.serialize()
