"""Second render pass: remove elements that leave no visual footprint."""

from __future__ import annotations

import logging
from typing import List

from .browser import open_session
from .capture import NetworkSubstitution
from .config import PipelineConfig
from .models import ElementVisualState

logger = logging.getLogger("slimpage")

EXEMPT_TAGS = frozenset({"style", "source"})

SAMPLE_SCRIPT = """
() => {
  const elements = [...document.querySelectorAll('body *')];
  window.__slimpageElements = elements;
  return elements.map((el) => {
    const styles = getComputedStyle(el);
    const box = el.getBoundingClientRect();
    return {
      tag: el.localName,
      width: box.width,
      height: box.height,
      opacity: styles.opacity,
      visibility: styles.visibility,
      overflow: styles.overflow,
      display: styles.display,
    };
  });
}
"""

REMOVE_SCRIPT = """
(indexes) => {
  const elements = window.__slimpageElements || [];
  for (const index of indexes) {
    const el = elements[index];
    if (el) el.remove();
  }
  delete window.__slimpageElements;
}
"""


def is_hidden(state: ElementVisualState) -> bool:
    """Return True when an element contributes nothing to the rendering."""
    if state.tag in EXEMPT_TAGS:
        return False
    return (
        state.opacity == "0"
        or state.display == "none"
        or state.visibility == "hidden"
        or (state.overflow == "hidden" and (not state.width or not state.height))
    )


def hidden_indexes(states: List[ElementVisualState]) -> List[int]:
    return [index for index, state in enumerate(states) if is_hidden(state)]


async def remove_hidden_elements(engine, config: PipelineConfig, source: str) -> str:
    """Replay ``source`` and drop every element without visual footprint.

    All states are sampled before anything is removed, so each decision
    depends only on the element's own computed style and box.
    """
    async with open_session(engine, config, block_service_workers=True) as session:
        substitution = NetworkSubstitution(
            config.url, page_body=source, retype_fonts=config.retype_fonts
        )
        await substitution.attach(session)
        await session.navigate(config.url, wait_until="load")
        await session.settle(config.wait_after_load)

        states = [
            ElementVisualState(**sample)
            for sample in await session.evaluate(SAMPLE_SCRIPT)
        ]
        indexes = hidden_indexes(states)
        await session.evaluate(REMOVE_SCRIPT, indexes)
        logger.info(
            "Removed %d of %d elements without visual footprint",
            len(indexes),
            len(states),
        )
        return await session.serialize()
