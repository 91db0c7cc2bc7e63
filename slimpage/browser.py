"""Thin facade over Playwright used by every render pass."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from playwright.async_api import Browser, BrowserContext, Page, Route, async_playwright

from .config import PipelineConfig, Viewport

logger = logging.getLogger("slimpage")

RouteHandler = Callable[[Route], Awaitable[None]]


class RenderSession:
    """One page of a dedicated browser context.

    Stages only talk to the page through these methods; the live document
    never crosses into Python except as values returned by ``evaluate``.
    """

    def __init__(self, page: Page, context: BrowserContext) -> None:
        self._page = page
        self._context = context

    async def navigate(self, url: str, wait_until: str = "load") -> None:
        logger.debug("Navigating to %s (wait_until=%s)", url, wait_until)
        await self._page.goto(url, wait_until=wait_until)

    async def intercept_requests(self, handler: RouteHandler) -> None:
        await self._page.route("**/*", handler)

    def on_response(self, handler: Callable[[Any], None]) -> None:
        self._page.on("response", handler)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def settle(self, seconds: float) -> None:
        if seconds:
            await self._page.wait_for_timeout(int(seconds * 1000))

    async def serialize(self) -> str:
        return await self._page.content()

    async def close(self) -> None:
        await self._context.close()


class PlaywrightEngine:
    """Creates render sessions on a launched Chromium browser."""

    def __init__(self, browser: Browser, navigation_timeout: float) -> None:
        self._browser = browser
        self._navigation_timeout = navigation_timeout

    async def new_session(
        self,
        viewport: Viewport,
        block_service_workers: bool = False,
    ) -> RenderSession:
        context = await self._browser.new_context(
            viewport={"width": viewport.width, "height": viewport.height},
            device_scale_factor=viewport.device_scale_factor,
            is_mobile=viewport.is_mobile,
            has_touch=viewport.has_touch,
            service_workers="block" if block_service_workers else "allow",
        )
        page = await context.new_page()
        page.set_default_navigation_timeout(self._navigation_timeout * 1000)
        return RenderSession(page, context)


@asynccontextmanager
async def launch_engine(config: PipelineConfig) -> AsyncIterator[PlaywrightEngine]:
    """Start Playwright and Chromium for the duration of a run."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless)
        try:
            yield PlaywrightEngine(browser, config.navigation_timeout)
        finally:
            await browser.close()


@asynccontextmanager
async def open_session(
    engine,
    config: PipelineConfig,
    block_service_workers: bool = False,
) -> AsyncIterator[RenderSession]:
    session = await engine.new_session(config.viewport, block_service_workers)
    try:
        yield session
    finally:
        await session.close()
