"""End-to-end run of the three mutating passes in headless Chromium.

The page and its assets are served through request interception, so no
network access is needed; the tests skip when Chromium is not installed.
"""
import base64

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from slimpage.browser import PlaywrightEngine
from slimpage.config import PipelineConfig
from slimpage.pipeline import run_stages

ORIGIN = "https://slimpage.test"

PAGE = """<!DOCTYPE html>
<html>
  <head>
    <title>Fixture</title>
    <style>.unused { color: red; } p { color: blue; } @media print { .print-only { display: block; } }</style>
  </head>
  <body>
    <p data-track="hero" contenteditable="true">Hello</p>
    <div style="display:none">Invisible</div>
    <script>document.title = 'changed';</script>
  </body>
</html>
"""

PAGE_WITH_ASSETS = """<!DOCTYPE html>
<html>
  <head>
    <title>Assets</title>
    <link rel="stylesheet" href="assets/site.css">
  </head>
  <body>
    <div class="hero">Welcome</div>
    <img src="assets/logo.png" width="40" height="40" alt="logo">
  </body>
</html>
"""

PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

ASSETS = {
    "site.css": ("text/css", b".hero { background: url(bg.png); height: 40px; } .gone { color: red; }"),
    "logo.png": ("image/png", PNG),
    "bg.png": ("image/png", PNG),
}


async def _serve_asset(route):
    content_type, body = ASSETS[route.request.url.rsplit("/", 1)[-1]]
    await route.fulfill(status=200, content_type=content_type, body=body)


class AssetBrowser:
    """Browser whose contexts answer ``/assets/`` requests from ``ASSETS``."""

    def __init__(self, browser):
        self._browser = browser

    async def new_context(self, **kwargs):
        context = await self._browser.new_context(**kwargs)
        await context.route(f"{ORIGIN}/assets/**", _serve_asset)
        return context


async def _run(tmp_path, page=PAGE):
    config = PipelineConfig(
        url=f"{ORIGIN}/",
        output_root=tmp_path / "out",
        source_html=page,
        retype_fonts=False,
        navigation_timeout=15.0,
    )
    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch()
        except PlaywrightError as exc:
            pytest.skip(f"Chromium is not available: {exc}")
        try:
            engine = PlaywrightEngine(AssetBrowser(browser), config.navigation_timeout)
            result = await run_stages(engine, config)
        finally:
            await browser.close()
    return config, result


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_scripts_unused_rules_and_hidden_nodes_removed(self, tmp_path):
        config, result = await _run(tmp_path)

        output = result.output_path.read_text(encoding="utf-8")
        soup = BeautifulSoup(output, "html.parser")

        assert result.output_path == config.output_root / "index.html"
        assert soup.find("script") is None
        assert ".unused" not in output
        assert "print-only" not in output
        assert "Invisible" not in output
        assert soup.find("p").get_text() == "Hello"
        assert soup.find("p").get("data-track") is None
        assert soup.find("p").get("contenteditable") is None

    @pytest.mark.asyncio
    async def test_output_directory_recreated(self, tmp_path):
        stale = tmp_path / "out" / "stale.txt"
        stale.parent.mkdir()
        stale.write_text("old")

        config, _ = await _run(tmp_path)

        assert not stale.exists()
        assert [p.name for p in config.output_root.iterdir()] == ["index.html"]

    @pytest.mark.asyncio
    async def test_stylesheet_inlined_and_images_localized(self, tmp_path):
        config, result = await _run(tmp_path, PAGE_WITH_ASSETS)

        output = result.output_path.read_text(encoding="utf-8")
        soup = BeautifulSoup(output, "html.parser")

        assert soup.find("link") is None
        assert ".hero" in soup.find("style").get_text()
        assert ".gone" not in output
        assert f"{ORIGIN}/assets/" not in output
        assert sorted(result.files) == [f"{ORIGIN}/assets/bg.png", f"{ORIGIN}/assets/logo.png"]
        assert soup.find("img")["src"] == result.files[f"{ORIGIN}/assets/logo.png"]
        assert result.files[f"{ORIGIN}/assets/bg.png"] in soup.find("style").get_text()
        for file_name in result.files.values():
            assert (config.output_root / file_name).read_bytes() == PNG
        assert sorted(p.name for p in config.output_root.iterdir()) == sorted(
            ["index.html", *result.files.values()]
        )
