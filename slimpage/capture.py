"""Network response capture and request substitution for render passes."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from urllib.parse import urljoin, urlparse

import requests
from playwright.async_api import Request, Response, Route

from .models import CapturedResource, ResourceType
from .utils import is_http_url

logger = logging.getLogger("slimpage")

FONT_CONTENT_TYPES = {
    ".woff2": "font/woff2",
    ".woff": "font/woff",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
}
OUT_OF_BAND_TIMEOUT = 15


def original_request(request: Request) -> Request:
    """Follow a redirect chain back to the request that started it."""
    while request.redirected_from is not None:
        request = request.redirected_from
    return request


def font_content_type(url: str) -> Optional[str]:
    path = urlparse(url).path.lower()
    for suffix, content_type in FONT_CONTENT_TYPES.items():
        if path.endswith(suffix):
            return content_type
    return None


class ResourceCapture:
    """Buffers every completed, non-redirect response of a render pass.

    Resources are keyed by the URL of the request that started the
    exchange, so a redirected document still matches the URL used to
    navigate. The first response per key wins and capture order is kept.
    """

    def __init__(self, exclude_url: Optional[str] = None) -> None:
        self.exclude_url = exclude_url
        self._resources: Dict[str, CapturedResource] = {}

    def attach(self, session) -> None:
        session.on_response(self.record)

    def record(self, response: Response) -> None:
        headers = response.headers
        if headers.get("location"):
            return
        request = original_request(response.request)
        url = request.url
        if url == self.exclude_url or not is_http_url(url):
            return
        if url in self._resources:
            return
        self._resources[url] = CapturedResource(
            request_url=url,
            final_url=response.url,
            resource_type=ResourceType.from_engine(request.resource_type),
            response_headers=dict(headers),
            loader=response.body,
        )

    @property
    def resources(self) -> List[CapturedResource]:
        return list(self._resources.values())

    def of_type(self, *types: ResourceType) -> List[CapturedResource]:
        return [r for r in self._resources.values() if r.resource_type in types]


def local_files_from_directory(directory: Path, page_url: str) -> Dict[str, Path]:
    """Map the URLs a localized document refers to onto files in ``directory``."""
    return {
        urljoin(page_url, path.name): path
        for path in sorted(directory.iterdir())
        if path.is_file() and path.name != "index.html"
    }


class NetworkSubstitution:
    """Request interception for replay passes.

    The page URL is answered with ``page_body`` when one is given, URLs in
    ``local_files`` are answered from disk, and font files can be fetched
    out-of-band and re-served with an explicit content type. Everything
    else reaches the network untouched.
    """

    def __init__(
        self,
        page_url: str,
        page_body: Optional[str] = None,
        retype_fonts: bool = False,
        local_files: Optional[Mapping[str, Path]] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.page_url = page_url
        self.page_body = page_body
        self.retype_fonts = retype_fonts
        self.local_files = dict(local_files or {})
        self._http = http or requests.Session()

    async def attach(self, session) -> None:
        await session.intercept_requests(self.handle)

    async def handle(self, route: Route) -> None:
        request = route.request
        url = request.url

        if self.page_body is not None and url == self.page_url:
            body = self.page_body.encode("utf-8")
            await route.fulfill(
                status=200,
                headers={"content-length": str(len(body))},
                content_type="text/html; charset=utf-8",
                body=body,
            )
            return

        local = self.local_files.get(url)
        if local is not None:
            await route.fulfill(
                status=200,
                headers={"content-length": str(local.stat().st_size)},
                path=local,
            )
            return

        content_type = font_content_type(url) if self.retype_fonts else None
        if content_type:
            body = await self._fetch_out_of_band(url, request.headers)
            if body is not None:
                await route.fulfill(
                    status=200,
                    headers={"access-control-allow-origin": "*"},
                    content_type=content_type,
                    body=body,
                )
                return

        await route.fallback()

    async def _fetch_out_of_band(
        self, url: str, headers: Mapping[str, str]
    ) -> Optional[bytes]:
        forwarded = {
            name: value
            for name, value in headers.items()
            if name.lower() in ("user-agent", "referer", "accept")
        }
        try:
            response = await asyncio.to_thread(
                self._http.get, url, headers=forwarded, timeout=OUT_OF_BAND_TIMEOUT
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to fetch font %s out-of-band: %s", url, exc)
            return None
        return response.content
