"""Fetch a published site and measure what it actually transfers."""

from __future__ import annotations

import asyncio
import io
import logging
import re
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import requests
from bs4 import BeautifulSoup
from filetype import guess
from PIL import Image, UnidentifiedImageError
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .config import AnalysisConfig
from .errors import ErrorCode, NetworkError, handle_service_error
from .models import (
    CodeAsset,
    Dimensions,
    ImageFormat,
    PublishedResource,
    PublishedSiteReport,
)
from .utils import detect_image_format, make_absolute_url

logger = logging.getLogger("bandwidth_inspector")

T = TypeVar("T")

RESOURCE_TYPES = ("image", "css", "js", "font", "other")
HEADER_PROBE_BYTES = 64 * 1024
STYLE_URL_PATTERN = re.compile(r"url\(\s*['\"]?([^'\"()]+)['\"]?\s*\)", re.IGNORECASE)

_IMAGE_EXT = r"jpg|jpeg|png|webp|gif|svg|avif"
_FONT_EXT = r"woff2?|ttf|otf|eot"
_MEDIA_EXT = r"mp4|webm|ogg|mov|mp3|wav|aac"
_Q = r"['\"]"

CODE_ASSET_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = tuple(
    (asset_type, re.compile(pattern, re.IGNORECASE))
    for asset_type, pattern in (
        ("image", rf"fetch\({_Q}([^'\"]+\.(?:{_IMAGE_EXT})){_Q}\)"),
        ("image", rf"\.src\s*=\s*{_Q}([^'\"]+\.(?:{_IMAGE_EXT})){_Q}"),
        ("image", rf"(?:import|require)\({_Q}([^'\"]+\.(?:{_IMAGE_EXT})){_Q}\)"),
        ("image", rf"url\({_Q}([^'\"]+\.(?:{_IMAGE_EXT})){_Q}\)"),
        ("font", rf"fetch\({_Q}([^'\"]+\.(?:{_FONT_EXT})){_Q}\)"),
        ("font", rf"new\s+FontFace\([^,]+,\s*{_Q}([^'\"]+\.(?:{_FONT_EXT})){_Q}"),
        ("font", rf"(?:import|require)\({_Q}([^'\"]+\.(?:{_FONT_EXT})){_Q}\)"),
        ("media", rf"(?:fetch|import)\({_Q}([^'\"]+\.(?:{_MEDIA_EXT})){_Q}\)"),
        ("media", rf"\.src\s*=\s*{_Q}([^'\"]+\.(?:{_MEDIA_EXT})){_Q}"),
        ("other", rf"(?:fetch|import|require)\({_Q}(https?://[^'\"]+){_Q}\)"),
    )
)


def sniff_image_format(data: bytes) -> ImageFormat:
    """Detect the image type from its leading bytes using filetype."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        return ImageFormat.parse(kind.extension)
    return ImageFormat.UNKNOWN


def image_dimensions(data: bytes) -> Optional[Dimensions]:
    """Read the pixel size from an image header; ``None`` when Pillow cannot tell."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("Could not decode image header: %s", exc)
        return None
    dims = Dimensions(float(width), float(height))
    return dims if dims.is_valid() else None


def parse_srcset(value: str) -> List[str]:
    urls = []
    for candidate in value.split(","):
        parts = candidate.strip().split()
        if parts:
            urls.append(parts[0])
    return urls


def _append(bucket: List[str], seen: set, url: Optional[str], base_url: str) -> None:
    if not url or url.startswith("data:"):
        return
    absolute = make_absolute_url(url.strip(), base_url)
    if absolute not in seen:
        seen.add(absolute)
        bucket.append(absolute)


def extract_resource_urls(html: str, base_url: str) -> Dict[str, List[str]]:
    """Group the absolute resource URLs referenced by a page by resource type."""
    soup = BeautifulSoup(html, "html.parser")
    found: Dict[str, List[str]] = {name: [] for name in ("image", "css", "js", "font")}
    seen: set = set()

    for img in soup.find_all("img"):
        _append(found["image"], seen, img.get("src"), base_url)
        if img.get("srcset"):
            for url in parse_srcset(img["srcset"]):
                _append(found["image"], seen, url, base_url)
    for source in soup.select("picture source[srcset]"):
        for url in parse_srcset(source["srcset"]):
            _append(found["image"], seen, url, base_url)
    for element in soup.select("[style]"):
        style = element.get("style") or ""
        if "background" not in style.lower():
            continue
        for url in STYLE_URL_PATTERN.findall(style):
            _append(found["image"], seen, url, base_url)

    for link in soup.find_all("link", href=True):
        rel = [value.lower() for value in (link.get("rel") or [])]
        if "stylesheet" in rel:
            _append(found["css"], seen, link["href"], base_url)
        elif "preload" in rel and (link.get("as") or "").lower() == "font":
            _append(found["font"], seen, link["href"], base_url)
    for script in soup.find_all("script", src=True):
        _append(found["js"], seen, script["src"], base_url)
    return found


def _is_asset_reference(url: str) -> bool:
    lowered = url.lower()
    if "/api/" in lowered or "/graphql" in lowered or lowered.endswith(".json"):
        return False
    return True


def extract_code_assets(js_code: str, source_url: str) -> List[CodeAsset]:
    """Asset URLs loaded from JavaScript (fetch, ``.src =``, imports, ``FontFace``)."""
    assets: List[CodeAsset] = []
    seen = set()
    for asset_type, pattern in CODE_ASSET_PATTERNS:
        for match in pattern.finditer(js_code):
            url = match.group(1)
            if url in seen or url.startswith("data:") or not _is_asset_reference(url):
                continue
            seen.add(url)
            assets.append(
                CodeAsset(
                    url=make_absolute_url(url, source_url),
                    asset_type=asset_type,
                    source_url=source_url,
                )
            )
    return assets


class ResourceProbe:
    """Blocking ``requests`` calls pushed to worker threads with a soft timeout."""

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": self.config.user_agent})

    async def _run(self, func: Callable[..., T], *args) -> T:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args), timeout=self.config.request_timeout
        )

    def _get_text(self, url: str) -> Tuple[str, str]:
        resp = self.session.get(url, timeout=self.config.request_timeout)
        resp.raise_for_status()
        return resp.text, resp.url or url

    def _head_size(self, url: str) -> int:
        resp = self.session.head(url, allow_redirects=True, timeout=self.config.request_timeout)
        if resp.ok:
            length = resp.headers.get("Content-Length")
            if length and length.isdigit() and int(length) > 0:
                return int(length)
        # Some CDNs omit Content-Length on HEAD; ask for one byte and read the range total.
        resp = self.session.get(
            url,
            headers={"Range": "bytes=0-0"},
            stream=True,
            timeout=self.config.request_timeout,
        )
        try:
            if not resp.ok:
                return 0
            content_range = resp.headers.get("Content-Range", "")
            if "/" in content_range:
                total = content_range.rsplit("/", 1)[-1]
                if total.isdigit():
                    return int(total)
            length = resp.headers.get("Content-Length")
            return int(length) if length and length.isdigit() and resp.status_code == 200 else 0
        finally:
            resp.close()

    def _get_prefix(self, url: str, num_bytes: int) -> bytes:
        resp = self.session.get(
            url,
            headers={"Range": f"bytes=0-{num_bytes - 1}"},
            stream=True,
            timeout=self.config.request_timeout,
        )
        try:
            resp.raise_for_status()
            return next(resp.iter_content(num_bytes), b"")[:num_bytes]
        finally:
            resp.close()

    async def fetch_text(self, url: str) -> Tuple[str, str]:
        """Return ``(body, final_url)``; raises :class:`NetworkError` on failure."""
        try:
            return await self._run(self._get_text, url)
        except asyncio.TimeoutError:
            raise NetworkError(f"Timed out fetching {url}", {"url": url}) from None
        except requests.RequestException as exc:
            raise NetworkError(f"Failed to fetch {url}: {exc}", {"url": url}) from exc

    async def size(self, url: str) -> int:
        """Transfer size in bytes, or ``0`` when it cannot be determined."""
        try:
            return await self._run(self._head_size, url)
        except asyncio.TimeoutError:
            logger.warning("Timed out probing %s", url)
        except (requests.RequestException, ValueError) as exc:
            handle_service_error(exc, f"probe {url}", code=ErrorCode.NETWORK_ERROR)
        return 0

    async def header_bytes(self, url: str, num_bytes: int = HEADER_PROBE_BYTES) -> Optional[bytes]:
        try:
            return await self._run(self._get_prefix, url, num_bytes)
        except asyncio.TimeoutError:
            logger.warning("Timed out reading header of %s", url)
        except requests.RequestException as exc:
            handle_service_error(exc, f"header {url}", code=ErrorCode.NETWORK_ERROR)
        return None


async def render_page(url: str, config: AnalysisConfig) -> Tuple[str, str]:
    """Navigate to a URL using Playwright and return the HTML and final URL."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=True)
        page = await browser.new_page(user_agent=config.user_agent)
        page.set_default_navigation_timeout(config.navigation_timeout * 1000)
        try:
            logger.info("Loading %s", url)
            await page.goto(url, wait_until="networkidle")
            if config.wait_after_load:
                await page.wait_for_timeout(int(config.wait_after_load * 1000))
            html = await page.content()
            final_url = page.url
        finally:
            await browser.close()
    return html, final_url


async def fetch_published_html(
    url: str, config: AnalysisConfig, probe: ResourceProbe
) -> Tuple[str, str]:
    if not config.render_published:
        return await probe.fetch_text(url)
    try:
        return await render_page(url, config)
    except PlaywrightTimeoutError as exc:
        raise NetworkError(f"Timeout while rendering {url}: {exc}", {"url": url}) from exc
    except PlaywrightError as exc:
        raise NetworkError(f"Failed to render {url}: {exc}", {"url": url}) from exc


async def _measure_all(
    urls: List[str], resource_type: str, probe: ResourceProbe, limit: asyncio.Semaphore
) -> List[PublishedResource]:
    async def measure(url: str) -> Optional[PublishedResource]:
        async with limit:
            size = await probe.size(url)
            if size <= 0:
                return None
            fmt = ImageFormat.UNKNOWN
            if resource_type == "image":
                fmt = detect_image_format(url)
                if fmt is ImageFormat.UNKNOWN:
                    head = await probe.header_bytes(url, 512)
                    fmt = sniff_image_format(head) if head else ImageFormat.UNKNOWN
            return PublishedResource(url=url, resource_type=resource_type, actual_bytes=size, format=fmt)

    results = await asyncio.gather(*(measure(url) for url in urls))
    return [resource for resource in results if resource is not None]


async def scan_bundles(
    js_urls: List[str], probe: ResourceProbe, limit: asyncio.Semaphore
) -> List[CodeAsset]:
    """Fetch each script and size the assets its code loads at runtime."""
    assets: List[CodeAsset] = []
    seen = set()
    for js_url in js_urls:
        try:
            code, _ = await probe.fetch_text(js_url)
        except NetworkError as exc:
            handle_service_error(exc, f"bundle {js_url}")
            continue
        for asset in extract_code_assets(code, js_url):
            if asset.url not in seen:
                seen.add(asset.url)
                assets.append(asset)

    async def sized(asset: CodeAsset) -> CodeAsset:
        async with limit:
            size = await probe.size(asset.url)
        return CodeAsset(asset.url, asset.asset_type, asset.source_url, size)

    return list(await asyncio.gather(*(sized(asset) for asset in assets)))


async def analyze_published_site(
    url: str,
    config: Optional[AnalysisConfig] = None,
    probe: Optional[ResourceProbe] = None,
) -> PublishedSiteReport:
    """Measure the transfer weight of a published page by resource type.

    Raises :class:`NetworkError` when the page itself cannot be fetched;
    individual resources that fail to probe contribute zero bytes.
    """
    config = config or AnalysisConfig()
    probe = probe or ResourceProbe(config)
    html, final_url = await fetch_published_html(url, config, probe)
    found = extract_resource_urls(html, final_url)

    limit = asyncio.Semaphore(max(1, config.max_concurrency))
    budget = config.max_probe_resources
    resources: List[PublishedResource] = []
    js_urls: List[str] = []
    for resource_type in ("image", "css", "js", "font"):
        urls = found[resource_type][: max(0, budget)]
        budget -= len(urls)
        measured = await _measure_all(urls, resource_type, probe, limit)
        resources.extend(measured)
        if resource_type == "js":
            js_urls = [resource.url for resource in measured]

    code_assets: List[CodeAsset] = []
    if js_urls:
        try:
            code_assets = await scan_bundles(js_urls, probe, limit)
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, "published.code_assets", code=ErrorCode.API_ERROR)
    known = {resource.url for resource in resources}
    for asset in code_assets:
        if asset.estimated_bytes and asset.url not in known:
            resource_type = asset.asset_type if asset.asset_type in ("image", "font") else "other"
            resources.append(
                PublishedResource(
                    url=asset.url,
                    resource_type=resource_type,
                    actual_bytes=asset.estimated_bytes,
                    format=detect_image_format(asset.url) if resource_type == "image" else ImageFormat.UNKNOWN,
                )
            )
            known.add(asset.url)

    breakdown = {name: 0 for name in RESOURCE_TYPES}
    for resource in resources:
        breakdown[resource.resource_type] += resource.actual_bytes
    total = sum(breakdown.values())
    logger.info("Published site %s transfers %d resource(s), %d bytes", final_url, len(resources), total)
    return PublishedSiteReport(
        url=final_url,
        resources=tuple(resources),
        total_bytes=total,
        breakdown=breakdown,
        code_assets=tuple(code_assets),
    )
