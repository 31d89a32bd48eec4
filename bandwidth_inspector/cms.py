"""Detect images that live in content collections rather than on the canvas."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from .config import AnalysisConfig
from .errors import ErrorCode, handle_service_error
from .host import ContentApi, ItemRef, PublishingApi, TreeApi
from .models import Asset, AssetKind, AssetOrigin, AssetStatus, Dimensions
from .published import ResourceProbe, extract_resource_urls, image_dimensions
from .utils import (
    detect_image_format,
    dimensions_from_url,
    extract_image_id,
    normalize_url,
    url_path,
)

logger = logging.getLogger("bandwidth_inspector")

FALLBACK_DIMENSIONS = Dimensions(1920, 1080)
ASSET_REFERENCE_PREFIX = "data:framer/asset-reference"
EMBEDDED_URL_PATTERN = re.compile(r"https://[^\s'\"]+")
# Compressed bytes per pixel assumed when only a transfer size is known.
BYTES_PER_PIXEL_GUESS = 0.1

_SLUG_PATTERNS = tuple(
    re.compile(rf"/{segment}/([^/]+)") for segment in ("blog", "posts", "articles")
)
_NAME_HINTS = (
    ("blog", "Blog"),
    ("post", "Posts"),
    ("article", "Articles"),
    ("news", "News"),
    ("product", "Products"),
    ("team", "Team"),
    ("testimonial", "Testimonials"),
)
DEFAULT_COLLECTION_NAME = "CMS Collection"


def collection_name_from_url(url: str) -> str:
    """Best guess of the collection an image belongs to from its URL."""
    lowered = url.lower()
    for pattern in _SLUG_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return " ".join(word.capitalize() for word in match.group(1).split("-") if word)
    for hint, name in _NAME_HINTS:
        if f"/{hint}" in lowered or f"{hint}-" in lowered:
            return name
    return DEFAULT_COLLECTION_NAME


def dimensions_from_bytes(num_bytes: float) -> Dimensions:
    side = math.sqrt(max(0.0, num_bytes) / BYTES_PER_PIXEL_GUESS)
    return Dimensions(float(round(side)), float(round(side * 0.75)))


def urls_match(candidate: str, known: str) -> bool:
    """Loose comparison that tolerates CDN query strings and path prefixes."""
    normalized_candidate = normalize_url(candidate)
    normalized_known = normalize_url(known)
    if normalized_candidate == normalized_known:
        return True
    candidate_path = url_path(normalized_candidate)
    known_path = url_path(normalized_known)
    if candidate_path and known_path and candidate_path != "/" and known_path != "/":
        if candidate_path in known_path or known_path in candidate_path:
            return True
    candidate_id = extract_image_id(candidate)
    return candidate_id is not None and candidate_id == extract_image_id(known)


def control_image_url(value: Any) -> Optional[str]:
    if not isinstance(value, dict):
        return None
    for key in ("src", "url"):
        if isinstance(value.get(key), str) and value[key].startswith("http"):
            return value[key]
    reference = value.get("value")
    if isinstance(reference, str) and reference.startswith(ASSET_REFERENCE_PREFIX):
        match = EMBEDDED_URL_PATTERN.search(reference)
        return match.group(0) if match else None
    return None


def detected_collection_names(assets: Iterable[Asset]) -> Set[str]:
    """Collection names that were found automatically, lowercased."""
    return {
        asset.source_collection_name.strip().lower()
        for asset in assets
        if asset.origin is AssetOrigin.COLLECTION
        and asset.status is not AssetStatus.NOT_FOUND
        and asset.source_collection_name
    }


class CollectionCollector:
    """Run the three collection strategies in order, each failing on its own."""

    def __init__(
        self,
        content: Optional[ContentApi] = None,
        tree: Optional[TreeApi] = None,
        publishing: Optional[PublishingApi] = None,
        config: Optional[AnalysisConfig] = None,
        probe: Optional[ResourceProbe] = None,
    ) -> None:
        self.content = content
        self.tree = tree
        self.publishing = publishing
        self.config = config or AnalysisConfig()
        self._probe = probe

    @property
    def probe(self) -> ResourceProbe:
        if self._probe is None:
            self._probe = ResourceProbe(self.config)
        return self._probe

    async def collect(self, canvas_urls: Iterable[str] = ()) -> List[Asset]:
        known_urls = [url for url in canvas_urls if url]
        strategies: List[Tuple[str, Callable[[], Awaitable[List[Asset]]]]] = [
            ("content_api", self.from_content_api),
            ("component_controls", self.from_component_controls),
        ]
        assets: List[Asset] = []
        for name, strategy in strategies:
            try:
                found = await strategy()
            except Exception as exc:  # pylint: disable=broad-except
                handle_service_error(exc, f"collection.{name}", code=ErrorCode.API_ERROR)
                continue
            logger.info("Collection strategy %s found %d asset(s)", name, len(found))
            assets.extend(found)

        try:
            known_urls.extend(asset.url for asset in assets if asset.url)
            found = await self.from_published_site(known_urls)
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, "collection.published_site", code=ErrorCode.NETWORK_ERROR)
        else:
            logger.info("Collection strategy published_site found %d asset(s)", len(found))
            assets.extend(found)
        return assets

    async def _dimensions(self, value: Any, url: str) -> Tuple[Optional[Dimensions], AssetStatus]:
        measured = None
        if self.content is not None:
            try:
                measured = await self.content.measure_asset(value)
            except Exception as exc:  # pylint: disable=broad-except
                handle_service_error(exc, f"collection.measure {url}", level=logging.DEBUG)
        if measured is not None and measured.is_valid():
            return measured, AssetStatus.FOUND
        return await self.dimensions_for_url(url)

    async def dimensions_for_url(self, url: str) -> Tuple[Dimensions, AssetStatus]:
        from_url = dimensions_from_url(url)
        if from_url is not None:
            return from_url, AssetStatus.FOUND
        header = await self.probe.header_bytes(url)
        decoded = image_dimensions(header) if header else None
        if decoded is not None:
            return decoded, AssetStatus.FOUND
        logger.debug("Falling back to %sx%s for %s", FALLBACK_DIMENSIONS.width, FALLBACK_DIMENSIONS.height, url)
        return FALLBACK_DIMENSIONS, AssetStatus.ESTIMATED

    async def from_content_api(self) -> List[Asset]:
        if self.content is None:
            return []
        assets: List[Asset] = []
        for collection in await self.content.list_collections():
            fields = await self.content.list_fields(collection.id)
            asset_fields = [ref for ref in fields if ref.is_asset_typed]
            typed = {key for ref in asset_fields for key in (ref.id, ref.name)}
            items = await self.content.list_items(collection.id)
            logger.debug(
                "Collection %s: %d item(s), %d asset field(s)",
                collection.name,
                len(items),
                len(asset_fields),
            )
            for item in items:
                assets.extend(await self._item_assets(collection.id, collection.name, item, typed))
            await asyncio.sleep(0)
        return assets

    async def _item_assets(
        self, collection_id: str, collection_name: str, item: ItemRef, typed: Set[str]
    ) -> List[Asset]:
        assets: List[Asset] = []
        for field_name, value in item.field_data.items():
            if typed and field_name not in typed:
                continue
            identity = f"cms-{collection_id}-{item.id}-{field_name}"
            if value is None and field_name in typed:
                assets.append(
                    Asset(
                        identity=identity,
                        name=f"{collection_name}: {field_name}",
                        kind=AssetKind.IMAGE,
                        origin=AssetOrigin.COLLECTION,
                        visible=False,
                        source_collection_name=collection_name,
                        source_item_slug=item.slug,
                        field_name=field_name,
                        status=AssetStatus.NOT_FOUND,
                    )
                )
                continue
            if not self.content.is_asset_field(value):
                continue
            url = value.url if hasattr(value, "url") else value["url"]
            dims, status = await self._dimensions(value, url)
            assets.append(
                Asset(
                    identity=url,
                    name=f"{collection_name}: {field_name}",
                    kind=AssetKind.IMAGE,
                    origin=AssetOrigin.COLLECTION,
                    declared_dimensions=dims,
                    format=detect_image_format(url),
                    url=url,
                    source_collection_name=collection_name,
                    source_item_slug=item.slug,
                    field_name=field_name,
                    status=status,
                )
            )
        return assets

    async def from_component_controls(self) -> List[Asset]:
        if self.tree is None:
            return []
        assets: List[Asset] = []
        for component in await self.tree.list_component_instances():
            for key, value in component.controls.items():
                url = control_image_url(value)
                if url is None:
                    continue
                width = value.get("pixelWidth")
                height = value.get("pixelHeight")
                if isinstance(width, (int, float)) and isinstance(height, (int, float)):
                    dims, status = Dimensions(float(width), float(height)), AssetStatus.FOUND
                else:
                    dims, status = await self.dimensions_for_url(url)
                collection_name = component.name or "Component Controls"
                assets.append(
                    Asset(
                        identity=url,
                        name=f"{collection_name}: {key}",
                        kind=AssetKind.IMAGE,
                        origin=AssetOrigin.COLLECTION,
                        declared_dimensions=dims,
                        format=detect_image_format(url),
                        url=url,
                        node_id=component.id,
                        source_collection_name=collection_name,
                        field_name=key,
                        status=status,
                    )
                )
        return assets

    async def from_published_site(self, known_urls: Iterable[str]) -> List[Asset]:
        """Images served by the live site that nothing on the canvas accounts for."""
        if self.publishing is None:
            return []
        site_url = await self.publishing.get_published_url()
        if not site_url:
            logger.info("Project is not published; skipping published-site comparison")
            return []

        html, final_url = await self.probe.fetch_text(site_url)
        image_urls = extract_resource_urls(html, final_url)["image"]
        known = list(known_urls)
        candidates = [
            url for url in image_urls if not any(urls_match(url, other) for other in known)
        ][: self.config.max_probe_resources]
        logger.debug(
            "Comparing %d published image(s) with %d known URL(s): %d unmatched",
            len(image_urls),
            len(known),
            len(candidates),
        )

        limit = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def sized(url: str) -> Tuple[str, int]:
            async with limit:
                return url, await self.probe.size(url)

        assets: List[Asset] = []
        for url, size in await asyncio.gather(*(sized(url) for url in candidates)):
            if size <= 0:
                continue
            collection_name = collection_name_from_url(url)
            assets.append(
                Asset(
                    identity=url,
                    name=f"{collection_name}: published image",
                    kind=AssetKind.IMAGE,
                    origin=AssetOrigin.COLLECTION,
                    declared_dimensions=dimensions_from_bytes(size),
                    format=detect_image_format(url),
                    url=url,
                    known_bytes=float(size),
                    source_collection_name=collection_name,
                    status=AssetStatus.FOUND,
                )
            )
        return assets
