"""Design-tree traversal that turns image, vector and background nodes into assets."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from .config import AnalysisConfig
from .errors import ErrorCode, handle_service_error
from .host import Node, NodeRef, TreeApi
from .models import (
    Asset,
    AssetKind,
    AssetOrigin,
    DeviceClass,
    Dimensions,
    ImageFormat,
)
from .routes import AnalysisSession, frame_device_class
from .utils import detect_image_format

logger = logging.getLogger("bandwidth_inspector")


class CanvasCollector:
    """Collect canvas assets per device class from the top-level pages."""

    def __init__(
        self,
        tree: TreeApi,
        session: AnalysisSession,
        config: Optional[AnalysisConfig] = None,
    ) -> None:
        self.tree = tree
        self.session = session
        self.config = config or AnalysisConfig()
        self._limit = asyncio.Semaphore(max(1, self.config.max_concurrency))

    async def collect(
        self,
        device_class: DeviceClass,
        excluded_route_ids: Iterable[str] = (),
        pages: Optional[Sequence[NodeRef]] = None,
    ) -> List[Asset]:
        """Return every visible asset on non-excluded pages; never raises."""
        excluded = set(excluded_route_ids)
        try:
            if pages is None:
                pages = await self.tree.list_top_level_pages(self.config.exclude_design_pages)
            assets: List[Asset] = []
            for page in pages:
                if page.id in excluded:
                    logger.debug("Skipping excluded page %s", page.name or page.id)
                    continue
                assets.extend(await self.collect_page(page, device_class))
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, f"canvas.collect {device_class.value}", code=ErrorCode.API_ERROR)
            return []
        logger.info("Collected %d canvas asset(s) for %s", len(assets), device_class.value)
        return assets

    async def collect_page(self, page: NodeRef, device_class: DeviceClass) -> List[Asset]:
        cached = self.session.page_assets.get((page.id, device_class))
        if cached is not None:
            return list(cached)

        logger.debug("Scanning page %s for %s", page.name or page.id, device_class.value)
        assets: List[Asset] = []
        try:
            roots = await self._roots_for(page.id, device_class)
            await self._traverse_batched(roots, page.id, 1, assets)
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, f"canvas.page {page.id}", code=ErrorCode.API_ERROR)
        self.session.cache_page_assets(page.id, device_class, assets)
        return assets

    async def _children(self, node_id: str) -> List[NodeRef]:
        async with self._limit:
            return await self.tree.get_children(node_id)

    async def _node(self, node_id: str) -> Optional[Node]:
        async with self._limit:
            return await self.tree.get_node(node_id)

    async def _roots_for(self, page_id: str, device_class: DeviceClass) -> List[NodeRef]:
        """Children of a page, narrowed to the artboard of ``device_class`` when present."""
        children = await self._children(page_id)
        frames = [(child, frame_device_class(child.name)) for child in children]
        if not any(cls is not None for _, cls in frames):
            return children
        matching = [child for child, cls in frames if cls is device_class]
        shared = [child for child, cls in frames if cls is None]
        if not matching:
            logger.debug("Page %s has no %s artboard", page_id, device_class.value)
            return children
        return matching + shared

    async def _traverse_batched(
        self, refs: Sequence[NodeRef], page_id: str, depth: int, out: List[Asset]
    ) -> None:
        batch_size = max(1, self.config.batch_size)
        for start in range(0, len(refs), batch_size):
            batch = refs[start : start + batch_size]
            results = await asyncio.gather(
                *(self._traverse(ref.id, page_id, depth) for ref in batch)
            )
            for found in results:
                out.extend(found)
            await asyncio.sleep(0)

    async def _traverse(self, node_id: str, page_id: str, depth: int) -> List[Asset]:
        if depth >= self.config.max_depth:
            logger.debug("Depth cap reached at node %s", node_id)
            return []
        try:
            node = await self._node(node_id)
            if node is None or not node.visible:
                return []
            assets: List[Asset] = []
            asset = await self.extract_asset(node, page_id)
            if asset is not None:
                assets.append(asset)
            children = await self._children(node_id)
            await self._traverse_batched(children, page_id, depth + 1, assets)
            return assets
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, f"canvas.node {node_id}", level=logging.DEBUG)
            return []

    async def extract_asset(self, node: Node, page_id: Optional[str] = None) -> Optional[Asset]:
        declared = Dimensions(node.width, node.height)
        if node.image is not None:
            measured = await self._measure(node)
            kind = AssetKind.IMAGE if node.is_image_node else AssetKind.BACKGROUND_IMAGE
            return Asset(
                identity=node.image.url,
                name=node.name or "Unnamed",
                kind=kind,
                origin=AssetOrigin.CANVAS,
                declared_dimensions=declared,
                measured_dimensions=measured,
                format=detect_image_format(node.image.url),
                node_id=node.id,
                url=node.image.url,
                page_id=page_id,
            )
        if node.is_vector:
            markup = node.svg
            return Asset(
                identity=node.id,
                name=node.name or "Unnamed",
                kind=AssetKind.VECTOR,
                origin=AssetOrigin.CANVAS,
                declared_dimensions=declared,
                format=ImageFormat.SVG,
                node_id=node.id,
                page_id=page_id,
                known_bytes=float(len(markup.encode("utf-8"))) if markup else None,
                svg_content=markup,
            )
        return None

    async def _measure(self, node: Node) -> Optional[Dimensions]:
        try:
            async with self._limit:
                measured = await self.tree.measure_asset(node.image)
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, f"canvas.measure {node.name or node.id}", level=logging.DEBUG)
            return None
        if measured is not None and measured.is_valid():
            return measured
        return None
