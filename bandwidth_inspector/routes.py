"""Attribute design-tree nodes to the published route that contains them."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import AnalysisConfig
from .errors import handle_service_error
from .host import Node, TreeApi
from .models import (
    Asset,
    Confidence,
    DeviceClass,
    ResolutionReason,
    Route,
    RouteAttribution,
    RouteResolution,
)
from .utils import slugify

logger = logging.getLogger("bandwidth_inspector")

# Ordered: the first matching pattern names the frame.
DEVICE_FRAME_PATTERNS: Tuple[Tuple[re.Pattern, str, DeviceClass], ...] = (
    (re.compile(r"desktop", re.IGNORECASE), "Desktop", DeviceClass.DESKTOP),
    (re.compile(r"laptop", re.IGNORECASE), "Laptop", DeviceClass.DESKTOP),
    (re.compile(r"tablet", re.IGNORECASE), "Tablet", DeviceClass.TABLET),
    (re.compile(r"mobile", re.IGNORECASE), "Mobile", DeviceClass.MOBILE),
    (re.compile(r"phone", re.IGNORECASE), "Phone", DeviceClass.MOBILE),
    (re.compile(r"1440"), "1440px", DeviceClass.DESKTOP),
    (re.compile(r"1200"), "1200px", DeviceClass.DESKTOP),
    (re.compile(r"1024"), "1024px", DeviceClass.TABLET),
    (re.compile(r"768"), "768px", DeviceClass.TABLET),
    (re.compile(r"390"), "390px", DeviceClass.MOBILE),
    (re.compile(r"375"), "375px", DeviceClass.MOBILE),
)


def device_frame_name(name: Optional[str]) -> Optional[str]:
    """Normalized label of a responsive artboard (``Desktop``, ``375px``), else ``None``."""
    if not name:
        return None
    for pattern, label, _ in DEVICE_FRAME_PATTERNS:
        if pattern.search(name):
            return label
    return None


def frame_device_class(name: Optional[str]) -> Optional[DeviceClass]:
    if not name:
        return None
    for pattern, _, device_class in DEVICE_FRAME_PATTERNS:
        if pattern.search(name):
            return device_class
    return None


def route_from_node(node: Node) -> Route:
    name = node.name or "Unnamed Route"
    slug = node.path or ("/" + slugify(name, fallback=""))
    return Route(
        id=node.id,
        name=name,
        slug=slug,
        is_collection_detail_route=bool(node.collection_id),
        collection_id=node.collection_id,
    )


@dataclass
class AnalysisSession:
    """Caches scoped to a single analysis run.

    A new session is created at the start of every run, which is the only
    way the route list and page caches are invalidated.
    """

    routes: Optional[Dict[str, Route]] = None
    page_assets: Dict[Tuple[str, DeviceClass], List[Asset]] = field(default_factory=dict)
    resolutions: Dict[str, RouteResolution] = field(default_factory=dict)

    def cache_page_assets(
        self, page_id: str, device_class: DeviceClass, assets: List[Asset]
    ) -> None:
        self.page_assets[(page_id, device_class)] = list(assets)

    def assets_for_page(self, page_id: str, device_class: DeviceClass) -> List[Asset]:
        return list(self.page_assets.get((page_id, device_class), []))


class RouteResolver:
    """Walk parent links from a node up to its owning route node."""

    def __init__(
        self,
        tree: TreeApi,
        session: AnalysisSession,
        config: Optional[AnalysisConfig] = None,
    ) -> None:
        self.tree = tree
        self.session = session
        self.config = config or AnalysisConfig()

    async def list_routes(self) -> Dict[str, Route]:
        if self.session.routes is not None:
            return self.session.routes

        routes: Dict[str, Route] = {}
        try:
            pages = await self.tree.list_top_level_pages(False)
            for ref in pages:
                node = await self.tree.get_node(ref.id)
                if node is not None and node.is_route:
                    routes[node.id] = route_from_node(node)
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, "routes.list")
            routes = {}
        logger.debug("Found %d route(s)", len(routes))
        self.session.routes = routes
        return routes

    async def resolve(self, node_id: str) -> RouteResolution:
        cached = self.session.resolutions.get(node_id)
        if cached is not None:
            return cached
        try:
            resolution = await self._resolve(node_id)
        except Exception as exc:  # pylint: disable=broad-except
            wrapped = handle_service_error(exc, f"routes.resolve {node_id}", level=logging.DEBUG)
            resolution = RouteResolution(
                found=False,
                reason=ResolutionReason.LOOKUP_FAILED,
                detail=wrapped.message,
            )
        self.session.resolutions[node_id] = resolution
        return resolution

    async def _route_for(self, node: Node) -> Optional[Route]:
        routes = await self.list_routes()
        if node.id in routes:
            return routes[node.id]
        if node.is_route:
            return route_from_node(node)
        return None

    async def _resolve(self, node_id: str) -> RouteResolution:
        node = await self.tree.get_node(node_id)
        if node is None:
            return RouteResolution(found=False, reason=ResolutionReason.NODE_NOT_FOUND)

        route = await self._route_for(node)
        if route is not None:
            return RouteResolution(found=True, attribution=_attribution(route, None, None))

        current_id = node.id
        for _ in range(self.config.route_max_depth):
            parent = await self.tree.get_parent(current_id)
            if parent is None or parent.id == current_id:
                return RouteResolution(
                    found=False,
                    reason=ResolutionReason.NO_ROUTE_ANCESTOR,
                    detail="Node may be inside a component, a design page or detached from site pages",
                )
            parent_node = await self.tree.get_node(parent.id)
            if parent_node is not None:
                route = await self._route_for(parent_node)
                if route is not None:
                    node_path, frame = await self.build_node_path(node_id, route.id)
                    return RouteResolution(
                        found=True, attribution=_attribution(route, node_path, frame)
                    )
            current_id = parent.id

        return RouteResolution(found=False, reason=ResolutionReason.DEPTH_EXCEEDED)

    async def build_node_path(
        self, node_id: str, stop_at: Optional[str] = None
    ) -> Tuple[Optional[str], Optional[str]]:
        """Return ``("Header > Logo > Image", "Desktop")`` for a node below a route."""
        parts: List[str] = []
        frame: Optional[str] = None
        current_id: Optional[str] = node_id
        depth = 0
        while current_id and depth < self.config.path_max_depth:
            if current_id == stop_at:
                break
            node = await self.tree.get_node(current_id)
            if node is None or node.is_route:
                break
            if node.name:
                label = device_frame_name(node.name)
                if label:
                    frame = label
                else:
                    parts.insert(0, node.name)
            parent = await self.tree.get_parent(current_id)
            if parent is None or parent.id == current_id:
                break
            current_id = parent.id
            depth += 1
        return (" > ".join(parts) or None), frame


def _attribution(
    route: Route, node_path: Optional[str], frame: Optional[str]
) -> RouteAttribution:
    confidence = Confidence.MEDIUM if route.is_collection_detail_route else Confidence.HIGH
    return RouteAttribution(
        route=route,
        node_path=node_path,
        device_class_frame=frame,
        confidence=confidence,
    )
