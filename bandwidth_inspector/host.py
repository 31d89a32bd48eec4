"""Capability interfaces for the design host plus a JSON snapshot implementation.

The analysis never talks to a design tool directly. It consumes three narrow
async capabilities (tree, content and publishing) whose loosely shaped
payloads are normalized into the dataclasses below before the pipeline
touches them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from .errors import ApiError, NotFoundError
from .models import Dimensions
from .utils import parse_dimension

logger = logging.getLogger("bandwidth_inspector")

ROUTE_NODE_TYPES = {"WebPageNode", "WebPage"}
VECTOR_NODE_TYPES = {"SVG", "svg", "SVGNode", "Vector", "VectorNode"}
IMAGE_NODE_TYPES = {"Image", "image", "ImageNode"}
ASSET_CLASS_NAMES = {"ImageAsset", "FileAsset"}
ASSET_FIELD_TYPES = {"image", "file", "ImageAsset", "FileAsset"}

DESIGN_PAGE_PREFIXES = (
    "design",
    "component",
    "template",
    "style",
    "system",
    "library",
    "atoms",
    "molecules",
    "organisms",
    "patterns",
    "ui kit",
    "ds-",
)


def is_design_page(name: Optional[str]) -> bool:
    """Pages that hold a design system rather than a published screen."""
    if not name:
        return False
    lowered = name.strip().lower()
    return lowered.startswith(DESIGN_PAGE_PREFIXES)


@dataclass
class ImageRef:
    """Image asset attached to a node or a collection field."""

    id: str
    url: str
    width: Optional[float] = None
    height: Optional[float] = None


@dataclass
class NodeRef:
    id: str
    name: Optional[str] = None
    node_type: str = "Frame"


@dataclass
class Node:
    """A design-tree node with every optional attribute made explicit."""

    id: str
    name: Optional[str] = None
    node_type: str = "Frame"
    visible: bool = True
    width: float = 0.0
    height: float = 0.0
    image: Optional[ImageRef] = None
    svg: Optional[str] = None
    path: Optional[str] = None
    collection_id: Optional[str] = None
    controls: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_route(self) -> bool:
        return self.node_type in ROUTE_NODE_TYPES

    @property
    def is_vector(self) -> bool:
        return self.node_type in VECTOR_NODE_TYPES

    @property
    def is_image_node(self) -> bool:
        return self.node_type in IMAGE_NODE_TYPES


@dataclass
class CollectionRef:
    id: str
    name: str
    item_count: int = 0


@dataclass
class FieldRef:
    id: str
    name: str
    field_type: Optional[str] = None

    @property
    def is_asset_typed(self) -> bool:
        return self.field_type in ASSET_FIELD_TYPES


@dataclass
class ItemRef:
    id: str
    slug: Optional[str] = None
    field_data: Dict[str, Any] = field(default_factory=dict)


class MeasureApi(Protocol):
    async def measure_asset(self, value: Any) -> Optional[Dimensions]:
        ...


class TreeApi(MeasureApi, Protocol):
    async def list_top_level_pages(self, exclude_design_pages: bool) -> List[NodeRef]:
        ...

    async def get_node(self, node_id: str) -> Optional[Node]:
        ...

    async def get_children(self, node_id: str) -> List[NodeRef]:
        ...

    async def get_parent(self, node_id: str) -> Optional[NodeRef]:
        ...

    async def list_component_instances(self) -> List[Node]:
        ...


class ContentApi(MeasureApi, Protocol):
    async def list_collections(self) -> List[CollectionRef]:
        ...

    async def list_fields(self, collection_id: str) -> List[FieldRef]:
        ...

    async def list_items(self, collection_id: str) -> List[ItemRef]:
        ...

    def is_asset_field(self, value: Any) -> bool:
        ...


class PublishingApi(Protocol):
    async def get_published_url(self) -> Optional[str]:
        ...


def _image_from_payload(payload: Any) -> Optional[ImageRef]:
    if not isinstance(payload, dict):
        return None
    url = payload.get("url")
    if not isinstance(url, str) or not url:
        return None
    width = parse_dimension(payload.get("width")) or None
    height = parse_dimension(payload.get("height")) or None
    return ImageRef(id=str(payload.get("id") or url), url=url, width=width, height=height)


def node_from_payload(payload: Dict[str, Any]) -> Node:
    """Normalize one raw node dictionary; unknown keys are ignored."""
    if not isinstance(payload, dict) or not payload.get("id"):
        raise ApiError("Node payload without an id", {"payload": repr(payload)[:200]})
    image = _image_from_payload(payload.get("backgroundImage")) or _image_from_payload(
        payload.get("image")
    )
    svg = payload.get("svg") or payload.get("content")
    controls = payload.get("controls")
    return Node(
        id=str(payload["id"]),
        name=payload.get("name"),
        node_type=str(payload.get("type") or "Frame"),
        visible=payload.get("visible", True) is not False,
        width=parse_dimension(payload.get("width")),
        height=parse_dimension(payload.get("height")),
        image=image,
        svg=svg if isinstance(svg, str) else None,
        path=payload.get("path"),
        collection_id=payload.get("collectionId"),
        controls=controls if isinstance(controls, dict) else {},
    )


class SnapshotHost:
    """Serve all three host capabilities from an exported project snapshot.

    The snapshot is a JSON document with ``pages`` (nested node trees),
    optional ``components`` (component instances with ``controls``),
    optional ``collections`` (with ``fields`` and ``items``) and an optional
    ``publishedUrl``.
    """

    def __init__(self, data: Dict[str, Any]) -> None:
        self._nodes: Dict[str, Node] = {}
        self._children: Dict[str, List[str]] = {}
        self._parents: Dict[str, str] = {}
        self._pages: List[str] = []
        self._components: List[Node] = []
        self._collections: Dict[str, Dict[str, Any]] = {}
        self.published_url: Optional[str] = data.get("publishedUrl")

        for page in data.get("pages") or []:
            self._pages.append(self._register(page, parent_id=None))
        for component in data.get("components") or []:
            self._components.append(node_from_payload(component))
        for collection in data.get("collections") or []:
            collection_id = str(collection.get("id") or collection.get("name"))
            self._collections[collection_id] = collection

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SnapshotHost":
        source = Path(path).expanduser()
        if not source.exists():
            raise NotFoundError(f"Snapshot does not exist: {source}")
        with source.open(encoding="utf-8") as handle:
            return cls(json.load(handle))

    def _register(self, payload: Dict[str, Any], parent_id: Optional[str]) -> str:
        node = node_from_payload(payload)
        self._nodes[node.id] = node
        self._children[node.id] = []
        if parent_id is not None:
            self._parents[node.id] = parent_id
            self._children[parent_id].append(node.id)
        for child in payload.get("children") or []:
            self._register(child, parent_id=node.id)
        return node.id

    def _ref(self, node_id: str) -> NodeRef:
        node = self._nodes[node_id]
        return NodeRef(id=node.id, name=node.name, node_type=node.node_type)

    async def list_top_level_pages(self, exclude_design_pages: bool) -> List[NodeRef]:
        refs = [self._ref(page_id) for page_id in self._pages]
        if exclude_design_pages:
            kept = [ref for ref in refs if not is_design_page(ref.name)]
            if len(kept) != len(refs):
                logger.info("Excluded %d design page(s) from analysis", len(refs) - len(kept))
            return kept
        return refs

    async def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    async def get_children(self, node_id: str) -> List[NodeRef]:
        return [self._ref(child_id) for child_id in self._children.get(node_id, [])]

    async def get_parent(self, node_id: str) -> Optional[NodeRef]:
        parent_id = self._parents.get(node_id)
        return self._ref(parent_id) if parent_id else None

    async def list_component_instances(self) -> List[Node]:
        return list(self._components)

    async def list_collections(self) -> List[CollectionRef]:
        return [
            CollectionRef(
                id=collection_id,
                name=str(raw.get("name") or "Unnamed Collection"),
                item_count=len(raw.get("items") or []),
            )
            for collection_id, raw in self._collections.items()
        ]

    def _collection(self, collection_id: str) -> Dict[str, Any]:
        try:
            return self._collections[collection_id]
        except KeyError:
            raise ApiError(f"Unknown collection {collection_id}") from None

    async def list_fields(self, collection_id: str) -> List[FieldRef]:
        fields = self._collection(collection_id).get("fields") or []
        return [
            FieldRef(
                id=str(raw.get("id") or raw.get("name")),
                name=str(raw.get("name") or raw.get("key") or raw.get("id")),
                field_type=raw.get("type") or raw.get("fieldType"),
            )
            for raw in fields
        ]

    async def list_items(self, collection_id: str) -> List[ItemRef]:
        items = self._collection(collection_id).get("items") or []
        return [
            ItemRef(
                id=str(raw.get("id") or raw.get("slug") or index),
                slug=raw.get("slug"),
                field_data=dict(raw.get("fieldData") or raw.get("data") or {}),
            )
            for index, raw in enumerate(items)
        ]

    def is_asset_field(self, value: Any) -> bool:
        if isinstance(value, ImageRef):
            return True
        if not isinstance(value, dict) or not isinstance(value.get("url"), str):
            return False
        marker = value.get("__class") or value.get("type")
        return marker is None or marker in ASSET_CLASS_NAMES

    async def measure_asset(self, value: Any) -> Optional[Dimensions]:
        image = value if isinstance(value, ImageRef) else _image_from_payload(value)
        if image is None or not image.width or not image.height:
            return None
        return Dimensions(image.width, image.height)

    async def get_published_url(self) -> Optional[str]:
        return self.published_url

