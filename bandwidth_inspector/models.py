"""Data models used throughout the analysis pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


class DeviceClass(str, Enum):
    """Responsive variant a report is computed for."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"

    @property
    def pixel_density(self) -> float:
        return _PIXEL_DENSITY[self]

    @property
    def reference_width(self) -> int:
        return _REFERENCE_WIDTH[self]

    @property
    def traffic_share(self) -> float:
        return _TRAFFIC_SHARE[self]


_PIXEL_DENSITY = {
    DeviceClass.MOBILE: 2.0,
    DeviceClass.TABLET: 2.0,
    DeviceClass.DESKTOP: 1.5,
}
_REFERENCE_WIDTH = {
    DeviceClass.MOBILE: 375,
    DeviceClass.TABLET: 768,
    DeviceClass.DESKTOP: 1440,
}
_TRAFFIC_SHARE = {
    DeviceClass.MOBILE: 0.55,
    DeviceClass.TABLET: 0.15,
    DeviceClass.DESKTOP: 0.30,
}

# Canonical ordering used when concatenating per-class asset lists.
DEVICE_CLASS_ORDER = (DeviceClass.DESKTOP, DeviceClass.TABLET, DeviceClass.MOBILE)


class AssetKind(str, Enum):
    IMAGE = "image"
    VECTOR = "vector"
    BACKGROUND_IMAGE = "background_image"


class AssetOrigin(str, Enum):
    CANVAS = "canvas"
    COLLECTION = "collection"
    MANUAL = "manual"


class AssetStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ESTIMATED = "estimated"


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"
    GIF = "gif"
    SVG = "svg"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ImageFormat":
        """Map a loose format label (``jpg``, ``JPEG``, ``image/png``) to a member."""
        if not value:
            return cls.UNKNOWN
        label = str(value).strip().lower().split("/")[-1]
        if label == "jpg":
            label = "jpeg"
        if label == "svg+xml":
            label = "svg"
        try:
            return cls(label)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_modern(self) -> bool:
        return self in (ImageFormat.WEBP, ImageFormat.AVIF)


class OptimizationMode(str, Enum):
    """Whether the publishing pipeline re-encodes images on the way out."""

    OPTIMIZED = "optimized"
    SOURCE = "source"


class RecommendationKind(str, Enum):
    OVERSIZED = "oversized"
    FORMAT_MISMATCH = "format_mismatch"
    COMPRESSIBLE = "compressible"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ResolutionReason(str, Enum):
    NODE_NOT_FOUND = "node_not_found"
    NO_ROUTE_ANCESTOR = "no_route_ancestor"
    DEPTH_EXCEEDED = "depth_exceeded"
    LOOKUP_FAILED = "lookup_failed"


@dataclass(frozen=True)
class Dimensions:
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_valid(self) -> bool:
        for value in (self.width, self.height):
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                return False
            if not math.isfinite(value) or value <= 0:
                return False
        return True


ZERO_DIMENSIONS = Dimensions(0, 0)


@dataclass(frozen=True)
class Route:
    """A published, navigable site path."""

    id: str
    name: str
    slug: str
    is_collection_detail_route: bool = False
    collection_id: Optional[str] = None


@dataclass(frozen=True)
class RouteUsage:
    route_id: str
    route_name: str


@dataclass(frozen=True)
class RouteAttribution:
    """Where an asset lives on the published site."""

    route: Route
    node_path: Optional[str] = None
    device_class_frame: Optional[str] = None
    confidence: Confidence = Confidence.HIGH


@dataclass(frozen=True)
class RouteResolution:
    found: bool
    attribution: Optional[RouteAttribution] = None
    reason: Optional[ResolutionReason] = None
    detail: Optional[str] = None

    @property
    def route(self) -> Optional[Route]:
        return self.attribution.route if self.attribution else None


@dataclass(frozen=True)
class Asset:
    """A single payload contributor discovered by one of the collectors."""

    identity: str
    name: str
    kind: AssetKind
    origin: AssetOrigin
    declared_dimensions: Dimensions = ZERO_DIMENSIONS
    measured_dimensions: Optional[Dimensions] = None
    format: ImageFormat = ImageFormat.UNKNOWN
    estimated_bytes: float = 0.0
    visible: bool = True
    source_collection_name: Optional[str] = None
    source_item_slug: Optional[str] = None
    route_attribution: Optional[RouteAttribution] = None
    node_id: Optional[str] = None
    url: Optional[str] = None
    page_id: Optional[str] = None
    known_bytes: Optional[float] = None
    count: int = 1
    svg_content: Optional[str] = None
    field_name: Optional[str] = None
    status: AssetStatus = AssetStatus.FOUND

    @property
    def is_device_invariant(self) -> bool:
        return self.origin is not AssetOrigin.CANVAS

    @property
    def effective_dimensions(self) -> Dimensions:
        if self.measured_dimensions is not None and self.measured_dimensions.is_valid():
            return self.measured_dimensions
        return self.declared_dimensions

    @property
    def total_bytes(self) -> float:
        return self.estimated_bytes * max(1, self.count)


@dataclass(frozen=True)
class Breakdown:
    images: float = 0.0
    vectors: float = 0.0
    fixed_overhead: float = 0.0
    fonts: float = 0.0

    @property
    def total(self) -> float:
        return self.images + self.vectors + self.fixed_overhead + self.fonts


@dataclass(frozen=True)
class DeviceClassReport:
    device_class: DeviceClass
    total_bytes: float
    breakdown: Breakdown
    assets: Tuple[Asset, ...] = ()


@dataclass(frozen=True)
class Recommendation:
    """A typed, ranked optimization suggestion for one asset."""

    id: str
    kind: RecommendationKind
    priority: Priority
    asset_identity: str
    asset_name: str
    current_bytes: float
    potential_savings: int
    rationale: str
    action_text: str
    route_usage: Tuple[RouteUsage, ...] = ()
    node_id: Optional[str] = None
    url: Optional[str] = None
    page_id: Optional[str] = None
    page_name: Optional[str] = None
    suggested_width: Optional[int] = None
    suggested_height: Optional[int] = None
    route: Optional[RouteAttribution] = None
    is_grouped: bool = False


@dataclass(frozen=True)
class PageReport:
    page_id: str
    page_name: str
    device_reports: Mapping[DeviceClass, DeviceClassReport]
    total_assets: int
    recommendations: Tuple[Recommendation, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "device_reports", MappingProxyType(dict(self.device_reports)))


@dataclass(frozen=True)
class ManualEstimateInput:
    """User-declared stand-in for collection images the collectors cannot see."""

    collection_name: str
    image_count: int
    avg_width: float
    avg_height: float
    format: str = "jpeg"
    id: Optional[str] = None


@dataclass(frozen=True)
class ManualEstimate:
    id: str
    collection_name: str
    image_count: int
    avg_width: float
    avg_height: float
    format: ImageFormat
    bytes_per_image: int
    estimated_bytes: int
    created_at: str


@dataclass(frozen=True)
class BandwidthEstimate:
    realistic: float
    worst_case: float


@dataclass(frozen=True)
class CollectionBandwidthImpact:
    total_bytes: float
    average_file_size: float
    items_per_page: int
    pageviews_per_month: int
    monthly_bandwidth: float


@dataclass(frozen=True)
class PublishedResource:
    url: str
    resource_type: str
    actual_bytes: int
    format: ImageFormat = ImageFormat.UNKNOWN


@dataclass(frozen=True)
class CodeAsset:
    """Asset reference discovered inside a published JavaScript bundle."""

    url: str
    asset_type: str
    source_url: str
    estimated_bytes: int = 0


@dataclass(frozen=True)
class PublishedSiteReport:
    url: str
    resources: Tuple[PublishedResource, ...]
    total_bytes: int
    breakdown: Mapping[str, int] = field(default_factory=dict)
    code_assets: Tuple[CodeAsset, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "breakdown", MappingProxyType(dict(self.breakdown)))


@dataclass(frozen=True)
class ProjectReport:
    """Immutable snapshot returned by one analysis run."""

    per_page: Tuple[PageReport, ...]
    per_device_class_totals: Mapping[DeviceClass, DeviceClassReport]
    merged_recommendations: Tuple[Recommendation, ...]
    collection_asset_count: int
    collection_asset_bytes: float
    has_manual_estimates: bool
    total_pages: int = 0
    collection_assets_not_found: int = 0
    collection_impact: Optional[CollectionBandwidthImpact] = None
    published: Optional[PublishedSiteReport] = None
    published_url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "per_device_class_totals", MappingProxyType(dict(self.per_device_class_totals))
        )
