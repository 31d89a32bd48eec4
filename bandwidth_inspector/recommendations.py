"""Rule-based optimization suggestions with a deterministic ordering."""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import KIB
from .models import (
    Asset,
    AssetKind,
    DeviceClassReport,
    ImageFormat,
    Priority,
    Recommendation,
    RecommendationKind,
    RouteUsage,
)
from .utils import format_bytes

OVERSIZED_HIGH_BYTES = 500 * KIB
OVERSIZED_HIGH_TARGET = 300 * KIB
OVERSIZED_MEDIUM_BYTES = 200 * KIB
OVERSIZED_MEDIUM_TARGET = 150 * KIB
MAX_SUGGESTED_WIDTH = 1600
MIN_RESIZABLE_SIDE = 100

PNG_FORMAT_BYTES = 100 * KIB
PNG_FORMAT_SAVINGS = 0.60
JPEG_FORMAT_BYTES = 200 * KIB
JPEG_FORMAT_SAVINGS = 0.30

COMPRESSIBLE_MIN_BYTES = 150 * KIB
COMPRESSIBLE_MAX_BYTES = 200 * KIB
COMPRESSIBLE_SAVINGS = 0.25

VECTOR_IGNORE_BYTES = 10 * KIB
VECTOR_LARGE_BYTES = 50 * KIB
VECTOR_VERY_LARGE_BYTES = 200 * KIB
VECTOR_SAVINGS = 0.20
GROUPED_VECTOR_THRESHOLD = 5
GROUPED_VECTOR_IDENTITY = "vectors-grouped"

EXPENSIVE_VECTOR_MARKERS = (
    "<filter",
    "<mask",
    "<clippath",
    "<pattern",
    "<image",
    "fegaussianblur",
    "fedropshadow",
    "fecolormatrix",
    "fecomposite",
    "filter:url",
    "mask:url",
)


def has_expensive_vector_features(markup: Optional[str]) -> bool:
    if not markup:
        return False
    content = markup.lower()
    return any(marker in content for marker in EXPENSIVE_VECTOR_MARKERS)


def _savings(value: float) -> int:
    return max(1, int(round(value)))


def _kib(num_bytes: float) -> int:
    return int(round(num_bytes / KIB))


def recommendation_id(kind: RecommendationKind, identity: str) -> str:
    return f"{kind.value}-{identity}"


def _route_usage(asset: Asset) -> Tuple[RouteUsage, ...]:
    if asset.route_attribution is None:
        return ()
    route = asset.route_attribution.route
    return (RouteUsage(route_id=route.id, route_name=route.name),)


def _build(
    asset: Asset,
    kind: RecommendationKind,
    priority: Priority,
    savings: float,
    rationale: str,
    action_text: str,
    page_id: Optional[str],
    page_name: Optional[str],
    suggested: Optional[Tuple[int, int]] = None,
) -> Recommendation:
    return Recommendation(
        id=recommendation_id(kind, asset.identity),
        kind=kind,
        priority=priority,
        asset_identity=asset.identity,
        asset_name=asset.name,
        current_bytes=asset.estimated_bytes,
        potential_savings=_savings(savings),
        rationale=rationale,
        action_text=action_text,
        route_usage=_route_usage(asset),
        node_id=asset.node_id,
        url=asset.url,
        page_id=page_id,
        page_name=page_name,
        suggested_width=suggested[0] if suggested else None,
        suggested_height=suggested[1] if suggested else None,
        route=asset.route_attribution,
    )


def suggested_size(asset: Asset) -> Optional[Tuple[int, int]]:
    """Twice the effective width for high-density screens, capped at 1600px."""
    dims = asset.effective_dimensions
    if not dims.is_valid():
        return None
    width = min(math.ceil(dims.width * 2), MAX_SUGGESTED_WIDTH)
    height = max(1, math.ceil(width / dims.width * dims.height))
    return width, height


def detect_oversized(
    asset: Asset, page_id: Optional[str] = None, page_name: Optional[str] = None
) -> Optional[Recommendation]:
    size = asset.estimated_bytes
    dims = asset.effective_dimensions
    if dims.is_valid() and (dims.width < MIN_RESIZABLE_SIDE or dims.height < MIN_RESIZABLE_SIDE):
        return None
    modern = asset.format.is_modern
    follow_up = "" if modern else " and compress to WebP"

    if size > OVERSIZED_HIGH_BYTES:
        suggested = suggested_size(asset)
        resize = f"Resize to {suggested[0]}x{suggested[1]}px" if suggested else "Resize"
        return _build(
            asset,
            RecommendationKind.OVERSIZED,
            Priority.HIGH,
            size - OVERSIZED_HIGH_TARGET,
            f"Image is very large ({_kib(size)} KB)",
            f"{resize}{follow_up}",
            page_id,
            page_name,
            suggested,
        )
    if size > OVERSIZED_MEDIUM_BYTES:
        suggested = suggested_size(asset)
        resize = f"Resize to max {suggested[0]}px width" if suggested else "Resize"
        return _build(
            asset,
            RecommendationKind.OVERSIZED,
            Priority.MEDIUM,
            size - OVERSIZED_MEDIUM_TARGET,
            f"Image could be smaller ({_kib(size)} KB)",
            f"{resize}{follow_up}",
            page_id,
            page_name,
            suggested,
        )
    return None


def detect_format_mismatch(
    asset: Asset, page_id: Optional[str] = None, page_name: Optional[str] = None
) -> Optional[Recommendation]:
    size = asset.estimated_bytes
    if asset.format is ImageFormat.PNG and size > PNG_FORMAT_BYTES:
        savings = size * PNG_FORMAT_SAVINGS
        return _build(
            asset,
            RecommendationKind.FORMAT_MISMATCH,
            Priority.HIGH if savings > 100 * KIB else Priority.MEDIUM,
            savings,
            "PNG format used for a photographic image",
            "Replace with AVIF/WebP for a roughly 60% smaller file",
            page_id,
            page_name,
        )
    if asset.format is ImageFormat.JPEG and size > JPEG_FORMAT_BYTES:
        return _build(
            asset,
            RecommendationKind.FORMAT_MISMATCH,
            Priority.LOW,
            size * JPEG_FORMAT_SAVINGS,
            f"Large JPEG ({_kib(size)} KB)",
            "Replace with AVIF/WebP for a roughly 30% smaller file",
            page_id,
            page_name,
        )
    return None


def detect_compressible(
    asset: Asset, page_id: Optional[str] = None, page_name: Optional[str] = None
) -> Optional[Recommendation]:
    size = asset.estimated_bytes
    if asset.format is ImageFormat.PNG and size > PNG_FORMAT_BYTES:
        return None
    if COMPRESSIBLE_MIN_BYTES < size <= COMPRESSIBLE_MAX_BYTES:
        return _build(
            asset,
            RecommendationKind.COMPRESSIBLE,
            Priority.MEDIUM,
            size * COMPRESSIBLE_SAVINGS,
            "Image could benefit from compression",
            "Use TinyPNG, ImageOptim or Squoosh to compress",
            page_id,
            page_name,
        )
    return None


def detect_vector(
    asset: Asset, page_id: Optional[str] = None, page_name: Optional[str] = None
) -> Optional[Recommendation]:
    size = asset.estimated_bytes
    if size < VECTOR_IGNORE_BYTES or asset.url:
        return None
    expensive = has_expensive_vector_features(asset.svg_content)
    large = size >= VECTOR_LARGE_BYTES
    if not (large or expensive):
        return None

    if expensive and large:
        priority = Priority.MEDIUM
        rationale = f"Large vector with expensive features ({_kib(size)} KB)"
        action = "Simplify filters and masks or replace with an optimized raster image; run SVGO first"
    elif expensive:
        priority = Priority.LOW
        rationale = "Vector contains expensive features (filters, masks or embedded images)"
        action = "Simplify filters, masks or embedded images"
    else:
        priority = Priority.MEDIUM if size > VECTOR_VERY_LARGE_BYTES else Priority.LOW
        rationale = f"Large vector illustration ({_kib(size)} KB)"
        action = "Run through SVGO to strip metadata, reduce path precision and minify markup"
    return _build(
        asset,
        RecommendationKind.COMPRESSIBLE,
        priority,
        size * VECTOR_SAVINGS,
        rationale,
        action,
        page_id,
        page_name,
    )


def grouped_vector_recommendation(large_vectors: Sequence[Asset]) -> Recommendation:
    total = sum(asset.estimated_bytes for asset in large_vectors)
    savings = _savings(total * VECTOR_SAVINGS)
    count = len(large_vectors)
    return Recommendation(
        id=recommendation_id(RecommendationKind.COMPRESSIBLE, GROUPED_VECTOR_IDENTITY),
        kind=RecommendationKind.COMPRESSIBLE,
        priority=Priority.MEDIUM if savings > 100 * KIB else Priority.LOW,
        asset_identity=GROUPED_VECTOR_IDENTITY,
        asset_name=f"{count} large vector elements",
        current_bytes=total,
        potential_savings=savings,
        rationale=f"{count} large vector illustrations could be optimized",
        action_text=f"Run large vectors through SVGO (about {format_bytes(savings)} saved)",
        is_grouped=True,
    )


def generate(
    report: DeviceClassReport,
    page_id: Optional[str] = None,
    page_name: Optional[str] = None,
) -> List[Recommendation]:
    """Recommendations for one device-class report, sorted.

    The grouped vector recommendation is only produced at project level,
    i.e. when ``page_id`` is ``None``.
    """
    recommendations: List[Recommendation] = []
    large_vectors: List[Asset] = []
    for asset in report.assets:
        if not asset.visible:
            continue
        if asset.estimated_bytes <= 0 or not math.isfinite(asset.estimated_bytes):
            continue
        if asset.kind is AssetKind.VECTOR:
            found = detect_vector(asset, page_id, page_name)
            if found is not None:
                recommendations.append(found)
                if asset.estimated_bytes >= VECTOR_LARGE_BYTES:
                    large_vectors.append(asset)
        elif asset.kind in (AssetKind.IMAGE, AssetKind.BACKGROUND_IMAGE):
            for detector in (detect_oversized, detect_format_mismatch, detect_compressible):
                found = detector(asset, page_id, page_name)
                if found is not None:
                    recommendations.append(found)
        else:
            raise AssertionError(f"Unhandled asset kind: {asset.kind!r}")

    if page_id is None and len(large_vectors) > GROUPED_VECTOR_THRESHOLD:
        recommendations.append(grouped_vector_recommendation(large_vectors))

    unique: Dict[str, Recommendation] = {}
    for rec in recommendations:
        unique.setdefault(rec.id, rec)
    return sort_recommendations(unique.values())


def sort_key(rec: Recommendation) -> Tuple[int, int, str, str]:
    return (-rec.potential_savings, rec.priority.rank, rec.asset_name, rec.asset_identity)


def sort_recommendations(recommendations: Iterable[Recommendation]) -> List[Recommendation]:
    """Savings descending, then priority, then asset name and identity."""
    return sorted(recommendations, key=sort_key)


def merge_recommendations(
    page_recommendations: Iterable[Recommendation],
    project_recommendations: Iterable[Recommendation] = (),
) -> List[Recommendation]:
    """Deduplicate by id, keeping the larger saving.

    Candidates are considered page entries first (in page order), then
    project entries; on equal savings the earlier candidate is kept, so a
    page-attributed entry beats a project-level one. Route usage is unioned
    across every entry that refers to the same asset.
    """
    chosen: Dict[str, Recommendation] = {}
    usage: Dict[str, List[RouteUsage]] = {}
    for rec in list(page_recommendations) + list(project_recommendations):
        routes = usage.setdefault(rec.asset_identity, [])
        for entry in rec.route_usage:
            if entry not in routes:
                routes.append(entry)
        current = chosen.get(rec.id)
        if current is None or rec.potential_savings > current.potential_savings:
            chosen[rec.id] = rec

    merged = [
        replace(rec, route_usage=tuple(usage.get(rec.asset_identity, ())))
        for rec in chosen.values()
    ]
    return sort_recommendations(merged)
