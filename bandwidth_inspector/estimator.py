"""Byte estimates for individual assets and for monthly traffic.

Per-asset estimates multiply the raw RGBA size by a compression ratio keyed
by ``(format, optimization mode)``. The ratios were tuned against measured
transfer sizes of published sites and are deliberately coarse.
"""

from __future__ import annotations

import math
from types import MappingProxyType
from typing import Mapping, Tuple

from .config import KIB
from .models import (
    Asset,
    AssetKind,
    AssetOrigin,
    BandwidthEstimate,
    DeviceClass,
    ImageFormat,
    OptimizationMode,
)

DEFAULT_RASTER_BYTES = 100 * KIB
DEFAULT_VECTOR_BYTES = 3 * KIB
MIN_VECTOR_BYTES = 1 * KIB
MAX_VECTOR_BYTES = 30 * KIB
VECTOR_AREA_DIVISOR = 100
DENSITY_SCALE_LIMIT = 400
BYTES_PER_PIXEL = 4
BYTES_PER_FONT_FAMILY = 20 * KIB

RatioKey = Tuple[ImageFormat, OptimizationMode]


def _ratio_table(
    optimized: Mapping[ImageFormat, float], source: Mapping[ImageFormat, float]
) -> Mapping[RatioKey, float]:
    table = {}
    for fmt in ImageFormat:
        table[(fmt, OptimizationMode.OPTIMIZED)] = optimized[fmt]
        table[(fmt, OptimizationMode.SOURCE)] = source[fmt]
    return MappingProxyType(table)


# OPTIMIZED assumes the publishing pipeline re-encodes to WebP/AVIF.
COMPRESSION_RATIOS: Mapping[RatioKey, float] = _ratio_table(
    optimized={
        ImageFormat.JPEG: 0.07,
        ImageFormat.PNG: 0.09,
        ImageFormat.WEBP: 0.07,
        ImageFormat.AVIF: 0.06,
        ImageFormat.SVG: 0.05,
        ImageFormat.GIF: 0.13,
        ImageFormat.UNKNOWN: 0.08,
    },
    source={
        ImageFormat.JPEG: 0.12,
        ImageFormat.PNG: 0.35,
        ImageFormat.WEBP: 0.08,
        ImageFormat.AVIF: 0.06,
        ImageFormat.SVG: 0.05,
        ImageFormat.GIF: 0.25,
        ImageFormat.UNKNOWN: 0.25,
    },
)

# Ratios used for user-declared collection estimates.
MANUAL_RATIOS: Mapping[ImageFormat, float] = MappingProxyType(
    {ImageFormat.WEBP: 0.10, ImageFormat.PNG: 0.40}
)
MANUAL_DEFAULT_RATIO = 0.15

# Caching, lazy loading and CDN reuse at the traffic level.
REALISTIC_FACTORS: Mapping[OptimizationMode, float] = MappingProxyType(
    {OptimizationMode.OPTIMIZED: 0.50, OptimizationMode.SOURCE: 0.70}
)


def _finite_non_negative(value: float, fallback: float) -> float:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
        return fallback
    return float(value)


def compression_ratio(fmt: ImageFormat, mode: OptimizationMode) -> float:
    return COMPRESSION_RATIOS.get((fmt, mode), COMPRESSION_RATIOS[(ImageFormat.UNKNOWN, mode)])


def estimate_vector_bytes(asset: Asset) -> float:
    area = asset.declared_dimensions.area if asset.declared_dimensions.is_valid() else 0
    if area <= 0:
        return float(DEFAULT_VECTOR_BYTES)
    return float(max(MIN_VECTOR_BYTES, min(area / VECTOR_AREA_DIVISOR, MAX_VECTOR_BYTES)))


def estimate_raster_bytes(
    asset: Asset, device_class: DeviceClass, optimization_mode: OptimizationMode
) -> float:
    dims = asset.effective_dimensions
    if not dims.is_valid():
        return float(DEFAULT_RASTER_BYTES)

    width, height = dims.width, dims.height
    # Large assets are assumed to be served at the right density already.
    if (
        asset.origin is AssetOrigin.CANVAS
        and width < DENSITY_SCALE_LIMIT
        and height < DENSITY_SCALE_LIMIT
    ):
        width *= device_class.pixel_density
        height *= device_class.pixel_density

    raw_bytes = width * height * BYTES_PER_PIXEL
    estimated = raw_bytes * compression_ratio(asset.format, optimization_mode)
    return _finite_non_negative(estimated, float(DEFAULT_RASTER_BYTES))


def estimate_bytes(
    asset: Asset,
    device_class: DeviceClass,
    optimization_mode: OptimizationMode = OptimizationMode.OPTIMIZED,
) -> float:
    """Estimated transfer size of one instance of ``asset``; finite and >= 0."""
    if asset.known_bytes is not None:
        known = _finite_non_negative(asset.known_bytes, -1.0)
        if known >= 0:
            return known

    if asset.kind is AssetKind.VECTOR:
        return estimate_vector_bytes(asset)
    if asset.kind in (AssetKind.IMAGE, AssetKind.BACKGROUND_IMAGE):
        return estimate_raster_bytes(asset, device_class, optimization_mode)
    raise AssertionError(f"Unhandled asset kind: {asset.kind!r}")


def estimate_base_overhead() -> int:
    """HTML, runtime CSS/JS and third-party scripts, amortized over CDN caching."""
    base_html = 3 * KIB
    runtime_css = 15 * KIB
    custom_css = 3 * KIB
    runtime_js = 20 * KIB
    third_party = 7 * KIB
    return base_html + runtime_css + custom_css + runtime_js + third_party


def estimate_font_weight(font_families: float) -> float:
    return _finite_non_negative(font_families, 0.0) * BYTES_PER_FONT_FAMILY


def manual_bytes_per_image(width: float, height: float, fmt: ImageFormat) -> int:
    ratio = MANUAL_RATIOS.get(fmt, MANUAL_DEFAULT_RATIO)
    return int(round(width * height * BYTES_PER_PIXEL * ratio))


def monthly_bandwidth(
    per_visit_bytes: float,
    visits: float,
    optimization_mode: OptimizationMode = OptimizationMode.OPTIMIZED,
) -> BandwidthEstimate:
    """Scale a per-visit payload to monthly traffic.

    ``worst_case`` is the plain product; ``realistic`` applies the calibration
    factor for the optimization mode.
    """
    worst_case = _finite_non_negative(per_visit_bytes, 0.0) * _finite_non_negative(visits, 0.0)
    realistic = worst_case * REALISTIC_FACTORS[optimization_mode]
    return BandwidthEstimate(realistic=realistic, worst_case=worst_case)
