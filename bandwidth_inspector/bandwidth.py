"""Per-device-class aggregation and the traffic model built on top of it."""

from __future__ import annotations

import math
from dataclasses import replace
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence

from .config import DEFAULT_FONT_FAMILIES, MIB
from .estimator import estimate_base_overhead, estimate_bytes, estimate_font_weight
from .models import (
    Asset,
    AssetKind,
    AssetOrigin,
    Breakdown,
    CollectionBandwidthImpact,
    DeviceClass,
    DeviceClassReport,
    OptimizationMode,
    PageReport,
)

DEFAULT_ITEMS_PER_PAGE = 10
DEFAULT_PAGEVIEWS_PER_MONTH = 10_000

# Sustained download speed in bytes per second (1.5 Mbps and 10 Mbps).
NETWORK_SPEEDS: Mapping[str, float] = MappingProxyType({"3g": 1.5 * MIB / 8, "4g": 10 * MIB / 8})


def aggregate(
    assets: Iterable[Asset],
    device_class: DeviceClass,
    optimization_mode: OptimizationMode = OptimizationMode.OPTIMIZED,
    font_families: float = DEFAULT_FONT_FAMILIES,
) -> DeviceClassReport:
    """Estimate every visible asset and total them with the fixed page costs."""
    images = 0.0
    vectors = 0.0
    estimated: List[Asset] = []
    for asset in assets:
        if not asset.visible:
            continue
        sized = replace(
            asset, estimated_bytes=estimate_bytes(asset, device_class, optimization_mode)
        )
        if sized.kind is AssetKind.VECTOR:
            vectors += sized.total_bytes
        elif sized.kind in (AssetKind.IMAGE, AssetKind.BACKGROUND_IMAGE):
            images += sized.total_bytes
        else:
            raise AssertionError(f"Unhandled asset kind: {sized.kind!r}")
        estimated.append(sized)

    breakdown = Breakdown(
        images=images,
        vectors=vectors,
        fixed_overhead=float(estimate_base_overhead()),
        fonts=estimate_font_weight(font_families),
    )
    return DeviceClassReport(
        device_class=device_class,
        total_bytes=breakdown.total,
        breakdown=breakdown,
        assets=tuple(estimated),
    )


def device_weighted_bytes(reports: Mapping[DeviceClass, DeviceClassReport]) -> float:
    """Average page weight across device classes, weighted by typical traffic share."""
    total_share = sum(device_class.traffic_share for device_class in reports)
    if total_share <= 0:
        return 0.0
    weighted = sum(
        report.total_bytes * device_class.traffic_share
        for device_class, report in reports.items()
    )
    return weighted / total_share


def bytes_per_visit(
    page_reports: Sequence[PageReport],
    device_class: DeviceClass = DeviceClass.DESKTOP,
    pages_per_visit: float = 1,
) -> float:
    """Heaviest page plus ``pages_per_visit - 1`` average other pages."""
    totals = sorted(
        (
            page.device_reports[device_class].total_bytes
            for page in page_reports
            if device_class in page.device_reports
        ),
        reverse=True,
    )
    if not totals:
        return 0.0
    heaviest = totals[0]
    extra_pages = max(0.0, float(pages_per_visit) - 1)
    if extra_pages == 0:
        return heaviest
    others = totals[1:] or totals
    return heaviest + extra_pages * (sum(others) / len(others))


def collection_impact(
    assets: Iterable[Asset],
    items_per_page: int = DEFAULT_ITEMS_PER_PAGE,
    pageviews_per_month: int = DEFAULT_PAGEVIEWS_PER_MONTH,
) -> Optional[CollectionBandwidthImpact]:
    """Monthly transfer attributable to collection images shown in lists."""
    total = 0.0
    count = 0
    for asset in assets:
        if not asset.visible or asset.origin is AssetOrigin.CANVAS:
            continue
        total += asset.total_bytes
        count += max(1, asset.count)
    if count == 0:
        return None
    average = total / count
    return CollectionBandwidthImpact(
        total_bytes=total,
        average_file_size=average,
        items_per_page=items_per_page,
        pageviews_per_month=pageviews_per_month,
        monthly_bandwidth=average * items_per_page * pageviews_per_month,
    )


def load_time(num_bytes: float, network: str = "4g") -> float:
    """Seconds needed to transfer ``num_bytes`` at the given network's speed."""
    try:
        speed = NETWORK_SPEEDS[network]
    except KeyError:
        raise ValueError(f"Unknown network {network!r}; expected one of {sorted(NETWORK_SPEEDS)}") from None
    if not num_bytes or not math.isfinite(num_bytes) or num_bytes <= 0:
        return 0.0
    return num_bytes / speed
