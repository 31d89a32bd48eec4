"""Render a :class:`ProjectReport` as Markdown or as JSON-ready data."""

from __future__ import annotations

import dataclasses
import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .bandwidth import NETWORK_SPEEDS, bytes_per_visit, device_weighted_bytes, load_time
from .estimator import monthly_bandwidth
from .models import (
    DEVICE_CLASS_ORDER,
    DeviceClass,
    OptimizationMode,
    Priority,
    ProjectReport,
)
from .utils import format_bytes, format_load_time

TOP_ASSET_COUNT = 10


def to_jsonable(value: Any) -> Any:
    """Recursively turn dataclasses, enums and tuples into plain JSON types."""
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            field.name: to_jsonable(getattr(value, field.name))
            for field in dataclasses.fields(value)
        }
    if isinstance(value, Mapping):
        return {str(to_jsonable(key)): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def report_to_dict(
    report: ProjectReport,
    optimization_mode: OptimizationMode = OptimizationMode.OPTIMIZED,
    visits: Optional[int] = None,
    pages_per_visit: float = 1,
) -> Dict[str, Any]:
    data = to_jsonable(report)
    weighted = device_weighted_bytes(report.per_device_class_totals)
    data["device_weighted_bytes"] = weighted
    data["load_time"] = {
        device_class.value: {
            network: load_time(totals.total_bytes, network) for network in NETWORK_SPEEDS
        }
        for device_class, totals in report.per_device_class_totals.items()
    }
    if visits:
        per_visit = bytes_per_visit(report.per_page, DeviceClass.DESKTOP, pages_per_visit)
        data["monthly_bandwidth"] = to_jsonable(
            monthly_bandwidth(per_visit, visits, optimization_mode)
        )
    return data


def _timestamp() -> str:
    return (
        dt.datetime.now(dt.timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _summary_lines(
    report: ProjectReport,
    optimization_mode: OptimizationMode,
    visits: Optional[int],
    pages_per_visit: float,
) -> List[str]:
    lines = ["## Summary", ""]
    lines.append(f"- Pages analyzed: {report.total_pages}")
    lines.append(
        f"- Device-weighted page weight: {format_bytes(device_weighted_bytes(report.per_device_class_totals))}"
    )
    for device_class in DEVICE_CLASS_ORDER:
        totals = report.per_device_class_totals.get(device_class)
        if totals is not None:
            lines.append(
                f"- {device_class.value.capitalize()}: {format_bytes(totals.total_bytes)}"
                f" (load time {format_load_time(load_time(totals.total_bytes, '3g'))} on 3G,"
                f" {format_load_time(load_time(totals.total_bytes, '4g'))} on 4G)"
            )
    # Grouped entries summarize savings already listed individually.
    savings = sum(
        rec.potential_savings for rec in report.merged_recommendations if not rec.is_grouped
    )
    lines.append(f"- Potential savings: {format_bytes(savings)}")
    if visits:
        per_visit = bytes_per_visit(report.per_page, DeviceClass.DESKTOP, pages_per_visit)
        estimate = monthly_bandwidth(per_visit, visits, optimization_mode)
        lines.append(
            f"- Monthly bandwidth for {visits:,} visits: {format_bytes(estimate.realistic)}"
            f" realistic, {format_bytes(estimate.worst_case)} worst case"
        )
    return lines


def _breakdown_lines(report: ProjectReport) -> List[str]:
    lines = [
        "## Breakdown",
        "",
        "| Device | Images | Vectors | Overhead | Fonts | Total |",
        "|---|---|---|---|---|---|",
    ]
    for device_class in DEVICE_CLASS_ORDER:
        totals = report.per_device_class_totals.get(device_class)
        if totals is None:
            continue
        breakdown = totals.breakdown
        lines.append(
            f"| {device_class.value} | {format_bytes(breakdown.images)} "
            f"| {format_bytes(breakdown.vectors)} | {format_bytes(breakdown.fixed_overhead)} "
            f"| {format_bytes(breakdown.fonts)} | {format_bytes(totals.total_bytes)} |"
        )
    return lines


def _top_asset_lines(report: ProjectReport) -> List[str]:
    desktop = report.per_device_class_totals.get(DeviceClass.DESKTOP)
    if desktop is None or not desktop.assets:
        return []
    heaviest = sorted(desktop.assets, key=lambda asset: (-asset.total_bytes, asset.name))
    lines = ["## Largest assets", ""]
    for index, asset in enumerate(heaviest[:TOP_ASSET_COUNT], start=1):
        lines.append(
            f"{index}. {asset.name} ({asset.kind.value}, {asset.format.value}): "
            f"{format_bytes(asset.total_bytes)}"
        )
    return lines


def _recommendation_lines(report: ProjectReport) -> List[str]:
    if not report.merged_recommendations:
        return ["## Recommendations", "", "No optimization opportunities found."]
    lines = ["## Recommendations"]
    for priority in Priority:
        matching = [rec for rec in report.merged_recommendations if rec.priority is priority]
        if not matching:
            continue
        lines.extend(["", f"### {priority.value.capitalize()} priority", ""])
        for rec in matching:
            where = ", ".join(usage.route_name for usage in rec.route_usage)
            suffix = f" [{where}]" if where else ""
            lines.append(
                f"- **{rec.asset_name}**{suffix}: {rec.rationale}. {rec.action_text} "
                f"(saves ~{format_bytes(rec.potential_savings)})"
            )
    return lines


def _collection_lines(report: ProjectReport) -> List[str]:
    if not report.collection_asset_count and not report.collection_assets_not_found:
        return []
    lines = ["## Collections", ""]
    lines.append(
        f"- Collection images: {report.collection_asset_count} "
        f"({format_bytes(report.collection_asset_bytes)})"
    )
    if report.collection_assets_not_found:
        lines.append(f"- Referenced but missing: {report.collection_assets_not_found}")
    if report.has_manual_estimates:
        lines.append("- Includes manual estimates")
    impact = report.collection_impact
    if impact is not None:
        lines.append(
            f"- Listing {impact.items_per_page} items for {impact.pageviews_per_month:,} "
            f"pageviews transfers about {format_bytes(impact.monthly_bandwidth)} per month"
        )
    return lines


def _published_lines(report: ProjectReport) -> List[str]:
    published = report.published
    if published is None:
        return []
    lines = ["## Published site", "", f"- URL: {published.url}"]
    lines.append(f"- Transferred: {format_bytes(published.total_bytes)}")
    for name, size in published.breakdown.items():
        if size:
            lines.append(f"  - {name}: {format_bytes(size)}")
    return lines


def compose_markdown(
    report: ProjectReport,
    optimization_mode: OptimizationMode = OptimizationMode.OPTIMIZED,
    visits: Optional[int] = None,
    pages_per_visit: float = 1,
) -> str:
    """Generate the Markdown report including front matter."""
    front_matter = ["---", f"generated_at: {_timestamp()}"]
    front_matter.append(f"optimization_mode: {optimization_mode.value}")
    if report.published_url:
        front_matter.append(f"published_url: {report.published_url}")
    front_matter.append("---\n")

    sections = [
        _summary_lines(report, optimization_mode, visits, pages_per_visit),
        _breakdown_lines(report),
        _top_asset_lines(report),
        _recommendation_lines(report),
        _collection_lines(report),
        _published_lines(report),
    ]
    body = "\n\n".join("\n".join(section) for section in sections if section)
    return "\n".join(front_matter) + "# Bandwidth report\n\n" + body.strip() + "\n"
