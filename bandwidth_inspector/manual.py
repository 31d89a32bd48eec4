"""User-declared estimates for collection images the collectors cannot see."""

from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Union

from .errors import NotFoundError, ValidationError, handle_service_error
from .estimator import manual_bytes_per_image
from .models import (
    Asset,
    AssetKind,
    AssetOrigin,
    AssetStatus,
    Dimensions,
    ImageFormat,
    ManualEstimate,
    ManualEstimateInput,
)
from .utils import slugify

logger = logging.getLogger("bandwidth_inspector")

MANUAL_FORMATS = {"jpeg", "jpg", "png", "webp", "avif", "gif"}


def _positive(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def validate_input(entry: ManualEstimateInput) -> None:
    """Raise :class:`ValidationError` describing the first problem with ``entry``."""
    if not isinstance(entry.collection_name, str) or not entry.collection_name.strip():
        raise ValidationError("Collection name is required", {"entry": repr(entry)})
    if not isinstance(entry.image_count, int) or isinstance(entry.image_count, bool) or entry.image_count < 1:
        raise ValidationError(
            "Image count must be a positive integer",
            {"collection": entry.collection_name, "image_count": entry.image_count},
        )
    if not _positive(entry.avg_width) or not _positive(entry.avg_height):
        raise ValidationError(
            "Average dimensions must be positive numbers",
            {
                "collection": entry.collection_name,
                "avg_width": entry.avg_width,
                "avg_height": entry.avg_height,
            },
        )
    if str(entry.format).strip().lower() not in MANUAL_FORMATS:
        raise ValidationError(
            f"Unsupported image format: {entry.format}",
            {"collection": entry.collection_name},
        )


def build_estimate(entry: ManualEstimateInput, created_at: Optional[str] = None) -> ManualEstimate:
    validate_input(entry)
    fmt = ImageFormat.parse(entry.format)
    per_image = manual_bytes_per_image(entry.avg_width, entry.avg_height, fmt)
    return ManualEstimate(
        id=entry.id or f"manual-{uuid.uuid4().hex[:12]}",
        collection_name=entry.collection_name.strip(),
        image_count=entry.image_count,
        avg_width=float(entry.avg_width),
        avg_height=float(entry.avg_height),
        format=fmt,
        bytes_per_image=per_image,
        estimated_bytes=per_image * entry.image_count,
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
    )


class ManualEstimateStore:
    """In-memory set of manual estimates; callers own persistence."""

    def __init__(self, estimates: Iterable[ManualEstimate] = ()) -> None:
        self._estimates: Dict[str, ManualEstimate] = {}
        for estimate in estimates:
            self._estimates[estimate.id] = estimate

    def __len__(self) -> int:
        return len(self._estimates)

    def __iter__(self) -> Iterator[ManualEstimate]:
        return iter(list(self._estimates.values()))

    def get(self, estimate_id: str) -> Optional[ManualEstimate]:
        return self._estimates.get(estimate_id)

    def add(self, entry: ManualEstimateInput) -> ManualEstimate:
        estimate = build_estimate(entry)
        if estimate.id in self._estimates:
            raise ValidationError(f"Manual estimate {estimate.id} already exists")
        self._estimates[estimate.id] = estimate
        logger.info(
            "Added manual estimate for %s (%d images)", estimate.collection_name, estimate.image_count
        )
        return estimate

    def update(self, estimate_id: str, entry: ManualEstimateInput) -> ManualEstimate:
        existing = self._estimates.get(estimate_id)
        if existing is None:
            raise ValidationError(f"Unknown manual estimate {estimate_id}")
        if entry.id is not None and entry.id != estimate_id:
            raise ValidationError("Manual estimate id cannot be changed")
        updated = build_estimate(
            ManualEstimateInput(
                collection_name=entry.collection_name,
                image_count=entry.image_count,
                avg_width=entry.avg_width,
                avg_height=entry.avg_height,
                format=entry.format,
                id=estimate_id,
            ),
            created_at=existing.created_at,
        )
        self._estimates[estimate_id] = updated
        return updated

    def remove(self, estimate_id: str) -> bool:
        if not isinstance(estimate_id, str) or not estimate_id:
            raise ValidationError("Manual estimate id is required")
        if estimate_id not in self._estimates:
            logger.warning("Manual estimate %s does not exist; nothing removed", estimate_id)
            return False
        del self._estimates[estimate_id]
        return True

    def inputs(self) -> List[ManualEstimateInput]:
        return [
            ManualEstimateInput(
                collection_name=estimate.collection_name,
                image_count=estimate.image_count,
                avg_width=estimate.avg_width,
                avg_height=estimate.avg_height,
                format=estimate.format.value,
                id=estimate.id,
            )
            for estimate in self
        ]


def load_manual_inputs(path: Union[str, Path]) -> List[ManualEstimateInput]:
    """Read a JSON list of ``{collectionName, imageCount, avgWidth, avgHeight, format}``."""
    source = Path(path).expanduser()
    if not source.exists():
        raise NotFoundError(f"Manual estimate file does not exist: {source}")
    with source.open(encoding="utf-8") as handle:
        raw = json.load(handle)
    if not isinstance(raw, list):
        raise ValidationError("Manual estimate file must contain a JSON list")
    entries = []
    for record in raw:
        if not isinstance(record, dict):
            raise ValidationError("Manual estimate entries must be objects", {"entry": repr(record)})
        entries.append(
            ManualEstimateInput(
                collection_name=record.get("collectionName") or record.get("collection_name") or "",
                image_count=record.get("imageCount", record.get("image_count", 0)),
                avg_width=record.get("avgWidth", record.get("avg_width", 0)),
                avg_height=record.get("avgHeight", record.get("avg_height", 0)),
                format=record.get("format") or "jpeg",
                id=record.get("id"),
            )
        )
    return entries


class ManualCollector:
    """Turn manual estimates into synthetic collection-level assets."""

    async def collect(
        self,
        entries: Iterable[Union[ManualEstimateInput, ManualEstimate]],
        detected_collections: Iterable[str] = (),
    ) -> List[Asset]:
        detected: Set[str] = {name.strip().lower() for name in detected_collections}
        assets: List[Asset] = []
        for index, entry in enumerate(entries):
            try:
                estimate = entry if isinstance(entry, ManualEstimate) else build_estimate(
                    entry, created_at=""
                )
            except ValidationError as exc:
                handle_service_error(exc, f"manual.entry {index}")
                continue
            if estimate.collection_name.lower() in detected:
                logger.info(
                    "Ignoring manual estimate for %s: collection was detected automatically",
                    estimate.collection_name,
                )
                continue
            identity = (
                estimate.id
                if isinstance(entry, ManualEstimate) or entry.id
                else f"manual-{index}-{slugify(estimate.collection_name, fallback='collection')}"
            )
            assets.append(
                Asset(
                    identity=identity,
                    name=f"{estimate.collection_name} (manual estimate)",
                    kind=AssetKind.IMAGE,
                    origin=AssetOrigin.MANUAL,
                    declared_dimensions=Dimensions(estimate.avg_width, estimate.avg_height),
                    format=estimate.format,
                    known_bytes=float(estimate.bytes_per_image),
                    count=estimate.image_count,
                    source_collection_name=estimate.collection_name,
                    status=AssetStatus.ESTIMATED,
                )
            )
        return assets
