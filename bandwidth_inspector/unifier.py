"""Merge the collector outputs into one asset list per device class."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .models import DEVICE_CLASS_ORDER, Asset, DeviceClass


@dataclass(frozen=True)
class UnifiedAssets:
    per_class: Dict[DeviceClass, Tuple[Asset, ...]]
    canonical: Tuple[Asset, ...]


def dedupe(assets: Iterable[Asset]) -> List[Asset]:
    """Collapse equal identities; the last asset wins but keeps the first position."""
    merged: Dict[str, Asset] = {}
    for asset in assets:
        merged[asset.identity] = asset
    return list(merged.values())


def unify(
    canvas_by_class: Mapping[DeviceClass, Sequence[Asset]],
    collection_assets: Sequence[Asset] = (),
    manual_assets: Sequence[Asset] = (),
) -> UnifiedAssets:
    per_class = {
        device_class: tuple(
            dedupe(
                [
                    *canvas_by_class.get(device_class, ()),
                    *collection_assets,
                    *manual_assets,
                ]
            )
        )
        for device_class in DEVICE_CLASS_ORDER
    }
    canonical_input: List[Asset] = []
    for device_class in DEVICE_CLASS_ORDER:
        canonical_input.extend(canvas_by_class.get(device_class, ()))
    canonical_input.extend(collection_assets)
    canonical_input.extend(manual_assets)
    return UnifiedAssets(per_class=per_class, canonical=tuple(dedupe(canonical_input)))
