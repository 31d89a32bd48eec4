"""Utility helpers for string normalization, URLs and byte formatting."""

from __future__ import annotations

import math
import re
from typing import Any, Optional
from urllib.parse import parse_qs, urljoin, urlparse

from .models import Dimensions, ImageFormat

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
DATA_URL_PATTERN = re.compile(r"^data:image/([a-z+]+)", re.IGNORECASE)
URL_DIMENSIONS_PATTERN = re.compile(r"(\d{2,5})x(\d{2,5})", re.IGNORECASE)
IMAGE_ID_PATTERN = re.compile(
    r"images/([a-zA-Z0-9]+)\.(?:png|jpe?g|webp|gif|avif)", re.IGNORECASE
)
ASSET_REFERENCE_PATTERN = re.compile(r"asset-reference,([a-zA-Z0-9]+)")
KNOWN_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "svg", "gif", "avif"}


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def parse_dimension(value: Any) -> float:
    """Parse ``120``, ``"120px"`` or ``"33.5"``; anything unusable becomes ``0``."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) and value > 0 else 0.0
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.\-]", "", value)
        try:
            numeric = float(cleaned)
        except ValueError:
            return 0.0
        return numeric if math.isfinite(numeric) and numeric > 0 else 0.0
    return 0.0


def detect_image_format(url: Optional[str]) -> ImageFormat:
    """Guess the image format from a data URL, file extension or CDN hint."""
    if not url:
        return ImageFormat.UNKNOWN

    data_match = DATA_URL_PATTERN.match(url)
    if data_match:
        return ImageFormat.parse(data_match.group(1))

    parsed = urlparse(url)
    extension = parsed.path.rsplit(".", 1)[-1].lower() if "." in parsed.path else ""
    if extension in KNOWN_EXTENSIONS:
        return ImageFormat.parse(extension)

    query = parse_qs(parsed.query)
    for key in ("format", "f", "fm"):
        values = query.get(key)
        if values and values[0].lower() in KNOWN_EXTENSIONS:
            return ImageFormat.parse(values[0])

    lowered = url.lower()
    for hint in (ImageFormat.WEBP, ImageFormat.AVIF, ImageFormat.PNG):
        if f"/{hint.value}" in lowered or f"_{hint.value}" in lowered:
            return hint
    return ImageFormat.UNKNOWN


def dimensions_from_url(url: str) -> Optional[Dimensions]:
    """Some CDNs embed ``WIDTHxHEIGHT`` in asset URLs."""
    match = URL_DIMENSIONS_PATTERN.search(url)
    if not match:
        return None
    dims = Dimensions(float(match.group(1)), float(match.group(2)))
    return dims if dims.is_valid() else None


def normalize_url(url: str) -> str:
    """Strip query and fragment so CDN variants of one file compare equal."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url.lower()
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".lower()


def url_path(url: str) -> Optional[str]:
    parsed = urlparse(url)
    return parsed.path.lower() or None


def extract_image_id(url: str) -> Optional[str]:
    match = IMAGE_ID_PATTERN.search(url) or ASSET_REFERENCE_PATTERN.search(url)
    return match.group(1) if match else None


def make_absolute_url(url: str, base_url: str) -> str:
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return "https:" + url
    return urljoin(base_url, url)


def format_bytes(num_bytes: float, decimals: int = 1) -> str:
    """Render a byte count with binary units (``1.5 KB`` for 1536, ``1 MB`` for 1,048,576)."""
    if not num_bytes or not math.isfinite(num_bytes) or num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    units = ["B", "KB", "MB", "GB", "TB"]
    for unit in units:
        if value < 1024 or unit == units[-1]:
            break
        value /= 1024
    text = f"{value:.{max(0, decimals)}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {unit}"


def format_load_time(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds <= 0:
        return "<1ms"
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, remainder = divmod(seconds, 60)
    return f"{int(minutes)}m {remainder:.0f}s"
