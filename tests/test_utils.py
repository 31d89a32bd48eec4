import pytest

from bandwidth_inspector.models import Dimensions, ImageFormat
from bandwidth_inspector.utils import (
    detect_image_format,
    dimensions_from_url,
    extract_image_id,
    format_bytes,
    format_load_time,
    make_absolute_url,
    normalize_url,
    parse_dimension,
    slugify,
)


def test_slugify():
    assert slugify("Über Uns / Team!") == "ber-uns-team"
    assert slugify("***") == "page"


@pytest.mark.parametrize(
    "value, expected",
    [(120, 120.0), ("33.5px", 33.5), ("auto", 0.0), (None, 0.0), (True, 0.0), (float("inf"), 0.0), (-4, 0.0)],
)
def test_parse_dimension(value, expected):
    assert parse_dimension(value) == expected


@pytest.mark.parametrize(
    "url, fmt",
    [
        ("https://cdn.example.com/a.JPG", ImageFormat.JPEG),
        ("data:image/png;base64,AAAA", ImageFormat.PNG),
        ("data:image/svg+xml;utf8,<svg/>", ImageFormat.SVG),
        ("https://cdn.example.com/img?fm=webp", ImageFormat.WEBP),
        ("https://cdn.example.com/avif/photo", ImageFormat.AVIF),
        ("https://cdn.example.com/asset", ImageFormat.UNKNOWN),
        (None, ImageFormat.UNKNOWN),
    ],
)
def test_detect_image_format(url, fmt):
    assert detect_image_format(url) is fmt


def test_dimensions_from_url():
    assert dimensions_from_url("https://cdn.example.com/hero-1200x630.jpg") == Dimensions(1200, 630)
    assert dimensions_from_url("https://cdn.example.com/hero.jpg") is None


def test_url_helpers():
    assert normalize_url("HTTPS://CDN.example.com/A.jpg?w=10#x") == "https://cdn.example.com/a.jpg"
    assert make_absolute_url("//cdn.example.com/a.jpg", "https://site.example.com/") == "https://cdn.example.com/a.jpg"
    assert make_absolute_url("img/a.jpg", "https://site.example.com/blog/") == "https://site.example.com/blog/img/a.jpg"
    assert extract_image_id("https://cdn.example.com/images/Ab12.png?x=1") == "Ab12"


@pytest.mark.parametrize(
    "num_bytes, decimals, text",
    [
        (0, 1, "0 B"),
        (512, 1, "512 B"),
        (1536, 1, "1.5 KB"),
        (1_048_576, 1, "1 MB"),
        (1000, 0, "1000 B"),
        (float("nan"), 1, "0 B"),
    ],
)
def test_format_bytes(num_bytes, decimals, text):
    assert format_bytes(num_bytes, decimals) == text


@pytest.mark.parametrize(
    "seconds, text",
    [(0, "<1ms"), (float("nan"), "<1ms"), (0.25, "250ms"), (12.34, "12.3s"), (75, "1m 15s")],
)
def test_format_load_time(seconds, text):
    assert format_load_time(seconds) == text
