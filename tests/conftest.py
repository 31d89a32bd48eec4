import json
from pathlib import Path

import pytest

from bandwidth_inspector.errors import NetworkError
from bandwidth_inspector.host import SnapshotHost
from bandwidth_inspector.models import (
    Asset,
    AssetKind,
    AssetOrigin,
    Breakdown,
    DeviceClass,
    DeviceClassReport,
    Dimensions,
    ImageFormat,
)

FIXTURES = Path(__file__).parent / "fixtures"
SNAPSHOT_PATH = FIXTURES / "project_snapshot.json"


@pytest.fixture
def snapshot_path():
    return SNAPSHOT_PATH


@pytest.fixture
def snapshot_data():
    """A fresh copy of the sample project so tests can mutate it."""
    with SNAPSHOT_PATH.open(encoding="utf-8") as handle:
        return json.load(handle)


@pytest.fixture
def host(snapshot_data):
    return SnapshotHost(snapshot_data)


def make_asset(
    identity,
    *,
    kind=AssetKind.IMAGE,
    origin=AssetOrigin.CANVAS,
    width=0,
    height=0,
    fmt=ImageFormat.JPEG,
    estimated_bytes=0.0,
    **extra,
):
    """Build an asset with sensible defaults for rule and aggregation tests."""
    return Asset(
        identity=identity,
        name=extra.pop("name", identity),
        kind=kind,
        origin=origin,
        declared_dimensions=Dimensions(width, height),
        format=fmt,
        estimated_bytes=estimated_bytes,
        **extra,
    )


def report_of(*assets, device_class=DeviceClass.DESKTOP):
    """Wrap pre-estimated assets in a report for the recommendation engine."""
    return DeviceClassReport(
        device_class=device_class,
        total_bytes=0.0,
        breakdown=Breakdown(),
        assets=tuple(assets),
    )


class FakeProbe:
    """Serves canned pages, sizes and headers without touching the network."""

    def __init__(self, pages=None, sizes=None, headers=None):
        self.pages = pages or {}
        self.sizes = sizes or {}
        self.headers = headers or {}
        self.header_requests = []

    async def fetch_text(self, url):
        if url not in self.pages:
            raise NetworkError(f"Failed to fetch {url}")
        return self.pages[url], url

    async def size(self, url):
        return self.sizes.get(url, 0)

    async def header_bytes(self, url, num_bytes=64 * 1024):
        self.header_requests.append(url)
        return self.headers.get(url)
