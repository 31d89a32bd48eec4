"""
Tests for canvas traversal.
"""

import asyncio

from bandwidth_inspector.canvas import CanvasCollector
from bandwidth_inspector.config import AnalysisConfig
from bandwidth_inspector.host import Node, SnapshotHost
from bandwidth_inspector.models import (
    AssetKind,
    AssetOrigin,
    DeviceClass,
    Dimensions,
    ImageFormat,
)
from bandwidth_inspector.routes import AnalysisSession

HERO = "https://cdn.example.com/images/hero.png"
TEAM = "https://cdn.example.com/images/team.jpg"


class BrokenListingHost(SnapshotHost):
    async def list_top_level_pages(self, exclude_design_pages):
        raise RuntimeError("host disconnected")


class BrokenChildrenHost(SnapshotHost):
    async def get_children(self, node_id):
        if node_id == "hero":
            raise RuntimeError("children unavailable")
        return await super().get_children(node_id)


def _collector(host, **config):
    return CanvasCollector(host, AnalysisSession(), AnalysisConfig(**config))


class TestCollect:
    def test_desktop_assets(self, host):
        assets = asyncio.run(_collector(host).collect(DeviceClass.DESKTOP))

        assert [asset.identity for asset in assets] == [HERO, "logo", TEAM]
        hero, logo, team = assets
        assert hero.kind is AssetKind.BACKGROUND_IMAGE
        assert hero.format is ImageFormat.PNG
        assert hero.measured_dimensions == Dimensions(2000, 1500)
        assert hero.declared_dimensions == Dimensions(1200, 800)
        assert hero.page_id == "home"
        assert hero.node_id == "hero-img"
        assert logo.kind is AssetKind.VECTOR
        assert logo.known_bytes == len(logo.svg_content.encode("utf-8"))
        assert team.kind is AssetKind.IMAGE
        assert team.measured_dimensions is None
        assert all(asset.origin is AssetOrigin.CANVAS for asset in assets)

    def test_mobile_frame_is_selected(self, host):
        assets = asyncio.run(_collector(host).collect(DeviceClass.MOBILE))
        assert [asset.node_id for asset in assets] == ["hero-img-mobile", "team-photo"]

    def test_missing_frame_falls_back_to_every_child(self, host):
        assets = asyncio.run(_collector(host).collect(DeviceClass.TABLET))
        assert [asset.node_id for asset in assets] == [
            "hero-img",
            "logo",
            "hero-img-mobile",
            "team-photo",
        ]

    def test_hidden_subtrees_and_design_pages_are_skipped(self, host):
        assets = asyncio.run(_collector(host).collect(DeviceClass.DESKTOP))
        node_ids = {asset.node_id for asset in assets}
        assert "hidden-img" not in node_ids
        assert "ds-img" not in node_ids

    def test_design_pages_can_be_included(self, host):
        assets = asyncio.run(
            _collector(host, exclude_design_pages=False).collect(DeviceClass.DESKTOP)
        )
        assert "ds-img" in {asset.node_id for asset in assets}

    def test_excluded_routes(self, host):
        assets = asyncio.run(
            _collector(host).collect(DeviceClass.DESKTOP, excluded_route_ids=["about"])
        )
        assert TEAM not in [asset.identity for asset in assets]

    def test_depth_cap(self, host):
        assets = asyncio.run(_collector(host, max_depth=2).collect(DeviceClass.DESKTOP))
        assert [asset.identity for asset in assets] == [TEAM]

    def test_small_batches_keep_order(self, host):
        assets = asyncio.run(_collector(host, batch_size=1).collect(DeviceClass.DESKTOP))
        assert [asset.identity for asset in assets] == [HERO, "logo", TEAM]


class TestFailures:
    def test_listing_failure_returns_empty(self, snapshot_data):
        collector = _collector(BrokenListingHost(snapshot_data))
        assert asyncio.run(collector.collect(DeviceClass.DESKTOP)) == []

    def test_subtree_failure_is_contained(self, snapshot_data):
        collector = _collector(BrokenChildrenHost(snapshot_data))
        assets = asyncio.run(collector.collect(DeviceClass.DESKTOP))
        assert [asset.identity for asset in assets] == ["logo", TEAM]


def test_page_assets_are_cached_in_session(host):
    collector = _collector(host)

    async def run():
        pages = await host.list_top_level_pages(True)
        first = await collector.collect_page(pages[0], DeviceClass.DESKTOP)
        second = await collector.collect_page(pages[0], DeviceClass.DESKTOP)
        return first, second

    first, second = asyncio.run(run())
    assert first == second
    assert collector.session.assets_for_page("home", DeviceClass.DESKTOP) == first


class TestExtractAsset:
    def test_plain_frame_is_not_an_asset(self, host):
        collector = _collector(host)
        assert asyncio.run(collector.extract_asset(Node(id="box", name="Box"))) is None

    def test_vector_without_markup(self, host):
        collector = _collector(host)
        node = Node(id="shape", name="Shape", node_type="SVG", width=64, height=64)
        asset = asyncio.run(collector.extract_asset(node, "home"))
        assert asset.known_bytes is None
        assert asset.format is ImageFormat.SVG
        assert asset.identity == "shape"
