"""
Tests for collection image detection.
"""

import asyncio
import io

import pytest
from PIL import Image

from bandwidth_inspector.cms import (
    FALLBACK_DIMENSIONS,
    CollectionCollector,
    collection_name_from_url,
    control_image_url,
    detected_collection_names,
    dimensions_from_bytes,
    urls_match,
)
from bandwidth_inspector.host import SnapshotHost
from bandwidth_inspector.models import AssetOrigin, AssetStatus, Dimensions

from conftest import FakeProbe, make_asset


def _png(width, height):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height)).save(buffer, format="PNG")
    return buffer.getvalue()


class BrokenContentHost(SnapshotHost):
    async def list_collections(self):
        raise RuntimeError("content api offline")


def _collector(host, probe=None, publishing=None):
    return CollectionCollector(
        content=host, tree=host, publishing=publishing, probe=probe or FakeProbe()
    )


@pytest.mark.parametrize(
    "url, name",
    [
        ("https://site.example.com/blog/my-first-post/cover.jpg", "My First Post"),
        ("https://site.example.com/articles/launch-day/hero.png", "Launch Day"),
        ("https://cdn.example.com/team-headshot.jpg", "Team"),
        ("https://cdn.example.com/products/shoe.webp", "Products"),
        ("https://cdn.example.com/random.jpg", "CMS Collection"),
    ],
)
def test_collection_name_from_url(url, name):
    assert collection_name_from_url(url) == name


def test_dimensions_from_bytes():
    assert dimensions_from_bytes(40_000) == Dimensions(632, 474)
    assert dimensions_from_bytes(-5) == Dimensions(0, 0)


class TestUrlsMatch:
    def test_query_strings_are_ignored(self):
        assert urls_match(
            "https://cdn.example.com/images/a.jpg?w=800", "https://cdn.example.com/images/a.jpg"
        )

    def test_image_ids_match_across_hosts(self):
        assert urls_match(
            "https://site.example.com/images/Ab12Cd.png", "https://cdn.example.com/images/Ab12Cd.png?x=1"
        )

    def test_different_files(self):
        assert not urls_match(
            "https://cdn.example.com/images/a.jpg", "https://cdn.example.com/images/b.jpg"
        )


def test_control_image_url():
    assert control_image_url({"src": "https://cdn.example.com/a.jpg"}) == "https://cdn.example.com/a.jpg"
    reference = "data:framer/asset-reference,Xy9?originalFilename=a.jpg https://cdn.example.com/x.png"
    assert control_image_url({"value": reference}) == "https://cdn.example.com/x.png"
    assert control_image_url({"value": "Alice"}) is None
    assert control_image_url("https://cdn.example.com/a.jpg") is None


def test_detected_collection_names_ignore_missing_and_canvas():
    assets = [
        make_asset("a", origin=AssetOrigin.COLLECTION, source_collection_name=" Blog "),
        make_asset(
            "b",
            origin=AssetOrigin.COLLECTION,
            source_collection_name="Team",
            status=AssetStatus.NOT_FOUND,
        ),
        make_asset("c", source_collection_name="Canvas"),
    ]
    assert detected_collection_names(assets) == {"blog"}


class TestContentApi:
    def test_items_become_assets(self, host):
        assets = asyncio.run(_collector(host).from_content_api())

        assert len(assets) == 2
        found, missing = assets
        assert found.identity == "https://cdn.example.com/blog/hello.jpg"
        assert found.name == "Blog: cover"
        assert found.declared_dimensions == Dimensions(1600, 900)
        assert found.source_item_slug == "hello-world"
        assert found.status is AssetStatus.FOUND
        assert missing.status is AssetStatus.NOT_FOUND
        assert missing.visible is False
        assert missing.source_item_slug == "draft"

    def test_text_fields_are_ignored(self, host):
        assets = asyncio.run(_collector(host).from_content_api())
        assert all(asset.field_name == "cover" for asset in assets)

    def test_untyped_fields_use_value_shape(self, snapshot_data):
        snapshot_data["collections"][0]["fields"] = []
        assets = asyncio.run(_collector(SnapshotHost(snapshot_data)).from_content_api())
        assert [asset.identity for asset in assets] == ["https://cdn.example.com/blog/hello.jpg"]

    def test_header_probe_supplies_dimensions(self, snapshot_data):
        url = "https://cdn.example.com/blog/hello.jpg"
        del snapshot_data["collections"][0]["items"][0]["fieldData"]["cover"]["width"]
        probe = FakeProbe(headers={url: _png(640, 360)})
        assets = asyncio.run(_collector(SnapshotHost(snapshot_data), probe).from_content_api())

        assert assets[0].declared_dimensions == Dimensions(640, 360)
        assert probe.header_requests == [url]

    def test_unknown_dimensions_fall_back(self, snapshot_data):
        del snapshot_data["collections"][0]["items"][0]["fieldData"]["cover"]["width"]
        assets = asyncio.run(_collector(SnapshotHost(snapshot_data)).from_content_api())
        assert assets[0].declared_dimensions == FALLBACK_DIMENSIONS
        assert assets[0].status is AssetStatus.ESTIMATED

    def test_url_pattern_beats_probe(self, snapshot_data):
        cover = snapshot_data["collections"][0]["items"][0]["fieldData"]["cover"]
        cover["url"] = "https://cdn.example.com/blog/hello-1200x630.jpg"
        del cover["width"]
        probe = FakeProbe()
        assets = asyncio.run(_collector(SnapshotHost(snapshot_data), probe).from_content_api())
        assert assets[0].declared_dimensions == Dimensions(1200, 630)
        assert probe.header_requests == []


class TestComponentControls:
    def test_image_controls(self, host):
        assets = asyncio.run(_collector(host).from_component_controls())

        assert len(assets) == 1
        asset = assets[0]
        assert asset.identity == "https://cdn.example.com/team/alice.jpg"
        assert asset.declared_dimensions == Dimensions(800, 800)
        assert asset.source_collection_name == "Team Card"
        assert asset.node_id == "card-1"
        assert asset.origin is AssetOrigin.COLLECTION


class TestCollect:
    def test_strategies_combine(self, host):
        assets = asyncio.run(_collector(host, publishing=host).collect())
        assert [asset.identity for asset in assets if asset.visible] == [
            "https://cdn.example.com/blog/hello.jpg",
            "https://cdn.example.com/team/alice.jpg",
        ]

    def test_failing_strategy_does_not_stop_the_others(self, snapshot_data):
        host = BrokenContentHost(snapshot_data)
        assets = asyncio.run(_collector(host).collect())
        assert [asset.identity for asset in assets] == ["https://cdn.example.com/team/alice.jpg"]

    def test_unreachable_site_is_tolerated(self, snapshot_data):
        snapshot_data["publishedUrl"] = "https://site.example.com/"
        host = SnapshotHost(snapshot_data)
        assets = asyncio.run(_collector(host, FakeProbe(), publishing=host).collect())
        assert len([asset for asset in assets if asset.visible]) == 2


class TestPublishedSite:
    SITE = "https://site.example.com/"
    HTML = """
    <html><body>
      <img src="https://cdn.example.com/images/hero.png?scale-down-to=1024">
      <img src="/blog/my-first-post/cover.jpg">
      <img src="https://cdn.example.com/unused.jpg">
    </body></html>
    """

    def _host(self, snapshot_data):
        snapshot_data["publishedUrl"] = self.SITE
        return SnapshotHost(snapshot_data)

    def test_unmatched_images_are_reported(self, snapshot_data):
        host = self._host(snapshot_data)
        cover = "https://site.example.com/blog/my-first-post/cover.jpg"
        probe = FakeProbe(pages={self.SITE: self.HTML}, sizes={cover: 40_000})
        collector = _collector(host, probe, publishing=host)

        assets = asyncio.run(
            collector.from_published_site(["https://cdn.example.com/images/hero.png"])
        )

        assert len(assets) == 1
        asset = assets[0]
        assert asset.identity == cover
        assert asset.source_collection_name == "My First Post"
        assert asset.known_bytes == 40_000
        assert asset.declared_dimensions == Dimensions(632, 474)

    def test_unpublished_project(self, host):
        collector = _collector(host, publishing=host)
        assert asyncio.run(collector.from_published_site([])) == []
