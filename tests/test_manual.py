"""
Tests for manual collection estimates.
"""

import asyncio
import json
import logging

import pytest

from bandwidth_inspector.errors import NotFoundError, ValidationError
from bandwidth_inspector.manual import (
    ManualCollector,
    ManualEstimateStore,
    build_estimate,
    load_manual_inputs,
    validate_input,
)
from bandwidth_inspector.models import (
    AssetOrigin,
    AssetStatus,
    ImageFormat,
    ManualEstimateInput,
)


def _entry(name="Portfolio", count=12, width=1200, height=800, fmt="jpeg", entry_id=None):
    return ManualEstimateInput(
        collection_name=name,
        image_count=count,
        avg_width=width,
        avg_height=height,
        format=fmt,
        id=entry_id,
    )


class TestValidation:
    @pytest.mark.parametrize(
        "entry",
        [
            _entry(name="  "),
            _entry(count=0),
            _entry(count=2.5),
            _entry(count=True),
            _entry(width=0),
            _entry(height=float("nan")),
            _entry(width=-100),
            _entry(fmt="tiff"),
        ],
    )
    def test_rejects_invalid_entries(self, entry):
        with pytest.raises(ValidationError):
            validate_input(entry)

    def test_accepts_jpg_alias(self):
        validate_input(_entry(fmt="JPG"))

    def test_build_estimate(self):
        estimate = build_estimate(_entry(width=1000, height=800, fmt="webp", count=5))
        assert estimate.format is ImageFormat.WEBP
        assert estimate.bytes_per_image == 320_000
        assert estimate.estimated_bytes == 1_600_000
        assert estimate.id.startswith("manual-")
        assert estimate.created_at


class TestStore:
    def test_add_and_remove(self):
        store = ManualEstimateStore()
        estimate = store.add(_entry(entry_id="blog"))

        assert len(store) == 1
        assert store.get("blog") is estimate
        assert store.remove("blog") is True
        assert len(store) == 0

    def test_duplicate_ids_are_rejected(self):
        store = ManualEstimateStore()
        store.add(_entry(entry_id="blog"))
        with pytest.raises(ValidationError):
            store.add(_entry(entry_id="blog"))

    def test_update_keeps_creation_time(self):
        store = ManualEstimateStore()
        original = store.add(_entry(entry_id="blog", count=4))
        updated = store.update("blog", _entry(count=8))

        assert updated.id == "blog"
        assert updated.image_count == 8
        assert updated.created_at == original.created_at

    def test_update_rejects_unknown_or_renamed(self):
        store = ManualEstimateStore()
        store.add(_entry(entry_id="blog"))
        with pytest.raises(ValidationError):
            store.update("missing", _entry())
        with pytest.raises(ValidationError):
            store.update("blog", _entry(entry_id="other"))

    def test_remove_missing_is_a_logged_no_op(self, caplog):
        store = ManualEstimateStore()
        with caplog.at_level(logging.WARNING, logger="bandwidth_inspector"):
            assert store.remove("ghost") is False
        assert "ghost" in caplog.text
        with pytest.raises(ValidationError):
            store.remove("")

    def test_inputs_round_trip_through_collector(self):
        store = ManualEstimateStore()
        store.add(_entry(entry_id="portfolio"))
        assets = asyncio.run(ManualCollector().collect(store.inputs()))
        assert [asset.identity for asset in assets] == ["portfolio"]


class TestLoadInputs:
    def test_reads_camel_and_snake_case(self, tmp_path):
        path = tmp_path / "manual.json"
        path.write_text(
            json.dumps(
                [
                    {"collectionName": "Blog", "imageCount": 20, "avgWidth": 1200, "avgHeight": 630},
                    {"collection_name": "Team", "image_count": 6, "avg_width": 400, "avg_height": 400, "format": "png"},
                ]
            ),
            encoding="utf-8",
        )
        entries = load_manual_inputs(path)
        assert [entry.collection_name for entry in entries] == ["Blog", "Team"]
        assert entries[0].format == "jpeg"
        assert entries[1].image_count == 6

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            load_manual_inputs(tmp_path / "absent.json")

    def test_rejects_non_list(self, tmp_path):
        path = tmp_path / "manual.json"
        path.write_text('{"collectionName": "Blog"}', encoding="utf-8")
        with pytest.raises(ValidationError):
            load_manual_inputs(path)


class TestManualCollector:
    def test_builds_estimated_assets(self):
        assets = asyncio.run(
            ManualCollector().collect([_entry(name="Portfolio", width=1000, height=800, count=12)])
        )

        assert len(assets) == 1
        asset = assets[0]
        assert asset.identity == "manual-0-portfolio"
        assert asset.name == "Portfolio (manual estimate)"
        assert asset.origin is AssetOrigin.MANUAL
        assert asset.status is AssetStatus.ESTIMATED
        assert asset.known_bytes == 480_000
        assert asset.count == 12
        assert asset.total_bytes == 0
        assert asset.source_collection_name == "Portfolio"

    def test_detected_collections_are_suppressed(self):
        assets = asyncio.run(
            ManualCollector().collect(
                [_entry(name="Blog"), _entry(name="Portfolio")],
                detected_collections=["blog"],
            )
        )
        assert [asset.source_collection_name for asset in assets] == ["Portfolio"]

    def test_invalid_entries_are_skipped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="bandwidth_inspector"):
            assets = asyncio.run(
                ManualCollector().collect([_entry(count=0), _entry(name="Gallery")])
            )
        assert [asset.identity for asset in assets] == ["manual-1-gallery"]
        assert "manual.entry 0" in caplog.text
