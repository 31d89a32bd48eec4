from bandwidth_inspector.models import AssetOrigin, DeviceClass
from bandwidth_inspector.unifier import dedupe, unify

from conftest import make_asset


class TestDedupe:
    def test_last_write_wins_first_position_kept(self):
        first = make_asset("a", width=10, height=10)
        other = make_asset("b")
        second = make_asset("a", width=20, height=20)

        result = dedupe([first, other, second])

        assert [asset.identity for asset in result] == ["a", "b"]
        assert result[0].declared_dimensions.width == 20

    def test_empty(self):
        assert dedupe([]) == []


class TestUnify:
    def test_collection_and_manual_assets_join_every_class(self):
        desktop = make_asset("hero")
        mobile = make_asset("hero-small")
        cms = make_asset("cover", origin=AssetOrigin.COLLECTION)
        manual = make_asset("manual-0-blog", origin=AssetOrigin.MANUAL)

        unified = unify(
            {DeviceClass.DESKTOP: [desktop], DeviceClass.MOBILE: [mobile]},
            [cms],
            [manual],
        )

        assert [a.identity for a in unified.per_class[DeviceClass.DESKTOP]] == [
            "hero",
            "cover",
            "manual-0-blog",
        ]
        assert [a.identity for a in unified.per_class[DeviceClass.TABLET]] == [
            "cover",
            "manual-0-blog",
        ]
        assert [a.identity for a in unified.canonical] == [
            "hero",
            "hero-small",
            "cover",
            "manual-0-blog",
        ]

    def test_identities_are_unique_per_class(self):
        shared = make_asset("https://cdn.example.com/a.jpg")
        unified = unify(
            {DeviceClass.DESKTOP: [shared, shared], DeviceClass.MOBILE: [shared]},
            [make_asset("https://cdn.example.com/a.jpg", origin=AssetOrigin.COLLECTION)],
        )
        for assets in unified.per_class.values():
            identities = [asset.identity for asset in assets]
            assert len(identities) == len(set(identities))
        assert len(unified.canonical) == 1
        assert unified.canonical[0].origin is AssetOrigin.COLLECTION

    def test_unifying_again_changes_nothing(self):
        canvas = make_asset("https://cdn.example.com/a.jpg")
        cms = make_asset("https://cdn.example.com/a.jpg", origin=AssetOrigin.COLLECTION)
        manual = make_asset("manual-0-blog", origin=AssetOrigin.MANUAL)
        first = unify(
            {DeviceClass.DESKTOP: [canvas, make_asset("hero")], DeviceClass.MOBILE: [canvas]},
            [cms],
            [manual],
        )

        second = unify(first.per_class, [cms], [manual])

        assert second.per_class == first.per_class
        assert dedupe(first.canonical) == list(first.canonical)
        assert first.canonical[0].origin is AssetOrigin.COLLECTION
