"""High-level orchestration of one bandwidth analysis run."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .bandwidth import aggregate, collection_impact
from .canvas import CanvasCollector
from .cms import CollectionCollector, detected_collection_names
from .config import AnalysisConfig, AnalysisMode
from .errors import ApiError, ErrorCode, InspectorError, NotFoundError, handle_service_error
from .host import ContentApi, NodeRef, PublishingApi, TreeApi
from .manual import ManualCollector
from .models import (
    DEVICE_CLASS_ORDER,
    Asset,
    AssetOrigin,
    AssetStatus,
    DeviceClass,
    DeviceClassReport,
    ManualEstimate,
    ManualEstimateInput,
    PageReport,
    ProjectReport,
    PublishedSiteReport,
)
from .published import ResourceProbe, analyze_published_site
from .recommendations import generate, merge_recommendations
from .routes import AnalysisSession, RouteResolver
from .unifier import dedupe, unify

logger = logging.getLogger("bandwidth_inspector")

ManualEntry = Union[ManualEstimateInput, ManualEstimate]


class Analyzer:
    """Run analyses against one host and remember the latest completed report.

    Every call to :meth:`analyze` starts a fresh :class:`AnalysisSession`.
    When runs overlap, only the most recently started run may publish its
    report as :attr:`latest_report`; older runs still return theirs.
    """

    def __init__(
        self,
        tree: TreeApi,
        content: Optional[ContentApi] = None,
        publishing: Optional[PublishingApi] = None,
        config: Optional[AnalysisConfig] = None,
        probe: Optional[ResourceProbe] = None,
    ) -> None:
        self.tree = tree
        self.content = content
        self.publishing = publishing
        self.config = config or AnalysisConfig()
        self.probe = probe
        self.session: Optional[AnalysisSession] = None
        self.latest_report: Optional[ProjectReport] = None
        self._generation = 0

    async def analyze(
        self,
        excluded_route_ids: Iterable[str] = (),
        manual_estimates: Sequence[ManualEntry] = (),
    ) -> ProjectReport:
        self._generation += 1
        generation = self._generation
        session = AnalysisSession()
        self.session = session

        start = time.perf_counter()
        report = await self._run(session, set(excluded_route_ids), list(manual_estimates))
        elapsed = time.perf_counter() - start

        if generation == self._generation:
            self.latest_report = report
            logger.info("Analysis finished in %.2fs", elapsed)
        else:
            logger.info("Analysis run %d was superseded; keeping the newer report", generation)
        return report

    async def _list_pages(self) -> List[NodeRef]:
        try:
            pages = await self.tree.list_top_level_pages(self.config.exclude_design_pages)
        except InspectorError:
            raise
        except Exception as exc:
            raise ApiError(f"Failed to list top-level pages: {exc}") from exc
        if not pages:
            raise NotFoundError("No pages found to analyze")
        return list(pages)

    async def _run(
        self,
        session: AnalysisSession,
        excluded: set,
        manual_estimates: List[ManualEntry],
    ) -> ProjectReport:
        config = self.config
        pages = await self._list_pages()
        included = [page for page in pages if page.id not in excluded]
        if len(included) != len(pages):
            logger.info("Excluded %d page(s) by request", len(pages) - len(included))

        canvas = CanvasCollector(self.tree, session, config)
        canvas_results = await asyncio.gather(
            *(canvas.collect(device_class, excluded, pages) for device_class in DEVICE_CLASS_ORDER)
        )
        canvas_by_class: Dict[DeviceClass, List[Asset]] = dict(
            zip(DEVICE_CLASS_ORDER, canvas_results)
        )
        canvas_urls = [
            asset.url for assets in canvas_results for asset in assets if asset.url
        ]
        # Excluded routes still claim their own images on the published site.
        for page in pages:
            if page.id not in excluded:
                continue
            for device_class in DEVICE_CLASS_ORDER:
                assets = await canvas.collect_page(page, device_class)
                canvas_urls.extend(asset.url for asset in assets if asset.url)

        collector = CollectionCollector(
            self.content, self.tree, self.publishing, config, self.probe
        )
        collection_assets = await collector.collect(canvas_urls)
        manual_assets = await ManualCollector().collect(
            manual_estimates, detected_collection_names(collection_assets)
        )

        resolver = RouteResolver(self.tree, session, config)
        for device_class in DEVICE_CLASS_ORDER:
            canvas_by_class[device_class] = await self._attribute(
                canvas_by_class[device_class], resolver
            )
        collection_assets = await self._attribute(collection_assets, resolver)

        unified = unify(canvas_by_class, collection_assets, manual_assets)
        totals = {
            device_class: aggregate(
                unified.per_class[device_class],
                device_class,
                config.optimization_mode,
                config.font_families,
            )
            for device_class in DEVICE_CLASS_ORDER
        }

        page_reports = await self._page_reports(included, session, resolver)
        merged = merge_recommendations(
            [rec for page in page_reports for rec in page.recommendations],
            generate(totals[DeviceClass.DESKTOP]),
        )

        desktop_assets = totals[DeviceClass.DESKTOP].assets
        project_wide = [asset for asset in desktop_assets if asset.origin is not AssetOrigin.CANVAS]
        published_url = None
        if self.publishing is not None:
            try:
                published_url = await self.publishing.get_published_url()
            except Exception as exc:  # pylint: disable=broad-except
                handle_service_error(exc, "publishing.url")

        return ProjectReport(
            per_page=tuple(page_reports),
            per_device_class_totals=totals,
            merged_recommendations=tuple(merged),
            collection_asset_count=sum(max(1, asset.count) for asset in project_wide),
            collection_asset_bytes=sum(asset.total_bytes for asset in project_wide),
            has_manual_estimates=bool(manual_assets),
            total_pages=len(included),
            collection_assets_not_found=sum(
                1 for asset in collection_assets if asset.status is AssetStatus.NOT_FOUND
            ),
            collection_impact=collection_impact(project_wide),
            published=await self._published(published_url),
            published_url=published_url,
        )

    async def _page_reports(
        self,
        pages: Sequence[NodeRef],
        session: AnalysisSession,
        resolver: RouteResolver,
    ) -> List[PageReport]:
        limit = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def build(page: NodeRef) -> PageReport:
            async with limit:
                device_reports: Dict[DeviceClass, DeviceClassReport] = {}
                identities = set()
                for device_class in DEVICE_CLASS_ORDER:
                    assets = await self._attribute(
                        dedupe(session.assets_for_page(page.id, device_class)), resolver
                    )
                    identities.update(asset.identity for asset in assets)
                    device_reports[device_class] = aggregate(
                        assets,
                        device_class,
                        self.config.optimization_mode,
                        self.config.font_families,
                    )
                page_name = page.name or page.id
                recommendations = generate(
                    device_reports[DeviceClass.DESKTOP], page.id, page_name
                )
                return PageReport(
                    page_id=page.id,
                    page_name=page_name,
                    device_reports=device_reports,
                    total_assets=len(identities),
                    recommendations=tuple(recommendations),
                )

        return list(await asyncio.gather(*(build(page) for page in pages)))

    async def _attribute(
        self, assets: Sequence[Asset], resolver: RouteResolver
    ) -> List[Asset]:
        """Attach the owning route to every asset that points at a canvas node."""
        attributed = []
        for asset in assets:
            if asset.node_id and asset.route_attribution is None:
                resolution = await resolver.resolve(asset.node_id)
                if resolution.found and resolution.attribution is not None:
                    asset = replace(asset, route_attribution=resolution.attribution)
                else:
                    logger.debug(
                        "No route for node %s: %s",
                        asset.node_id,
                        resolution.reason.value if resolution.reason else "unknown",
                    )
            attributed.append(asset)
        return attributed

    async def _published(self, url: Optional[str]) -> Optional[PublishedSiteReport]:
        if self.config.mode is not AnalysisMode.PUBLISHED:
            return None
        if not url:
            logger.info("Project is not published; skipping published-site analysis")
            return None
        try:
            return await analyze_published_site(url, self.config, self.probe)
        except Exception as exc:  # pylint: disable=broad-except
            handle_service_error(exc, "published.analyze", code=ErrorCode.NETWORK_ERROR)
            return None


async def analyze_project(
    tree: TreeApi,
    content: Optional[ContentApi] = None,
    publishing: Optional[PublishingApi] = None,
    *,
    excluded_route_ids: Iterable[str] = (),
    manual_estimates: Sequence[ManualEntry] = (),
    config: Optional[AnalysisConfig] = None,
    probe: Optional[ResourceProbe] = None,
) -> ProjectReport:
    """Run a single analysis with a throwaway :class:`Analyzer`."""
    analyzer = Analyzer(tree, content, publishing, config, probe)
    return await analyzer.analyze(excluded_route_ids, manual_estimates)
