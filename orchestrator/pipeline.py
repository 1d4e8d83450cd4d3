"""Audit pipeline: acquire screenshots synchronously, analyze in the background."""

import asyncio
import ipaddress
import logging
import socket
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError

from orchestrator.analysis_orchestrator import AnalysisOrchestrator
from orchestrator.report_store import AuditReport, ReportStore, Stage, Status, Target
from orchestrator.status_tracker import StatusTracker
from providers import build_default_providers
from providers.base_provider import VisionProvider
from utils.browser import DESKTOP_VIEWPORT, get_browser_manager
from utils.compression import compress_screenshot, compress_upload
from utils.config import AuditSettings
from utils.errors import AnalysisUnavailableError, AuditError, OversizedImageError, ValidationError
from utils.metrics import PageMetrics, collect_page_metrics
from utils.page_loader import PageLoader
from utils.scoring import NormalizedAnalysis, compute_category_scores, unavailable_analysis
from utils.screenshot import SECTION_NAMES, ScreenshotCapturer, ScreenshotSet
from utils.section_merger import merge_sections

logger = logging.getLogger(__name__)

# Running analysis tasks, referenced until they finish
_background_tasks: Set[asyncio.Task] = set()


def pending_tasks() -> List[asyncio.Task]:
    """Background analysis tasks that have not finished yet."""
    return [t for t in _background_tasks if not t.done()]


async def ensure_public_host(url: str) -> None:
    """Refuse URLs that resolve to private, loopback or reserved addresses."""
    hostname = urlparse(url).hostname
    loop = asyncio.get_running_loop()
    try:
        addr_info = await loop.getaddrinfo(hostname, None)
    except socket.gaierror:
        raise ValidationError(f"Cannot resolve hostname: {hostname}")
    for _family, _type, _proto, _canonname, sockaddr in addr_info:
        ip = ipaddress.ip_address(sockaddr[0])
        if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved:
            raise ValidationError(f"Blocked private/reserved IP: {ip}")


class AuditPipeline:
    """
    Runs audits from target to completed report.

    `start()` does the browser work and returns as soon as screenshots are
    stored. The AI stage continues as a detached task that only knows the
    report id and its own copy of the image bytes, and always leaves the
    report at `completed`.
    """

    def __init__(
        self,
        store: ReportStore,
        settings: Optional[AuditSettings] = None,
        providers: Optional[List[VisionProvider]] = None,
        page_factory: Optional[Callable[[], Awaitable]] = None,
        capturer: Optional[ScreenshotCapturer] = None,
        metrics_collector: Callable[..., Awaitable[PageMetrics]] = collect_page_metrics,
    ):
        """
        Args:
            store: Where reports are persisted
            settings: Runtime settings, read from the environment when None
            providers: Vision providers in priority order
            page_factory: Coroutine function returning a fresh page, the shared browser by default
            capturer: Screenshot capturer
            metrics_collector: Coroutine (page, load_time_ms) -> PageMetrics
        """
        self.store = store
        self.settings = settings or AuditSettings.from_env()
        self.providers = providers if providers is not None else build_default_providers(self.settings)
        self.page_factory = page_factory or (lambda: get_browser_manager().new_page(DESKTOP_VIEWPORT))
        self.capturer = capturer or ScreenshotCapturer()
        self.metrics_collector = metrics_collector
        self.tracker = StatusTracker(store)

    async def start(self, target: Target) -> Tuple[str, AuditReport]:
        """
        Accept a target, capture it and schedule the AI analysis.

        Args:
            target: Validated URL or image target

        Returns:
            (report_id, report as stored when the background stage was scheduled)

        Raises:
            ValidationError, PageLoadError, CaptureError, OversizedImageError
        """
        if target.is_url and self.settings.block_private_hosts:
            await ensure_public_host(target.url)

        report_id = str(uuid.uuid4())
        report = AuditReport(
            id=report_id,
            target=target.to_dict(),
            status=Status(Stage.LOADING, "Loading page" if target.is_url else "Preparing image"),
        )
        self.store.save(report)
        logger.info("Accepted audit %s for %s", report_id, target.url or target.mime_type)

        try:
            if target.is_url:
                images, mime_type = await self._acquire_url(report_id, target.url)
            else:
                images, mime_type = self._acquire_image(report_id, target)
        except AuditError as e:
            self._record_failure(report_id, e)
            raise

        # The task gets its own dict; bytes themselves are immutable
        task = asyncio.create_task(self.run_analysis(report_id, dict(images), mime_type))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return report_id, self.store.load(report_id)

    def _record_failure(self, report_id: str, error: AuditError) -> None:
        report = self.store.load(report_id)
        if report is None:
            return
        report.error = f"{error} {error.remediation}".strip()
        self.store.save(report)
        self.tracker.complete(report_id, f"Audit failed: {error}")

    async def _acquire_url(self, report_id: str, url: str) -> Tuple[Dict[str, bytes], str]:
        loader = PageLoader(self.page_factory, settle_delay_ms=self.settings.settle_delay_ms)
        result = await loader.load(url)
        page = result.page
        try:
            self.tracker.advance(report_id, Stage.METRICS, "Collecting page metrics")
            metrics = await self.metrics_collector(page, result.load_time_ms)
            report = self.store.load(report_id)
            report.metrics = metrics
            self.store.save(report)

            self.tracker.advance(report_id, Stage.TYPOGRAPHY,
                                 f"Checking typography ({len(metrics.font_sizes.issues)} issues)")
            self.tracker.advance(report_id, Stage.CONTRAST,
                                 f"Checking contrast ({len(metrics.contrast.issues)} issues)")
            self.tracker.advance(report_id, Stage.CTA,
                                 f"Checking calls to action ({metrics.ctas.count} found)")

            shots = await self.capturer.capture(page, url, sections=self.settings.section_analysis)
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug("Ignoring error while closing page: %s", e)

        shots = self._compress_shots(shots)
        report = self.store.load(report_id)
        report.screenshots = shots.to_dict()
        self.store.save(report)

        if self.settings.section_analysis and shots.sections:
            images = dict(shots.sections)
        else:
            images = {"full": shots.full}
        # Long full-page captures can exceed what providers accept
        limit = self.settings.provider_image_limit
        return {name: compress_screenshot(data, limit).data for name, data in images.items()}, shots.mime_type

    def _compress_shots(self, shots: ScreenshotSet) -> ScreenshotSet:
        budget = self.settings.screenshot_budget
        full = compress_screenshot(shots.full, budget)
        mobile = compress_screenshot(shots.mobile, budget).data if shots.mobile else None
        sections = {name: compress_screenshot(data, budget).data for name, data in shots.sections.items()}
        logger.debug("Desktop screenshot %d -> %d bytes", full.original_size, full.size)
        return ScreenshotSet(full=full.data, mobile=mobile, sections=sections, mime_type="image/jpeg")

    def _acquire_image(self, report_id: str, target: Target) -> Tuple[Dict[str, bytes], str]:
        data = target.image_bytes()
        mime_type = target.mime_type
        limit = self.settings.provider_image_limit
        if len(data) > limit:
            result = compress_upload(data, self.settings.upload_budget, mime_type)
            logger.info("Upload compressed %d -> %d bytes", result.original_size, result.size)
            if result.size > limit:
                raise OversizedImageError(result.size, limit)
            data, mime_type = result.data, result.mime_type

        report = self.store.load(report_id)
        report.screenshots = ScreenshotSet(full=data, mime_type=mime_type).to_dict()
        self.store.save(report)
        return {"full": data}, mime_type

    async def run_analysis(self, report_id: str, images: Dict[str, bytes], mime_type: str) -> None:
        """
        Background AI stage. Always finishes with the report at `completed`.

        Args:
            report_id: Report to update
            images: Section name (or "full") to image bytes
            mime_type: MIME type of the images
        """
        results: Dict[str, NormalizedAnalysis] = {}
        try:
            self.tracker.advance(report_id, Stage.AI_ANALYSIS, "Analyzing screenshots with AI")
            orchestrator = AnalysisOrchestrator(self.providers)
            last_error: Optional[AnalysisUnavailableError] = None
            for name, image in images.items():
                section = name if name in SECTION_NAMES else None
                try:
                    results[name] = await orchestrator.analyze(image, mime_type, section=section)
                except AnalysisUnavailableError as e:
                    logger.warning("No analysis for %s: %s", name, e)
                    last_error = e
            if not results:
                raise last_error or AnalysisUnavailableError(orchestrator.missing_credentials(), {})

            analysis = self._combine(results)
            self.tracker.advance(report_id, Stage.FINALIZING, "Finalizing report")
            report = self.store.load(report_id)
            report.analysis = analysis
            report.category_scores = compute_category_scores(report.metrics, analysis)
            if len(results) < len(images):
                skipped = [name for name in images if name not in results]
                report.error = f"Sections without analysis: {', '.join(skipped)}"
            self.store.save(report)
            self.tracker.complete(report_id, "Audit completed")
        except Exception as e:
            logger.exception("Analysis failed for report %s", report_id)
            self._finish_degraded(report_id, results, e)

    @staticmethod
    def _combine(results: Dict[str, NormalizedAnalysis]) -> NormalizedAnalysis:
        # A single full-page result is not a section
        if list(results) == ["full"]:
            return results["full"]
        return merge_sections(results)

    def _finish_degraded(self, report_id: str, results: Dict[str, NormalizedAnalysis], error: Exception) -> None:
        try:
            report = self.store.load(report_id)
            if report is None:
                return
            if results:
                analysis = self._combine(results)
            else:
                analysis = unavailable_analysis(str(error))
            report.analysis = analysis
            report.category_scores = compute_category_scores(report.metrics, analysis)
            report.error = str(error)
            self.store.save(report)
            self.tracker.complete(report_id, f"Completed with partial result: {error}")
        except Exception:
            # Nothing left to fall back to; the report stays as last written
            logger.exception("Could not record degraded result for report %s", report_id)
