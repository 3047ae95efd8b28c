"""
Scrape orchestration.

Two tiers:
- smart_scrape: direct HTTP fetch first, rendered fallback when it is not usable
- advanced_scrape / reader_scrape: queued browser rendering with bounded retry

Rendered attempts run on the shared ConcurrencyQueue, each in its own
session from the BrowserLifecycleManager. A blocked attempt is retried after
a linear backoff, a timed-out attempt is retried immediately.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from unfurl.crawler.browser_manager import (
    BrowserLaunchError,
    BrowserLifecycleManager,
    PlaywrightLauncher,
)
from unfurl.crawler.challenge_detector import ChallengeDetector, is_access_denied
from unfurl.crawler.fingerprint import FingerprintRandomizer
from unfurl.crawler.http_fetcher import HTTPFetcher
from unfurl.crawler.resource_gate import ResourceGate
from unfurl.extractor.metadata import (
    MetadataExtractionPipeline,
    absolute_http_url,
    build_head_html,
)
from unfurl.extractor.reader import ReaderExtractor
from unfurl.scheduler.queue import ConcurrencyQueue, TaskTimeoutError
from unfurl.scraper.results import (
    FetchError,
    Insufficient,
    ReaderResult,
    ScrapePreviewResult,
    ScrapeStatus,
    Usable,
)
from unfurl.utils.backoff import RetryPolicy
from unfurl.utils.config import Settings, get_settings
from unfurl.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class NavigationTimeoutError(TaskTimeoutError):
    """Page navigation exceeded its deadline; retried like a task timeout."""


class ScrapeOrchestrator:
    """Entry point for preview and reader scrapes.

    Args:
        fetcher: Lightweight HTTP path.
        browser: Shared browser lifecycle manager.
        queue: Worker pool for rendered attempts.
        pipeline: Metadata rules for the rendered head.
        reader: Article extractor.
        challenges: Challenge detection and mitigation.
        fingerprints: Fingerprint source for each session.
        preview_retry: Retry policy for advanced_scrape.
        reader_retry: Retry policy for reader_scrape.
        navigation_timeout: Preview navigation deadline (seconds).
        reader_navigation_timeout: Reader navigation deadline (seconds).
        task_timeout: Preview task deadline (seconds).
        reader_task_timeout: Reader task deadline (seconds).
        reader_ready_timeout: Upper bound for the reader content-readiness wait.
        gate_factory: Builds the per-session request filter for a target URL.
        sleep: Backoff sleep (replaced in tests).
    """

    def __init__(
        self,
        fetcher: HTTPFetcher,
        browser: BrowserLifecycleManager,
        queue: ConcurrencyQueue,
        *,
        pipeline: MetadataExtractionPipeline | None = None,
        reader: ReaderExtractor | None = None,
        challenges: ChallengeDetector | None = None,
        fingerprints: FingerprintRandomizer | None = None,
        preview_retry: RetryPolicy | None = None,
        reader_retry: RetryPolicy | None = None,
        navigation_timeout: float = 15.0,
        reader_navigation_timeout: float = 45.0,
        task_timeout: float = 60.0,
        reader_task_timeout: float = 90.0,
        reader_ready_timeout: float = 2.0,
        gate_factory: Callable[[str], ResourceGate] = ResourceGate,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._browser = browser
        self._queue = queue
        self._pipeline = pipeline or MetadataExtractionPipeline()
        self._reader = reader or ReaderExtractor()
        self._challenges = challenges or ChallengeDetector()
        self._fingerprints = fingerprints or FingerprintRandomizer()
        self._preview_retry = preview_retry or RetryPolicy(max_retries=2, blocked_step=5.0)
        self._reader_retry = reader_retry or RetryPolicy(max_retries=1, blocked_step=3.0)
        self._navigation_timeout = navigation_timeout
        self._reader_navigation_timeout = reader_navigation_timeout
        self._task_timeout = task_timeout
        self._reader_task_timeout = reader_task_timeout
        self._reader_ready_timeout = reader_ready_timeout
        self._gate_factory = gate_factory
        self._sleep = sleep

    @property
    def browser(self) -> BrowserLifecycleManager:
        return self._browser

    @property
    def queue(self) -> ConcurrencyQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def smart_scrape(self, url: str) -> ScrapePreviewResult:
        """Preview ``url``, rendering only when the direct fetch is not enough."""
        outcome = await self._fetcher.fetch(url)
        match outcome:
            case Usable(result=result):
                return result
            case Insufficient(reason=reason):
                logger.info("Lightweight preview insufficient, rendering", url=url[:80], reason=reason)
            case FetchError(reason=reason):
                logger.info("Lightweight fetch failed, rendering", url=url[:80], reason=reason)
        return await self.advanced_scrape(url)

    async def advanced_scrape(self, url: str) -> ScrapePreviewResult:
        """Preview ``url`` through the browser with bounded retry."""
        policy = self._preview_retry
        last = ScrapePreviewResult.failed()

        for attempt in range(policy.max_attempts):
            try:
                result = await self._queue.enqueue(
                    lambda: self._guarded_preview(url),
                    timeout=self._task_timeout,
                    label=url[:80],
                )
            except TaskTimeoutError as e:
                logger.warning("Rendered preview timed out", url=url[:80], attempt=attempt, error=str(e))
                last = ScrapePreviewResult.failed()
                if policy.has_retry_left(attempt):
                    continue
                break

            last = result
            if result.status is ScrapeStatus.BLOCKED and policy.has_retry_left(attempt):
                delay = policy.blocked_delay(attempt)
                logger.info("Blocked, backing off", url=url[:80], attempt=attempt, delay=delay)
                await self._sleep(delay)
                continue
            break

        logger.info("Rendered preview finished", url=url[:80], status=last.status.value)
        return last

    async def reader_scrape(self, url: str) -> ReaderResult:
        """Extract a readable article from ``url`` with bounded retry."""
        policy = self._reader_retry
        last = ReaderResult.failure("No readable content")

        for attempt in range(policy.max_attempts):
            try:
                result = await self._queue.enqueue(
                    lambda: self._guarded_reader(url),
                    timeout=self._reader_task_timeout,
                    label=url[:80],
                )
            except TaskTimeoutError as e:
                logger.warning("Reader render timed out", url=url[:80], attempt=attempt, error=str(e))
                last = ReaderResult.failure(f"Timed out: {e}")
                if policy.has_retry_left(attempt):
                    continue
                break

            last = result
            if not result.ok and result.blocked and policy.has_retry_left(attempt):
                delay = policy.blocked_delay(attempt)
                logger.info("Reader blocked, backing off", url=url[:80], attempt=attempt, delay=delay)
                await self._sleep(delay)
                continue
            break

        return last

    async def close(self) -> None:
        """Stop the worker pool and the browser."""
        await self._queue.close()
        await self._browser.close()

    # ------------------------------------------------------------------
    # Render bodies (run on queue workers)
    # ------------------------------------------------------------------

    async def _navigate(self, session, url: str, timeout: float) -> int | None:
        await self._gate_factory(url).install(session.page)
        try:
            return await session.inspector.goto(url, timeout)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(timeout, url[:80]) from e

    async def _render_preview(self, url: str) -> ScrapePreviewResult:
        async with self._browser.session(self._fingerprints.next()) as session:
            status = await self._navigate(session, url, self._navigation_timeout)
            inspector = session.inspector
            await self._challenges.handle(inspector, url)

            if status == 403:
                logger.info("Rendered preview blocked", url=url[:80], status=status)
                return ScrapePreviewResult.blocked()

            snapshot = await inspector.head_snapshot()
            metadata = self._pipeline.extract(build_head_html(snapshot), url)
            if not metadata.title:
                logger.info("Rendered preview has no title", url=url[:80])
                return ScrapePreviewResult.failed()

            return ScrapePreviewResult.success(
                title=metadata.title,
                description=metadata.description,
                image=metadata.image,
                favicon=metadata.logo or absolute_http_url(snapshot.favicon, url),
            )

    async def _guarded_preview(self, url: str) -> ScrapePreviewResult:
        with LogContext(request_id=uuid.uuid4().hex[:12], url=url[:80]):
            try:
                return await self._render_preview(url)
            except TaskTimeoutError:
                raise
            except BrowserLaunchError as e:
                logger.error("Browser unavailable", error=str(e))
            except PlaywrightError as e:
                logger.error("Rendered preview error", error=str(e))
            except OSError as e:
                logger.error("Rendered preview I/O error", error=str(e))
            return ScrapePreviewResult.failed()

    async def _render_reader(self, url: str) -> ReaderResult:
        async with self._browser.session(self._fingerprints.next()) as session:
            status = await self._navigate(session, url, self._reader_navigation_timeout)
            inspector = session.inspector
            await self._challenges.handle(inspector, url)

            if status == 403 and is_access_denied(await inspector.body_text()):
                logger.info("Reader blocked", url=url[:80], status=status)
                return ReaderResult.failure("Access blocked (HTTP 403)", blocked=True)

            await inspector.wait_for_readable(self._reader_ready_timeout)
            html = await inspector.content()

        return await asyncio.to_thread(self._reader.extract, html, url)

    async def _guarded_reader(self, url: str) -> ReaderResult:
        with LogContext(request_id=uuid.uuid4().hex[:12], url=url[:80]):
            try:
                return await self._render_reader(url)
            except TaskTimeoutError:
                raise
            except BrowserLaunchError as e:
                logger.error("Browser unavailable", error=str(e))
                return ReaderResult.failure(f"Browser unavailable: {e}")
            except PlaywrightError as e:
                logger.error("Reader render error", error=str(e))
                return ReaderResult.failure(f"Render error: {e}")
            except OSError as e:
                logger.error("Reader I/O error", error=str(e))
                return ReaderResult.failure(f"I/O error: {e}")


# ============================================================================
# Factory and Global Instance
# ============================================================================


def create_orchestrator(settings: Settings | None = None) -> ScrapeOrchestrator:
    """Wire an orchestrator from settings."""
    settings = settings or get_settings()
    browser_cfg = settings.browser
    scraper_cfg = settings.scraper

    queue = ConcurrencyQueue(concurrency=settings.concurrency.max_workers)
    browser = BrowserLifecycleManager(
        launcher=PlaywrightLauncher(
            executable_path=browser_cfg.executable_path,
            headless=browser_cfg.headless,
            extra_args=browser_cfg.extra_launch_args,
        ),
        recycle_after_requests=browser_cfg.recycle_after_requests,
        idle_shutdown_seconds=browser_cfg.idle_shutdown_seconds,
        idle_guard=lambda: queue.pending,
    )

    return ScrapeOrchestrator(
        fetcher=HTTPFetcher(timeout=scraper_cfg.lightweight_timeout),
        browser=browser,
        queue=queue,
        challenges=ChallengeDetector(
            auto_wait=browser_cfg.challenge_auto_wait,
            click_wait=browser_cfg.challenge_click_wait,
            settle_wait=browser_cfg.challenge_settle_wait,
            hold_duration=browser_cfg.press_and_hold_duration,
        ),
        preview_retry=RetryPolicy(
            max_retries=scraper_cfg.max_retries,
            blocked_step=scraper_cfg.blocked_backoff_step,
        ),
        reader_retry=RetryPolicy(
            max_retries=scraper_cfg.reader_max_retries,
            blocked_step=scraper_cfg.reader_blocked_backoff_step,
        ),
        navigation_timeout=browser_cfg.navigation_timeout,
        reader_navigation_timeout=browser_cfg.reader_navigation_timeout,
        task_timeout=scraper_cfg.task_timeout,
        reader_task_timeout=scraper_cfg.reader_task_timeout,
        reader_ready_timeout=scraper_cfg.reader_ready_timeout,
    )


_orchestrator: ScrapeOrchestrator | None = None


def get_orchestrator() -> ScrapeOrchestrator:
    """Get or create the global ScrapeOrchestrator instance."""
    global _orchestrator

    if _orchestrator is None:
        _orchestrator = create_orchestrator()

    return _orchestrator


async def close_orchestrator() -> None:
    """Close the global ScrapeOrchestrator instance."""
    global _orchestrator

    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None


def reset_orchestrator() -> None:
    """Reset the global orchestrator without closing. For testing only."""
    global _orchestrator
    _orchestrator = None
