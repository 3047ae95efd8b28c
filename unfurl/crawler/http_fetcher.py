"""Direct HTTP fetch path for link previews."""

from collections.abc import Callable
from typing import Any

from unfurl.crawler.challenge_detector import _is_challenge_page
from unfurl.extractor.metadata import MetadataExtractionPipeline
from unfurl.scraper.results import (
    FetchError,
    FetchOutcome,
    Insufficient,
    ScrapePreviewResult,
    Usable,
)
from unfurl.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


def _default_session_factory() -> Any:
    from curl_cffi.requests import AsyncSession

    return AsyncSession()


class HTTPFetcher:
    """HTTP client fetcher using curl_cffi.

    Features:
    - Chrome impersonation (TLS and header order of a real browser)
    - Open Graph / meta-tag parsing of the response
    - Never raises: every failure is reported as a FetchOutcome

    Args:
        timeout: Request timeout in seconds.
        pipeline: Metadata rules used on the fetched HTML.
        session_factory: Returns an async session (curl_cffi AsyncSession by default).
    """

    def __init__(
        self,
        timeout: float = 5.0,
        pipeline: MetadataExtractionPipeline | None = None,
        session_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._timeout = timeout
        self._pipeline = pipeline or MetadataExtractionPipeline()
        self._session_factory = session_factory or _default_session_factory

    def parse_open_graph(self, html: str, url: str) -> FetchOutcome:
        """Turn fetched HTML into a preview outcome.

        A usable preview needs a title plus an image or a description.
        """
        metadata = self._pipeline.extract(html, url)
        if not metadata.title:
            return Insufficient("Missing title")
        if not metadata.image and not metadata.description:
            return Insufficient("Missing image AND description")
        return Usable(
            ScrapePreviewResult.success(
                title=metadata.title,
                description=metadata.description,
                image=metadata.image,
                favicon=metadata.logo,
            )
        )

    async def fetch(self, url: str) -> FetchOutcome:
        """Fetch ``url`` and parse its metadata.

        Args:
            url: URL to fetch.

        Returns:
            Usable, Insufficient or FetchError.
        """
        try:
            async with self._session_factory() as session:
                response = await session.get(
                    url,
                    headers=DEFAULT_HEADERS,
                    impersonate="chrome",
                    timeout=self._timeout,
                    allow_redirects=True,
                )

                status = response.status_code
                headers = {k.lower(): v for k, v in dict(response.headers).items()}
                final_url = str(response.url or url)

                if status >= 400:
                    logger.info("HTTP fetch rejected", url=url[:80], status=status)
                    return FetchError(f"HTTP {status}")

                content_type = headers.get("content-type", "").lower()
                if content_type and not content_type.startswith(HTML_CONTENT_TYPES):
                    return Insufficient(f"Unsupported content type: {content_type.split(';')[0]}")

                text = response.text
        except Exception as e:
            logger.info("HTTP fetch error", url=url[:80], error=str(e))
            return FetchError(f"Exception: {e}", cause=e)

        if _is_challenge_page(text, headers):
            logger.info("Challenge detected", url=url[:80])
            return Insufficient("challenge_detected")

        outcome = self.parse_open_graph(text, final_url)
        if isinstance(outcome, Usable):
            logger.info("HTTP fetch success", url=url[:80], status=status)
        else:
            logger.info("HTTP fetch insufficient", url=url[:80], reason=outcome.reason)
        return outcome
