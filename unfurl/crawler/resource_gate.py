"""
Request filtering for render sessions.

Aborts sub-resources that never contribute to metadata or article text:
heavy media, fonts, stylesheets, tracker/ad hosts and third-party images.
"""

from typing import TYPE_CHECKING
from urllib.parse import urlparse

from unfurl.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page, Route

logger = get_logger(__name__)


BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset({"media", "font", "stylesheet"})

BLOCKED_DOMAINS: tuple[str, ...] = (
    "googletagmanager.com",
    "google-analytics.com",
    "facebook.net",
    "connect.facebook.net",
    "twitter.com",
    "platform.twitter.com",
    "linkedin.com",
    "bing.com",
    "yandex.ru",
    "doubleclick.net",
    "adnxs.com",
    "adsystem.com",
    "adrolling.com",
    "hotjar.com",
    "segment.io",
    "amplitude.com",
    "mixpanel.com",
    "sentry.io",
    "intercom.io",
    "disqus.com",
    "disquscdn.com",
    "gravatar.com",
    "fontawesome.com",
    "typekit.net",
    "googlesyndication.com",
    "taboola.com",
    "outbrain.com",
    "criteo.com",
    "amazon-adsystem.com",
    "scorecardresearch.com",
)


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def _matches_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


class ResourceGate:
    """Per-session request filter bound to the page being rendered.

    Args:
        target_url: URL of the page being rendered; decides which images are first-party.
        blocked_domains: Tracker/ad domains whose requests are always aborted.
    """

    def __init__(self, target_url: str, blocked_domains: tuple[str, ...] = BLOCKED_DOMAINS):
        self._target_host = _strip_www(_host(target_url))
        self._blocked_domains = blocked_domains
        self.blocked_count = 0

    def is_same_site(self, url: str) -> bool:
        """Whether ``url`` is served by the target host or one of its subdomains."""
        host = _strip_www(_host(url))
        if not host or not self._target_host:
            return False
        return _matches_domain(host, self._target_host)

    def should_block(self, url: str, resource_type: str) -> bool:
        """Decide whether a request must be aborted.

        Args:
            url: Request URL.
            resource_type: Playwright resource type (document, image, font, ...).

        Returns:
            True to abort, False to let the request through.
        """
        if resource_type in BLOCKED_RESOURCE_TYPES:
            return True

        # The target page itself may live on a listed domain (e.g. a linkedin.com post)
        if resource_type == "document" and self.is_same_site(url):
            return False

        host = _host(url)
        if host and any(_matches_domain(host, d) for d in self._blocked_domains):
            return True

        if resource_type == "image" and not self.is_same_site(url):
            return True

        return False

    async def _handle(self, route: "Route") -> None:
        request = route.request
        if self.should_block(request.url, request.resource_type):
            self.blocked_count += 1
            await route.abort()
        else:
            await route.continue_()

    async def install(self, page: "Page") -> None:
        """Register the filter on every request made by ``page``."""
        await page.route("**/*", self._handle)
        logger.debug("Resource gate installed", target_host=self._target_host)
