"""
In-page capabilities used by challenge handling and extraction.

The orchestrator and ChallengeDetector talk to a ``PageInspector`` rather
than to Playwright directly, so both can be exercised against fakes.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from unfurl.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = get_logger(__name__)


@dataclass
class HeadSnapshot:
    """Live document head: title, every <meta> element, and the icon link."""

    title: str = ""
    metas: list[str] = field(default_factory=list)
    favicon: str = ""


@runtime_checkable
class PageInspector(Protocol):
    """Operations performed against a rendered page."""

    async def goto(self, url: str, timeout: float) -> int | None:
        """Navigate and return the main response status (None when unknown)."""
        ...

    async def content(self) -> str:
        """Serialized HTML of the current document."""
        ...

    async def body_text(self) -> str:
        """Visible text of the document body."""
        ...

    async def click_first(self, selectors: list[str], hold_seconds: float = 0.0) -> str | None:
        """Click (or press and hold) the first visible match; return its selector."""
        ...

    async def wait_for_text_gone(self, markers: list[str], timeout: float) -> bool:
        """Wait until no marker appears in the body text; True if that happened."""
        ...

    async def wait(self, seconds: float) -> None:
        ...

    async def head_snapshot(self) -> HeadSnapshot:
        ...

    async def wait_for_readable(self, timeout: float) -> bool:
        """Wait until an article/main element or enough paragraphs exist."""
        ...


_HEAD_SNAPSHOT_JS = """
() => {
    const metas = Array.from(document.querySelectorAll('meta')).map(m => m.outerHTML);
    const icon = document.querySelector('link[rel="icon"], link[rel="shortcut icon"], link[rel="apple-touch-icon"]');
    return {
        title: document.title || '',
        metas: metas,
        favicon: icon ? icon.href : ''
    };
}
"""

_TEXT_GONE_JS = """
(markers) => {
    const text = (document.body && document.body.innerText) || '';
    return !markers.some(m => text.includes(m));
}
"""

_READABLE_JS = """
() => {
    if (document.querySelector('article, main, [role="main"]')) return true;
    if (document.querySelectorAll('p').length > 10) return true;
    const text = (document.body && document.body.innerText) || '';
    return text.length > 800;
}
"""


class PlaywrightPageInspector:
    """PageInspector backed by a Playwright ``Page``."""

    def __init__(self, page: "Page"):
        self._page = page

    @property
    def page(self) -> "Page":
        return self._page

    async def goto(self, url: str, timeout: float) -> int | None:
        response = await self._page.goto(
            url,
            timeout=int(timeout * 1000),
            wait_until="domcontentloaded",
        )
        return response.status if response is not None else None

    async def content(self) -> str:
        return await self._page.content()

    async def body_text(self) -> str:
        try:
            return await self._page.evaluate(
                "() => (document.body && document.body.innerText) || ''"
            )
        except Exception as e:
            logger.debug("Body text unavailable", error=str(e))
            return ""

    async def click_first(self, selectors: list[str], hold_seconds: float = 0.0) -> str | None:
        from playwright.async_api import Error as PlaywrightError

        for selector in selectors:
            locator = self._page.locator(selector).first
            try:
                if not await locator.is_visible():
                    continue
                if hold_seconds > 0:
                    box = await locator.bounding_box()
                    if box is None:
                        continue
                    await self._page.mouse.move(
                        box["x"] + box["width"] / 2, box["y"] + box["height"] / 2
                    )
                    await self._page.mouse.down()
                    await self._page.wait_for_timeout(int(hold_seconds * 1000))
                    await self._page.mouse.up()
                else:
                    await locator.click(timeout=3000)
                return selector
            except PlaywrightError as e:
                logger.debug("Challenge element not clickable", selector=selector, error=str(e))
        return None

    async def wait_for_text_gone(self, markers: list[str], timeout: float) -> bool:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        try:
            await self._page.wait_for_function(
                _TEXT_GONE_JS, arg=markers, timeout=int(timeout * 1000)
            )
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            # The interstitial navigated away mid-wait
            logger.debug("Challenge wait interrupted by navigation", error=str(e))
            await self._page.wait_for_load_state("domcontentloaded")
            return True

    async def wait(self, seconds: float) -> None:
        await self._page.wait_for_timeout(int(seconds * 1000))

    async def head_snapshot(self) -> HeadSnapshot:
        data = await self._page.evaluate(_HEAD_SNAPSHOT_JS)
        return HeadSnapshot(
            title=data.get("title") or "",
            metas=list(data.get("metas") or []),
            favicon=data.get("favicon") or "",
        )

    async def wait_for_readable(self, timeout: float) -> bool:
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        try:
            await self._page.wait_for_function(_READABLE_JS, timeout=int(timeout * 1000))
            return True
        except PlaywrightTimeoutError:
            return False
