"""
Pytest fixtures and configuration for unfurl tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no external dependencies.
  DEFAULT: tests without a marker are auto-classified as unit.
- @pytest.mark.integration: Several components wired together, browser and
  network replaced by fakes.
- @pytest.mark.e2e: Real Chromium and real network. Skipped unless
  UNFURL_RUN_E2E=1 is set.
- @pytest.mark.slow: Tests taking >5 seconds.

=============================================================================
Mock Strategy
=============================================================================

- Playwright: FakeLauncher / FakeBrowser / FakeContext / FakePage below
- In-page operations: FakeInspector (implements PageInspector)
- HTTP: FakeSession / FakeResponse (curl_cffi AsyncSession shape)
"""

import asyncio
import os
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment before importing anything else
os.environ["UNFURL_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["UNFURL_GENERAL__LOG_LEVEL"] = "DEBUG"

from unfurl.crawler.page_inspector import HeadSnapshot  # noqa: E402
from unfurl.scraper.orchestrator import reset_orchestrator  # noqa: E402
from unfurl.utils.config import get_settings  # noqa: E402


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line("markers", "unit: Unit tests with no external dependencies")
    config.addinivalue_line("markers", "integration: Integration tests with fakes for browser/network")
    config.addinivalue_line("markers", "e2e: End-to-end tests with real Chromium and network")
    config.addinivalue_line("markers", "slow: Tests that take more than 5 seconds")


def pytest_collection_modifyitems(config, items):
    """Default unmarked tests to unit; skip e2e unless explicitly enabled."""
    run_e2e = os.environ.get("UNFURL_RUN_E2E") == "1"
    skip_e2e = pytest.mark.skip(reason="E2E tests need UNFURL_RUN_E2E=1")

    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)
        if not run_e2e and any(marker.name == "e2e" for marker in item.iter_markers()):
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset cached settings and the global orchestrator between tests."""
    get_settings.cache_clear()
    reset_orchestrator()
    yield
    get_settings.cache_clear()
    reset_orchestrator()


# =============================================================================
# Playwright fakes
# =============================================================================


class FakePage:
    """Stands in for playwright Page where only routing is needed."""

    def __init__(self) -> None:
        self.route = AsyncMock()


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: dict[str, Any]) -> None:
        self.browser = browser
        self.options = options
        self.page = FakePage()
        self.closed = False
        self.add_init_script = AsyncMock()

    async def new_page(self) -> FakePage:
        if self.browser.fail_new_page:
            raise RuntimeError("new_page failed")
        return self.page

    async def close(self) -> None:
        self.closed = True
        self.browser.contexts_closed += 1


class FakeBrowser:
    def __init__(self, name: str = "browser") -> None:
        self.name = name
        self.handlers: dict[str, Any] = {}
        self.contexts: list[FakeContext] = []
        self.contexts_closed = 0
        self.closed = False
        self.fail_new_page = False

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler

    async def new_context(self, **options: Any) -> FakeContext:
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True

    def crash(self) -> None:
        """Simulate the process dying."""
        self.handlers["disconnected"](self)


class FakeLauncher:
    """BrowserLauncher that hands out FakeBrowser instances."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.launched: list[FakeBrowser] = []
        self.launch_calls = 0
        self.stopped = False

    async def launch(self) -> FakeBrowser:
        self.launch_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("chromium failed to start")
        browser = FakeBrowser(name=f"browser-{len(self.launched) + 1}")
        self.launched.append(browser)
        return browser

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


# =============================================================================
# PageInspector fake
# =============================================================================


class FakeInspector:
    """Scriptable PageInspector.

    Args:
        status: Status returned by goto().
        html: Document HTML returned by content().
        body: Visible body text.
        head: Head snapshot for metadata extraction.
        goto_error: Exception raised by goto().
        goto_delay: Seconds goto() sleeps before returning.
    """

    def __init__(
        self,
        status: int | None = 200,
        html: str = "<html><body></body></html>",
        body: str = "",
        head: HeadSnapshot | None = None,
        goto_error: BaseException | None = None,
        goto_delay: float = 0.0,
        clears_after_click: bool = True,
    ) -> None:
        self.status = status
        self.html = html
        self.body = body
        self.head = head or HeadSnapshot()
        self.goto_error = goto_error
        self.goto_delay = goto_delay
        self.clears_after_click = clears_after_click
        self.goto_calls: list[tuple[str, float]] = []
        self.clicked: list[tuple[list[str], float]] = []
        self.waited_for: list[tuple[list[str], float]] = []
        self.waits: list[float] = []
        self.head_calls = 0
        self.readable_waits: list[float] = []

    async def goto(self, url: str, timeout: float) -> int | None:
        self.goto_calls.append((url, timeout))
        if self.goto_delay:
            await asyncio.sleep(self.goto_delay)
        if self.goto_error is not None:
            raise self.goto_error
        return self.status

    async def content(self) -> str:
        return self.html

    async def body_text(self) -> str:
        return self.body

    async def click_first(self, selectors: list[str], hold_seconds: float = 0.0) -> str | None:
        self.clicked.append((selectors, hold_seconds))
        return selectors[0] if selectors else None

    async def wait_for_text_gone(self, markers: list[str], timeout: float) -> bool:
        self.waited_for.append((markers, timeout))
        return self.clears_after_click

    async def wait(self, seconds: float) -> None:
        self.waits.append(seconds)

    async def head_snapshot(self) -> HeadSnapshot:
        self.head_calls += 1
        return self.head

    async def wait_for_readable(self, timeout: float) -> bool:
        self.readable_waits.append(timeout)
        return True


class FakeSessionManager:
    """Browser manager double that yields sessions around scripted inspectors.

    ``inspectors`` is consumed one per session; the last one is reused.
    """

    def __init__(self, *inspectors: FakeInspector) -> None:
        self.inspectors = list(inspectors) or [FakeInspector()]
        self.opened = 0
        self.released = 0
        self.fingerprints: list[Any] = []
        self.closed = False
        self.session_error: BaseException | None = None

    @property
    def in_flight(self) -> int:
        return self.opened - self.released

    @asynccontextmanager
    async def session(self, fingerprint):
        if self.session_error is not None:
            raise self.session_error
        index = min(self.opened, len(self.inspectors) - 1)
        self.opened += 1
        self.fingerprints.append(fingerprint)
        try:
            yield SimpleNamespace(
                page=FakePage(),
                inspector=self.inspectors[index],
                fingerprint=fingerprint,
            )
        finally:
            self.released += 1

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# HTTP fakes (curl_cffi AsyncSession shape)
# =============================================================================


class FakeResponse:
    def __init__(
        self,
        text: str = "",
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        url: str = "https://example.com/",
    ) -> None:
        self.text = text
        self.status_code = status_code
        self.headers = headers if headers is not None else {"Content-Type": "text/html; charset=utf-8"}
        self.url = url


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, error: BaseException | None = None):
        self.response = response or FakeResponse()
        self.error = error
        self.requests: list[tuple[str, dict[str, Any]]] = []

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


async def no_sleep(delay: float) -> None:
    """Backoff sleep replacement that returns immediately."""
    return None
