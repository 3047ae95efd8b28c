"""
Shared headless browser lifecycle.

One Chromium process serves every render session. The manager launches it
lazily, shares a single in-flight launch between concurrent callers, recycles
it after a request budget, tears it down after an idle window, and forgets it
when it disconnects unexpectedly.

Sessions (an isolated context + page per task) are handed out through
``BrowserLifecycleManager.session()``, which always releases the context and
keeps the in-flight count exact even when the task is cancelled.
"""

import asyncio
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from unfurl.crawler.fingerprint import Fingerprint
from unfurl.crawler.page_inspector import PlaywrightPageInspector
from unfurl.crawler.stealth import apply_stealth_to_context, get_stealth_args
from unfurl.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = get_logger(__name__)


class BrowserState(str, Enum):
    """Browser process states."""

    ABSENT = "absent"
    LAUNCHING = "launching"
    READY = "ready"
    DISCONNECTED = "disconnected"


class BrowserLaunchError(Exception):
    """The browser process could not be started."""


@runtime_checkable
class BrowserLauncher(Protocol):
    """Starts browser processes for the manager."""

    async def launch(self) -> "Browser":
        ...

    async def stop(self) -> None:
        ...


def resolve_executable_path(path: str | None) -> str | None:
    """Return ``path`` if it points at an executable file, else None.

    None means Playwright's bundled Chromium is used.
    """
    if not path:
        return None
    if os.path.isfile(path) and os.access(path, os.X_OK):
        return path
    logger.warning("Configured browser executable not usable, using bundled Chromium", path=path)
    return None


class PlaywrightLauncher:
    """Launches headless Chromium through Playwright.

    Args:
        executable_path: Optional browser binary; ignored when not executable.
        headless: Run without a window.
        extra_args: Flags appended to the hardened defaults.
    """

    def __init__(
        self,
        executable_path: str | None = None,
        headless: bool = True,
        extra_args: list[str] | None = None,
    ):
        self._executable_path = executable_path
        self._headless = headless
        self._extra_args = extra_args or []
        self._playwright: "Playwright | None" = None

    async def _ensure_playwright(self) -> "Playwright":
        if self._playwright is None:
            try:
                from playwright.async_api import async_playwright

                self._playwright = await async_playwright().start()
                logger.info("Playwright initialized")
            except ImportError as e:
                raise RuntimeError("Playwright not installed") from e
        return self._playwright

    async def launch(self) -> "Browser":
        playwright = await self._ensure_playwright()
        options: dict[str, Any] = {
            "headless": self._headless,
            "args": get_stealth_args(self._extra_args),
        }
        executable_path = resolve_executable_path(self._executable_path)
        if executable_path:
            options["executable_path"] = executable_path
        return await playwright.chromium.launch(**options)

    async def stop(self) -> None:
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop error", error=str(e))
            self._playwright = None


@dataclass
class RenderSession:
    """Isolated context and page for one render task."""

    context: "BrowserContext"
    page: "Page"
    inspector: PlaywrightPageInspector
    fingerprint: Fingerprint


class BrowserLifecycleManager:
    """Owns the single shared browser process.

    Args:
        launcher: Process launcher (defaults to PlaywrightLauncher).
        recycle_after_requests: Sessions served before the process is recycled.
        idle_shutdown_seconds: Idle window after which the process is closed (0 disables).
        idle_guard: Returns the number of queued tasks; idle shutdown is skipped while > 0.
    """

    def __init__(
        self,
        launcher: BrowserLauncher | None = None,
        recycle_after_requests: int = 20,
        idle_shutdown_seconds: float = 300.0,
        idle_guard: Callable[[], int] | None = None,
    ) -> None:
        if recycle_after_requests < 1:
            raise ValueError("recycle_after_requests must be at least 1")

        self._launcher: BrowserLauncher = launcher or PlaywrightLauncher()
        self._recycle_after = recycle_after_requests
        self._idle_seconds = idle_shutdown_seconds
        self._idle_guard = idle_guard

        self._state = BrowserState.ABSENT
        self._browser: "Browser | None" = None
        self._launch_task: asyncio.Task | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._idle_task: asyncio.Task | None = None

        self._requests_served = 0
        self._in_flight = 0
        self._acquiring = 0
        self._launches = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> BrowserState:
        return self._state

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def requests_served(self) -> int:
        return self._requests_served

    @property
    def launches(self) -> int:
        return self._launches

    def get_stats(self) -> dict[str, Any]:
        """Get manager statistics."""
        return {
            "state": self._state.value,
            "requests_served": self._requests_served,
            "recycle_after_requests": self._recycle_after,
            "in_flight": self._in_flight,
            "launches": self._launches,
            "idle_timer_armed": self._idle_handle is not None,
        }

    def _budget_exhausted(self) -> bool:
        return self._requests_served >= self._recycle_after

    def _queued(self) -> int:
        return self._idle_guard() if self._idle_guard is not None else 0

    # ------------------------------------------------------------------
    # Acquire / launch
    # ------------------------------------------------------------------

    async def acquire(self) -> "Browser":
        """Return a ready browser, launching it if necessary.

        Raises:
            BrowserLaunchError: The launch failed (shared by every concurrent caller).
            RuntimeError: The manager was closed.
        """
        if self._closed:
            raise RuntimeError("BrowserLifecycleManager is closed")

        self._cancel_idle_timer()
        self._acquiring += 1
        try:
            if self._state is BrowserState.READY and self._browser is not None:
                if self._budget_exhausted() and self._in_flight == 0:
                    await self._teardown("recycle")
                else:
                    return self._browser

            if self._launch_task is None:
                self._state = BrowserState.LAUNCHING
                self._launch_task = asyncio.create_task(self._launch())

            # Shielded so one caller's cancellation does not abort the shared launch
            return await asyncio.shield(self._launch_task)
        finally:
            self._acquiring -= 1

    async def _launch(self) -> "Browser":
        try:
            logger.info("Launching browser")
            browser = await self._launcher.launch()
        except Exception as e:
            self._state = BrowserState.ABSENT
            logger.error("Browser launch failed", error=str(e))
            raise BrowserLaunchError(str(e)) from e
        finally:
            self._launch_task = None

        browser.on("disconnected", self.handle_disconnect)
        self._browser = browser
        self._state = BrowserState.READY
        self._requests_served = 0
        self._launches += 1
        logger.info("Browser ready", launches=self._launches)
        return browser

    def handle_disconnect(self, browser: "Browser | None" = None) -> None:
        """Forget the current process after a crash or external kill."""
        if browser is not None and browser is not self._browser:
            return
        if self._browser is None:
            return
        logger.warning("Browser disconnected", requests_served=self._requests_served)
        self._browser = None
        self._state = BrowserState.DISCONNECTED
        self._requests_served = 0

    async def _teardown(self, reason: str) -> None:
        browser = self._browser
        self._browser = None
        self._state = BrowserState.ABSENT
        served = self._requests_served
        self._requests_served = 0
        if browser is None:
            return
        logger.info("Closing browser", reason=reason, requests_served=served)
        try:
            await browser.close()
        except Exception as e:
            logger.warning("Browser close error", reason=reason, error=str(e))

    # ------------------------------------------------------------------
    # Recycling and idle shutdown
    # ------------------------------------------------------------------

    async def maybe_recycle(self) -> bool:
        """Recycle the process if the budget is spent and nothing is in flight."""
        if (
            self._state is BrowserState.READY
            and self._budget_exhausted()
            and self._in_flight == 0
            and self._acquiring == 0
        ):
            await self._teardown("recycle")
            return True
        return False

    def arm_idle_shutdown(self) -> None:
        """(Re)start the idle timer."""
        self._cancel_idle_timer()
        if self._closed or self._idle_seconds <= 0 or self._state is not BrowserState.READY:
            return
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(self._idle_seconds, self._on_idle_timer)

    def _cancel_idle_timer(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle_timer(self) -> None:
        self._idle_handle = None
        self._idle_task = asyncio.get_running_loop().create_task(self._idle_shutdown())

    async def _idle_shutdown(self) -> None:
        if self._in_flight > 0 or self._acquiring > 0 or self._queued() > 0:
            return
        if self._state is not BrowserState.READY:
            return
        await self._teardown("idle")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def session(self, fingerprint: Fingerprint) -> AsyncIterator[RenderSession]:
        """Open an isolated context + page with ``fingerprint``.

        The context is closed and the in-flight count restored on every exit
        path, including cancellation by a task timeout.
        """
        browser = await self.acquire()
        self._in_flight += 1
        self._requests_served += 1
        context = None
        try:
            context = await browser.new_context(**fingerprint.to_context_options())
            await apply_stealth_to_context(context)
            page = await context.new_page()
            yield RenderSession(
                context=context,
                page=page,
                inspector=PlaywrightPageInspector(page),
                fingerprint=fingerprint,
            )
        finally:
            try:
                if context is not None:
                    try:
                        await context.close()
                    except Exception as e:
                        logger.debug("Context close error", error=str(e))
            finally:
                self._in_flight -= 1
                if self._in_flight == 0 and self._budget_exhausted():
                    await self.maybe_recycle()
                self.arm_idle_shutdown()

    async def close(self) -> None:
        """Shut the browser and Playwright down."""
        self._closed = True
        self._cancel_idle_timer()
        if self._idle_task is not None and not self._idle_task.done():
            self._idle_task.cancel()
        if self._launch_task is not None:
            try:
                await self._launch_task
            except Exception as e:
                logger.debug("Pending launch failed during close", error=str(e))
        await self._teardown("close")
        await self._launcher.stop()
        logger.info("Browser manager closed")
