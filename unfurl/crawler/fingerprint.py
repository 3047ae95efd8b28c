"""
Randomized client fingerprints for render sessions.

Each render session gets a fresh combination of user agent, locale, timezone
and viewport so that consecutive requests to the same site do not share an
identical client profile.
"""

import random
from dataclasses import dataclass
from typing import Any

from unfurl.utils.logging import get_logger

logger = get_logger(__name__)


USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) Gecko/20100101 Firefox/122.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36 Edg/121.0.0.0",
)

LOCALES: tuple[str, ...] = ("en-US", "en-GB", "en-CA", "fr-FR", "de-DE", "es-ES")

TIMEZONES: tuple[str, ...] = (
    "America/New_York",
    "Europe/London",
    "Europe/Paris",
    "Europe/Berlin",
    "Asia/Tokyo",
)

VIEWPORT_WIDTHS: tuple[int, ...] = (1280, 1366, 1440, 1536, 1600, 1920)
VIEWPORT_HEIGHTS: tuple[int, ...] = (720, 768, 864, 900, 1024, 1080)
VIEWPORT_JITTER = 50  # offsets drawn from [0, VIEWPORT_JITTER)


@dataclass(frozen=True)
class Fingerprint:
    """Client profile for one render session."""

    user_agent: str
    locale: str
    timezone_id: str
    viewport_width: int
    viewport_height: int

    @property
    def accept_language(self) -> str:
        language = self.locale.split("-")[0]
        return f"{self.locale},{language};q=0.9"

    def extra_http_headers(self) -> dict[str, str]:
        """Headers a real browser with this profile would send."""
        headers = {
            "Accept-Language": self.accept_language,
            "Upgrade-Insecure-Requests": "1",
        }
        # Client hints are only sent by Chromium-family agents
        if "Chrome/" in self.user_agent:
            headers["Sec-Ch-Ua"] = '"Not A(Brand";v="99", "Google Chrome";v="121", "Chromium";v="121"'
            headers["Sec-Ch-Ua-Mobile"] = "?0"
            headers["Sec-Ch-Ua-Platform"] = f'"{self.platform}"'
        return headers

    @property
    def platform(self) -> str:
        if "Windows" in self.user_agent:
            return "Windows"
        if "Macintosh" in self.user_agent:
            return "macOS"
        return "Linux"

    def to_context_options(self) -> dict[str, Any]:
        """Keyword arguments for ``Browser.new_context``."""
        return {
            "user_agent": self.user_agent,
            "locale": self.locale,
            "timezone_id": self.timezone_id,
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
            "extra_http_headers": self.extra_http_headers(),
            "bypass_csp": True,
            "service_workers": "block",
        }


class FingerprintRandomizer:
    """Draws a fingerprint from fixed pools for each session.

    Args:
        rng: Random source. Pass a seeded ``random.Random`` for reproducible output.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        user_agents: tuple[str, ...] = USER_AGENTS,
        locales: tuple[str, ...] = LOCALES,
        timezones: tuple[str, ...] = TIMEZONES,
    ):
        if not user_agents or not locales or not timezones:
            raise ValueError("fingerprint pools must not be empty")
        self._rng = rng or random.Random()
        self._user_agents = user_agents
        self._locales = locales
        self._timezones = timezones

    def next(self) -> Fingerprint:
        """Return a new randomized fingerprint."""
        fingerprint = Fingerprint(
            user_agent=self._rng.choice(self._user_agents),
            locale=self._rng.choice(self._locales),
            timezone_id=self._rng.choice(self._timezones),
            viewport_width=self._rng.choice(VIEWPORT_WIDTHS)
            + self._rng.randrange(VIEWPORT_JITTER),
            viewport_height=self._rng.choice(VIEWPORT_HEIGHTS)
            + self._rng.randrange(VIEWPORT_JITTER),
        )
        logger.debug(
            "Fingerprint generated",
            locale=fingerprint.locale,
            timezone=fingerprint.timezone_id,
            width=fingerprint.viewport_width,
            height=fingerprint.viewport_height,
        )
        return fingerprint
