"""
Tests for randomized session fingerprints.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-FP-N-01 | Seeded RNG | Equivalence – normal | Values drawn from the pools | - |
| TC-FP-N-02 | Same seed twice | Equivalence – determinism | Identical fingerprints | - |
| TC-FP-N-03 | Many draws | Equivalence – normal | Viewport within base + [0, 50) | - |
| TC-FP-N-04 | Chrome UA | Equivalence – normal | Client-hint headers present | - |
| TC-FP-N-05 | Firefox UA | Equivalence – normal | No client-hint headers | - |
| TC-FP-N-06 | to_context_options | Equivalence – normal | bypass_csp, service workers blocked | - |
| TC-FP-A-01 | Empty pool | Boundary – empty | ValueError | - |
"""

import random

import pytest

from unfurl.crawler.fingerprint import (
    LOCALES,
    TIMEZONES,
    USER_AGENTS,
    VIEWPORT_HEIGHTS,
    VIEWPORT_WIDTHS,
    Fingerprint,
    FingerprintRandomizer,
)


class TestFingerprintRandomizer:
    def test_values_come_from_pools(self) -> None:
        """
        Given: A randomizer with a seeded RNG
        When: next() is called
        Then: Every field is drawn from its pool
        """
        fp = FingerprintRandomizer(rng=random.Random(1)).next()

        assert fp.user_agent in USER_AGENTS
        assert fp.locale in LOCALES
        assert fp.timezone_id in TIMEZONES

    def test_same_seed_is_deterministic(self) -> None:
        """
        Given: Two randomizers with the same seed
        When: Each draws three fingerprints
        Then: The sequences are identical
        """
        a = FingerprintRandomizer(rng=random.Random(42))
        b = FingerprintRandomizer(rng=random.Random(42))

        assert [a.next() for _ in range(3)] == [b.next() for _ in range(3)]

    def test_viewport_jitter_bounds(self) -> None:
        """
        Given: A seeded randomizer
        When: 200 fingerprints are drawn
        Then: Width/height are a base size plus an offset in [0, 50)
        """
        randomizer = FingerprintRandomizer(rng=random.Random(7))

        for _ in range(200):
            fp = randomizer.next()
            assert any(0 <= fp.viewport_width - w < 50 for w in VIEWPORT_WIDTHS)
            assert any(0 <= fp.viewport_height - h < 50 for h in VIEWPORT_HEIGHTS)

    def test_empty_pool_raises(self) -> None:
        with pytest.raises(ValueError):
            FingerprintRandomizer(user_agents=())


class TestFingerprint:
    def _make(self, user_agent: str) -> Fingerprint:
        return Fingerprint(
            user_agent=user_agent,
            locale="fr-FR",
            timezone_id="Europe/Paris",
            viewport_width=1366,
            viewport_height=768,
        )

    def test_chrome_sends_client_hints(self) -> None:
        """
        Given: A Windows Chrome user agent
        When: Extra headers are built
        Then: Sec-Ch-Ua headers name the Windows platform
        """
        headers = self._make(USER_AGENTS[0]).extra_http_headers()

        assert headers["Accept-Language"] == "fr-FR,fr;q=0.9"
        assert headers["Sec-Ch-Ua-Platform"] == '"Windows"'
        assert headers["Sec-Ch-Ua-Mobile"] == "?0"
        assert headers["Upgrade-Insecure-Requests"] == "1"

    def test_firefox_has_no_client_hints(self) -> None:
        firefox = next(ua for ua in USER_AGENTS if "Firefox" in ua)

        headers = self._make(firefox).extra_http_headers()

        assert "Sec-Ch-Ua" not in headers

    def test_context_options(self) -> None:
        """
        Given: A fingerprint
        When: Converted to new_context options
        Then: Locale, timezone, viewport and hardening flags are set
        """
        options = self._make(USER_AGENTS[1]).to_context_options()

        assert options["locale"] == "fr-FR"
        assert options["timezone_id"] == "Europe/Paris"
        assert options["viewport"] == {"width": 1366, "height": 768}
        assert options["bypass_csp"] is True
        assert options["service_workers"] == "block"
        assert options["extra_http_headers"]["Sec-Ch-Ua-Platform"] == '"macOS"'
