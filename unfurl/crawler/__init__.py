"""
unfurl crawler module.

Browser lifecycle, fingerprints, request filtering, challenge handling
and the direct HTTP fetch path.
"""

from unfurl.crawler.browser_manager import (
    BrowserLaunchError,
    BrowserLifecycleManager,
    BrowserState,
    PlaywrightLauncher,
    RenderSession,
)
from unfurl.crawler.challenge_detector import (
    ChallengeDetector,
    ChallengeKind,
    ChallengeSignature,
    detect_challenge,
    is_access_denied,
)
from unfurl.crawler.fingerprint import Fingerprint, FingerprintRandomizer
from unfurl.crawler.http_fetcher import HTTPFetcher
from unfurl.crawler.page_inspector import HeadSnapshot, PageInspector, PlaywrightPageInspector
from unfurl.crawler.resource_gate import ResourceGate

__all__ = [
    "BrowserLaunchError",
    "BrowserLifecycleManager",
    "BrowserState",
    "PlaywrightLauncher",
    "RenderSession",
    "ChallengeDetector",
    "ChallengeKind",
    "ChallengeSignature",
    "detect_challenge",
    "is_access_denied",
    "Fingerprint",
    "FingerprintRandomizer",
    "HTTPFetcher",
    "HeadSnapshot",
    "PageInspector",
    "PlaywrightPageInspector",
    "ResourceGate",
]
