"""Challenge page detection and mitigation."""

from dataclasses import dataclass, field
from enum import Enum

from unfurl.crawler.page_inspector import PageInspector
from unfurl.utils.logging import get_logger

logger = get_logger(__name__)


class ChallengeKind(str, Enum):
    """Bot-interception middleware classes."""

    NONE = "none"
    # Interstitial that needs one click (or press-and-hold) on a proceed control
    INTERACTIVE = "interactive"
    # JS challenge that redirects by itself after a few seconds
    AUTOMATIC = "automatic"


@dataclass(frozen=True)
class ChallengeSignature:
    """What was recognised on a page.

    Attributes:
        kind: Challenge class.
        vendor: Best-effort vendor name (sucuri, cloudflare, ddos-guard, generic).
        press_and_hold: Whether the proceed control must be held rather than clicked.
        markers: Body-text fragments whose disappearance means the challenge cleared.
    """

    kind: ChallengeKind = ChallengeKind.NONE
    vendor: str = ""
    press_and_hold: bool = False
    markers: tuple[str, ...] = field(default_factory=tuple)

    @property
    def present(self) -> bool:
        return self.kind is not ChallengeKind.NONE


PROCEED_SELECTORS: list[str] = [
    'button:has-text("Proceed")',
    'button:has-text("Continue")',
    'button:has-text("Verify")',
    'a:has-text("Click to Proceed")',
    'a:has-text("Proceed to Page")',
    'input[type="submit"]',
    ".btn-sucuri",
    "#challenge-form button",
    'form button[type="submit"]',
    "#px-captcha",
    'div[role="button"]:has-text("Verify")',
    "#challenge-stage",
]

INTERACTIVE_MARKERS: tuple[str, ...] = (
    "Website Firewall",
    "Click to Proceed",
    "Proceed to Page",
    "Press & Hold",
    "Press and Hold",
    "Verify you are human",
)

AUTOMATIC_MARKERS: tuple[str, ...] = (
    "Checking your browser",
    "Just a moment",
    "DDoS protection by",
    "Please wait while we verify",
)

ACCESS_DENIED_MARKERS: tuple[str, ...] = ("Access Denied", "Access blocked", "Website Firewall")


def _is_challenge_page(content: str, headers: dict) -> bool:
    """Check if a fetched document is a challenge/captcha page.

    Patterns are specific to active challenges so that cookie banners or
    articles that merely mention CAPTCHA do not trip it.

    Args:
        content: Page content.
        headers: Response headers (lower-case keys).

    Returns:
        True if challenge detected.
    """
    content_lower = content.lower()

    cloudflare_challenge_indicators = [
        "cf-browser-verification",
        "_cf_chl_opt",
        "checking your browser before accessing",
        "please wait while we verify your browser",
        "ray id:</strong>",
    ]
    if any(ind in content_lower for ind in cloudflare_challenge_indicators):
        return True

    if "just a moment" in content_lower and (
        "cloudflare" in content_lower or "_cf_" in content_lower
    ):
        return True

    if "sucuri website firewall" in content_lower or "sucuri_cloudproxy_js" in content_lower:
        return True

    if "ddos-guard" in content_lower and "checking your browser" in content_lower:
        return True

    active_captcha_indicators = [
        'src="https://hcaptcha.com',
        'src="https://www.hcaptcha.com',
        'class="h-captcha"',
        'class="g-recaptcha"',
        'id="captcha-container"',
        'id="px-captcha"',
        'class="cf-turnstile"',
        "challenges.cloudflare.com/turnstile",
    ]
    if any(ind in content_lower for ind in active_captcha_indicators):
        return True

    # Challenge pages behind Cloudflare are tiny and carry a cf-ray header
    server = headers.get("server", "").lower()
    if "cloudflare" in server and headers.get("cf-ray") and len(content) < 5000:
        if "<body" in content_lower and content_lower.count("<div") < 10:
            return True

    return False


def detect_challenge(html: str, body_text: str) -> ChallengeSignature:
    """Classify a rendered page.

    Args:
        html: Serialized document HTML.
        body_text: Visible body text.

    Returns:
        ChallengeSignature (kind NONE when the page looks normal).
    """
    html_lower = html.lower()
    text_lower = body_text.lower()

    is_sucuri = "sucuri.net" in html_lower or "website firewall" in text_lower
    has_press_and_hold = "press & hold" in text_lower or "press and hold" in text_lower
    has_click_to_proceed = "click to proceed" in text_lower or "proceed to page" in text_lower
    has_verify_human = "verify you are human" in text_lower

    is_cloudflare = (
        "cf-browser-verification" in html_lower
        or "cf_chl_opt" in html_lower
        or "checking your browser" in text_lower
    )
    is_ddos_guard = "ddos-guard" in html_lower and (
        "checking your browser" in text_lower or "ddos protection by" in text_lower
    )

    if is_sucuri or has_press_and_hold or has_click_to_proceed:
        vendor = "sucuri" if is_sucuri else "generic"
        return ChallengeSignature(
            kind=ChallengeKind.INTERACTIVE,
            vendor=vendor,
            press_and_hold=has_press_and_hold,
            markers=INTERACTIVE_MARKERS,
        )

    if is_cloudflare or is_ddos_guard:
        return ChallengeSignature(
            kind=ChallengeKind.AUTOMATIC,
            vendor="cloudflare" if is_cloudflare else "ddos-guard",
            markers=AUTOMATIC_MARKERS,
        )

    # Standalone human-verification widget without a known vendor wrapper
    if has_verify_human:
        return ChallengeSignature(
            kind=ChallengeKind.INTERACTIVE,
            vendor="generic",
            markers=INTERACTIVE_MARKERS,
        )

    return ChallengeSignature()


def is_access_denied(body_text: str) -> bool:
    """Whether the visible text is a block page."""
    return any(marker in body_text for marker in ACCESS_DENIED_MARKERS)


class ChallengeDetector:
    """Detects interception pages on a live session and tries to get past them.

    Args:
        auto_wait: Upper bound (seconds) for an automatic challenge to redirect.
        click_wait: Upper bound (seconds) for the interstitial text to vanish after a click.
        settle_wait: Extra wait (seconds) once the challenge text is gone.
        hold_duration: Press-and-hold duration (seconds).
    """

    def __init__(
        self,
        auto_wait: float = 15.0,
        click_wait: float = 10.0,
        settle_wait: float = 1.0,
        hold_duration: float = 3.0,
    ):
        self._auto_wait = auto_wait
        self._click_wait = click_wait
        self._settle_wait = settle_wait
        self._hold_duration = hold_duration

    async def inspect(self, inspector: PageInspector) -> ChallengeSignature:
        html = await inspector.content()
        text = await inspector.body_text()
        return detect_challenge(html, text)

    async def handle(self, inspector: PageInspector, url: str = "") -> bool:
        """Detect and mitigate a challenge on the current page.

        Mitigation is best effort; the page may still be a challenge afterwards.

        Args:
            inspector: Page under inspection.
            url: For logging only.

        Returns:
            True if a challenge was present.
        """
        signature = await self.inspect(inspector)
        if not signature.present:
            return False

        logger.info(
            "Challenge detected",
            url=url[:80],
            kind=signature.kind.value,
            vendor=signature.vendor,
        )

        if signature.kind is ChallengeKind.INTERACTIVE:
            hold = self._hold_duration if signature.press_and_hold else 0.0
            selector = await inspector.click_first(PROCEED_SELECTORS, hold_seconds=hold)
            if selector is None:
                logger.info("No proceed control found", url=url[:80])
                return True
            cleared = await inspector.wait_for_text_gone(list(signature.markers), self._click_wait)
        else:
            cleared = await inspector.wait_for_text_gone(list(signature.markers), self._auto_wait)

        if cleared:
            await inspector.wait(self._settle_wait)

        logger.info(
            "Challenge handled",
            url=url[:80],
            kind=signature.kind.value,
            cleared=cleared,
        )
        return True
