"""
Reader-mode extraction.

Turns a serialized rendered page into a clean article:
1. Noise removal (related posts, share widgets, nav/aside, ads, comments)
2. Link-density filter for "related / read more" blocks
3. readability-lxml article detection
4. Byline and site name from trafilatura metadata, with meta-tag fallback
5. Post-processing of the article HTML (links, downloads, paragraph ids, sanitizing)

Operates on a copy of the DOM; the live page is never touched.
"""

import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from unfurl.extractor.metadata import ParsedDocument
from unfurl.scraper.results import ReaderResult, ReaderStatus
from unfurl.utils.logging import get_logger

logger = get_logger(__name__)


NOISE_SELECTORS: tuple[str, ...] = (
    ".related",
    "#recommended",
    ".read-more",
    ".js-related-posts",
    ".wp-block-related-posts",
    ".entry-related",
    ".post-navigation",
    ".social-share",
    ".author-box",
    ".newsletter-signup",
    ".comments-area",
    "aside",
    "nav",
    ".widget",
    ".ads",
    ".ad-unit",
)

SOCIAL_DOMAINS: tuple[str, ...] = (
    "facebook.com",
    "twitter.com",
    "x.com",
    "pinterest.com",
    "whatsapp.com",
    "linkedin.com",
    "reddit.com",
    "instagram.com",
    "t.me",
    "telegram.me",
    "discord.com",
)

RELATED_HINT = re.compile(r"related|read|more|recommended", re.I)

DOWNLOAD_EXTENSION = re.compile(
    r"\.(pdf|zip|rar|7z|tar|gz|epub|mobi|apk|dmg|exe|msi|iso|mp3|flac|docx?|xlsx?|pptx?)(?:$|[?#])",
    re.I,
)
DOWNLOAD_HOSTS: tuple[str, ...] = (
    "drive.google.com",
    "mega.nz",
    "mediafire.com",
    "dropbox.com",
    "1drv.ms",
    "wetransfer.com",
)

STRIP_TAGS: tuple[str, ...] = ("script", "style", "noscript", "iframe", "object", "embed", "form")

MIN_BLOCK_TEXT = 100
LINK_DENSITY_THRESHOLD = 0.4


def _host_matches(host: str, domains: tuple[str, ...]) -> bool:
    host = host.lower()
    return any(host == d or host.endswith("." + d) for d in domains)


def _hint_of(tag: Tag) -> str:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = [classes]
    return " ".join([*classes, str(tag.get("id") or "")])


class ReaderExtractor:
    """Extracts a readable article from page HTML."""

    def remove_noise(self, soup: BeautifulSoup) -> int:
        """Drop known boilerplate blocks. Returns the number of removed elements."""
        removed = 0
        for selector in NOISE_SELECTORS:
            for tag in soup.select(selector):
                if tag.decomposed:
                    continue
                tag.decompose()
                removed += 1
        return removed

    def remove_link_heavy_blocks(self, soup: BeautifulSoup) -> int:
        """Drop "related / read more" blocks that are mostly links."""
        removed = 0
        for tag in soup.find_all(["div", "section", "ul", "ol"]):
            if tag.decomposed or not RELATED_HINT.search(_hint_of(tag)):
                continue
            text = tag.get_text(" ", strip=True)
            if len(text) < MIN_BLOCK_TEXT:
                continue
            links = len(tag.find_all("a"))
            if links * 20 / len(text) > LINK_DENSITY_THRESHOLD:
                tag.decompose()
                removed += 1
        return removed

    def postprocess(self, article_html: str, base_url: str) -> BeautifulSoup:
        """Clean readability output for display."""
        soup = BeautifulSoup(article_html, "lxml")

        for name in STRIP_TAGS:
            for tag in soup.find_all(name):
                tag.decompose()

        for tag in soup.find_all(True):
            for attr in [a for a in tag.attrs if a.lower().startswith("on")]:
                del tag[attr]

        for link in soup.find_all("a"):
            href = str(link.get("href") or "").strip()
            if not href or href.startswith("#"):
                continue
            absolute = urljoin(base_url, href)
            parsed = urlparse(absolute)
            if parsed.scheme not in ("http", "https", "mailto"):
                del link["href"]
                continue
            if _host_matches(parsed.hostname or "", SOCIAL_DOMAINS):
                link.decompose()
                continue
            link["href"] = absolute
            link["target"] = "_blank"
            link["rel"] = "noopener noreferrer"
            if DOWNLOAD_EXTENSION.search(parsed.path) or _host_matches(
                parsed.hostname or "", DOWNLOAD_HOSTS
            ):
                link["data-download"] = "true"
                link["class"] = [*(link.get("class") or []), "reader-download"]

        for image in soup.find_all("img"):
            src = str(image.get("src") or image.get("data-src") or "").strip()
            absolute = urljoin(base_url, src) if src else ""
            if urlparse(absolute).scheme not in ("http", "https"):
                image.decompose()
                continue
            image["src"] = absolute
            if image.has_attr("srcset"):
                del image["srcset"]

        for index, paragraph in enumerate(soup.find_all("p")):
            paragraph["id"] = f"reader-p-{index}"

        return soup

    def _byline_and_site(self, html: str, url: str) -> tuple[str | None, str | None]:
        byline = site_name = None
        try:
            import trafilatura

            meta = trafilatura.extract_metadata(html, default_url=url)
            if meta is not None:
                byline = meta.author or None
                site_name = meta.sitename or None
        except Exception as e:
            logger.debug("trafilatura metadata failed", url=url[:80], error=str(e))

        if byline is None or site_name is None:
            doc = ParsedDocument(html, url)
            byline = byline or doc.meta("author", "article:author") or None
            site_name = site_name or doc.meta("og:site_name", "application-name") or None
        return byline, site_name

    def extract(self, html: str, url: str) -> ReaderResult:
        """Extract the article from ``html``.

        Args:
            html: Serialized page HTML.
            url: Page URL, used to resolve relative links.

        Returns:
            ReaderResult; failures carry an error message and never raise.
        """
        try:
            from readability import Document
        except ImportError:
            logger.error("readability-lxml not installed")
            return ReaderResult.failure("Readability algorithm not available")

        if not html or not html.strip():
            return ReaderResult.failure("No readable content")

        try:
            soup = BeautifulSoup(html, "lxml")
            noise = self.remove_noise(soup)
            dense = self.remove_link_heavy_blocks(soup)

            document = Document(str(soup), url=url)
            title = (document.short_title() or document.title() or "").strip()
            summary = document.summary(html_partial=True)
        except Exception as e:
            logger.warning("Readability failed", url=url[:80], error=str(e))
            return ReaderResult.failure(f"Readability failed: {e}")

        cleaned = self.postprocess(summary, url)
        plain_text = re.sub(r"\n{3,}", "\n\n", cleaned.get_text("\n", strip=True)).strip()

        if title in ("", "[no-title]"):
            title = ParsedDocument(html, url).meta("og:title", "twitter:title")

        if not title or not plain_text:
            logger.info("No readable content", url=url[:80], has_title=bool(title))
            return ReaderResult.failure("No readable content")

        byline, site_name = self._byline_and_site(html, url)

        body = cleaned.body
        content = body.decode_contents() if body is not None else str(cleaned)

        logger.info(
            "Reader extraction complete",
            url=url[:80],
            text_length=len(plain_text),
            noise_removed=noise,
            link_blocks_removed=dense,
        )
        return ReaderResult(
            title=title,
            byline=byline,
            content=content,
            plain_text=plain_text,
            site_name=site_name,
            status=ReaderStatus.SUCCESS,
        )
