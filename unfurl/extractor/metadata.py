"""
Metadata extraction for link previews.

An ordered chain of rules reads a parsed document. Each rule proposes
values for some fields; a rule only fills fields that earlier rules left
empty. Generic rules run first, then platform rules for sites whose
markup needs special handling.

Works on full HTML (lightweight fetch) as well as on a minimal head
rebuilt from a live page (see ``build_head_html``).
"""

import html as html_lib
import re
from collections.abc import Callable
from dataclasses import asdict, dataclass, fields
from typing import Any
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from unfurl.crawler.page_inspector import HeadSnapshot
from unfurl.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PageMetadata:
    """Extracted metadata. Empty string means not found."""

    title: str = ""
    description: str = ""
    image: str = ""
    logo: str = ""
    author: str = ""
    url: str = ""
    publisher: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def merge(self, candidates: dict[str, str]) -> None:
        """Fill empty fields from ``candidates``; non-empty fields are kept."""
        for f in fields(self):
            value = (candidates.get(f.name) or "").strip()
            if value and not getattr(self, f.name):
                setattr(self, f.name, value)


class ParsedDocument:
    """Parsed HTML with lookup helpers shared by the rules."""

    def __init__(self, html: str, url: str):
        self.url = url
        self.soup = BeautifulSoup(html or "", "lxml")
        parsed = urlparse(url)
        self.host = (parsed.hostname or "").lower()
        self.path = parsed.path
        self.query = parse_qs(parsed.query)

    def meta(self, *keys: str) -> str:
        """First non-empty content of a <meta> matched by property, name or itemprop."""
        for key in keys:
            for attr in ("property", "name", "itemprop"):
                tag = self.soup.find("meta", attrs={attr: key})
                if isinstance(tag, Tag):
                    content = tag.get("content")
                    if isinstance(content, str) and content.strip():
                        return _clean_text(content)
        return ""

    def link_href(self, *rels: str) -> str:
        """First href of a <link> whose rel matches one of ``rels`` exactly."""
        for rel in rels:
            wanted = rel.split()
            for tag in self.soup.find_all("link", href=True):
                tag_rel = [r.lower() for r in (tag.get("rel") or [])]
                if tag_rel == wanted:
                    return str(tag["href"]).strip()
        return ""

    def text_of(self, selector: str) -> str:
        tag = self.soup.select_one(selector)
        return _clean_text(tag.get_text(" ")) if tag is not None else ""

    def absolute(self, value: str) -> str:
        return absolute_http_url(value, self.url)

    def host_is(self, *domains: str) -> bool:
        return any(self.host == d or self.host.endswith("." + d) for d in domains)


def _clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", html_lib.unescape(value)).strip()


def absolute_http_url(value: str, base_url: str) -> str:
    """Resolve ``value`` against ``base_url``; "" unless the result is http(s)."""
    value = (value or "").strip()
    if not value:
        return ""
    if value.startswith("//"):
        value = "https:" + value
    try:
        resolved = urljoin(base_url, value)
    except ValueError:
        return ""
    if urlparse(resolved).scheme not in ("http", "https"):
        return ""
    return resolved


# =============================================================================
# Generic rules
# =============================================================================


def title_rule(doc: ParsedDocument) -> dict[str, str]:
    title = doc.meta("og:title", "twitter:title", "title")
    if not title and doc.soup.title is not None:
        title = _clean_text(doc.soup.title.get_text())
    return {"title": title}


def description_rule(doc: ParsedDocument) -> dict[str, str]:
    return {
        "description": doc.meta(
            "og:description", "twitter:description", "description"
        )
    }


def image_rule(doc: ParsedDocument) -> dict[str, str]:
    candidate = doc.meta(
        "og:image",
        "og:image:url",
        "og:image:secure_url",
        "twitter:image",
        "twitter:image:src",
        "image",
    ) or doc.link_href("image_src")
    return {"image": doc.absolute(candidate)}


def logo_rule(doc: ParsedDocument) -> dict[str, str]:
    candidate = doc.meta("og:logo", "logo") or doc.link_href(
        "icon", "shortcut icon", "apple-touch-icon"
    )
    return {"logo": doc.absolute(candidate)}


def author_rule(doc: ParsedDocument) -> dict[str, str]:
    author = doc.meta("author", "article:author", "byl", "dc.creator")
    if author.startswith(("http://", "https://")):
        author = ""
    if not author:
        tag = doc.soup.find("a", rel="author")
        if isinstance(tag, Tag):
            author = _clean_text(tag.get_text(" "))
    return {"author": author}


def url_rule(doc: ParsedDocument) -> dict[str, str]:
    candidate = doc.link_href("canonical") or doc.meta("og:url")
    return {"url": doc.absolute(candidate) or doc.url}


def publisher_rule(doc: ParsedDocument) -> dict[str, str]:
    return {"publisher": doc.meta("og:site_name", "application-name", "publisher")}


# =============================================================================
# Platform rules
# =============================================================================


def _youtube_video_id(doc: ParsedDocument) -> str:
    if doc.host_is("youtu.be"):
        return doc.path.strip("/").split("/")[0]
    if doc.path == "/watch":
        return (doc.query.get("v") or [""])[0]
    match = re.match(r"^/(?:shorts|embed|live)/([\w-]+)", doc.path)
    return match.group(1) if match else ""


def youtube_rule(doc: ParsedDocument) -> dict[str, str]:
    if not doc.host_is("youtube.com", "youtu.be"):
        return {}
    video_id = _youtube_video_id(doc)
    author = ""
    channel = doc.soup.select_one('[itemprop="author"] link[itemprop="name"]')
    if isinstance(channel, Tag):
        author = str(channel.get("content") or "")
    return {
        "image": f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg" if video_id else "",
        "author": author,
        "publisher": "YouTube",
    }


def twitter_rule(doc: ParsedDocument) -> dict[str, str]:
    if not doc.host_is("twitter.com", "x.com"):
        return {}
    handle = doc.path.strip("/").split("/")[0]
    return {
        "author": f"@{handle}" if handle and handle not in ("i", "home", "search") else "",
        "publisher": "X",
    }


def instagram_rule(doc: ParsedDocument) -> dict[str, str]:
    if not doc.host_is("instagram.com"):
        return {}
    author = ""
    # "Name (@handle) • Instagram photos and videos" / "Name on Instagram: ..."
    title = doc.meta("og:title") or (doc.soup.title.get_text() if doc.soup.title else "")
    match = re.search(r"@([\w.]+)", title) or re.match(r"^(.+?) on Instagram", title)
    if match:
        author = match.group(1)
    return {"author": author, "publisher": "Instagram"}


def amazon_rule(doc: ParsedDocument) -> dict[str, str]:
    if not doc.host_is(
        "amazon.com", "amazon.co.uk", "amazon.de", "amazon.fr", "amazon.es",
        "amazon.it", "amazon.ca", "amazon.co.jp", "amazon.in", "amzn.to",
    ):
        return {}
    image = ""
    tag = doc.soup.select_one("#landingImage, #imgBlkFront")
    if isinstance(tag, Tag):
        image = str(tag.get("data-old-hires") or tag.get("src") or "")
    return {
        "title": doc.text_of("#productTitle"),
        "description": doc.text_of("#productDescription"),
        "image": doc.absolute(image),
        "author": doc.text_of("#bylineInfo"),
        "publisher": "Amazon",
    }


Rule = Callable[[ParsedDocument], dict[str, str]]

DEFAULT_RULES: tuple[Rule, ...] = (
    title_rule,
    description_rule,
    image_rule,
    logo_rule,
    author_rule,
    url_rule,
    publisher_rule,
    youtube_rule,
    twitter_rule,
    instagram_rule,
    amazon_rule,
)


class MetadataExtractionPipeline:
    """Runs the rule chain over a document.

    Args:
        rules: Ordered rules; earlier rules take precedence per field.
    """

    def __init__(self, rules: tuple[Rule, ...] = DEFAULT_RULES):
        self._rules = rules

    def extract(self, html: str, url: str) -> PageMetadata:
        """Extract metadata from ``html`` served at ``url``.

        A rule that raises is logged and skipped; the remaining rules still run.
        """
        doc = ParsedDocument(html, url)
        metadata = PageMetadata()
        for rule in self._rules:
            try:
                metadata.merge(rule(doc))
            except Exception as e:
                logger.warning("Metadata rule failed", rule=rule.__name__, url=url[:80], error=str(e))
        return metadata


def build_head_html(snapshot: HeadSnapshot) -> str:
    """Rebuild a minimal document from a live page's title and meta elements."""
    title = html_lib.escape(snapshot.title or "")
    metas = "".join(snapshot.metas)
    return f"<html><head><title>{title}</title>{metas}</head><body></body></html>"
