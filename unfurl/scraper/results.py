"""Result types for preview and reader scrapes."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class ScrapeStatus(str, Enum):
    """Outcome of a preview scrape."""

    SUCCESS = "success"
    BLOCKED = "blocked"
    FAILED = "failed"


class ReaderStatus(str, Enum):
    """Outcome of a reader scrape."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ScrapePreviewResult:
    """Link preview for one URL.

    Attributes:
        title: Page title ("" when not found).
        description: Summary text ("" when not found).
        image: Absolute preview image URL or "".
        favicon: Absolute icon URL or "".
        status: success, blocked or failed.
    """

    title: str = ""
    description: str = ""
    image: str = ""
    favicon: str = ""
    status: ScrapeStatus = ScrapeStatus.FAILED

    @property
    def ok(self) -> bool:
        return self.status is ScrapeStatus.SUCCESS

    @classmethod
    def success(
        cls, title: str, description: str = "", image: str = "", favicon: str = ""
    ) -> "ScrapePreviewResult":
        return cls(
            title=title,
            description=description,
            image=image,
            favicon=favicon,
            status=ScrapeStatus.SUCCESS,
        )

    @classmethod
    def failed(cls) -> "ScrapePreviewResult":
        return cls(status=ScrapeStatus.FAILED)

    @classmethod
    def blocked(cls) -> "ScrapePreviewResult":
        return cls(status=ScrapeStatus.BLOCKED)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class ReaderResult:
    """Readable article extracted from a page.

    ``blocked`` is only set on failures caused by an access block; the
    orchestrator uses it to decide whether a retry with backoff is worthwhile.
    """

    title: str = ""
    byline: str | None = None
    content: str = ""
    plain_text: str = ""
    site_name: str | None = None
    status: ReaderStatus = ReaderStatus.FAILED
    error: str | None = None
    blocked: bool = False

    @property
    def ok(self) -> bool:
        return self.status is ReaderStatus.SUCCESS

    @classmethod
    def failure(cls, error: str, *, blocked: bool = False) -> "ReaderResult":
        return cls(status=ReaderStatus.FAILED, error=error, blocked=blocked)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        return data


# ----------------------------------------------------------------------------
# Lightweight fetch outcomes
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class Usable:
    """The direct fetch produced an acceptable preview."""

    result: ScrapePreviewResult


@dataclass(frozen=True)
class Insufficient:
    """The page was fetched but lacks the required metadata."""

    reason: str


@dataclass(frozen=True)
class FetchError:
    """The request itself failed (network, TLS, HTTP error status, timeout)."""

    reason: str
    cause: BaseException | None = None


FetchOutcome = Usable | Insufficient | FetchError
