"""
unfurl - link previews and reader-mode extraction for arbitrary URLs.
"""

from unfurl.scraper.orchestrator import (
    ScrapeOrchestrator,
    close_orchestrator,
    create_orchestrator,
    get_orchestrator,
    reset_orchestrator,
)
from unfurl.scraper.results import ReaderResult, ReaderStatus, ScrapePreviewResult, ScrapeStatus

__version__ = "0.1.0"

__all__ = [
    "ScrapeOrchestrator",
    "ScrapePreviewResult",
    "ScrapeStatus",
    "ReaderResult",
    "ReaderStatus",
    "create_orchestrator",
    "get_orchestrator",
    "close_orchestrator",
    "reset_orchestrator",
]
