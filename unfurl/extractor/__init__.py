"""
unfurl extractor module.

Metadata rules for previews and reader-mode article extraction.
"""

from unfurl.extractor.metadata import MetadataExtractionPipeline, PageMetadata, build_head_html
from unfurl.extractor.reader import ReaderExtractor

__all__ = [
    "MetadataExtractionPipeline",
    "PageMetadata",
    "build_head_html",
    "ReaderExtractor",
]
