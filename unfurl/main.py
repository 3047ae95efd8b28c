"""
Command-line entry point for unfurl.
"""

import asyncio
import json
import sys
from typing import Any

from unfurl.utils.config import get_settings
from unfurl.utils.logging import configure_logging, get_logger


async def initialize(log_level: str | None = None) -> None:
    """Initialize the application."""
    settings = get_settings()
    configure_logging(log_level=log_level or settings.general.log_level)

    logger = get_logger(__name__)
    logger.info(
        "unfurl initializing",
        log_level=log_level or settings.general.log_level,
        max_workers=settings.concurrency.max_workers,
    )


async def shutdown() -> None:
    """Shutdown the application."""
    from unfurl.scraper.orchestrator import close_orchestrator

    logger = get_logger(__name__)
    await close_orchestrator()
    logger.info("unfurl shutdown complete")


async def run_command(command: str, url: str) -> dict[str, Any]:
    """Run one scrape command and return its JSON-ready result."""
    from unfurl.scraper.orchestrator import get_orchestrator

    orchestrator = get_orchestrator()

    if command == "preview":
        return (await orchestrator.smart_scrape(url)).to_dict()
    if command == "advanced":
        return (await orchestrator.advanced_scrape(url)).to_dict()
    if command == "reader":
        return (await orchestrator.reader_scrape(url)).to_dict()
    raise ValueError(f"Unknown command: {command}")


def main() -> None:
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="unfurl - link previews and reader-mode extraction"
    )
    parser.add_argument(
        "command",
        choices=["preview", "advanced", "reader"],
        help="preview: fetch then render on failure; advanced: always render; reader: article",
    )
    parser.add_argument("url", type=str, help="URL to process")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Override the configured log level",
    )

    args = parser.parse_args()

    async def async_main() -> dict[str, Any]:
        await initialize(args.log_level)
        try:
            return await run_command(args.command, args.url)
        finally:
            await shutdown()

    result = asyncio.run(async_main())
    json.dump(result, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
