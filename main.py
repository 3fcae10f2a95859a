#!/usr/bin/env python3
"""
Main entry point for the HydraCrawl crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from hydracrawl import __version__
from hydracrawl.crawler.scheduler import CrawlSupervisor, CrawlSummary, start_crawl
from hydracrawl.utils.config import Config, config_from_dict, load_config, override_crawler
from hydracrawl.utils.logger import log_system_info, setup_logging


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.supervisor: Optional[CrawlSupervisor] = None
        self.logger = logging.getLogger(__name__)

    def _attach(self, supervisor: CrawlSupervisor):
        self.supervisor = supervisor

    def setup_signal_handlers(self):
        """Drain the crawl on SIGINT/SIGTERM instead of killing in-flight fetches."""
        loop = asyncio.get_running_loop()

        def request_stop(signame: str):
            self.logger.info(f"Received {signame}, draining crawl...")
            if self.supervisor:
                self.supervisor.stop('signal')

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, request_stop, sig.name)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass

    async def run(self, config: Config) -> CrawlSummary:
        """Run the crawler."""
        setup_logging(config.logging)
        log_system_info()
        self.setup_signal_handlers()

        crawler = config.crawler
        self.logger.info("=== HYDRACRAWL STARTING ===")
        self.logger.info(f"Seed URL: {crawler.seed_url}")
        self.logger.info(f"Max depth: {crawler.max_depth}")
        self.logger.info(f"Max pages: {crawler.max_pages_per_domain}")
        self.logger.info(f"Workers: {crawler.min_workers}-{crawler.max_workers} (dynamic)")
        self.logger.info(f"Excluded domains: {sorted(crawler.excluded_domains)}")
        self.logger.info(f"Output file: {config.output.resolve_path(crawler.seed_url)}")

        try:
            return await start_crawl(config, supervisor_ready=self._attach)
        finally:
            self.logger.info("=== HYDRACRAWL FINISHED ===")


def build_config(args: argparse.Namespace) -> Config:
    """Load the YAML config (if any) and apply command-line overrides."""
    if args.config:
        config = load_config(args.config)
    elif args.seed:
        config = config_from_dict({'crawler': {'seed_url': args.seed}})
    else:
        raise ValueError("Either --config or --seed is required")

    config = override_crawler(
        config,
        seed_url=args.seed,
        max_depth=args.max_depth,
        max_pages_per_domain=args.max_pages,
        excluded_domains=(frozenset(d for d in args.exclude.split(',') if d.strip())
                          if args.exclude is not None else None)
    )
    if args.output:
        config.output.file = args.output
    if args.log_level:
        config.logging.level = args.log_level
    return config


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="HydraCrawl - concurrent breadth-first web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hydracrawl --seed https://example.com                 # Crawl with defaults
  hydracrawl --config config.yaml                      # Run with a config file
  hydracrawl --config config.yaml --max-pages 1000     # Limit to 1000 pages
  hydracrawl --seed example.com --exclude facebook,youtube --output urls.txt
        """
    )

    parser.add_argument('--config', help='Path to YAML configuration file')
    parser.add_argument('--seed', help='Seed URL (overrides crawler.seed_url)')
    parser.add_argument('--max-depth', type=int, help='Maximum link depth from the seed')
    parser.add_argument('--max-pages', type=int, help='Maximum number of pages to crawl')
    parser.add_argument('--exclude', help='Comma-separated host substrings to skip')
    parser.add_argument('--output', help='File receiving one visited URL per line')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, WARNING, ...)')
    parser.add_argument('--version', action='version', version=f'HydraCrawl {__version__}')

    args = parser.parse_args(argv)

    if args.config and not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        return 1

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    app = CrawlerApp()
    try:
        summary = asyncio.run(app.run(config))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1

    print(f"Crawled {summary.pages_crawled} pages with {summary.errors} errors "
          f"in {summary.duration:.1f}s ({summary.stop_reason})")
    return 0


if __name__ == '__main__':
    sys.exit(main())
