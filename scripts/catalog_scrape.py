#!/usr/bin/env python3
"""Command-line entry point: discover leaf categories, then scrape products."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from core.config import ScraperConfig
from core.retry_controller import RetryReport
from core.scraper_engine import CatalogScraper
from core.types import PassStats
from utils.config_loader import config_loader
from utils.error_handling import ConfigurationError, ScraperError
from utils.logger import setup_logger

EXAMPLE = (
    "catalog-scrape --url=https://www.ebay.com/b/Toys-Hobbies/220/bn_1865497 "
    "--output=custom_output.jsonl --retries-categories=3 --log-level=INFO"
)

# CLI flag -> ScraperConfig field
FLAG_FIELDS = {
    "url": "target_url",
    "output": "output_file",
    "categories_file": "categories_file",
    "retries_categories": "max_retries_categories",
    "retries_products": "max_retries_products",
    "max_categories": "max_categories_per_page",
    "max_products": "max_products_per_page",
    "skip_category_scraping": "skip_category_scraping",
    "dedupe_leaves": "dedupe_leaves",
    "log_level": "log_level",
    "log_file": "log_file",
    "cache_dir": "cache_dir",
    "delay": "delay",
    "random_delay": "random_delay",
    "domain_glob": "domain_glob",
    "parallelism": "parallelism",
    "timeout": "timeout",
    "retry_backoff": "retry_backoff",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-scrape",
        description="A scraper for catalog products data.",
        epilog=f"Example:\n  {EXAMPLE}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", help="Target URL to scrape (required)")
    parser.add_argument("--output", help="Output file path (default: output/scraped_data.jsonl)")
    parser.add_argument("--categories-file", help="File to store leaf category URLs (default: leaf_categories.txt)")
    parser.add_argument("--retries-categories", type=int, help="Maximum number of retry attempts for category scraping (default: 3)")
    parser.add_argument("--retries-products", type=int, help="Maximum number of retry attempts for product scraping (default: 3)")
    parser.add_argument("--max-categories", type=int, help="Maximum number of child categories to scrape per page (default: 5)")
    parser.add_argument("--max-products", type=int, help="Maximum number of products to scrape per page (default: 20)")
    parser.add_argument("--skip-category-scraping", action="store_true", default=None, help="Skip category scraping")
    parser.add_argument("--dedupe-leaves", action="store_true", default=None, help="Write each leaf URL at most once")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARN, ERROR; default: DEBUG)")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--structured-log", help="Write JSON-lines logs to this file")
    parser.add_argument("--cache-dir", help="Directory for caching scraped pages (default: ./cache)")
    parser.add_argument("--delay", type=float, help="Delay between requests in seconds (default: 2)")
    parser.add_argument("--random-delay", type=float, help="Maximum random delay added to the base delay (default: 1)")
    parser.add_argument("--domain-glob", help="Domains the delay applies to (default: *.ebay.com)")
    parser.add_argument("--parallelism", type=int, help="Concurrent requests per matching domain (default: 1)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds (default: 30)")
    parser.add_argument("--retry-backoff", type=float, help="Seconds of linear backoff between stalled attempts (default: 0)")
    parser.add_argument("--config", help="JSON settings file; its 'crawler' section provides defaults")
    return parser


def load_config(args: argparse.Namespace) -> ScraperConfig:
    """Settings file values overridden by explicit CLI flags.

    Raises:
        ConfigurationError: unreadable settings file or invalid values
    """
    file_settings: Dict[str, Any] = {}
    if args.config:
        loaded = config_loader.load_config(args.config)
        file_settings = dict(config_loader.get_section(loaded, "crawler"))

    overrides = {field: getattr(args, flag) for flag, field in FLAG_FIELDS.items()}
    if not (overrides.get("target_url") or file_settings.get("target_url")):
        raise ConfigurationError("--url flag is required")
    return ScraperConfig.from_sources(file_settings, overrides)


def render_summary(console: Console, scraper: CatalogScraper) -> None:
    table = Table(title="Crawl summary", box=box.SIMPLE_HEAVY)
    table.add_column("Pass")
    table.add_column("Attempts", justify="right")
    table.add_column("Result")
    table.add_column("Pages ok/failed", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Leaves", justify="right")
    table.add_column("Products", justify="right")

    rows: List[tuple[Optional[RetryReport], PassStats]] = [
        (scraper.category_report, scraper.category_stats),
        (scraper.product_report, scraper.product_stats),
    ]
    for report, stats in rows:
        if report is None:
            table.add_row(stats.phase, "-", "[dim]skipped[/dim]", "-", "-", "-", "-")
            continue
        if report.succeeded:
            result = "[green]ok[/green]"
        elif report.fatal:
            result = "[red]failed[/red]"
        else:
            result = "[yellow]stalled[/yellow]"
        table.add_row(
            stats.phase,
            f"{report.attempts}/{report.max_attempts}",
            result,
            f"{stats.pages_visited}/{stats.pages_failed}",
            f"{stats.success_rate:.0%}",
            str(stats.leaves_recorded),
            str(stats.products_written),
        )
    console.print(table)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console(stderr=True)

    try:
        config = load_config(args)
    except ConfigurationError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        parser.print_usage(sys.stderr)
        return 1

    setup_logger(
        None,
        level=config.log_level_value,
        log_file=config.log_file,
        structured_file=args.structured_log,
    )

    scraper = CatalogScraper(config)
    try:
        asyncio.run(scraper.run())
    except (ScraperError, OSError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return 1

    render_summary(console, scraper)
    return 0


if __name__ == "__main__":
    sys.exit(main())
