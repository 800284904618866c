"""
Product extraction over the leaf-category checkpoint file.

Lines are read in binary so the read cursor is an exact byte offset. A line
is committed (the cursor moves past it) once its visit has been dispatched and
did not stall. A stall aborts the attempt with the cursor still at the
stalled line, and the next attempt seeks back to it. Committed lines are never
dispatched again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from core.config import ScraperConfig
from core.outcome import TraversalOutcome
from core.retry_controller import RetryController, RetryReport
from core.types import PHASE_PRODUCTS, PassStats
from network.collector import Collector, HTMLElement, Request, Response, validate_url
from parsers.product_parser import (
    DETAILS_ROOT_SELECTOR,
    extract_product_links,
    parse_product_details,
)
from utils.error_handling import ExtractionError, InvalidURLError, ScraperError, StallError
from utils.export_writers import ProductWriter
from utils.logger import log_event

logger = logging.getLogger(__name__)

OUTCOME_KEY = "outcome"


@dataclass
class ReadCursor:
    """Byte offset of the last committed line boundary."""

    offset: int = 0
    line_number: int = 0

    def advance(self, size: int) -> None:
        self.offset += size
        self.line_number += 1


class ProductPassDriver:
    def __init__(self, config: ScraperConfig, stats: Optional[PassStats] = None):
        self.config = config
        self.stats = stats or PassStats(PHASE_PRODUCTS)

    async def run(self) -> RetryReport:
        """Product pass over the whole checkpoint file, with retries.

        Raises:
            OSError: the checkpoint file cannot be opened or the output file
                cannot be created
        """
        logger.info("Started scraping product details pages")
        cursor = ReadCursor()
        controller = RetryController(
            "products", self.config.max_retries_products, self.config.retry_backoff
        )
        with open(self.config.categories_file, "rb") as handle:
            with ProductWriter(Path(self.config.output_file)).open() as writer:
                report = await controller.run(
                    lambda attempt: self.read_attempt(handle, cursor, writer, attempt)
                )
        logger.info(
            "Product pass finished: %d lines committed, %d products written",
            cursor.line_number, self.stats.products_written,
        )
        return report

    async def read_attempt(
        self,
        handle: BinaryIO,
        cursor: ReadCursor,
        writer: ProductWriter,
        attempt: int,
    ) -> None:
        """Process lines from ``cursor`` to end of file.

        Raises:
            StallError: a leaf visit stalled; the cursor stays on that line
            Exception: an unexpected failure of a leaf visit, unchanged
        """
        handle.seek(cursor.offset)
        listing, details = self.build_collectors(writer)

        async with listing, details:
            while True:
                raw = handle.readline()
                if not raw:
                    break

                leaf_url = raw.decode("utf-8", errors="replace").strip()
                logger.debug("[line:%d pos:%d] %r", cursor.line_number + 1, cursor.offset, leaf_url)
                if not leaf_url:
                    cursor.advance(len(raw))
                    continue

                try:
                    leaf_url = validate_url(leaf_url)
                except InvalidURLError as exc:
                    self.stats.lines_skipped += 1
                    log_event(logger, logging.ERROR, "URL parsing error", "product",
                              category=leaf_url, error=exc)
                    cursor.advance(len(raw))
                    continue

                self.stats.lines_dispatched += 1
                error = await self.visit_leaf(listing, details, leaf_url)
                if isinstance(error, StallError):
                    log_event(logger, logging.WARNING, "Leaf visit stalled", "product",
                              attempt=attempt, url=leaf_url, offset=cursor.offset)
                    raise error
                if error is not None and not isinstance(error, ScraperError):
                    raise error

                cursor.advance(len(raw))
                if error is None:
                    log_event(logger, logging.INFO, "Details page scraped", "product", url=leaf_url)
                else:
                    log_event(logger, logging.ERROR, "Failed to scrape product details page",
                              "product", category=leaf_url, error=error)

    async def visit_leaf(
        self, listing: Collector, details: Collector, leaf_url: str
    ) -> Optional[BaseException]:
        """Visit one leaf page and its product pages; returns the outcome."""
        outcome = TraversalOutcome()
        task = asyncio.create_task(self._dispatch(listing, details, leaf_url, outcome))
        try:
            return await outcome.wait()
        finally:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _dispatch(
        self,
        listing: Collector,
        details: Collector,
        leaf_url: str,
        outcome: TraversalOutcome,
    ) -> None:
        try:
            await listing.run(leaf_url, ctx={OUTCOME_KEY: outcome})
            await details.wait()
        except ScraperError as exc:
            outcome.offer(exc)
        except Exception as exc:
            logger.exception("Unexpected error visiting url=%s", leaf_url)
            outcome.offer(exc)
        finally:
            outcome.close()

    def build_collectors(self, writer: ProductWriter) -> Tuple[Collector, Collector]:
        listing = Collector(self.config.collector_config())
        details = listing.clone()

        def on_request(request: Request) -> None:
            logger.info("Visiting url=%s", request.url)

        def on_response(response: Response) -> None:
            self.stats.pages_visited += 1
            self.stats.record_status(response.status_code)
            logger.info("Visited url=%s", response.url)

        def on_listing_error(response: Response, err: BaseException) -> None:
            on_details_error(response, err)
            outcome = response.request.ctx.get(OUTCOME_KEY)
            if response.status_code == 0 and outcome is not None:
                outcome.offer(StallError(response.url, err))

        def on_details_error(response: Response, err: BaseException) -> None:
            self.stats.pages_failed += 1
            self.stats.record_status(response.status_code)
            log_event(
                logger, logging.ERROR, "Requesting Err", "fetch",
                url=response.url, status_code=response.status_code, err=err,
            )

        def on_listing_page(page: HTMLElement) -> None:
            self.schedule_products(details, page)

        def on_product(page: HTMLElement) -> None:
            self.scrape_details(page, writer)

        def on_scraped(response: Response) -> None:
            logger.info("Scraped url=%s", response.url)

        listing.on_request(on_request)
        listing.on_response(on_response)
        listing.on_error(on_listing_error)
        listing.on_html("body", on_listing_page)
        listing.on_scraped(on_scraped)

        details.on_request(on_request)
        details.on_response(on_response)
        details.on_error(on_details_error)
        details.on_html(DETAILS_ROOT_SELECTOR, on_product)
        return listing, details

    def schedule_products(self, details: Collector, page: HTMLElement) -> int:
        scheduled = 0
        for link in extract_product_links(page, self.config.max_products_per_page):
            try:
                details.visit(link)
            except ScraperError as exc:
                log_event(logger, logging.ERROR, "Visiting Err", "product", url=link, err=exc)
                continue
            scheduled += 1
        return scheduled

    def scrape_details(self, page: HTMLElement, writer: ProductWriter) -> None:
        logger.debug("Scraping product details url=%s", page.request.url)
        try:
            record = parse_product_details(page)
        except ExtractionError as exc:
            self.stats.products_dropped += 1
            log_event(logger, logging.WARNING, str(exc), "product", url=page.request.url)
            return
        if writer.write(record):
            self.stats.products_written += 1
