"""
Leaf-category discovery.

One traversal visits the root category page and every child category the
expander schedules from it, transitively. Leaf pages go to the checkpoint
sink. The traversal ends with exactly one outcome: success, a stall
(connection-level failure anywhere in the tree), or a fatal error of the root
visit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.category_expander import expand_categories
from core.classifier import is_leaf_category_page
from core.config import ScraperConfig
from core.leaf_sink import LeafSink
from core.outcome import TraversalOutcome
from core.retry_controller import RetryController, RetryReport
from core.types import PHASE_CATEGORIES, PassStats
from network.collector import Collector, HTMLElement, Request, Response
from utils.error_handling import ScraperError, StallError
from utils.logger import log_event

logger = logging.getLogger(__name__)


class CategoryCrawlDriver:
    """Runs category-discovery traversals against a fresh collector each time."""

    def __init__(self, config: ScraperConfig, stats: Optional[PassStats] = None):
        self.config = config
        self.stats = stats or PassStats(PHASE_CATEGORIES)

    async def run(self) -> RetryReport:
        """Category pass: truncate the checkpoint file and traverse with retries.

        A target URL the collector rejects ends the first attempt as fatal.

        Raises:
            OSError: the checkpoint file cannot be created
        """
        root_url = self.config.target_url
        controller = RetryController(
            "categories", self.config.max_retries_categories, self.config.retry_backoff
        )
        with LeafSink.open(self.config.categories_file, dedupe=self.config.dedupe_leaves) as sink:
            report = await controller.run(lambda attempt: self.traverse(root_url, sink))
        logger.info(
            "Category pass finished: %d leaves recorded, %d pages visited",
            sink.recorded, self.stats.pages_visited,
        )
        return report

    async def traverse(self, root_url: str, sink: LeafSink) -> None:
        """One traversal attempt.

        Raises:
            StallError: a page failed without an HTTP status
            ScraperError: the root visit failed for any other reason
            Exception: any unexpected failure of the root visit, unchanged
        """
        log_event(logger, logging.INFO, "Started scraping root category page", "category", url=root_url)
        outcome = TraversalOutcome()
        collector = self.build_collector(root_url, sink, outcome)

        visit = asyncio.create_task(self._visit_root(collector, root_url, outcome))
        try:
            error = await outcome.wait()
        finally:
            # a stall may be reported while child visits are still running
            if not visit.done():
                visit.cancel()
            await asyncio.gather(visit, return_exceptions=True)
            await collector.close()
            sink.flush()

        if error is not None:
            raise error

    def build_collector(self, root_url: str, sink: LeafSink, outcome: TraversalOutcome) -> Collector:
        collector = Collector(self.config.collector_config())

        def on_request(request: Request) -> None:
            logger.info("Visiting url=%s", request.url)

        def on_response(response: Response) -> None:
            self.stats.pages_visited += 1
            self.stats.record_status(response.status_code)
            logger.info("Visited url=%s", response.url)

        def on_error(response: Response, err: BaseException) -> None:
            self.stats.pages_failed += 1
            self.stats.record_status(response.status_code)
            log_event(
                logger, logging.ERROR, "Requesting Err", "fetch",
                url=response.url, status_code=response.status_code, err=err,
            )
            if response.status_code == 0:
                outcome.offer(StallError(response.url, err))

        def on_page(page: HTMLElement) -> None:
            self.collect_leaf_category_urls(collector, page, root_url, sink)

        def on_scraped(response: Response) -> None:
            logger.info("Scraped url=%s", response.url)

        collector.on_request(on_request)
        collector.on_response(on_response)
        collector.on_error(on_error)
        collector.on_html("body", on_page)
        collector.on_scraped(on_scraped)
        return collector

    def collect_leaf_category_urls(
        self,
        collector: Collector,
        page: HTMLElement,
        root_url: str,
        sink: LeafSink,
    ) -> None:
        if is_leaf_category_page(page, root_url):
            if sink.record_leaf(page.request.url):
                self.stats.leaves_recorded += 1
            return
        expand_categories(page, collector.visit, self.config.max_categories_per_page)

    async def _visit_root(self, collector: Collector, root_url: str, outcome: TraversalOutcome) -> None:
        try:
            await collector.run(root_url)
        except ScraperError as exc:
            log_event(logger, logging.ERROR, "Visiting Err", "category", url=root_url, err=exc)
            outcome.offer(exc)
        except Exception as exc:
            # reported as the outcome; close() must not turn it into success
            logger.exception("Unexpected error visiting url=%s", root_url)
            outcome.offer(exc)
        finally:
            outcome.close()
