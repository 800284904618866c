"""Two-pass catalog scraper: leaf-category discovery, then product extraction."""

import logging
from typing import Optional

from core.config import ScraperConfig
from core.crawl_driver import CategoryCrawlDriver
from core.product_pass import ProductPassDriver
from core.retry_controller import RetryReport
from core.types import PHASE_CATEGORIES, PHASE_PRODUCTS, PassStats


class CatalogScraper:
    """
    Runs the category pass (unless skipped) and then the product pass.

    A category pass that stalls out or fails fatally does not stop the product
    pass; it runs against whatever the checkpoint file holds. Neither pass
    raises for crawl failures. Only startup errors (bad target URL,
    unreadable or uncreatable files) propagate.
    """

    def __init__(self, config: ScraperConfig) -> None:
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.category_stats = PassStats(PHASE_CATEGORIES)
        self.product_stats = PassStats(PHASE_PRODUCTS)
        self.category_report: Optional[RetryReport] = None
        self.product_report: Optional[RetryReport] = None

    async def run(self) -> None:
        if self.config.skip_category_scraping:
            self.logger.info("Skipping category scraping; using %s", self.config.categories_file)
        else:
            await self.run_category_scrape()
        await self.run_products_scrape()

    async def run_category_scrape(self) -> RetryReport:
        driver = CategoryCrawlDriver(self.config, self.category_stats)
        self.category_report = await driver.run()
        if not self.category_report.succeeded:
            self.logger.error(
                "Category discovery incomplete after %d attempt(s); "
                "continuing with partial checkpoint %s",
                self.category_report.attempts,
                self.config.categories_file,
            )
        return self.category_report

    async def run_products_scrape(self) -> RetryReport:
        driver = ProductPassDriver(self.config, self.product_stats)
        self.product_report = await driver.run()
        return self.product_report
