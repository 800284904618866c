"""Tests for the catalog-scrape command line."""

import json

import pytest
from rich.console import Console

from core.config import ScraperConfig
from core.retry_controller import RetryReport
from scripts import catalog_scrape
from utils.config_loader import config_loader
from utils.error_handling import VisitError

URL = "https://www.ebay.com/b/Toys-Hobbies/220/bn_1865497"


@pytest.fixture
def quiet_logging(monkeypatch):
    calls = []
    monkeypatch.setattr(catalog_scrape, "setup_logger", lambda *args, **kwargs: calls.append(kwargs))
    return calls


@pytest.fixture
def fake_run(monkeypatch):
    """Replace the crawl with a recorder of the config it was given."""
    seen = []

    async def run(self):
        seen.append(self.config)

    monkeypatch.setattr(catalog_scrape.CatalogScraper, "run", run)
    return seen


class TestLoadConfig:
    def test_flags_map_to_config_fields(self):
        args = catalog_scrape.build_parser().parse_args([
            f"--url={URL}",
            "--output=custom_output.jsonl",
            "--retries-categories=4",
            "--max-categories=2",
            "--skip-category-scraping",
            "--log-level=info",
        ])

        config = catalog_scrape.load_config(args)

        assert config.target_url == URL
        assert config.output_file == "custom_output.jsonl"
        assert config.max_retries_categories == 4
        assert config.max_categories_per_page == 2
        assert config.skip_category_scraping is True
        assert config.log_level == "INFO"
        assert config.max_products_per_page == 20

    def test_settings_file_supplies_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"crawler": {"target_url": URL, "delay": 0.5, "max_products_per_page": 3}}))
        config_loader.clear_cache()
        args = catalog_scrape.build_parser().parse_args([f"--config={path}", "--max-products=9"])

        config = catalog_scrape.load_config(args)

        assert config.target_url == URL
        assert config.delay == 0.5
        assert config.max_products_per_page == 9

    def test_url_is_required(self):
        args = catalog_scrape.build_parser().parse_args([])
        with pytest.raises(catalog_scrape.ConfigurationError):
            catalog_scrape.load_config(args)


class TestMain:
    def test_missing_url_exits_with_error(self, quiet_logging, fake_run, capsys):
        assert catalog_scrape.main([]) == 1
        assert "--url flag is required" in capsys.readouterr().err
        assert fake_run == []
        assert quiet_logging == []

    def test_invalid_value_exits_with_error(self, quiet_logging, fake_run):
        assert catalog_scrape.main([f"--url={URL}", "--retries-products=0"]) == 1
        assert fake_run == []

    def test_successful_run(self, quiet_logging, fake_run, tmp_path):
        code = catalog_scrape.main([
            f"--url={URL}",
            f"--categories-file={tmp_path / 'leaves.txt'}",
            "--log-level=WARN",
        ])

        assert code == 0
        (config,) = fake_run
        assert config.categories_file == str(tmp_path / "leaves.txt")
        (logging_kwargs,) = quiet_logging
        assert logging_kwargs["level"] == 30

    def test_startup_failure_exits_with_error(self, quiet_logging, monkeypatch):
        async def run(self):
            raise FileNotFoundError(self.config.categories_file)

        monkeypatch.setattr(catalog_scrape.CatalogScraper, "run", run)

        assert catalog_scrape.main([f"--url={URL}", "--skip-category-scraping"]) == 1

    def test_scraper_error_exits_with_error(self, quiet_logging, monkeypatch):
        async def run(self):
            raise VisitError(URL, 0)

        monkeypatch.setattr(catalog_scrape.CatalogScraper, "run", run)

        assert catalog_scrape.main([f"--url={URL}"]) == 1


class TestRenderSummary:
    def test_rows_show_result_and_success_rate(self):
        scraper = catalog_scrape.CatalogScraper(ScraperConfig(target_url=URL))
        scraper.category_report = RetryReport("categories", 3, attempts=3, stalls=3)
        scraper.category_stats.pages_visited = 3
        scraper.category_stats.pages_failed = 1
        scraper.product_report = RetryReport("products", 3, attempts=1, succeeded=True)
        scraper.product_stats.pages_visited = 4
        scraper.product_stats.products_written = 4
        console = Console(record=True, width=120)

        catalog_scrape.render_summary(console, scraper)

        output = console.export_text()
        assert "stalled" in output
        assert "75%" in output
        assert "100%" in output

    def test_skipped_pass_has_no_success_rate(self):
        scraper = catalog_scrape.CatalogScraper(ScraperConfig(target_url=URL))
        scraper.product_report = RetryReport("products", 3, attempts=1, succeeded=True)
        console = Console(record=True, width=120)

        catalog_scrape.render_summary(console, scraper)

        output = console.export_text()
        assert "skipped" in output
        assert "0%" in output
