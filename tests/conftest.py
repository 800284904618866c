"""Shared fixtures: an in-memory catalog site served through httpx.MockTransport."""

from pathlib import Path
from typing import Callable, Dict, List, Union
import sys

import httpx
import pytest
from bs4 import BeautifulSoup

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import ScraperConfig  # noqa: E402
from network.collector import HTMLElement, Request, Response  # noqa: E402

ROOT_URL = "https://www.ebay.com/b/Toys-Hobbies/220/bn_1865497"

PageEntry = Union[tuple, Callable[[httpx.Request], httpx.Response]]


class FakeSite:
    """Maps URLs to (status, html) pairs or to handlers; unknown URLs 404."""

    def __init__(self, pages: Dict[str, PageEntry]):
        self.pages = dict(pages)
        self.requests: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        entry = self.pages.get(url)
        if entry is None:
            return httpx.Response(404, text="not found", headers={"content-type": "text/html"})
        if callable(entry):
            return entry(request)
        status, html = entry
        return httpx.Response(status, text=html, headers={"content-type": "text/html"})

    def count(self, url: str) -> int:
        return self.requests.count(url)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def stall_then(html: str, failures: int = 1) -> Callable[[httpx.Request], httpx.Response]:
    """Handler that raises ConnectError ``failures`` times, then serves ``html``."""
    calls = {"n": 0}

    def _handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] <= failures:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text=html, headers={"content-type": "text/html"})

    return _handler


def always_stall(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectTimeout("timed out", request=request)


def make_page(html: str, url: str = ROOT_URL) -> HTMLElement:
    """HTMLElement for the <body> of ``html`` as if fetched from ``url``."""
    request = Request(url=url)
    response = Response(
        request=request,
        status_code=200,
        body=html.encode("utf-8"),
        headers={"content-type": "text/html"},
    )
    soup = BeautifulSoup(html, "html.parser")
    return HTMLElement(soup.select_one("body"), response)


def shop_by_category_section(hrefs: List[str], title: str = "Shop by Category", see_all: bool = False) -> str:
    links = "".join(f'<a class="b-textlink" href="{href}">Category {i}</a>' for i, href in enumerate(hrefs))
    if see_all:
        links += '<a class="b-textlink" href="/b/see-all">See all - Toys</a>'
    return (
        '<div class="dialog__cell"><section>'
        f'<h2 class="section-title__title">{title}</h2>{links}'
        "</section></div>"
    )


def category_nav_section(hrefs: List[str], title: str = "Shop by Category") -> str:
    links = "".join(
        f'<a class="textual-display brw-category-nav__link" href="{href}">Nav {i}</a>'
        for i, href in enumerate(hrefs)
    )
    return (
        '<div class="brw-nav-wrapper"><section class="brw-category-nav brw-has-parentnode">'
        f'<span class="textual-display brw-category-nav__title">{title}</span>{links}'
        "</section></div>"
    )


def feature_module(title: str, classes: str = "b-module b-visualnav") -> str:
    return (
        f'<div class="module-wrapper"><section class="{classes}">'
        f'<h2 class="section-title__title">{title}</h2>'
        "</section></div>"
    )


def html_page(*parts: str) -> str:
    return "<html><head><title>Catalog</title></head><body>" + "".join(parts) + "</body></html>"


def listing_page(*product_urls: str) -> str:
    links = "".join(f'<a class="s-item__link" href="{url}?hash=item1">Item</a>' for url in product_urls)
    return html_page(f'<ul class="srp-results">{links}</ul>')


def product_page(name: str, price: str = "US $19.99") -> str:
    return html_page(
        '<div class="vim x-vi-evo-main-container template-evo-avip">'
        '<nav class="breadcrumbs"><ul>'
        '<li><a href="/b/toys"><span>Toys &amp; Hobbies</span></a></li>'
        '<li><a href="/b/models"><span>Models &amp; Kits</span></a></li>'
        "</ul></nav>"
        '<h1 class="x-item-title__mainTitle">'
        f'<span class="ux-textspans ux-textspans--BOLD">{name}</span></h1>'
        f'<div class="x-price-primary"><span>{price}</span></div>'
        '<div class="d-quantity__availability"><div>'
        "<span>More than 10 available</span><span>25 sold</span>"
        "</div></div>"
        "</div>"
    )


@pytest.fixture
def make_config(tmp_path: Path):
    """Build a fast, offline ScraperConfig bound to a FakeSite."""

    def _make(site: FakeSite, **overrides) -> ScraperConfig:
        settings = {
            "target_url": ROOT_URL,
            "output_file": str(tmp_path / "output" / "scraped_data.jsonl"),
            "categories_file": str(tmp_path / "leaf_categories.txt"),
            "cache_dir": None,
            "delay": 0.0,
            "random_delay": 0.0,
            "rotate_user_agent": False,
            "log_level": "DEBUG",
            "transport": site.transport,
        }
        settings.update(overrides)
        return ScraperConfig(**settings)

    return _make
