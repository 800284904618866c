"""Product link discovery on leaf listing pages and product detail extraction."""

from __future__ import annotations

import logging
from typing import Dict, List

from pydantic import BaseModel, Field

from network.collector import HTMLElement
from utils.error_handling import ExtractionError

logger = logging.getLogger(__name__)

LISTING_LINK_SELECTOR = "a.s-item__link"
SIGNAL_LINK_SELECTOR = "a.bsig__title__wrapper"
ITEM_PATH_MARKER = "ebay.com/itm/"

DETAILS_ROOT_SELECTOR = ".vim.x-vi-evo-main-container.template-evo-avip"

BREADCRUMB_SELECTOR = "nav.breadcrumbs li > a > span"
NAME_SELECTOR = "h1.x-item-title__mainTitle > span.ux-textspans.ux-textspans--BOLD"
PRICE_SELECTOR = "div.x-price-primary > span"
AVAILABLE_SELECTOR = "div.d-quantity__availability > div > span:first-child"
SOLD_SELECTOR = "div.d-quantity__availability > div > span:last-child"
VARIANT_LABEL_SELECTOR = "label.x-msku__label"
VARIANT_NAME_SELECTOR = "span.x-msku__label-text > span"
VARIANT_OPTION_SELECTOR = "span.x-msku__select-box-wrapper > select > option:not(:first-child)"
IMAGE_SELECTOR = (
    "div.ux-image-carousel-container div[tabindex='0'] "
    "div.ux-image-carousel-item.image-treatment.image > img"
)
SPEC_COLUMN_SELECTOR = "div.vim.x-about-this-item div.ux-layout-section-evo__col"
SPEC_LABEL_SELECTOR = "div.ux-labels-values__labels-content span.ux-textspans"
SPEC_VALUE_SELECTOR = "div.ux-labels-values__values-content span.ux-textspans"


class ProductRecord(BaseModel):
    """One product as written to the JSON lines output."""

    url: str
    categories: List[str] = Field(default_factory=list)
    name: str
    price: str
    available: str = ""
    sold: str = ""
    image_links: List[str] = Field(default_factory=list)
    specs: Dict[str, str] = Field(default_factory=dict)
    attributes: Dict[str, List[str]] = Field(default_factory=dict)


def strip_query(link: str) -> str:
    return link.split("?")[0]


def extract_product_links(page: HTMLElement, max_products: int) -> List[str]:
    """Product URLs on a listing page, at most ``max_products`` per layout."""
    links: List[str] = []

    count = 0
    for node in page.tag.select(LISTING_LINK_SELECTOR):
        if count >= max_products:
            break
        href = HTMLElement(node, page.response).attr("href").strip()
        if not href:
            continue
        links.append(strip_query(page.absolute_url(href)))
        count += 1

    count = 0
    for node in page.tag.select(SIGNAL_LINK_SELECTOR):
        if count >= max_products:
            break
        href = HTMLElement(node, page.response).attr("href").strip()
        link = strip_query(page.absolute_url(href)) if href else ""
        if ITEM_PATH_MARKER in link:
            links.append(link)
            count += 1

    for link in links:
        logger.debug("product url found url=%s", link)
    return links


def parse_product_details(page: HTMLElement) -> ProductRecord:
    """Build a ProductRecord from a product detail container.

    Raises:
        ExtractionError: breadcrumb categories, name or price is missing
    """
    url = page.request.url

    # Step 1. Category breadcrumb
    categories = [text for text in page.child_texts(BREADCRUMB_SELECTOR) if text]
    if not categories:
        raise ExtractionError("Failed to scrape product categories", {"url": url})

    # Step 2. Name
    name = page.child_text(NAME_SELECTOR)
    if not name:
        raise ExtractionError("Failed to scrape product name", {"url": url})

    # Step 3. Price
    price = page.child_text(PRICE_SELECTOR)
    if not price:
        raise ExtractionError("Failed to scrape product price", {"url": url})

    # Step 4. Available and sold counts
    available = page.child_text(AVAILABLE_SELECTOR)
    sold = page.child_text(SOLD_SELECTOR)

    # Step 5. Variants
    attributes: Dict[str, List[str]] = {}

    def collect_variant(_: int, label: HTMLElement) -> None:
        attribute = label.child_text(VARIANT_NAME_SELECTOR)
        attributes[attribute] = label.child_texts(VARIANT_OPTION_SELECTOR)

    page.for_each(VARIANT_LABEL_SELECTOR, collect_variant)

    # Step 6. Image links, lazy-loaded source first
    image_links: List[str] = []

    def collect_image(_: int, img: HTMLElement) -> None:
        source = img.attr("data-src") or img.attr("src")
        if source:
            image_links.append(source)

    page.for_each(IMAGE_SELECTOR, collect_image)

    # Step 7. Item specifics
    specs: Dict[str, str] = {}

    def collect_spec(_: int, column: HTMLElement) -> None:
        label = column.child_text(SPEC_LABEL_SELECTOR)
        if label:
            specs[label] = column.child_text(SPEC_VALUE_SELECTOR)

    page.for_each(SPEC_COLUMN_SELECTOR, collect_spec)

    return ProductRecord(
        url=url,
        categories=categories,
        name=name,
        price=price,
        available=available,
        sold=sold,
        image_links=image_links,
        specs=specs,
        attributes=attributes,
    )
