"""Tests for product link discovery and product detail extraction."""

import pytest

from conftest import html_page, listing_page, make_page, product_page
from network.collector import HTMLElement
from parsers.product_parser import (
    DETAILS_ROOT_SELECTOR,
    extract_product_links,
    parse_product_details,
    strip_query,
)
from utils.error_handling import ExtractionError

LEAF_URL = "https://www.ebay.com/b/Model-Kits/1188/bn_1865499"
PRODUCT_URL = "https://www.ebay.com/itm/1001"


def details_page(html: str, url: str = PRODUCT_URL):
    body = make_page(html, url)
    container = body.tag.select_one(DETAILS_ROOT_SELECTOR)
    return HTMLElement(container, body.response)


def test_strip_query():
    assert strip_query("https://www.ebay.com/itm/1?hash=abc&x=1") == "https://www.ebay.com/itm/1"
    assert strip_query("https://www.ebay.com/itm/1") == "https://www.ebay.com/itm/1"


class TestExtractProductLinks:
    def test_listing_links_are_capped_and_stripped(self):
        urls = [f"https://www.ebay.com/itm/{i}" for i in range(5)]
        page = make_page(listing_page(*urls), LEAF_URL)

        assert extract_product_links(page, 3) == urls[:3]

    def test_signal_links_require_item_path(self):
        html = html_page(
            '<a class="bsig__title__wrapper" href="https://www.ebay.com/itm/77?var=1">item</a>'
            '<a class="bsig__title__wrapper" href="https://www.ebay.com/str/shop">store</a>'
        )
        page = make_page(html, LEAF_URL)

        assert extract_product_links(page, 20) == ["https://www.ebay.com/itm/77"]

    def test_relative_links_are_resolved(self):
        html = html_page('<a class="s-item__link" href="/itm/55?hash=1">item</a>')
        page = make_page(html, LEAF_URL)

        assert extract_product_links(page, 20) == ["https://www.ebay.com/itm/55"]

    def test_each_layout_has_its_own_cap(self):
        html = html_page(
            '<a class="s-item__link" href="https://www.ebay.com/itm/1">a</a>'
            '<a class="s-item__link" href="https://www.ebay.com/itm/2">b</a>'
            '<a class="bsig__title__wrapper" href="https://www.ebay.com/itm/3">c</a>'
            '<a class="bsig__title__wrapper" href="https://www.ebay.com/itm/4">d</a>'
        )
        page = make_page(html, LEAF_URL)

        assert extract_product_links(page, 1) == [
            "https://www.ebay.com/itm/1",
            "https://www.ebay.com/itm/3",
        ]

    def test_zero_cap_yields_nothing(self):
        page = make_page(listing_page("https://www.ebay.com/itm/1"), LEAF_URL)
        assert extract_product_links(page, 0) == []


class TestParseProductDetails:
    def test_required_fields(self):
        record = parse_product_details(details_page(product_page("Tamiya Tiger I")))

        assert record.url == PRODUCT_URL
        assert record.categories == ["Toys & Hobbies", "Models & Kits"]
        assert record.name == "Tamiya Tiger I"
        assert record.price == "US $19.99"
        assert record.available == "More than 10 available"
        assert record.sold == "25 sold"

    def test_optional_sections(self):
        extras = (
            '<label class="x-msku__label">'
            '<span class="x-msku__label-text"><span>Color</span></span>'
            '<span class="x-msku__select-box-wrapper"><select>'
            "<option>- Select -</option><option>Red</option><option>Blue</option>"
            "</select></span></label>"
            '<div class="ux-image-carousel-container"><div tabindex="0">'
            '<div class="ux-image-carousel-item image-treatment image">'
            '<img data-src="https://i.ebayimg.com/1.jpg" src="placeholder.gif"></div>'
            '<div class="ux-image-carousel-item image-treatment image">'
            '<img src="https://i.ebayimg.com/2.jpg"></div>'
            "</div></div>"
            '<div class="vim x-about-this-item"><div class="ux-layout-section-evo__col">'
            '<div class="ux-labels-values__labels-content"><span class="ux-textspans">Brand</span></div>'
            '<div class="ux-labels-values__values-content"><span class="ux-textspans">Tamiya</span></div>'
            "</div></div>"
        )
        html = product_page("Tamiya Tiger I").replace("</div></body>", extras + "</div></body>")

        record = parse_product_details(details_page(html))

        assert record.attributes == {"Color": ["Red", "Blue"]}
        assert record.image_links == ["https://i.ebayimg.com/1.jpg", "https://i.ebayimg.com/2.jpg"]
        assert record.specs == {"Brand": "Tamiya"}

    @pytest.mark.parametrize(
        "broken, replacement",
        [
            ('<nav class="breadcrumbs">', '<nav class="gone">'),
            ("x-item-title__mainTitle", "x-item-title__other"),
            ("x-price-primary", "x-price-other"),
        ],
    )
    def test_missing_required_field_raises(self, broken, replacement):
        html = product_page("Tamiya Tiger I").replace(broken, replacement)
        with pytest.raises(ExtractionError):
            parse_product_details(details_page(html))
