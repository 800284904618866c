"""Leaf vs. branch detection for catalog category pages."""

import logging

from network.collector import HTMLElement

logger = logging.getLogger(__name__)

SHOP_BY_CATEGORY = "Shop by Category"
MODULE_TITLE_SELECTOR = "h2.section-title__title"

# Feature modules rendered on leaf category pages (carousels, visual
# navigation, guidance panels). Scanned in this order.
FEATURE_MODULE_SELECTORS = (
    "section.b-module.b-carousel.b-guidance.b-display--landscape:first-of-type",
    "section.b-module.b-carousel.b-guidance--text.b-display--landscape:first-of-type",
    "section.seo-guidance.seo-guidance__guidance_module:first-of-type",
    "section.b-module.b-visualnav:first-of-type",
    "section.brw-product-carousel:first-of-type",
)


def is_root_page(root_url: str, url: str) -> bool:
    return root_url == url


def is_leaf_category_page(page: HTMLElement, root_url: str) -> bool:
    """True when a feature module not titled "Shop by Category" is present
    and the page is the traversal root.

    A page without any feature module is a branch.
    """
    url = page.request.url
    is_leaf = False

    def check_title(_: int, module: HTMLElement) -> None:
        nonlocal is_leaf
        title = module.child_text(MODULE_TITLE_SELECTOR)
        if not title:
            logger.warning("Carousel title empty url=%s", url)
            return
        if title != SHOP_BY_CATEGORY and is_root_page(root_url, url):
            is_leaf = True

    for selector in FEATURE_MODULE_SELECTORS:
        page.for_each(selector, check_title)

    logger.debug("Page type detected is_leaf=%s url=%s", is_leaf, url)
    return is_leaf
