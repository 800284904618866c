"""Child-category link scheduling for branch category pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from core.classifier import SHOP_BY_CATEGORY
from network.collector import HTMLElement
from utils.error_handling import ScraperError
from utils.logger import log_event

logger = logging.getLogger(__name__)

Scheduler = Callable[[str], None]


@dataclass(frozen=True)
class NavigationLayout:
    """One of the alternative "Shop by Category" navigation markups."""

    name: str
    group_selector: str
    title_selector: str
    link_selector: str
    skip_text: Optional[str] = None

    def accepts(self, link: HTMLElement) -> bool:
        return self.skip_text is None or self.skip_text not in link.text


SECTION_LAYOUT = NavigationLayout(
    name="section",
    group_selector="div.dialog__cell > section:first-of-type",
    title_selector="h2.section-title__title",
    link_selector="a.b-textlink",
    skip_text="See all",
)

CATEGORY_NAV_LAYOUT = NavigationLayout(
    name="category-nav",
    group_selector="section.brw-category-nav.brw-has-parentnode:first-of-type",
    title_selector="span.textual-display.brw-category-nav__title",
    link_selector="a.textual-display.brw-category-nav__link",
)

NAVIGATION_LAYOUTS = (SECTION_LAYOUT, CATEGORY_NAV_LAYOUT)


def expand_layout(
    page: HTMLElement,
    layout: NavigationLayout,
    schedule: Scheduler,
    max_per_page: int,
) -> int:
    """Schedule child links of one layout. Returns how many were scheduled.

    The counter is checked before it is incremented, so up to
    ``max_per_page + 1`` links are scheduled.
    """
    url = page.request.url
    count = 0

    def schedule_link(_: int, link: HTMLElement) -> None:
        nonlocal count
        if not layout.accepts(link):
            return
        if count > max_per_page:
            return
        href = link.absolute_url(link.attr("href"))
        try:
            schedule(href)
        except ScraperError as exc:
            log_event(logger, logging.ERROR, "Visiting Err", "category", url=href, err=exc)
        count += 1

    def visit_group(_: int, group: HTMLElement) -> None:
        title = group.child_text(layout.title_selector)
        if not title:
            logger.warning("Carousel title empty url=%s", url)
            return
        if title == SHOP_BY_CATEGORY:
            group.for_each(layout.link_selector, schedule_link)

    page.for_each(layout.group_selector, visit_group)
    return count


def expand_categories(page: HTMLElement, schedule: Scheduler, max_per_page: int) -> int:
    """Schedule child categories from every navigation layout on ``page``."""
    total = 0
    for layout in NAVIGATION_LAYOUTS:
        scheduled = expand_layout(page, layout, schedule, max_per_page)
        if scheduled:
            logger.debug(
                "Scheduled %d child categories from %s layout url=%s",
                scheduled, layout.name, page.request.url,
            )
        total += scheduled
    return total
