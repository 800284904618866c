"""
Shared types for the catalog crawler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

PHASE_CATEGORIES = "categories"
PHASE_PRODUCTS = "products"


@dataclass
class PassStats:
    """Counters for one crawl pass, accumulated across its attempts."""

    phase: str
    pages_visited: int = 0
    pages_failed: int = 0
    leaves_recorded: int = 0
    lines_dispatched: int = 0
    lines_skipped: int = 0
    products_written: int = 0
    products_dropped: int = 0
    status_counts: Dict[int, int] = field(default_factory=dict)

    def record_status(self, status_code: int) -> None:
        self.status_counts[status_code] = self.status_counts.get(status_code, 0) + 1

    @property
    def success_rate(self) -> float:
        total = self.pages_visited + self.pages_failed
        if total == 0:
            return 0.0
        return self.pages_visited / total
