"""
Bounded retry loop for crawl passes.

A stalled attempt (connection-level failure) is retried. Any other scraper
error ends the loop at once. The loop itself never raises for either outcome.
Callers get a ``RetryReport`` and decide what a failed pass means.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from utils.error_handling import ScraperError, StallError
from utils.logger import log_event

logger = logging.getLogger(__name__)

AttemptFn = Callable[[int], Awaitable[None]]


@dataclass
class RetryReport:
    """What happened across the attempts of one pass."""

    name: str
    max_attempts: int
    attempts: int = 0
    succeeded: bool = False
    stalls: int = 0
    last_error: Optional[BaseException] = None

    @property
    def fatal(self) -> bool:
        return self.last_error is not None and not isinstance(self.last_error, StallError)

    @property
    def exhausted(self) -> bool:
        """Every attempt ran and the pass ended on a stall.

        A stall followed by a success or a fatal error is not exhaustion,
        even though a stall was recorded.
        """
        return not self.succeeded and not self.fatal and self.stalls > 0


class RetryController:
    def __init__(self, name: str, max_attempts: int, backoff: float = 0.0):
        self.name = name
        self.max_attempts = max(max_attempts, 0)
        self.backoff = backoff

    async def run(self, attempt_fn: AttemptFn) -> RetryReport:
        """Run ``attempt_fn(attempt)`` until it succeeds, fails fatally, or
        ``max_attempts`` is reached. ``attempt`` is 1-based.
        """
        report = RetryReport(name=self.name, max_attempts=self.max_attempts)

        for attempt in range(1, self.max_attempts + 1):
            report.attempts = attempt
            try:
                await attempt_fn(attempt)
            except StallError as exc:
                report.stalls += 1
                report.last_error = exc
                log_event(
                    logger, logging.WARNING, "Context timeout, retrying", "retry",
                    pass_name=self.name, attempt=attempt, url=exc.url,
                )
                if self.backoff > 0 and attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff * attempt)
                continue
            except ScraperError as exc:
                report.last_error = exc
                log_event(
                    logger, logging.ERROR, "Scraping error", "retry",
                    pass_name=self.name, attempt=attempt, error=exc,
                )
                break
            else:
                report.succeeded = True
                report.last_error = None
                log_event(logger, logging.INFO, "Scraping succeeded", "retry",
                          pass_name=self.name, attempt=attempt)
                break

        if report.exhausted:
            log_event(
                logger, logging.ERROR, "Failed after maximum attempts", "retry",
                pass_name=self.name, max_attempts=self.max_attempts,
                error=report.last_error,
            )
        return report
