"""Tests for the first-writer-wins traversal outcome."""

import asyncio

import pytest

from core.outcome import TraversalOutcome
from utils.error_handling import StallError, VisitError


class TestTraversalOutcome:
    @pytest.mark.asyncio
    async def test_close_without_offer_is_success(self):
        outcome = TraversalOutcome()
        outcome.close()
        assert outcome.done
        assert await outcome.wait() is None

    @pytest.mark.asyncio
    async def test_first_offer_wins(self):
        outcome = TraversalOutcome()
        first = StallError("https://www.ebay.com/b/a")
        assert outcome.offer(first)
        assert not outcome.offer(VisitError("https://www.ebay.com/b/a", 0))
        outcome.close()
        assert await outcome.wait() is first

    @pytest.mark.asyncio
    async def test_offer_after_close_is_dropped(self):
        outcome = TraversalOutcome()
        outcome.close()
        assert not outcome.offer(StallError("https://www.ebay.com/b/a"))
        assert await outcome.wait() is None

    @pytest.mark.asyncio
    async def test_wait_blocks_until_resolved(self):
        outcome = TraversalOutcome()
        waiter = asyncio.create_task(outcome.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        error = StallError("https://www.ebay.com/b/a")
        outcome.offer(error)
        assert await asyncio.wait_for(waiter, timeout=1) is error

    @pytest.mark.asyncio
    async def test_cancelled_reader_leaves_outcome_usable(self):
        outcome = TraversalOutcome()
        waiter = asyncio.create_task(outcome.wait())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert outcome.offer(StallError("https://www.ebay.com/b/a"))
