"""Single-slot result of one traversal attempt or one leaf visit."""

from __future__ import annotations

import asyncio
from typing import Optional


class TraversalOutcome:
    """One result, many potential writers.

    The first ``offer`` wins and later offers are dropped, because the
    visiting task may keep reporting errors after the reader has moved on.
    ``close`` releases the reader with ``None`` (success) when nothing was
    offered. Must be created inside a running event loop.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    def offer(self, error: BaseException) -> bool:
        """Record ``error`` unless an outcome is already set. Returns True if recorded."""
        if self._future.done():
            return False
        self._future.set_result(error)
        return True

    def close(self) -> None:
        if not self._future.done():
            self._future.set_result(None)

    @property
    def done(self) -> bool:
        return self._future.done()

    async def wait(self) -> Optional[BaseException]:
        """The first offered error, or None once closed without one."""
        return await asyncio.shield(self._future)
