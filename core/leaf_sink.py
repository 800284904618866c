"""Append-only checkpoint of discovered leaf category URLs."""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path
from typing import Optional, Set, TextIO

from utils.logger import log_event

logger = logging.getLogger(__name__)


class LeafSink:
    """Writes one leaf URL per line.

    Write failures are logged and swallowed: losing one leaf must not abort a
    traversal. With ``dedupe`` a URL is written at most once per sink, which
    drops the duplicates a retried traversal would otherwise append.
    """

    def __init__(self, writer: TextIO, dedupe: bool = False):
        self.writer = writer
        self.dedupe = dedupe
        self.recorded = 0
        self._seen: Optional[Set[str]] = set() if dedupe else None

    @classmethod
    def open(cls, path: str, dedupe: bool = False) -> "LeafSink":
        """Create (truncate) the checkpoint file at ``path``."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        return cls(target.open("w", encoding="utf-8", newline="\n"), dedupe=dedupe)

    def record_leaf(self, url: str) -> bool:
        if self._seen is not None:
            if url in self._seen:
                logger.debug("Skipping duplicate leaf url=%s", url)
                return False
        try:
            self.writer.write(url + "\n")
        except (OSError, ValueError) as exc:
            log_event(logger, logging.ERROR, "Failed to write to file", "category", url=url, err=exc)
            return False
        if self._seen is not None:
            self._seen.add(url)
        self.recorded += 1
        return True

    def flush(self) -> None:
        self.writer.flush()

    def close(self) -> None:
        """Flush, sync and close so a reader sees every recorded line."""
        if self.writer.closed:
            return
        try:
            self.writer.flush()
            # in-memory writers have no descriptor to sync
            with contextlib.suppress(OSError, ValueError):
                os.fsync(self.writer.fileno())
        finally:
            self.writer.close()

    def __enter__(self) -> "LeafSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
