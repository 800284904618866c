from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Optional, TextIO

from pydantic import BaseModel

from utils.logger import log_event

logger = logging.getLogger(__name__)

__all__ = ["ProductWriter"]


class ProductWriter:
    """Append-only JSON lines writer for product records.

    Each record is flushed as soon as it is written. A failed write is logged
    and skipped.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.written = 0
        self._file: Optional[TextIO] = None

    def open(self, truncate: bool = True) -> "ProductWriter":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("w" if truncate else "a", encoding="utf-8")
        return self

    def write(self, record: BaseModel) -> bool:
        if self._file is None:
            raise RuntimeError("product writer is not opened")
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        try:
            self._file.write(line + "\n")
            self._file.flush()
        except OSError as exc:
            log_event(logger, logging.ERROR, "Error writing to file", "product",
                      path=str(self.path), err=exc)
            return False
        self.written += 1
        return True

    def close(self) -> None:
        if self._file is not None:
            with contextlib.suppress(OSError, ValueError):
                os.fsync(self._file.fileno())
            self._file.close()
            self._file = None

    def __enter__(self) -> "ProductWriter":
        if self._file is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
