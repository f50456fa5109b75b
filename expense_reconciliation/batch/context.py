"""
Per-batch resource context.

Each batch owns one BatchContext: a process memory monitor and a cache of
rendered pages. The context is created when the batch starts and closed
when it ends, so nothing outlives the batch.
"""

import gc
import os
import threading
from typing import Dict, List, Optional

import psutil

from expense_reconciliation.recognition.base_recognizer import PageImage

import logging
logger = logging.getLogger(__name__)


class MemoryMonitor:
    """Reads the resident memory of the current process."""

    def __init__(self, max_memory_mb: int = 500):
        self.max_memory_mb = max_memory_mb
        self.process = psutil.Process(os.getpid())

    def memory_usage_mb(self) -> float:
        """Current resident set size in MB."""
        return self.process.memory_info().rss / 1024 / 1024

    def is_memory_exceeded(self) -> bool:
        return self.memory_usage_mb() > self.max_memory_mb


class BatchContext:
    """
    Resources owned by a single batch.

    Usable as a context manager; the page cache is released on exit.
    """

    def __init__(self, max_memory_mb: int = 500, monitor: Optional[MemoryMonitor] = None):
        self.monitor = monitor or MemoryMonitor(max_memory_mb)
        self._pages: Dict[int, List[PageImage]] = {}
        self._lock = threading.Lock()
        self.closed = False
        self.logger = logging.getLogger(f"{__name__}.BatchContext")

    def __enter__(self) -> 'BatchContext':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def cache_pages(self, file_index: int, pages: List[PageImage]):
        with self._lock:
            self._pages[file_index] = pages

    def get_pages(self, file_index: int) -> Optional[List[PageImage]]:
        with self._lock:
            return self._pages.get(file_index)

    def release_pages(self, file_index: int):
        with self._lock:
            self._pages.pop(file_index, None)

    @property
    def cached_file_count(self) -> int:
        with self._lock:
            return len(self._pages)

    def monitor_and_clean(self) -> bool:
        """
        Drop cached pages and collect garbage when memory is over the limit.

        Returns:
            True if a cleanup ran
        """
        if not self.monitor.is_memory_exceeded():
            return False

        usage = self.monitor.memory_usage_mb()
        with self._lock:
            dropped = len(self._pages)
            self._pages.clear()
        gc.collect()
        self.logger.warning(f"Memory usage high ({usage:.0f}MB > {self.monitor.max_memory_mb}MB), "
                            f"released {dropped} cached file(s)")
        return True

    def close(self):
        with self._lock:
            self._pages.clear()
        self.closed = True
