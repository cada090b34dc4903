"""
HUEMAP Memo - Cross-run result cache keyed by (saturation, lightness)

Owned by the service layer and passed in explicitly. Concurrent requests
for the same key share one in-flight computation; a failed computation
clears its slot so the key is never poisoned.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, List

from .segments import HueSegment

_logger = logging.getLogger(__name__)

SegmentFactory = Callable[[], Awaitable[List[HueSegment]]]


class SegmentMemo:
    """Single-flight memo of whole segmentation results."""

    def __init__(self) -> None:
        self._entries: Dict[Hashable, "asyncio.Task[List[HueSegment]]"] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    async def get_or_compute(self, key: Hashable, factory: SegmentFactory) -> List[HueSegment]:
        """
        Return the memoized result for key, computing it at most once.

        The first caller for a key starts the computation; everyone else
        awaits the same task. Callers wait through asyncio.shield so one
        cancelled caller does not cancel the work the others share.
        """
        task = self._entries.get(key)
        if task is None:
            self.misses += 1
            task = asyncio.ensure_future(self._run(key, factory))
            task.add_done_callback(self._task_exception_handler)
            self._entries[key] = task
        else:
            self.hits += 1

        segments = await asyncio.shield(task)
        return list(segments)

    async def _run(self, key: Hashable, factory: SegmentFactory) -> List[HueSegment]:
        try:
            return await factory()
        except BaseException:
            # Evict only if the slot still holds this computation
            if self._entries.get(key) is asyncio.current_task():
                self._entries.pop(key, None)
                self.evictions += 1
            raise

    def _task_exception_handler(self, task: "asyncio.Task[List[HueSegment]]") -> None:
        """Retrieve failures so an unawaited computation never goes unreported."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning(f"[HUEMAP] Memoized segmentation failed: {exc}")

    def clear(self) -> int:
        """Drop every entry (in-flight computations keep running for their callers)."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
