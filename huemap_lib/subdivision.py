"""
HUEMAP Subdivision - Adaptive divide-and-conquer over the hue circle

Decides which hues to sample so that every run of same-named hue is
bounded by samples proving its edges, down to a minimum span.
"""

import asyncio
import logging
import math
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque

from .colors import FULL_CIRCLE, is_achromatic
from .sampler import AdaptiveSampler

_logger = logging.getLogger(__name__)

# Narrowest range still worth splitting (degrees)
MIN_SPAN = 1.0


class Traversal(Enum):
    """Work-list discipline; changes discovery order only, never the result."""
    STACK = "stack"   # depth-first, lower half of each range first
    QUEUE = "queue"   # breadth-first, even coverage sooner


@dataclass(frozen=True)
class SubdivisionTask:
    """Pending hue range. end_hue may be 360 (sampled as hue 0)."""
    start_hue: float
    end_hue: float

    @property
    def span(self) -> float:
        return self.end_hue - self.start_hue

    @property
    def midpoint(self) -> float:
        return float(math.ceil(self.start_hue + self.span / 2))


class SubdivisionEngine:
    """
    Iterative subdivision driver.

    Starting from [0, 360), each range with span > min_span has its start,
    end and midpoint sampled concurrently. If all three share a color
    name the range is uniform; otherwise it is replaced by its two halves.
    Spans at least halve on every split, so depth is bounded by
    log2(360 / min_span).
    """

    def __init__(
        self,
        sampler: AdaptiveSampler,
        min_span: float = MIN_SPAN,
        traversal: Traversal = Traversal.STACK,
    ):
        if min_span <= 0:
            raise ValueError(f"min_span must be > 0 (got {min_span})")
        self.sampler = sampler
        self.min_span = float(min_span)
        self.traversal = Traversal(traversal)
        self.ranges_processed = 0
        self.ranges_split = 0

    async def run(self, saturation: float, lightness: float) -> None:
        """Sample until every range is uniform or too narrow to split."""
        # Hue 0 anchors the space before anything else
        await self.sampler.get(0)

        if is_achromatic(saturation, lightness):
            _logger.debug(f"[HUEMAP] Achromatic s={saturation} l={lightness}, single sample")
            return

        work: Deque[SubdivisionTask] = deque([SubdivisionTask(0.0, FULL_CIRCLE)])
        while work:
            task = work.pop() if self.traversal is Traversal.STACK else work.popleft()
            for child in await self._process(task):
                work.append(child)

        _logger.debug(
            f"[HUEMAP] Subdivision done: {self.ranges_processed} ranges, "
            f"{self.ranges_split} splits, {self.sampler.oracle_calls} oracle calls"
        )

    async def _process(self, task: SubdivisionTask):
        """Sample one range; return the child ranges to push (maybe none)."""
        if task.span <= self.min_span:
            return ()

        midpoint = task.midpoint
        # Only reachable with min_span < 1, where ceil() lands on an edge
        if not task.start_hue < midpoint < task.end_hue:
            return ()

        self.ranges_processed += 1
        start_color, end_color, middle_color = await asyncio.gather(
            self.sampler.get(task.start_hue),
            self.sampler.get(task.end_hue),
            self.sampler.get(midpoint),
        )

        if start_color.name == middle_color.name == end_color.name:
            return ()

        self.ranges_split += 1
        lower = SubdivisionTask(task.start_hue, midpoint)
        upper = SubdivisionTask(midpoint, task.end_hue)
        if self.traversal is Traversal.STACK:
            # Last pushed is popped first
            return (upper, lower)
        return (lower, upper)
