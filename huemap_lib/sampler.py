"""
HUEMAP Sampler - Single-flight sampling cache

Makes sure the oracle is asked about each distinct hue at most once per
segmentation run, no matter how many ranges ask for it concurrently.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from .colors import ColorDescriptor, hue_key, normalize_hue
from .oracles.base import OracleError, SampleFn

_logger = logging.getLogger(__name__)

SampleListener = Callable[[float, ColorDescriptor], None]


class AdaptiveSampler:
    """
    Per-run memo of hue -> ColorDescriptor.

    Two tables, keyed by hue_key():
        _pending: key -> Task, inserted before the oracle is awaited so
            concurrent requests for the same hue share one call; removed
            again if the call fails so a later get() can retry.
        _values: key -> resolved ColorDescriptor, the synchronous
            "known so far" view used to build segments.
    """

    def __init__(self, sample: SampleFn):
        self._sample = sample
        self._pending: Dict[float, "asyncio.Task[ColorDescriptor]"] = {}
        self._values: Dict[float, ColorDescriptor] = {}
        self._listeners: List[SampleListener] = []
        self.oracle_calls = 0

    def add_listener(self, callback: SampleListener) -> None:
        """Register a callback run synchronously each time a new hue resolves."""
        self._listeners.append(callback)

    async def get(self, hue: float) -> ColorDescriptor:
        key = hue_key(hue)
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, normalize_hue(hue)))
            self._pending[key] = task
        return await task

    async def _fetch(self, key: float, hue: float) -> ColorDescriptor:
        self.oracle_calls += 1
        try:
            color = await self._sample(hue)
        except asyncio.CancelledError:
            self._pending.pop(key, None)
            raise
        except OracleError as e:
            self._pending.pop(key, None)
            if e.hue is None:
                e.hue = hue
            raise
        except Exception as e:
            self._pending.pop(key, None)
            raise OracleError(f"Sampling hue {hue} failed: {e}", hue=hue) from e

        self._values[key] = color
        for callback in self._listeners:
            callback(key, color)
        return color

    def get_cached(self, hue: float) -> Optional[ColorDescriptor]:
        """Completed sample for this hue, without touching the oracle."""
        return self._values.get(hue_key(hue))

    def get_known_hues(self) -> List[float]:
        """Sorted distinct hue keys that have a completed sample."""
        return sorted(self._values)

    def cancel_pending(self) -> int:
        """Cancel every unresolved oracle request; returns how many were cancelled."""
        cancelled = 0
        for task in list(self._pending.values()):
            if not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            _logger.debug(f"[HUEMAP] Cancelled {cancelled} pending samples")
        return cancelled

    def __len__(self) -> int:
        return len(self._values)
