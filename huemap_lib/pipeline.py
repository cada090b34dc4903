"""
HUEMAP Pipeline - Progressive emission and collect-all segmentation

Two ways to consume one segmentation run:

    stream_segments()   async generator of SegmentEvent snapshots, one each
                        time a newly resolved sample changes the result
    collect_segments()  run to completion and return the final list,
                        optionally through a SegmentMemo
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncGenerator, AsyncIterator, Iterable, List, Optional, Tuple, Union

from .colors import ColorDescriptor
from .memo import SegmentMemo
from .oracles.base import OracleError, SampleFn
from .sampler import AdaptiveSampler
from .segments import HueSegment, resolve_segments
from .subdivision import MIN_SPAN, SubdivisionEngine, Traversal

_logger = logging.getLogger(__name__)

# Marks the end of the engine run on the snapshot queue
_DONE = object()


class EventType(Enum):
    SNAPSHOT = "snapshot"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SegmentEvent:
    """One item of a segmentation stream."""
    type: EventType
    segments: Tuple[HueSegment, ...] = field(default_factory=tuple)
    error: Optional[str] = None
    final: bool = False

    def to_payload(self) -> Optional[dict]:
        """Wire object for this event (None for COMPLETE, which has no line)."""
        if self.type is EventType.SNAPSHOT:
            return {"segments": [s.to_dict() for s in self.segments]}
        if self.type is EventType.ERROR:
            return {"error": self.error}
        return None

    def to_line(self) -> Optional[str]:
        """One NDJSON line (with trailing newline), or None for COMPLETE."""
        payload = self.to_payload()
        if payload is None:
            return None
        return json.dumps(payload, separators=(",", ":")) + "\n"


def serialize_segments(segments: Iterable[HueSegment]) -> str:
    return json.dumps({"segments": [s.to_dict() for s in segments]}, separators=(",", ":"))


class SegmentPipeline:
    """
    Builder -> Merger -> Resolver over a sampler's known hues.

    Recomputes only when the known-hue signature changes and reports
    whether the serialized result differs from the last one it reported.
    """

    def __init__(self, sampler: AdaptiveSampler):
        self.sampler = sampler
        self._signature: Tuple[float, ...] = ()
        self._payload: Optional[str] = None
        self.segments: List[HueSegment] = []

    def refresh(self) -> bool:
        """Recompute segments; True if there is a new non-empty result to emit."""
        known = tuple(self.sampler.get_known_hues())
        if known == self._signature:
            return False
        self._signature = known
        self.segments = resolve_segments(known, self.sampler.get_cached)
        if not self.segments:
            return False

        payload = serialize_segments(self.segments)
        if payload == self._payload:
            return False
        self._payload = payload
        return True


async def stream_segments(
    saturation: float,
    lightness: float,
    sample: SampleFn,
    *,
    min_span: float = MIN_SPAN,
    traversal: Union[Traversal, str] = Traversal.STACK,
) -> AsyncIterator[SegmentEvent]:
    """
    Yield a SNAPSHOT each time the merged, deduplicated segments change.

    On success the last snapshot is repeated with final=True, followed by
    COMPLETE. An OracleError ends the stream with a single ERROR event and
    no further snapshots. Closing the generator early cancels the run and
    every pending oracle request without raising.
    """
    sampler = AdaptiveSampler(sample)
    pipeline = SegmentPipeline(sampler)
    engine = SubdivisionEngine(sampler, min_span=min_span, traversal=Traversal(traversal))
    queue: "asyncio.Queue[object]" = asyncio.Queue()

    def on_sample(hue: float, color: ColorDescriptor) -> None:
        if pipeline.refresh():
            queue.put_nowait(tuple(pipeline.segments))

    sampler.add_listener(on_sample)
    runner = asyncio.ensure_future(engine.run(saturation, lightness))
    runner.add_done_callback(lambda _: queue.put_nowait(_DONE))

    try:
        while True:
            item = await queue.get()
            if item is _DONE:
                break
            yield SegmentEvent(EventType.SNAPSHOT, item)

        exc = runner.exception()
        if exc is not None:
            if not isinstance(exc, OracleError):
                raise exc
            _logger.error(f"[HUEMAP] Segmentation s={saturation} l={lightness} failed: {exc}")
            yield SegmentEvent(EventType.ERROR, error=str(exc))
            return

        pipeline.refresh()
        yield SegmentEvent(EventType.SNAPSHOT, tuple(pipeline.segments), final=True)
        yield SegmentEvent(EventType.COMPLETE)
    finally:
        if not runner.done():
            _logger.debug(f"[HUEMAP] Segmentation s={saturation} l={lightness} cancelled")
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass
        sampler.cancel_pending()


async def ndjson_lines(events: AsyncGenerator[SegmentEvent, None]) -> AsyncIterator[str]:
    """Render events as newline-delimited JSON, one object per line."""
    try:
        async for event in events:
            line = event.to_line()
            if line is not None:
                yield line
    finally:
        await events.aclose()


def parse_ndjson(lines: Iterable[str]) -> List[HueSegment]:
    """
    Read an NDJSON segment stream and return its latest snapshot.

    Raises:
        OracleError: If the stream carries an error line
    """
    latest: List[HueSegment] = []
    for line in lines:
        line = line.strip()
        if not line:
            continue
        payload = json.loads(line)
        if "error" in payload:
            raise OracleError(str(payload["error"]))
        latest = [HueSegment.from_dict(s) for s in payload.get("segments", [])]
    return latest


async def compute_segments(
    saturation: float,
    lightness: float,
    sample: SampleFn,
    *,
    min_span: float = MIN_SPAN,
    traversal: Union[Traversal, str] = Traversal.STACK,
) -> List[HueSegment]:
    """Run one segmentation to completion without incremental emission."""
    sampler = AdaptiveSampler(sample)
    engine = SubdivisionEngine(sampler, min_span=min_span, traversal=Traversal(traversal))
    try:
        await engine.run(saturation, lightness)
    finally:
        sampler.cancel_pending()
    return resolve_segments(sampler.get_known_hues(), sampler.get_cached)


async def collect_segments(
    saturation: float,
    lightness: float,
    sample: SampleFn,
    *,
    memo: Optional[SegmentMemo] = None,
    min_span: float = MIN_SPAN,
    traversal: Union[Traversal, str] = Traversal.STACK,
) -> List[HueSegment]:
    """
    Collect-all mode.

    With a memo, identical (saturation, lightness) requests share one
    computation and reuse its result; a failure clears the memo slot.
    """
    def factory():
        return compute_segments(
            saturation, lightness, sample, min_span=min_span, traversal=traversal
        )

    if memo is None:
        return await factory()
    return await memo.get_or_compute((saturation, lightness), factory)
