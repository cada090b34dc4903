"""
HUEMAP Segments - From known samples to named hue segments

    build_segments    sorted samples -> one segment per sample
    merge_segments    fuse adjacent same-name segments, including across 360/0
    dedupe_segments   collapse near-duplicate names to one representative
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .colors import FULL_CIRCLE, ColorDescriptor, canonical_name, normalize_hue

ColorLookup = Callable[[float], Optional[ColorDescriptor]]


@dataclass(frozen=True)
class HueSegment:
    """
    Half-open hue interval [start_hue, end_hue) that maps to color.name.

    end_hue may exceed 360 when the segment wraps past 0 (e.g. 350..380).
    """
    start_hue: float
    end_hue: float
    color: ColorDescriptor

    @property
    def span(self) -> float:
        return segment_span(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startHue": self.start_hue,
            "endHue": self.end_hue,
            "color": self.color.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HueSegment":
        return cls(
            start_hue=float(data["startHue"]),
            end_hue=float(data["endHue"]),
            color=ColorDescriptor.from_dict(data["color"]),
        )


def segment_span(segment: HueSegment) -> float:
    """Angular width of a segment, accounting for wrap-around."""
    if segment.end_hue >= segment.start_hue:
        return segment.end_hue - segment.start_hue
    return segment.end_hue + FULL_CIRCLE - segment.start_hue


def build_segments(known_hues: Iterable[float], lookup: ColorLookup) -> List[HueSegment]:
    """
    Turn sampled hues into consecutive segments covering [0, 360).

    Each segment runs from one known hue to the next and takes the color
    sampled at its start; the last one ends at 360. A hue without a
    completed sample is skipped.
    """
    ordered = sorted({h for h in known_hues if 0 <= h < FULL_CIRCLE})

    segments: List[HueSegment] = []
    for index, start_hue in enumerate(ordered):
        end_hue = ordered[index + 1] if index + 1 < len(ordered) else FULL_CIRCLE
        color = lookup(start_hue)
        if color is None:
            continue
        segments.append(HueSegment(start_hue, end_hue, color))
    return segments


def merge_segments(segments: Sequence[HueSegment]) -> List[HueSegment]:
    """Fuse adjacent segments sharing a color name, then fuse across the wrap."""
    if not segments:
        return []

    ordered = sorted(segments, key=lambda s: s.start_hue)
    merged: List[HueSegment] = [ordered[0]]

    for segment in ordered[1:]:
        previous = merged[-1]
        if segment.color.name == previous.color.name:
            merged[-1] = HueSegment(previous.start_hue, segment.end_hue, previous.color)
        else:
            merged.append(segment)

    if len(merged) > 1:
        first = merged[0]
        last = merged[-1]
        if first.color.name == last.color.name:
            merged[0] = HueSegment(last.start_hue, first.end_hue + FULL_CIRCLE, first.color)
            merged.pop()

    return merged


def dedupe_segments(segments: Sequence[HueSegment]) -> List[HueSegment]:
    """
    Keep one segment per canonical color name.

    The oracle's dataset has near-duplicate names for the same color
    ("Screamin' Green" / "Screamin Green"). For each canonical key the
    widest segment wins (ties go to the first discovered), and winners are
    emitted in input order so streamed snapshots stay stable.
    Losing segments are dropped rather than merged, which can leave a gap
    in coverage; when the true order is X, Y, X' the region around Y may
    not be reconstructed correctly.
    """
    if len(segments) <= 1:
        return list(segments)

    chosen: Dict[str, int] = {}
    for index, segment in enumerate(segments):
        key = canonical_name(segment.color.name)
        best = chosen.get(key)
        if best is None or segment_span(segment) > segment_span(segments[best]):
            chosen[key] = index

    winners = set(chosen.values())
    return [segment for index, segment in enumerate(segments) if index in winners]


def resolve_segments(known_hues: Iterable[float], lookup: ColorLookup) -> List[HueSegment]:
    """Builder -> Merger -> Resolver."""
    return dedupe_segments(merge_segments(build_segments(known_hues, lookup)))


def swatch_sort_key(segment: HueSegment) -> float:
    """Display order key: the wrap segment first, then by start hue."""
    if segment.end_hue > FULL_CIRCLE:
        return 0.0
    return normalize_hue(segment.start_hue)


def sort_swatches(segments: Iterable[HueSegment]) -> List[HueSegment]:
    return sorted(segments, key=lambda s: (swatch_sort_key(s), normalize_hue(s.end_hue)))
