"""
HUEMAP Library - Adaptive discovery of named color regions on the hue circle
"""

from .colors import (
    ColorDescriptor, RGBValue, HSLValue,
    normalize_hue, hue_key, clamp_percentage, read_percentage_param, canonical_name, text_tone,
)
from .oracles import BaseOracle, OracleError, SampleFn, create_oracle, list_oracles
from .sampler import AdaptiveSampler
from .subdivision import MIN_SPAN, SubdivisionEngine, SubdivisionTask, Traversal
from .segments import (
    HueSegment, build_segments, merge_segments, dedupe_segments, resolve_segments, sort_swatches,
)
from .memo import SegmentMemo
from .pipeline import (
    EventType, SegmentEvent, SegmentPipeline,
    stream_segments, collect_segments, compute_segments, ndjson_lines, parse_ndjson,
)
from .settings import HueMapSettings, load_settings

__all__ = [
    "ColorDescriptor", "RGBValue", "HSLValue",
    "normalize_hue", "hue_key", "clamp_percentage", "read_percentage_param", "canonical_name", "text_tone",
    "BaseOracle", "OracleError", "SampleFn", "create_oracle", "list_oracles",
    "AdaptiveSampler",
    "MIN_SPAN", "SubdivisionEngine", "SubdivisionTask", "Traversal",
    "HueSegment", "build_segments", "merge_segments", "dedupe_segments", "resolve_segments", "sort_swatches",
    "SegmentMemo",
    "EventType", "SegmentEvent", "SegmentPipeline",
    "stream_segments", "collect_segments", "compute_segments", "ndjson_lines", "parse_ndjson",
    "HueMapSettings", "load_settings",
]
