import asyncio

import pytest

from huemap_lib.pipeline import compute_segments
from huemap_lib.sampler import AdaptiveSampler
from huemap_lib.segments import (
    HueSegment, build_segments, dedupe_segments, merge_segments,
    resolve_segments, segment_span, sort_swatches, swatch_sort_key,
)
from huemap_lib.subdivision import SubdivisionEngine
from tests.helpers import RGB_PRIMARIES, WRAPPED_ROSE, FakeSampler, make_color


def _segment(start, end, name):
    return HueSegment(start, end, make_color(name, start))


def test_build_covers_circle_from_known_hues():
    colors = {0.0: make_color("Red", 0), 90.0: make_color("Green", 90), 200.0: make_color("Blue", 200)}
    segments = build_segments([200.0, 0.0, 90.0, 90.0], colors.get)
    assert [(s.start_hue, s.end_hue, s.color.name) for s in segments] == [
        (0.0, 90.0, "Red"),
        (90.0, 200.0, "Green"),
        (200.0, 360.0, "Blue"),
    ]


def test_build_skips_hues_without_a_sample():
    segments = build_segments([0.0, 45.0], {0.0: make_color("Red", 0)}.get)
    assert len(segments) == 1
    assert segments[0].end_hue == 45.0


def test_merge_joins_adjacent_names():
    merged = merge_segments([
        _segment(0, 30, "Red"),
        _segment(30, 60, "Red"),
        _segment(60, 360, "Blue"),
    ])
    assert [(s.start_hue, s.end_hue) for s in merged] == [(0, 60), (60, 360)]
    assert merged[0].color.hsl.h == 0


def test_merge_fuses_across_wrap():
    merged = merge_segments([
        _segment(0, 40, "Rose"),
        _segment(40, 300, "Gray"),
        _segment(300, 360, "Rose"),
    ])
    assert len(merged) == 2
    rose = merged[0]
    assert (rose.start_hue, rose.end_hue, rose.color.name) == (300, 400, "Rose")
    assert segment_span(rose) == 100
    assert merged[1].color.name == "Gray"


def test_single_segment_is_not_wrapped():
    merged = merge_segments([_segment(0, 360, "Gray")])
    assert [(s.start_hue, s.end_hue) for s in merged] == [(0, 360)]


def test_end_to_end_primaries():
    segments = asyncio.run(compute_segments(60, 50, FakeSampler(RGB_PRIMARIES)))
    assert [s.color.name for s in segments] == ["Red", "Green", "Blue"]
    assert segments[0].start_hue == 0
    assert 80 < segments[0].end_hue < 100


def test_end_to_end_wrap_around():
    segments = asyncio.run(compute_segments(60, 50, FakeSampler(WRAPPED_ROSE)))
    assert len(segments) == 2
    rose = next(s for s in segments if s.color.name == "Rose")
    assert 295 < rose.start_hue < 305
    assert 360 < rose.end_hue < 406


def test_grayscale_end_to_end():
    sample = FakeSampler([(0, 360, "Gray")])
    segments = asyncio.run(compute_segments(0, 50, sample))
    assert len(segments) == 1
    assert (segments[0].start_hue, segments[0].end_hue) == (0, 360)
    assert len(sample.calls) == 1


def test_dedupe_keeps_widest_spelling():
    segments = dedupe_segments([
        _segment(0, 20, "Screamin' Green"),
        _segment(20, 100, "Blue"),
        _segment(100, 160, "Screamin Green"),
        _segment(160, 360, "Purple"),
    ])
    assert [s.color.name for s in segments] == ["Blue", "Screamin Green", "Purple"]


def test_dedupe_tie_keeps_first_discovered():
    segments = dedupe_segments([
        _segment(0, 50, "Screamin' Green"),
        _segment(50, 100, "Blue"),
        _segment(100, 150, "Screamin Green"),
    ])
    assert [s.color.name for s in segments] == ["Screamin' Green", "Blue"]


def test_dedupe_counts_wrapped_span():
    segments = dedupe_segments([
        _segment(300, 400, "Rose"),
        _segment(40, 120, "Gray"),
        _segment(120, 300, "ROSE"),
    ])
    assert [s.color.name for s in segments] == ["Gray", "ROSE"]


def test_dedupe_leaves_gap_where_loser_was():
    # Known limitation: the losing segment is dropped, not merged
    segments = dedupe_segments([
        _segment(0, 10, "Screamin' Green"),
        _segment(10, 20, "Yellow"),
        _segment(20, 360, "Screamin Green"),
    ])
    assert [(s.start_hue, s.end_hue) for s in segments] == [(10, 20), (20, 360)]
    assert not any(s.start_hue == 0 for s in segments)


def test_resolve_is_deterministic():
    hues = [0.0, 45.0, 90.0, 180.0, 270.0]
    colors = {h: make_color("Red" if h < 90 else "Blue", h) for h in hues}
    first = resolve_segments(hues, colors.get)
    second = resolve_segments(list(reversed(hues)), colors.get)
    assert first == second


def test_sort_swatches_puts_wrap_first():
    segments = [
        _segment(90, 210, "Green"),
        _segment(300, 400, "Rose"),
        _segment(40, 90, "Orange"),
    ]
    ordered = sort_swatches(segments)
    assert [s.color.name for s in ordered] == ["Rose", "Orange", "Green"]
    assert swatch_sort_key(segments[1]) == 0.0
    assert swatch_sort_key(segments[0]) == 90.0


def test_segment_wire_keys():
    segment = _segment(300, 400, "Rose")
    data = segment.to_dict()
    assert set(data) == {"startHue", "endHue", "color"}
    assert HueSegment.from_dict(data) == segment


NARROW_BAND = [(0, 100, "Red"), (100, 103, "Lime"), (103, 360, "Blue")]


def _assert_covers_circle(segments):
    ordered = sorted(segments, key=lambda s: s.start_hue)
    assert all(0 <= s.start_hue < 360 and s.start_hue < s.end_hue for s in ordered)
    for index, segment in enumerate(ordered):
        if index + 1 < len(ordered):
            next_start = ordered[index + 1].start_hue
        else:
            next_start = ordered[0].start_hue + 360
        assert segment.end_hue == next_start
    assert sum(segment_span(s) for s in ordered) == 360


@pytest.mark.parametrize("ranges", [RGB_PRIMARIES, WRAPPED_ROSE, NARROW_BAND, [(0, 360, "Gray")]])
def test_merged_segments_cover_circle_once(ranges):
    sampler = AdaptiveSampler(FakeSampler(ranges))
    asyncio.run(SubdivisionEngine(sampler).run(60, 50))
    segments = merge_segments(build_segments(sampler.get_known_hues(), sampler.get_cached))
    _assert_covers_circle(segments)


def test_narrow_band_is_found():
    segments = asyncio.run(compute_segments(60, 50, FakeSampler(NARROW_BAND)))
    lime = next(s for s in segments if s.color.name == "Lime")
    assert (lime.start_hue, lime.end_hue) == (100, 103)
