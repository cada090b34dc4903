"""
Test fakes: range-based color samplers and oracles with call accounting.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from huemap_lib.colors import ColorDescriptor, HSLValue, RGBValue, normalize_hue
from huemap_lib.oracles import BaseOracle, OracleError

# (start, end, name); start > end means the range wraps past 0
FakeRange = Tuple[float, float, str]

RGB_PRIMARIES: List[FakeRange] = [
    (0, 90, "Red"),
    (90, 210, "Green"),
    (210, 360, "Blue"),
]

WRAPPED_ROSE: List[FakeRange] = [
    (0, 40, "Rose"),
    (40, 300, "Gray"),
    (300, 360, "Rose"),
]


def make_color(name: str, hue: float, saturation: float = 60, lightness: float = 50) -> ColorDescriptor:
    rounded = round(normalize_hue(hue), 2)
    red = int(round(rounded))
    return ColorDescriptor(
        name=name,
        rgb=RGBValue(value=f"rgb({red}, 0, 0)", r=red, g=0, b=0),
        hsl=HSLValue(value=f"hsl({rounded:g}, {saturation:g}%, {lightness:g}%)", h=rounded, s=saturation, l=lightness),
    )


def name_for(ranges: Sequence[FakeRange], hue: float) -> str:
    normalized = normalize_hue(hue)
    for start, end, name in ranges:
        if start <= end:
            if start <= normalized < end:
                return name
        elif normalized >= start or normalized < end:
            return name
    return ranges[-1][2]


class FakeSampler:
    """Async sample(hue) over fixed named ranges, recording every call."""

    def __init__(self, ranges: Sequence[FakeRange], delay: float = 0.0, fail_at: Optional[float] = None):
        self.ranges = list(ranges)
        self.delay = delay
        self.fail_at = fail_at
        self.calls: List[float] = []

    async def __call__(self, hue: float) -> ColorDescriptor:
        self.calls.append(hue)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_at is not None and hue == self.fail_at:
            raise OracleError("Failed to fetch color information (503)", status=503)
        return make_color(name_for(self.ranges, hue), hue)


class FakeOracle(BaseOracle):
    """In-memory oracle over named ranges (ignores saturation/lightness)."""

    name = "fake"
    description = "Range-based test oracle"

    def __init__(self, ranges: Sequence[FakeRange] = RGB_PRIMARIES, failures: int = 0, status: Optional[int] = None):
        super().__init__()
        self.ranges = list(ranges)
        # Fail the first N lookups
        self.failures = failures
        self.status_code = status
        self.lookups: List[Tuple[float, float, float]] = []
        self.delay = 0.0
        self.closed = False

    async def lookup(self, hue: float, saturation: float, lightness: float) -> ColorDescriptor:
        self.lookups.append((hue, saturation, lightness))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise OracleError("Failed to fetch color information", status=self.status_code, hue=hue)
        return make_color(name_for(self.ranges, hue), hue, saturation, lightness)

    async def close(self) -> None:
        self.closed = True
