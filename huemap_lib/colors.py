"""
HUEMAP Colors - Color descriptors and hue utilities

Everything the segmentation core needs to know about a single color:
the descriptor returned by an oracle, hue normalization and the
canonical name key used to collapse near-duplicate names.
"""

import math
import re
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Any, Dict, Mapping, Sequence, Tuple

FULL_CIRCLE = 360.0

# Sampling cache keys are rounded to this many decimal digits
HUE_PRECISION = 6

# Relative luminance above which a swatch needs dark label text
LUMINANCE_THRESHOLD = 0.55

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class RGBValue:
    value: str
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class HSLValue:
    value: str
    h: float
    s: float
    l: float  # noqa: E741


@dataclass(frozen=True)
class ColorDescriptor:
    """Named color returned by an oracle for one (hue, saturation, lightness)."""
    name: str
    rgb: RGBValue
    hsl: HSLValue

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColorDescriptor":
        rgb = data["rgb"]
        hsl = data["hsl"]
        return cls(
            name=str(data["name"]),
            rgb=RGBValue(
                value=str(rgb["value"]),
                r=int(rgb["r"]),
                g=int(rgb["g"]),
                b=int(rgb["b"]),
            ),
            hsl=HSLValue(
                value=str(hsl["value"]),
                h=float(hsl["h"]),
                s=float(hsl["s"]),
                l=float(hsl["l"]),
            ),
        )


def normalize_hue(hue: float) -> float:
    """
    Map any real hue onto the canonical [0, 360) range.

    NaN and +/-Infinity map to 0. Python's modulo already carries the sign
    of the divisor, but a tiny negative input (e.g. -1e-20) rounds up to
    exactly 360.0, which is folded back to 0.
    """
    hue = float(hue)
    if not math.isfinite(hue):
        return 0.0

    wrapped = hue % FULL_CIRCLE
    if wrapped >= FULL_CIRCLE:
        return 0.0
    return wrapped


def hue_key(hue: float) -> float:
    """Sampling cache key: normalized hue rounded to HUE_PRECISION digits."""
    key = round(normalize_hue(hue), HUE_PRECISION)
    if key >= FULL_CIRCLE:
        return 0.0
    return key


def clamp_percentage(value: float, fallback: float = 0.0) -> float:
    """Clamp a saturation/lightness value into 0-100 (NaN -> fallback)."""
    value = float(value)
    if math.isnan(value):
        return fallback
    if value < 0:
        return 0.0
    if value > 100:
        return 100.0
    return value


def read_percentage_param(
    query: Mapping[str, Sequence[str]],
    key: str,
    fallback: float,
) -> float:
    """
    Read a percentage from a parsed query string (urllib.parse.parse_qs).

    The last occurrence of the key wins. Missing, empty or non-numeric
    values yield the fallback; anything else is clamped to 0-100.
    """
    values = query.get(key) or []
    if not values:
        return fallback
    try:
        numeric = float(values[-1])
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(numeric):
        return fallback
    return clamp_percentage(numeric, fallback)


@lru_cache(maxsize=1024)
def canonical_name(name: str) -> str:
    """Lower-case and strip everything but ASCII letters and digits."""
    return _NON_ALNUM.sub("", name.lower())


def is_achromatic(saturation: float, lightness: float) -> bool:
    """True when hue has no visual effect (gray, black or white)."""
    return saturation == 0 or lightness == 0 or lightness == 100


def relative_luminance(rgb: Tuple[int, int, int]) -> float:
    """WCAG relative luminance of an sRGB triple (0-255 per channel)."""
    def to_linear(channel: int) -> float:
        c = channel / 255.0
        if c <= 0.03928:
            return c / 12.92
        return ((c + 0.055) / 1.055) ** 2.4

    r, g, b = rgb
    return 0.2126 * to_linear(r) + 0.7152 * to_linear(g) + 0.0722 * to_linear(b)


def text_tone(color: ColorDescriptor) -> str:
    """Label tone readable on top of this color: 'dark' or 'light'."""
    luminance = relative_luminance((color.rgb.r, color.rgb.g, color.rgb.b))
    return "dark" if luminance > LUMINANCE_THRESHOLD else "light"
