# src/vision/colors.py
"""Accent color selection over dominant-color samples.

Pure functions. Malformed hex strings are treated as grayscale with zero
saturation, so they can never be picked as an accent.
"""

from __future__ import annotations

import re
from typing import Sequence

from sitelift.vision.models import ColorSample

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")

NEAR_WHITE = 240
NEAR_BLACK = 15
GRAY_SPREAD = 20


def parse_hex(hex_color: str) -> tuple[int, int, int] | None:
    """``#RRGGBB`` (leading ``#`` optional) to an RGB tuple, or None."""
    match = _HEX_RE.match(hex_color.strip()) if hex_color else None
    if match is None:
        return None
    digits = match.group(1)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def rgb_to_hex(r: float | None = 0, g: float | None = 0, b: float | None = 0) -> str:
    """Clamp and round channels into an uppercase ``#RRGGBB`` string."""

    def _channel(value: float | None) -> int:
        return round(min(255.0, max(0.0, float(value or 0))))

    return "#{:02X}{:02X}{:02X}".format(_channel(r), _channel(g), _channel(b))


def is_grayscale(hex_color: str) -> bool:
    """Near-white, near-black, or channels within ``GRAY_SPREAD`` of each other."""
    rgb = parse_hex(hex_color)
    if rgb is None:
        return True
    r, g, b = rgb
    if r > NEAR_WHITE and g > NEAR_WHITE and b > NEAR_WHITE:
        return True
    if r < NEAR_BLACK and g < NEAR_BLACK and b < NEAR_BLACK:
        return True
    return abs(r - g) < GRAY_SPREAD and abs(g - b) < GRAY_SPREAD and abs(r - b) < GRAY_SPREAD


def saturation(hex_color: str) -> float:
    """HSL saturation in [0, 1]; 0 for achromatic colors."""
    rgb = parse_hex(hex_color)
    if rgb is None:
        return 0.0
    r, g, b = (c / 255 for c in rgb)
    hi, lo = max(r, g, b), min(r, g, b)
    if hi == lo:
        return 0.0
    lightness = (hi + lo) / 2
    spread = hi - lo
    if lightness > 0.5:
        return spread / (2 - hi - lo)
    return spread / (hi + lo)


def find_accent_color(samples: Sequence[ColorSample]) -> str | None:
    """Most saturated non-grayscale sample; first seen wins ties."""
    best: ColorSample | None = None
    best_saturation = -1.0
    for sample in samples:
        if is_grayscale(sample.hex):
            continue
        value = saturation(sample.hex)
        if value > best_saturation:
            best, best_saturation = sample, value
    return best.hex if best is not None else None
