"""Common color helpers shared by renderer implementations."""
from __future__ import annotations

import re
from typing import Optional, Tuple

from reportlab.lib.colors import Color, getAllNamedColors

RGB = Tuple[int, int, int]

_RGB_FUNCTION = re.compile(r"rgba?\(\s*(\d+(?:\.\d+)?)\s*,?\s*(\d+(?:\.\d+)?)\s*,?\s*(\d+(?:\.\d+)?)")


def parse_rgb_color(color: Optional[str]) -> Optional[RGB]:
    """Parse ``rgb()``/``rgba()``, ``#rgb``/``#rrggbb`` or a named CSS color."""
    if not color:
        return None
    value = color.strip().lower()

    match = _RGB_FUNCTION.match(value)
    if match:
        return tuple(min(255, int(float(component))) for component in match.groups())  # type: ignore[return-value]

    if value.startswith("#"):
        digits = value[1:]
        try:
            if len(digits) in (3, 4):
                return int(digits[0] * 2, 16), int(digits[1] * 2, 16), int(digits[2] * 2, 16)
            if len(digits) >= 6:
                return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)
        except ValueError:
            return None
        return None

    named = getAllNamedColors().get(value)
    if named is not None:
        return round(named.red * 255), round(named.green * 255), round(named.blue * 255)
    return None


def is_light_color(color: Optional[str]) -> bool:
    """Perceived luminance check; unparseable colors count as light."""
    rgb = parse_rgb_color(color)
    if rgb is None:
        return True
    red, green, blue = rgb
    luminance = (0.299 * red + 0.587 * green + 0.114 * blue) / 255
    return luminance > 0.5


def to_reportlab_color(color: Optional[str], fallback: Optional[str] = None) -> Optional[Color]:
    """Convert a CSS color string to a ReportLab color, trying ``fallback`` next."""
    for candidate in (color, fallback):
        rgb = parse_rgb_color(candidate)
        if rgb is not None:
            return Color(rgb[0] / 255, rgb[1] / 255, rgb[2] / 255)
    return None
