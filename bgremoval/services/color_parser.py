from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from loguru import logger

from bgremoval.core.errors import InvalidColorFormat
from bgremoval.models.domain import RGBColor
from bgremoval.utils.numeric import round_half_away_from_zero

_RGB_FUNC = re.compile(r"rgba?\(([^)]+)\)")
_RGB_SEPARATORS = re.compile(r"[\s,]+")
_HEX_DIGITS = re.compile(r"[0-9a-f]+")


def _default_named_colors() -> dict[str, RGBColor]:
    return {
        "white": RGBColor(255, 255, 255),
        "black": RGBColor(0, 0, 0),
        "red": RGBColor(255, 0, 0),
        "green": RGBColor(0, 255, 0),
        "blue": RGBColor(0, 0, 255),
    }


@dataclass
class ColorParserService:
    """
    Parse color expressions into an RGB triple.

    Supported (after trim + lowercase, tried in this order):
    - named colors: white, black, red, green, blue
    - hex: #RGB, #RRGGBB
    - rgb(R G B), rgb(R, G, B), rgba(R,G,B,A) (alpha is validated, then ignored)
    """
    named_colors: dict[str, RGBColor] = field(default_factory=_default_named_colors)

    def parse_color(self, color_string: str) -> RGBColor:
        normalized = color_string.strip().lower()

        named = self.named_colors.get(normalized)
        if named is not None:
            return named

        if normalized.startswith("#"):
            return self._parse_hex(normalized)

        if normalized.startswith("rgb"):
            return self._parse_rgb(normalized)

        raise InvalidColorFormat(
            f'Invalid color format: "{color_string}". '
            f"Supported: #FFF, #FFFFFF, rgb(R G B), rgba(R,G,B,A), "
            f"{', '.join(sorted(self.named_colors))}"
        )

    def is_valid_color(self, color_string: str) -> bool:
        try:
            self.parse_color(color_string)
        except InvalidColorFormat:
            return False
        return True

    def _parse_hex(self, hex_string: str) -> RGBColor:
        digits = hex_string[1:]

        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        elif len(digits) != 6:
            raise InvalidColorFormat(
                f'Invalid hex color format: "{hex_string}". Use #FFF or #FFFFFF'
            )

        if not _HEX_DIGITS.fullmatch(digits):
            raise InvalidColorFormat(
                f'Invalid hex color format: "{hex_string}" contains non-hex digits'
            )

        r, g, b = (int(digits[i:i + 2], 16) for i in (0, 2, 4))
        return self._validate_rgb(r, g, b)

    def _parse_rgb(self, rgb_string: str) -> RGBColor:
        match = _RGB_FUNC.search(rgb_string)
        if not match:
            raise InvalidColorFormat(
                f'Invalid RGB format: "{rgb_string}". Use rgb(R G B) or rgba(R,G,B,A)'
            )

        tokens = [t for t in _RGB_SEPARATORS.split(match.group(1).strip()) if t]
        if len(tokens) < 3:
            raise InvalidColorFormat(
                f'Invalid RGB values: "{rgb_string}". Need at least 3 values (R,G,B)'
            )

        values = [self._parse_number(t, rgb_string) for t in tokens[:4]]
        if len(values) == 4:
            logger.debug(f"Ignoring alpha component {values[3]} in {rgb_string!r}")

        r, g, b = (round_half_away_from_zero(v) for v in values[:3])
        return self._validate_rgb(r, g, b)

    @staticmethod
    def _parse_number(token: str, source: str) -> float:
        try:
            value = float(token)
        except ValueError:
            value = math.nan
        if not math.isfinite(value):
            raise InvalidColorFormat(
                f'Invalid RGB value "{token}" in "{source}". Must be a number'
            )
        return value

    @staticmethod
    def _validate_rgb(r: int, g: int, b: int) -> RGBColor:
        for name, value in (("r", r), ("g", g), ("b", b)):
            if not 0 <= value <= 255:
                raise InvalidColorFormat(
                    f"Invalid RGB values: r={r}, g={g}, b={b}. "
                    f"{name}={value} must be 0-255"
                )
        return RGBColor(r, g, b)
