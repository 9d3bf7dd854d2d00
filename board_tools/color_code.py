"""Color code title prefix.

The stitch/import stage writes the computed color class into the widget
title as ``C<saturation>/<brightness> <name>`` (two and three zero padded
digits).  The sorting stage reads it back.  Titles are the only attribute
that survives between the two independent operations, so this module is the
single owner of the format.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .config import BRIGHTNESS_CODE_MAX, GRAY_THRESHOLD, SATURATION_CODE_MAX

_PREFIX_RE = re.compile(r"^C(\d{2})/(\d{3})\s+")


@dataclass(frozen=True, slots=True)
class ColorCode:
    """Parsed color prefix of a title."""

    saturation: int
    brightness: int

    def group(self, gray_threshold: int = GRAY_THRESHOLD) -> int:
        """0 for achromatic items, 1 for chromatic ones."""
        return 0 if self.saturation <= gray_threshold else 1


def format_prefix(saturation: int, brightness: int) -> str:
    if not 0 <= saturation <= SATURATION_CODE_MAX:
        raise ValueError(f"saturation code out of range: {saturation}")
    if not 0 <= brightness <= BRIGHTNESS_CODE_MAX:
        raise ValueError(f"brightness code out of range: {brightness}")
    return f"C{saturation:02d}/{brightness:03d}"


def encode_title(name: str, saturation: int, brightness: int) -> str:
    """Return ``name`` with a color prefix, replacing any existing one."""
    return f"{format_prefix(saturation, brightness)} {strip_code(name)}"


def parse_title(title: Optional[str]) -> Optional[ColorCode]:
    """Return the color code at the start of ``title`` or ``None``."""
    if not title:
        return None
    match = _PREFIX_RE.match(title)
    if not match:
        return None
    return ColorCode(saturation=int(match.group(1)), brightness=int(match.group(2)))


def strip_code(title: str) -> str:
    """Return ``title`` without its color prefix."""
    return _PREFIX_RE.sub("", title, count=1)


__all__ = [
    "ColorCode",
    "encode_title",
    "format_prefix",
    "parse_title",
    "strip_code",
]
