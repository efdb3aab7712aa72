"""Scaled access to a TrueType font: lookup, metrics, kerning and glyph rendering."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .raster import Outline, render_outline
from .truetype import FontError, FontFile

VERSION = "0.10.2"


def version() -> str:
    """Return the version of the glyph renderer."""
    return VERSION


@dataclass(frozen=True)
class LineMetrics:
    """Vertical metrics of the font at the current scale."""

    ascender: float
    descender: float
    line_gap: float


@dataclass(frozen=True)
class GlyphMetrics:
    """Metrics of one glyph at the current scale."""

    advance_width: float = 0.0
    left_side_bearing: float = 0.0
    y_offset: int = 0
    min_width: int = 0
    min_height: int = 0


@dataclass(frozen=True)
class Kerning:
    """Shift to apply between a pair of glyphs."""

    x_shift: float = 0.0
    y_shift: float = 0.0


@dataclass(frozen=True)
class GlyphImage:
    """An 8-bit grayscale glyph bitmap stored row by row."""

    pixels: bytes
    width: int
    height: int


@dataclass
class Typeface:
    """A font together with the scale, offset and orientation used to draw it."""

    font: FontFile
    x_scale: float
    y_scale: float
    x_offset: float = 0.0
    y_offset: float = 0.0
    downward_y: bool = False

    def _units_per_em(self) -> int:
        if not self.font.units_per_em:
            raise FontError("font declares zero units per em")
        return self.font.units_per_em

    def _scaled_bbox(self, outline: int) -> tuple[int, int, int, int]:
        x_min, y_min, x_max, y_max = self.font.bbox(outline)
        upem = self._units_per_em()
        x_factor = self.x_scale / upem
        y_factor = self.y_scale / upem
        return (
            math.floor(x_min * x_factor + self.x_offset),
            math.floor(y_min * y_factor + self.y_offset),
            math.ceil(x_max * x_factor + self.x_offset),
            math.ceil(y_max * y_factor + self.y_offset),
        )

    def lookup(self, codepoint: int | str) -> int:
        """Return the glyph index of a code point (0 when the font lacks it)."""
        if isinstance(codepoint, str):
            if len(codepoint) != 1:
                raise ValueError("lookup takes a single character")
            codepoint = ord(codepoint)
        return self.font.glyph_id(codepoint)

    def gmetrics(self, glyph: int) -> GlyphMetrics:
        """Return the scaled metrics of a glyph."""
        advance, bearing = self.font.hor_metrics(glyph)
        x_factor = self.x_scale / self._units_per_em()
        advance_width = advance * x_factor
        left_side_bearing = bearing * x_factor + self.x_offset

        outline = self.font.outline_offset(glyph)
        if not outline:
            return GlyphMetrics(advance_width, left_side_bearing)
        box = self._scaled_bbox(outline)
        return GlyphMetrics(
            advance_width=advance_width,
            left_side_bearing=left_side_bearing,
            y_offset=-box[3] if self.downward_y else box[1],
            min_width=box[2] - box[0] + 1,
            min_height=box[3] - box[1] + 1,
        )

    def lmetrics(self) -> LineMetrics:
        """Return the scaled ascender, descender and line gap."""
        ascender, descender, line_gap = self.font.hhea_metrics()
        factor = self.y_scale / self._units_per_em()
        return LineMetrics(ascender * factor, descender * factor, line_gap * factor)

    def kerning(self, left_glyph: int, right_glyph: int) -> Kerning:
        """Return the scaled kerning between two glyphs."""
        x_shift, y_shift = self.font.kerning(left_glyph, right_glyph)
        upem = self._units_per_em()
        return Kerning(x_shift / upem * self.x_scale, y_shift / upem * self.y_scale)

    def render(self, glyph: int, width: int, height: int) -> GlyphImage:
        """Render a glyph into a ``width`` x ``height`` grayscale image."""
        if width < 0 or height < 0:
            raise ValueError("image dimensions must not be negative")
        outline_offset = self.font.outline_offset(glyph)
        if not outline_offset:
            return GlyphImage(bytes(width * height), width, height)

        box = self._scaled_bbox(outline_offset)
        upem = self._units_per_em()
        if self.downward_y:
            d = -self.y_scale / upem
            f = box[3] - self.y_offset
        else:
            d = self.y_scale / upem
            f = self.y_offset - box[1]
        transform = (self.x_scale / upem, 0.0, 0.0, d, self.x_offset - box[0], f)

        outline = Outline()
        self.font.decode_outline(outline_offset, outline, 0)
        pixels = render_outline(outline, transform, width, height)
        return GlyphImage(pixels, width, height)