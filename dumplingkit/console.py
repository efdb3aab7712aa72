"""A scrolling text console drawn with a TrueType font into TV and gamepad framebuffers."""

from __future__ import annotations

import logging

from .raster import OutlineError
from .truetype import FontError
from .typeface import GlyphImage, Typeface

logger = logging.getLogger(__name__)

NUM_LINES = 18
LINE_LENGTH = 128

TV_WIDTH = 1280
TV_HEIGHT = 720
DRC_WIDTH = 896
DRC_HEIGHT = 480

# Text is only drawn inside the area both screens can show.
DRAW_WIDTH = 854
DRAW_HEIGHT = 480
MAX_PEN_X = 853

DEFAULT_FONT_COLOR = 0xFFFFFFFF
DEFAULT_BACKGROUND_COLOR = 0x0B5D5E00
DEFAULT_FONT_SIZE = 20

# Glyph that sets the width of a leading space, so menu entries line up with the cursor.
CURSOR_GLYPH = ">"


class Framebuffer:
    """An RGBA pixel buffer, four bytes per pixel, stored row by row."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("framebuffer dimensions must be positive")
        self.width = width
        self.height = height
        self.data = bytearray(width * height * 4)

    def _offset(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel ({x}, {y}) is outside the framebuffer")
        return (x + y * self.width) * 4

    def clear(self, color: int) -> None:
        """Fill every pixel with the ``0xRRGGBBAA`` colour."""
        self.data[:] = (color & 0xFFFFFFFF).to_bytes(4, "big") * (self.width * self.height)

    def put_pixel(self, x: int, y: int, r: int, g: int, b: int) -> None:
        """Set the colour channels of one pixel, leaving its alpha byte alone."""
        offset = self._offset(x, y)
        self.data[offset:offset + 3] = bytes((r & 0xFF, g & 0xFF, b & 0xFF))

    def blend_pixel(self, x: int, y: int, r: int, g: int, b: int, a: int) -> None:
        """Blend a colour with opacity ``a`` (0-255) over one pixel."""
        offset = self._offset(x, y)
        opacity = (a & 0xFF) / 255.0
        remaining = 1.0 - opacity
        for channel, value in enumerate((r & 0xFF, g & 0xFF, b & 0xFF)):
            old = self.data[offset + channel]
            self.data[offset + channel] = min(255, int(value * opacity + old * remaining))

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        """Return the ``(r, g, b, a)`` bytes of one pixel."""
        offset = self._offset(x, y)
        return tuple(self.data[offset:offset + 4])


def _fit(line: str) -> str:
    line = str(line)
    if len(line) > LINE_LENGTH:
        return line[:LINE_LENGTH - 1]
    return line


def _fit_formatted(line: str) -> str:
    return line[:LINE_LENGTH - 1]


class LogConsole:
    """A fixed screen of text lines that scrolls as lines are added."""

    def __init__(self, typeface: Typeface | None = None) -> None:
        self.typeface = typeface
        self._lines = [""] * NUM_LINES
        self.new_lines = 0
        self.bottom_lines = 0
        self.font_color = DEFAULT_FONT_COLOR
        self.background_color = DEFAULT_BACKGROUND_COLOR
        self.cursor_space_width = 0
        self._glyph_cache: dict[int, GlyphImage] = {}
        self.foreground = True

        self.tv = Framebuffer(TV_WIDTH, TV_HEIGHT)
        self.drc = Framebuffer(DRC_WIDTH, DRC_HEIGHT)
        self._tv_back = Framebuffer(TV_WIDTH, TV_HEIGHT)
        self._drc_back = Framebuffer(DRC_WIDTH, DRC_HEIGHT)
        self.shown_tv: Framebuffer | None = None
        self.shown_drc: Framebuffer | None = None

        if typeface is not None:
            typeface.downward_y = True
            self.set_font_size(DEFAULT_FONT_SIZE)

    # -- line queue -------------------------------------------------------

    def add_line(self, line: str) -> None:
        """Append a line, scrolling the oldest one off once the screen is full."""
        line = _fit(line)
        if self.new_lines == NUM_LINES:
            del self._lines[0]
            self._lines.append(line)
        else:
            self._lines[self.new_lines] = line
            self.new_lines += 1

    def print(self, line: str) -> None:
        """Append a line of text."""
        self.add_line(line)

    def printf(self, fmt: str, *args: object) -> None:
        """Append a ``%``-formatted line."""
        self.add_line(_fit_formatted(fmt % args if args else fmt))

    def print_at(self, position: int, line: str) -> None:
        """Replace the line at ``position``; positions off the screen are ignored."""
        if not 0 <= position < NUM_LINES:
            return
        self._lines[position] = _fit(line)

    def printf_at(self, position: int, fmt: str, *args: object) -> None:
        """Replace the line at ``position`` with a ``%``-formatted one."""
        if not 0 <= position < NUM_LINES:
            return
        self._lines[position] = _fit_formatted(fmt % args if args else fmt)

    def print_bottom(self, line: str) -> None:
        """Add a line to the block kept at the bottom of the screen."""
        line = _fit(line)
        for i in range(NUM_LINES - self.bottom_lines, NUM_LINES):
            self._lines[i - 1] = self._lines[i]
        self._lines[NUM_LINES - 1] = line
        if self.bottom_lines < NUM_LINES - 1:
            self.bottom_lines += 1

    def clear(self) -> None:
        """Empty every line and reset the write positions."""
        self.new_lines = 0
        self.bottom_lines = 0
        self._lines = [""] * NUM_LINES

    def start_screen(self) -> None:
        """Begin a fresh screen."""
        self.clear()

    def screen_size(self) -> int:
        """Return how many lines fit on the screen."""
        return NUM_LINES

    def screen_position(self) -> int:
        """Return the number of lines added since the screen was cleared."""
        return self.new_lines

    def lines(self) -> list[str]:
        """Return a copy of the lines on the screen, top first."""
        return list(self._lines)

    # -- rendering options ------------------------------------------------

    def set_font_color(self, color: int) -> None:
        self.font_color = color & 0xFFFFFFFF

    def set_background_color(self, color: int) -> None:
        self.background_color = color & 0xFFFFFFFF

    def set_font_size(self, size: int) -> None:
        """Scale the font to ``size`` pixels and drop cached glyph images."""
        if not 1 <= size <= 0xFF:
            raise ValueError("font size must be between 1 and 255")
        if self.typeface is None:
            raise FontError("no font is loaded")
        self.typeface.x_scale = float(size)
        self.typeface.y_scale = float(size)
        glyph = self.typeface.lookup(CURSOR_GLYPH)
        metrics = self.typeface.gmetrics(glyph)
        self.cursor_space_width = int(metrics.advance_width)
        self._glyph_cache.clear()

    # -- drawing ----------------------------------------------------------

    def draw_bitmap(self, image: GlyphImage, x: int, y: int) -> None:
        """Draw a grayscale glyph image in the font colour onto both screens."""
        r = (self.font_color >> 16) & 0xFF
        g = (self.font_color >> 8) & 0xFF
        b = self.font_color & 0xFF
        pixels = image.pixels
        for q in range(image.height):
            j = y + q
            if j < 0 or j >= DRAW_HEIGHT:
                continue
            for p in range(image.width):
                i = x + p
                if i < 0 or i >= DRAW_WIDTH:
                    continue
                coverage = pixels[q * image.width + p]
                if coverage == 0:
                    continue
                for screen in (self.tv, self.drc):
                    if coverage == 0xFF:
                        screen.put_pixel(i, j, r, g, b)
                    else:
                        screen.blend_pixel(i, j, r, g, b, coverage)

    def _glyph_image(self, glyph: int, min_width: int, min_height: int) -> GlyphImage | None:
        cached = self._glyph_cache.get(glyph)
        if cached is not None:
            return cached
        width = (min_width + 3) & ~3
        try:
            image = self.typeface.render(glyph, width, min_height)
        except (FontError, OutlineError, ValueError):
            logger.warning("failed to render glyph %d", glyph)
            return None
        self._glyph_cache[glyph] = image
        return image

    def render_line(self, x: int, y: int, text: str, wrap: bool) -> int:
        """Draw one line of text at ``(x, y)`` and return the final pen row."""
        if self.typeface is None:
            raise FontError("no font is loaded")
        pen_x, pen_y = x, y
        for char in text:
            try:
                glyph = self.typeface.lookup(char)
            except FontError:
                logger.warning("failed to look up character %r", char)
                continue
            try:
                metrics = self.typeface.gmetrics(glyph)
            except FontError:
                logger.warning("failed to read metrics of character %r", char)
                continue

            if char == "\n":
                pen_y += metrics.min_height
                pen_x = x
                continue

            image = self._glyph_image(glyph, metrics.min_width, metrics.min_height)
            if image is None:
                continue

            advance = int(metrics.advance_width)
            if pen_x + advance > MAX_PEN_X:
                if not wrap:
                    return pen_y
                pen_y += int(self.typeface.y_offset)
                pen_x = x

            self.draw_bitmap(
                image, pen_x + int(metrics.left_side_bearing), pen_y + metrics.y_offset
            )
            if pen_x == x and char == " " and self.cursor_space_width != 0:
                pen_x += self.cursor_space_width
            else:
                pen_x += advance
        return pen_y

    def draw(self) -> None:
        """Redraw every line and flip the screens, if the console is in the foreground."""
        if not self.foreground:
            return
        self.tv.clear(self.background_color)
        self.drc.clear(self.background_color)
        if self.typeface is not None:
            for row, line in enumerate(self._lines):
                self.render_line(2 * 12, (row + 2) * 24, line, False)
        self.shown_tv, self.shown_drc = self.tv, self.drc
        self.tv, self._tv_back = self._tv_back, self.tv
        self.drc, self._drc_back = self._drc_back, self.drc