import struct

import pytest

from dumplingkit.console import Framebuffer, LogConsole
from dumplingkit.truetype import FontError, FontFile
from dumplingkit.typeface import GlyphImage, Typeface

BACKGROUND = (0x0B, 0x5D, 0x5E, 0x00)
WHITE = (255, 255, 255, 0)


def _font_bytes() -> bytes:
    square = (
        struct.pack(">hhhhh", 1, 0, 0, 500, 500)
        + struct.pack(">HH", 3, 0)
        + bytes([1, 1, 1, 1])
        + struct.pack(">hhhh", 0, 500, 0, -500)
        + struct.pack(">hhhh", 0, 0, 500, 0)
    )
    glyf = square
    loca = struct.pack(">HHH", 0, 0, len(square) // 2)
    head = bytearray(54)
    struct.pack_into(">H", head, 18, 1000)
    struct.pack_into(">h", head, 50, 0)
    hhea = bytearray(36)
    struct.pack_into(">hhh", hhea, 4, 800, -200, 0)
    struct.pack_into(">H", hhea, 34, 2)
    hmtx = struct.pack(">HhHh", 250, 0, 600, 0)

    ends = [0x3E, 0x41, 0xFFFF]
    deltas = [(1 - 0x3E) & 0xFFFF, (1 - 0x41) & 0xFFFF, 1]
    body = (
        struct.pack(">HHHH", 6, 4, 1, 2)
        + struct.pack(">HHH", *ends)
        + struct.pack(">H", 0)
        + struct.pack(">HHH", *ends)
        + struct.pack(">HHH", *deltas)
        + struct.pack(">HHH", 0, 0, 0)
    )
    sub = struct.pack(">HHH", 4, 6 + len(body), 0) + body
    cmap = struct.pack(">HH", 0, 1) + struct.pack(">HHI", 3, 1, 12) + sub

    tables = [
        (b"cmap", cmap),
        (b"glyf", glyf),
        (b"head", bytes(head)),
        (b"hhea", bytes(hhea)),
        (b"hmtx", hmtx),
        (b"loca", loca),
    ]
    header = struct.pack(">IHHHH", 0x00010000, len(tables), 0, 0, 0)
    offset = 12 + 16 * len(tables)
    directory = b""
    payload = b""
    for tag, data in tables:
        directory += tag + struct.pack(">III", 0, offset + len(payload), len(data))
        payload += data + bytes((-len(data)) % 4)
    return header + directory + payload


@pytest.fixture
def typeface():
    return Typeface(FontFile(_font_bytes()), 20.0, 20.0)


@pytest.fixture
def console(typeface):
    return LogConsole(typeface)


def test_framebuffer_clear_sets_background_bytes():
    fb = Framebuffer(4, 3)
    fb.clear(0x0B5D5E00)
    assert fb.pixel(0, 0) == BACKGROUND
    assert fb.pixel(3, 2) == BACKGROUND


def test_framebuffer_put_pixel_keeps_alpha():
    fb = Framebuffer(4, 4)
    fb.clear(0x0B5D5E00)
    fb.put_pixel(1, 2, 10, 20, 30)
    assert fb.pixel(1, 2) == (10, 20, 30, 0)
    assert fb.pixel(2, 1) == BACKGROUND


def test_framebuffer_blend_extremes():
    fb = Framebuffer(2, 2)
    fb.clear(0x0B5D5E00)
    fb.blend_pixel(0, 0, 200, 200, 200, 0)
    assert fb.pixel(0, 0) == BACKGROUND
    fb.blend_pixel(1, 1, 200, 100, 50, 255)
    assert fb.pixel(1, 1) == (200, 100, 50, 0)


def test_framebuffer_out_of_range():
    fb = Framebuffer(2, 2)
    with pytest.raises(IndexError):
        fb.put_pixel(2, 0, 1, 1, 1)
    with pytest.raises(ValueError):
        Framebuffer(0, 5)


def test_add_line_fills_then_scrolls():
    console = LogConsole()
    for n in range(console.screen_size()):
        console.print(f"line {n}")
    assert console.screen_position() == console.screen_size()
    console.print("extra")
    lines = console.lines()
    assert lines[0] == "line 1"
    assert lines[-1] == "extra"
    assert console.screen_position() == console.screen_size()


def test_add_line_truncates_long_lines():
    console = LogConsole()
    console.add_line("x" * 200)
    console.add_line("y" * 128)
    assert console.lines()[0] == "x" * 127
    assert console.lines()[1] == "y" * 128


def test_printf_formats_and_truncates():
    console = LogConsole()
    console.printf("%s has %d items", "box", 5)
    console.printf("%s", "z" * 300)
    assert console.lines()[0] == "box has 5 items"
    assert len(console.lines()[1]) == 127


def test_print_at_and_printf_at():
    console = LogConsole()
    console.print_at(3, "menu")
    console.printf_at(5, "%s-%d", "a", 1)
    console.print_at(18, "ignored")
    console.printf_at(-1, "ignored")
    lines = console.lines()
    assert lines[3] == "menu"
    assert lines[5] == "a-1"
    assert "ignored" not in lines
    assert console.screen_position() == 0


def test_print_bottom_keeps_block_at_bottom():
    console = LogConsole()
    console.print_bottom("a")
    console.print_bottom("b")
    console.print_bottom("c")
    assert console.lines()[-3:] == ["a", "b", "c"]
    assert console.bottom_lines == 3


def test_clear_and_start_screen_reset():
    console = LogConsole()
    console.print("hello")
    console.print_bottom("bottom")
    console.start_screen()
    assert console.lines() == [""] * console.screen_size()
    assert console.screen_position() == 0
    assert console.bottom_lines == 0


def test_set_font_size_requires_font_and_valid_size(console):
    with pytest.raises(FontError):
        LogConsole().set_font_size(20)
    with pytest.raises(ValueError):
        console.set_font_size(0)


def test_cursor_space_width_matches_cursor_glyph(console, typeface):
    console.set_font_size(30)
    expected = typeface.gmetrics(typeface.lookup(">")).advance_width
    assert console.cursor_space_width == int(expected)
    assert typeface.x_scale == 30.0


def test_draw_bitmap_uses_font_color_and_clips():
    console = LogConsole()
    console.tv.clear(0x0B5D5E00)
    console.drc.clear(0x0B5D5E00)
    console.set_font_color(0x00112233)
    image = GlyphImage(bytes([0xFF, 0x00, 0xFF, 0xFF]), 2, 2)
    console.draw_bitmap(image, -1, 0)
    assert console.tv.pixel(0, 0) == BACKGROUND
    assert console.tv.pixel(0, 1) == (0x11, 0x22, 0x33, 0)
    assert console.drc.pixel(0, 1) == (0x11, 0x22, 0x33, 0)


def test_render_line_draws_glyph(console):
    console.tv.clear(0x0B5D5E00)
    console.drc.clear(0x0B5D5E00)
    assert console.render_line(24, 48, "A", False) == 48
    assert console.tv.pixel(28, 42) == WHITE
    assert console.drc.pixel(28, 42) == WHITE


def test_render_line_without_font():
    with pytest.raises(FontError):
        LogConsole().render_line(0, 0, "A", False)


def test_draw_renders_lines_and_flips(console):
    console.print("A")
    console.draw()
    assert console.shown_tv.pixel(28, 42) == WHITE
    assert console.shown_drc.pixel(28, 42) == WHITE
    assert console.shown_tv.pixel(0, 0) == BACKGROUND
    assert console.tv is not console.shown_tv


def test_draw_does_nothing_in_background(console):
    console.foreground = False
    console.print("A")
    console.draw()
    assert console.shown_tv is None
    assert console.tv.pixel(28, 42) == (0, 0, 0, 0)